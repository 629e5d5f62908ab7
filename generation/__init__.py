# generation/__init__.py
"""
Parlay generation core.

Turns an event, its rosters and a strategy into a validated set of legs by
delegating to interchangeable generation backends, falling back across them
on failure and tracking their health.
"""

from generation.engine import EngineConfig, GenerationEngine, HealthGate
from generation.errors import (
    AllBackendsFailed,
    BackendError,
    ConfigurationError,
    GenerationError,
    MalformedOutput,
    ValidationError,
)
from generation.health import HealthMonitor
from generation.models import GeneratedSet, GenerationRequest, GenerationResult, Leg
from generation.registry import BackendRegistry

__all__ = [
    # Orchestration
    "GenerationEngine",
    "EngineConfig",
    "HealthGate",
    "BackendRegistry",
    "HealthMonitor",
    # Models
    "GenerationRequest",
    "GenerationResult",
    "GeneratedSet",
    "Leg",
    # Errors
    "GenerationError",
    "ValidationError",
    "ConfigurationError",
    "BackendError",
    "MalformedOutput",
    "AllBackendsFailed",
]
