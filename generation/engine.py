# generation/engine.py
"""
Orchestration Engine - runs one generation request across backends.

Flow:
1. Validate the request and build its context
2. Resolve the try-order (explicit backend, or primary then fallbacks)
3. Attempt each candidate in turn until one returns a valid set
4. Exhausted -> AllBackendsFailed with the number of attempts made
5. Classify the winning set (variety, template risk, conflicts, odds) as
   advisory metadata

Retries inside a backend are the backend's business and never count as
attempts here. Only moving to another backend is a fallback.

Health policy:
- ADVISORY: an unhealthy candidate is logged and tried anyway
- ENFORCING: an unhealthy candidate is skipped without counting an attempt
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from generation import classifier
from generation.backends.base import GenerationBackend, check_request
from generation.context_builder import build_context
from generation.errors import (
    AllBackendsFailed,
    AttemptTimeout,
    GenerationError,
    NoBackendsConfigured,
    NoSuitableBackend,
)
from generation.health import HealthMonitor
from generation.models import (
    AUTO_BACKEND,
    AttemptOutcome,
    BackendResponse,
    GenerationContext,
    GenerationMetadata,
    GenerationRequest,
    GenerationResult,
)
from generation.registry import BackendRegistry

_logger = logging.getLogger(__name__)


class HealthGate(str, Enum):
    ADVISORY = "advisory"
    ENFORCING = "enforcing"


@dataclass(frozen=True)
class EngineConfig:
    primary: str = "openai"
    fallbacks: Tuple[str, ...] = ("mock",)
    fallback_enabled: bool = True
    max_retries: int = 3
    health_gate: HealthGate = HealthGate.ADVISORY
    attempt_timeout: Optional[float] = 45.0
    health_check_interval: float = 300.0


class GenerationEngine:
    """Resolves a try-order and walks it until a backend succeeds."""

    def __init__(
        self,
        registry: BackendRegistry,
        config: Optional[EngineConfig] = None,
        monitor: Optional[HealthMonitor] = None,
    ):
        self.registry = registry
        self.config = config or EngineConfig()
        self.monitor = monitor or HealthMonitor(
            registry,
            interval=self.config.health_check_interval,
            primary=self.config.primary,
        )

    def try_order(self, backend_choice: str = AUTO_BACKEND) -> List[str]:
        """
        Ordered backend names to attempt for one request.

        Raises:
            NoSuitableBackend: If an explicit backend is not registered, or no
                               configured backend is registered
        """
        if backend_choice and backend_choice != AUTO_BACKEND:
            if self.registry.get(backend_choice) is None:
                raise NoSuitableBackend(
                    f"Backend '{backend_choice}' is not available",
                    details={"requested": backend_choice},
                )
            return [backend_choice]

        order = [self.config.primary]
        if self.config.fallback_enabled:
            for name in self.config.fallbacks:
                if name not in order:
                    order.append(name)

        registered = self.registry.list_names()
        order = [name for name in order if name in registered]
        if not order:
            raise NoSuitableBackend(
                "None of the configured backends are registered",
                details={"configured": [self.config.primary, *self.config.fallbacks]},
            )
        return order

    def _context_for(self, request: GenerationRequest) -> GenerationContext:
        context = build_context(request)
        if context.max_retries is None:
            context = dataclasses.replace(context, max_retries=self.config.max_retries)
        return context

    async def _attempt(
        self,
        backend: GenerationBackend,
        request: GenerationRequest,
        context: GenerationContext,
    ) -> BackendResponse:
        call = backend.generate(request, context)
        if self.config.attempt_timeout is None:
            response = await call
        else:
            try:
                response = await asyncio.wait_for(call, timeout=self.config.attempt_timeout)
            except asyncio.TimeoutError:
                raise AttemptTimeout(
                    f"{backend.name} timed out after {self.config.attempt_timeout}s",
                    self.config.attempt_timeout,
                )
        response.generated_set.validate()
        return response

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Generate a set of legs, falling back across backends.

        Raises:
            ValidationError: If the request is incomplete
            NoBackendsConfigured: If the registry is empty
            NoSuitableBackend: If nothing in the try-order can be attempted
            AllBackendsFailed: If every attempted backend failed
            GenerationError: The backend's own error when fallback is disabled
        """
        check_request(request)
        if self.registry.is_empty():
            raise NoBackendsConfigured()

        context = self._context_for(request)
        order = self.try_order(request.options.backend_choice)
        candidates = self.registry.snapshot(order)
        _logger.info(f"[ENGINE] try-order: {list(candidates)}")

        attempt_count = 0
        last_error: Optional[Exception] = None
        skipped: List[str] = []

        for name, backend in candidates.items():
            if not self.monitor.is_healthy(name):
                if self.config.health_gate == HealthGate.ENFORCING:
                    _logger.warning(f"[ENGINE] skipping unhealthy backend: {name}")
                    skipped.append(name)
                    continue
                _logger.warning(f"[ENGINE] backend {name} is unhealthy, trying anyway")

            attempt_count += 1
            start = time.monotonic()
            try:
                response = await self._attempt(backend, request, context)
            except Exception as e:
                latency_ms = (time.monotonic() - start) * 1000
                last_error = e
                self.monitor.record_attempt(
                    AttemptOutcome(name, succeeded=False, latency_ms=latency_ms, error=str(e))
                )
                _logger.warning(f"[ENGINE] backend {name} failed: {e}")
                if not self.config.fallback_enabled:
                    if isinstance(e, GenerationError):
                        e.attempt_count = attempt_count
                    raise
                continue

            self.monitor.record_attempt(
                AttemptOutcome(name, succeeded=True, latency_ms=response.latency_ms)
            )
            generated = response.generated_set
            classification = classifier.classify(generated)
            if classification.has_conflicts:
                _logger.warning(
                    f"[ENGINE] {generated.id} has conflicting legs: "
                    f"{list(classification.conflicting_pairs)}"
                )
            metadata = GenerationMetadata(
                backend_name=name,
                model=response.model,
                latency_ms=response.latency_ms,
                confidence=generated.overall_confidence,
                attempt_count=attempt_count,
                fallback_used=attempt_count > 1,
                tokens=response.tokens,
                variety_score=classification.variety_score,
                template_risk=classification.template_risk,
                has_conflicts=classification.has_conflicts,
                classification=classification.to_dict(),
            )
            _logger.info(
                f"[ENGINE] generated {generated.id} with {name} "
                f"(attempts={attempt_count}, latency={response.latency_ms:.0f}ms)"
            )
            return GenerationResult(generated_set=generated, metadata=metadata)

        if attempt_count == 0:
            raise NoSuitableBackend(
                "No healthy backend available",
                details={"skipped": skipped},
            )
        _logger.error(f"[ENGINE] all backends failed after {attempt_count} attempts")
        raise AllBackendsFailed(attempt_count, last_error)
