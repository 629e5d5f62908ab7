# generation/backends/factory.py
"""
Backend factory for instantiating generation backends.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type

from generation.backends.base import GenerationBackend
from generation.backends.mock import MockBackend
from generation.backends.openai import OpenAIBackend
from generation.errors import MissingApiKey, NoBackendsConfigured
from generation.registry import BackendRegistry

_logger = logging.getLogger(__name__)


class BackendFactory:
    """
    Factory for creating backend instances.

    Usage:
        backend = BackendFactory.create("mock", seed=7)
        registry = BackendFactory.build_registry(config, api_key=key)
    """

    _backends: Dict[str, Type[GenerationBackend]] = {
        "openai": OpenAIBackend,
        "mock": MockBackend,
    }

    @classmethod
    def create(cls, name: str, **kwargs: Any) -> GenerationBackend:
        """
        Create a backend by type name.

        Raises:
            ValueError: If the name is unknown
        """
        if name not in cls._backends:
            raise ValueError(
                f"Unknown generation backend: {name}. Available: {cls.available()}"
            )
        return cls._backends[name](name=name, **kwargs)

    @classmethod
    def register_type(cls, name: str, backend_class: Type[GenerationBackend]) -> None:
        """Register a new backend type."""
        cls._backends[name] = backend_class

    @classmethod
    def available(cls) -> List[str]:
        return sorted(cls._backends)

    @classmethod
    def build_registry(cls, config, api_key: Optional[str] = None) -> BackendRegistry:
        """
        Build a registry from application config.

        OpenAI is registered only when a key is supplied; mock only when
        enabled. The API key is passed in rather than read here.

        Raises:
            MissingApiKey: If OpenAI is the primary backend, there is no key
                           and no other backend would be registered
            NoBackendsConfigured: If nothing ends up registered
        """
        registry = BackendRegistry()
        wanted = [config.primary_backend, *config.fallback_backends]

        if "openai" in wanted:
            if api_key:
                registry.register(
                    "openai",
                    cls.create(
                        "openai",
                        api_key=api_key,
                        model=config.openai_model,
                        max_tokens=config.openai_max_tokens,
                        default_temperature=config.openai_temperature,
                        timeout=config.call_timeout_seconds,
                        call_timeout=config.call_timeout_seconds,
                        max_retries=config.max_retries,
                    ),
                )
            else:
                _logger.warning("[REGISTRY] OPENAI_API_KEY not set; openai backend disabled")

        if config.mock_enabled and "mock" in wanted:
            registry.register("mock", cls.create("mock"))

        if registry.is_empty():
            if config.primary_backend == "openai" and not api_key:
                raise MissingApiKey("OPENAI_API_KEY is required when no other backend is enabled")
            raise NoBackendsConfigured()
        return registry
