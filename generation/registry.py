# generation/registry.py
"""
Backend Registry - name to backend map plus one health record per backend.

Invariant: a HealthRecord exists if and only if its backend is registered.
Records start healthy; an unknown backend is assumed usable until an attempt
or probe says otherwise.

All access goes through one lock so runtime register/unregister cannot race
in-flight orchestration. Callers iterate snapshots, never the live maps.
"""
from __future__ import annotations

import logging
from threading import Lock
from typing import Dict, List, Optional, Sequence, Set

from generation.backends.base import GenerationBackend
from generation.models import HealthRecord, utc_now

_logger = logging.getLogger(__name__)


class BackendRegistry:
    """Registered backends and their health records."""

    def __init__(self) -> None:
        self._backends: Dict[str, GenerationBackend] = {}
        self._health: Dict[str, HealthRecord] = {}
        self._lock = Lock()

    def register(self, name: str, backend: GenerationBackend) -> None:
        """Register (or replace) a backend; its health record starts healthy."""
        with self._lock:
            self._backends[name] = backend
            self._health[name] = HealthRecord(name=name, healthy=True)
        _logger.info(f"[REGISTRY] registered backend: {name}")

    def unregister(self, name: str) -> Optional[GenerationBackend]:
        """Remove a backend and its health record. Returns the removed backend."""
        with self._lock:
            backend = self._backends.pop(name, None)
            self._health.pop(name, None)
        if backend is not None:
            _logger.info(f"[REGISTRY] unregistered backend: {name}")
        return backend

    def get(self, name: str) -> Optional[GenerationBackend]:
        with self._lock:
            return self._backends.get(name)

    def list_names(self) -> Set[str]:
        with self._lock:
            return set(self._backends)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._backends

    def snapshot(self, names: Optional[Sequence[str]] = None) -> Dict[str, GenerationBackend]:
        """
        Copy of the registered backends.

        With names given, returns only the registered ones, in the given order.
        """
        with self._lock:
            if names is None:
                return dict(self._backends)
            return {name: self._backends[name] for name in names if name in self._backends}

    # -------------------------------------------------------------------------
    # Health records
    # -------------------------------------------------------------------------

    def health(self, name: str) -> Optional[HealthRecord]:
        with self._lock:
            return self._health.get(name)

    def health_records(self) -> List[HealthRecord]:
        with self._lock:
            return list(self._health.values())

    def update_health(
        self,
        name: str,
        healthy: bool,
        latency_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> Optional[HealthRecord]:
        """
        Replace a backend's health record. Last write wins.

        Ignored (returns None) when the backend was unregistered meanwhile.
        """
        record = HealthRecord(
            name=name,
            healthy=healthy,
            latency_ms=latency_ms,
            last_error=error,
            last_checked=utc_now(),
        )
        with self._lock:
            if name not in self._backends:
                return None
            self._health[name] = record
        return record

    def clear(self) -> List[GenerationBackend]:
        """Drop everything. Returns the backends so callers can close them."""
        with self._lock:
            backends = list(self._backends.values())
            self._backends.clear()
            self._health.clear()
        return backends
