# generation/health.py
"""
Health Monitor - tracks backend liveness from real attempts and probes.

Two inputs update a backend's record:
- record_attempt(outcome) after every orchestration attempt
- probe_all() running validate_connection() on each registered backend

Probes run concurrently and are isolated from each other; a probe that
raises, or runs past the probe interval, marks only its own backend
unhealthy.

The periodic probe is an asyncio task owned by the monitor. start() and
stop() bound its lifetime to the application's.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from generation.models import AttemptOutcome, HealthRecord, utc_now
from generation.registry import BackendRegistry

_logger = logging.getLogger(__name__)

DEFAULT_PROBE_INTERVAL_SECONDS = 300.0
DEFAULT_INITIAL_DELAY_SECONDS = 1.0


class HealthMonitor:
    """Health bookkeeping and periodic probing over a BackendRegistry."""

    def __init__(
        self,
        registry: BackendRegistry,
        interval: float = DEFAULT_PROBE_INTERVAL_SECONDS,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        primary: Optional[str] = None,
    ):
        self.registry = registry
        self.interval = interval
        self.initial_delay = initial_delay
        self.primary = primary
        self._task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_attempt(self, outcome: AttemptOutcome) -> Optional[HealthRecord]:
        record = self.registry.update_health(
            outcome.backend_name,
            healthy=outcome.succeeded,
            latency_ms=outcome.latency_ms,
            error=outcome.error,
        )
        if record is not None and not outcome.succeeded:
            _logger.warning(
                f"[HEALTH] {outcome.backend_name} marked unhealthy: {outcome.error}"
            )
        return record

    def is_healthy(self, name: str) -> bool:
        """Unknown backends count as healthy."""
        record = self.registry.health(name)
        return record is None or record.healthy

    # -------------------------------------------------------------------------
    # Probing
    # -------------------------------------------------------------------------

    async def probe(self, name: str) -> Optional[HealthRecord]:
        """Probe one backend and record the result."""
        backend = self.registry.get(name)
        if backend is None:
            return None
        start = time.monotonic()
        try:
            ok = await asyncio.wait_for(backend.validate_connection(), self.interval)
            error = None if ok else "Connection validation failed"
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            ok = False
            error = f"Connection validation timed out after {self.interval}s"
        except Exception as e:
            ok = False
            error = str(e) or type(e).__name__
        latency_ms = (time.monotonic() - start) * 1000
        return self.registry.update_health(name, healthy=ok, latency_ms=latency_ms, error=error)

    async def probe_all(self) -> List[HealthRecord]:
        names = sorted(self.registry.list_names())
        results = await asyncio.gather(
            *(self.probe(name) for name in names), return_exceptions=True
        )
        records = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                _logger.error(f"[HEALTH] probe for {name} crashed: {result}")
                continue
            if result is not None:
                records.append(result)
        healthy = sum(1 for r in records if r.healthy)
        _logger.info(f"[HEALTH] probed {len(records)} backends, {healthy} healthy")
        return records

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule periodic probing on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        _logger.info(f"[HEALTH] monitor started, interval={self.interval}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _logger.info("[HEALTH] monitor stopped")

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.probe_all()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                _logger.error(f"[HEALTH] probe cycle failed: {e}")
            await asyncio.sleep(self.interval)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        records = sorted(self.registry.health_records(), key=lambda r: r.name)
        healthy_count = sum(1 for r in records if r.healthy)
        primary_healthy = None
        if self.primary is not None:
            primary = self.registry.health(self.primary)
            primary_healthy = primary.healthy if primary is not None else False
        return {
            "healthy": healthy_count > 0,
            "healthyCount": healthy_count,
            "totalBackends": len(records),
            "primaryBackend": self.primary,
            "primaryHealthy": primary_healthy,
            "backends": [r.to_dict() for r in records],
            "registered": [r.name for r in records],
            "timestamp": utc_now().isoformat(),
        }
