# generation/tests/test_health_monitor.py
"""Tests for attempt recording, probing and the monitor lifecycle."""
import asyncio

from builders import ScriptedBackend
from generation.health import HealthMonitor
from generation.models import AttemptOutcome
from generation.registry import BackendRegistry


class HangingBackend(ScriptedBackend):
    """Backend whose connection check never completes."""

    async def validate_connection(self) -> bool:
        self.probes += 1
        await asyncio.Event().wait()
        return True


def monitor_with(*backends, **kwargs) -> HealthMonitor:
    registry = BackendRegistry()
    for backend in backends:
        registry.register(backend.name, backend)
    return HealthMonitor(registry, **kwargs)


class TestRecordAttempt:

    def test_failure_marks_unhealthy(self):
        monitor = monitor_with(ScriptedBackend("openai"))

        record = monitor.record_attempt(
            AttemptOutcome("openai", succeeded=False, latency_ms=50.0, error="HTTP 500")
        )

        assert record.healthy is False
        assert record.last_error == "HTTP 500"
        assert monitor.is_healthy("openai") is False

    def test_success_restores_health(self):
        monitor = monitor_with(ScriptedBackend("openai"))
        monitor.record_attempt(AttemptOutcome("openai", succeeded=False, error="down"))

        monitor.record_attempt(AttemptOutcome("openai", succeeded=True, latency_ms=900.0))

        assert monitor.is_healthy("openai") is True

    def test_unknown_backend(self):
        monitor = monitor_with()
        assert monitor.record_attempt(AttemptOutcome("ghost", succeeded=False)) is None
        assert monitor.is_healthy("ghost") is True


class TestProbing:

    def test_checks_are_isolated(self):
        crashing = ScriptedBackend("crashing", healthy=ConnectionError("refused"))
        failing = ScriptedBackend("failing", healthy=False)
        working = ScriptedBackend("working")
        monitor = monitor_with(crashing, failing, working)

        records = asyncio.run(monitor.probe_all())

        by_name = {r.name: r for r in records}
        assert set(by_name) == {"crashing", "failing", "working"}
        assert by_name["crashing"].healthy is False
        assert by_name["crashing"].last_error == "refused"
        assert by_name["failing"].last_error == "Connection validation failed"
        assert by_name["working"].healthy is True
        assert working.probes == 1

    def test_hung_check_is_cut_at_the_interval(self):
        hung = HangingBackend("hung")
        working = ScriptedBackend("working")
        monitor = monitor_with(hung, working, interval=0.05)

        records = asyncio.run(monitor.probe_all())

        by_name = {r.name: r for r in records}
        assert by_name["hung"].healthy is False
        assert by_name["hung"].last_error == "Connection validation timed out after 0.05s"
        assert by_name["working"].healthy is True
        assert monitor.is_healthy("hung") is False

    def test_unregistered_backend_check(self):
        monitor = monitor_with()
        assert asyncio.run(monitor.probe("ghost")) is None


class TestLifecycle:

    def test_start_checks_and_stop_cancels(self):
        backend = ScriptedBackend("mock")
        monitor = monitor_with(backend, interval=0.01, initial_delay=0)

        async def run():
            monitor.start()
            assert monitor.running is True
            await asyncio.sleep(0.05)
            await monitor.stop()

        asyncio.run(run())

        assert backend.probes >= 1
        assert monitor.running is False

    def test_start_twice_keeps_one_task(self):
        monitor = monitor_with(ScriptedBackend("mock"), initial_delay=10)

        async def run():
            monitor.start()
            first = monitor._task
            monitor.start()
            assert monitor._task is first
            await monitor.stop()

        asyncio.run(run())

    def test_stop_without_start(self):
        asyncio.run(monitor_with().stop())


class TestStatus:

    def test_status_report(self):
        monitor = monitor_with(
            ScriptedBackend("openai"), ScriptedBackend("mock"), primary="openai"
        )
        monitor.record_attempt(AttemptOutcome("openai", succeeded=False, error="timeout"))

        status = monitor.status()

        assert status["healthy"] is True
        assert status["healthyCount"] == 1
        assert status["totalBackends"] == 2
        assert status["primaryBackend"] == "openai"
        assert status["primaryHealthy"] is False
        assert status["registered"] == ["mock", "openai"]
        assert status["backends"][1]["lastError"] == "timeout"

    def test_nothing_registered(self):
        status = monitor_with(primary="openai").status()
        assert status["healthy"] is False
        assert status["primaryHealthy"] is False
