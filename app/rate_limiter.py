# app/rate_limiter.py
"""
Fixed-window rate limiter for generation requests.

- Each identity (ip_<addr>) gets a counter and a window start
- The first request after a window expires starts a new window at 1
- A request is allowed while the count is within max_requests
- Entries idle longer than cleanup_after are dropped by cleanup_expired(),
  which check() runs at most once per cleanup_interval

Counters live in a RateLimitStore. Increments use a versioned
compare-and-set so concurrent requests never lose an update. Store failures
fail open: the request is allowed and the error is logged.

CI/Test Mode:
- Set PARLAY_RATE_LIMIT_MODE=ci to bypass rate limiting in tests
- Set PARLAY_RATE_LIMIT_MODE=off to disable entirely (non-production only)
- Production safety: bypass NEVER activates when ENV=production
"""
from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, Optional

_logger = logging.getLogger(__name__)

CODE_RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_SECONDS = 60 * 60
DEFAULT_CLEANUP_AFTER_SECONDS = 24 * 60 * 60
DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60
MAX_CAS_ATTEMPTS = 10

# =============================================================================
# Rate Limit Mode Configuration
# =============================================================================

RATE_LIMIT_MODE_PROD = "prod"  # Default: normal rate limiting
RATE_LIMIT_MODE_CI = "ci"      # CI/test: bypass rate limiting
RATE_LIMIT_MODE_OFF = "off"    # Off: bypass entirely (non-prod only)

_bypass_warning_logged = False


def _get_rate_limit_mode() -> str:
    return os.environ.get("PARLAY_RATE_LIMIT_MODE", RATE_LIMIT_MODE_PROD).lower()


def _is_production() -> bool:
    env = os.environ.get("ENV", "").lower()
    railway_env = os.environ.get("RAILWAY_ENVIRONMENT", "").lower()
    return env == "production" or railway_env == "production"


def is_bypass_allowed() -> bool:
    """
    Determine if rate limit bypass is allowed.

    Never bypasses in production, regardless of env vars.
    """
    global _bypass_warning_logged

    mode = _get_rate_limit_mode()
    if mode == RATE_LIMIT_MODE_PROD:
        return False

    if _is_production():
        _logger.error(
            f"[RATE_LIMIT] SECURITY: bypass attempted in production with mode={mode}. "
            "Bypass DENIED."
        )
        return False

    if not _bypass_warning_logged:
        _logger.warning(
            f"[RATE_LIMIT] RATE_LIMIT_BYPASS_ACTIVE: mode={mode}. "
            "This should only be used in CI/test environments."
        )
        _bypass_warning_logged = True
    return True


def reset_bypass_warning() -> None:
    """Reset the bypass warning flag (for testing)."""
    global _bypass_warning_logged
    _bypass_warning_logged = False


# =============================================================================
# Errors / Results
# =============================================================================


class RateLimitExceeded(Exception):
    """Raised at the HTTP boundary when an identity is over its limit."""

    code = CODE_RATE_LIMIT_EXCEEDED

    def __init__(self, result: "RateLimitResult"):
        super().__init__(
            f"Rate limit exceeded: {result.current_count}/{result.limit} requests. "
            f"Try again after {result.reset_time.isoformat()}"
        )
        self.message = str(self)
        self.result = result


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    reset_time: datetime
    current_count: int

    @property
    def reset_epoch(self) -> int:
        return int(self.reset_time.timestamp())

    def to_dict(self) -> dict:
        return {
            "remaining": self.remaining,
            "total": self.limit,
            "resetTime": self.reset_time.isoformat(),
            "currentCount": self.current_count,
        }


# =============================================================================
# Store
# =============================================================================


@dataclass(frozen=True)
class RateLimitEntry:
    count: int
    window_start: float
    last_request: float
    version: int = 0


class RateLimitStore(ABC):
    """Counter storage with an atomic versioned compare-and-set."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitEntry]:
        ...

    @abstractmethod
    def compare_and_set(
        self, key: str, expected_version: Optional[int], entry: RateLimitEntry
    ) -> bool:
        """
        Write entry only if the stored version still equals expected_version.

        expected_version=None means the key must not exist yet.
        """
        ...

    @abstractmethod
    def delete_idle(self, cutoff: float) -> int:
        """Delete entries whose last request is older than cutoff."""
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Single-process store. Designed for a single instance (no shared state)."""

    def __init__(self) -> None:
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            return self._entries.get(key)

    def compare_and_set(
        self, key: str, expected_version: Optional[int], entry: RateLimitEntry
    ) -> bool:
        with self._lock:
            current = self._entries.get(key)
            current_version = current.version if current is not None else None
            if current_version != expected_version:
                return False
            self._entries[key] = entry
            return True

    def delete_idle(self, cutoff: float) -> int:
        with self._lock:
            idle = [k for k, e in self._entries.items() if e.last_request < cutoff]
            for key in idle:
                del self._entries[key]
            return len(idle)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# Limiter
# =============================================================================


class RateLimiter:
    """
    Fixed-window rate limiter over a RateLimitStore.

    Args:
        max_requests: Requests allowed per window
        window_seconds: Window length
        cleanup_after_seconds: Idle time before an entry is dropped
        cleanup_interval_seconds: Minimum time between cleanups run by check()
        clock: Callable returning current epoch seconds (for testing)
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        cleanup_after_seconds: float = DEFAULT_CLEANUP_AFTER_SECONDS,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or InMemoryRateLimitStore()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.cleanup_after_seconds = cleanup_after_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.clock = clock
        self._cleanup_lock = Lock()
        self._last_cleanup = clock()

    def _reset_time(self, window_start: float) -> datetime:
        return datetime.fromtimestamp(window_start + self.window_seconds, tz=timezone.utc)

    def _fresh(self, now: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            remaining=self.max_requests,
            limit=self.max_requests,
            reset_time=self._reset_time(now),
            current_count=0,
        )

    def _expired(self, entry: RateLimitEntry, now: float) -> bool:
        return entry.window_start <= now - self.window_seconds

    def _increment(self, identity: str, now: float) -> RateLimitEntry:
        for _ in range(MAX_CAS_ATTEMPTS):
            current = self.store.get(identity)
            if current is None or self._expired(current, now):
                version = current.version + 1 if current is not None else 0
                updated = RateLimitEntry(count=1, window_start=now, last_request=now, version=version)
            else:
                updated = RateLimitEntry(
                    count=current.count + 1,
                    window_start=current.window_start,
                    last_request=now,
                    version=current.version + 1,
                )
            expected = current.version if current is not None else None
            if self.store.compare_and_set(identity, expected, updated):
                return updated
        raise RuntimeError(f"Rate limit counter for {identity} is under heavy contention")

    def check(self, identity: str) -> RateLimitResult:
        """Count a request against identity and report whether it is allowed."""
        now = self.clock()
        self._maybe_cleanup(now)
        try:
            entry = self._increment(identity, now)
        except Exception as e:
            _logger.error(f"[RATE_LIMIT] store failure for {identity}, failing open: {e}")
            return self._fresh(now)

        result = RateLimitResult(
            allowed=entry.count <= self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            limit=self.max_requests,
            reset_time=self._reset_time(entry.window_start),
            current_count=entry.count,
        )
        if not result.allowed:
            _logger.warning(
                f"[RATE_LIMIT] exceeded for {identity} ({entry.count}/{self.max_requests})"
            )
        return result

    def status(self, identity: str) -> RateLimitResult:
        """Current standing for identity without counting a request."""
        now = self.clock()
        try:
            entry = self.store.get(identity)
        except Exception as e:
            _logger.error(f"[RATE_LIMIT] status lookup failed for {identity}: {e}")
            return self._fresh(now)

        if entry is None or self._expired(entry, now):
            return self._fresh(now)
        return RateLimitResult(
            allowed=entry.count < self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            limit=self.max_requests,
            reset_time=self._reset_time(entry.window_start),
            current_count=entry.count,
        )

    def _maybe_cleanup(self, now: float) -> None:
        with self._cleanup_lock:
            if now - self._last_cleanup < self.cleanup_interval_seconds:
                return
            self._last_cleanup = now
        self.cleanup_expired()

    def cleanup_expired(self) -> int:
        """Drop idle entries. Returns the number deleted."""
        try:
            deleted = self.store.delete_idle(self.clock() - self.cleanup_after_seconds)
        except Exception as e:
            _logger.error(f"[RATE_LIMIT] cleanup failed: {e}")
            return 0
        if deleted:
            _logger.info(f"[RATE_LIMIT] cleaned up {deleted} expired entries")
        return deleted


class BypassRateLimiter(RateLimiter):
    """
    A rate limiter that always allows requests and never counts them.

    Used in CI/test mode to prevent flaky tests due to rate limiting.
    """

    def check(self, identity: str) -> RateLimitResult:
        return self._fresh(self.clock())

    def status(self, identity: str) -> RateLimitResult:
        return self._fresh(self.clock())


def create_rate_limiter(
    max_requests: int = DEFAULT_MAX_REQUESTS,
    window_minutes: int = DEFAULT_WINDOW_SECONDS // 60,
    store: Optional[RateLimitStore] = None,
) -> RateLimiter:
    """Build the app's limiter; a bypass limiter in CI/test mode (when safe)."""
    limiter_class = BypassRateLimiter if is_bypass_allowed() else RateLimiter
    return limiter_class(
        store=store,
        max_requests=max_requests,
        window_seconds=window_minutes * 60,
    )


# =============================================================================
# Client Identity
# =============================================================================

# Proxy headers in order of preference
CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)


def get_client_ip(request) -> str:
    """
    Extract client IP from request, respecting proxy headers.

    Only the first IP of a comma-separated chain is trusted.
    """
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            ip = value.split(",")[0].strip()
            if ip and ip != "unknown":
                return ip

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def client_identity(request) -> str:
    return f"ip_{get_client_ip(request)}"
