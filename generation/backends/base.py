# generation/backends/base.py
"""
Backend contract for parlay generation.

Abstract base class every generation backend implements. The engine only
talks to backends through this interface, so backends can be swapped
without changing orchestration code.

Retry contract (with_retry):
- up to max_retries attempts (default 3)
- terminal errors (auth, malformed request, exhausted quota) re-raise at once
- everything else waits base_delay * 2 ** (attempt - 1) and tries again
- each call is cut at call_timeout (when set) with a transient AttemptTimeout
- exhausting retries re-raises the last error

Input validation runs once per call, before any retry loop.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, TypeVar

from generation.errors import (
    CODE_INSUFFICIENT_ROSTERS,
    CODE_MISSING_ROSTERS,
    AttemptTimeout,
    BackendError,
    ValidationError,
)
from generation.models import (
    BackendResponse,
    GenerationContext,
    GenerationRequest,
    ModelInfo,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0

# Status codes that never succeed on retry
_TERMINAL_STATUS_CODES = frozenset({400, 401, 403})
_TERMINAL_MESSAGE_MARKERS = ("invalid", "malformed")


# =============================================================================
# Input Validation
# =============================================================================


def check_request(request: GenerationRequest) -> None:
    """
    Validate that a request carries everything generation needs.

    Raises:
        ValidationError: With MISSING_ROSTERS, INSUFFICIENT_ROSTERS or
                         INVALID_REQUEST as the code
    """
    if request.event is None:
        raise ValidationError("Event data is required")
    if not request.event.id or request.event.home_team is None or request.event.away_team is None:
        raise ValidationError("Event must identify both teams")
    if request.rosters is None:
        raise ValidationError("Complete roster data is required", code=CODE_MISSING_ROSTERS)
    if not request.rosters.home or not request.rosters.away:
        raise ValidationError("Rosters cannot be empty", code=CODE_INSUFFICIENT_ROSTERS)
    if request.strategy is None:
        raise ValidationError("Strategy configuration is required")
    if request.variety_factors is None:
        raise ValidationError("Variety factors are required")


def is_terminal_error(error: BaseException) -> bool:
    """Classify an error as terminal (no retry) or transient."""
    if isinstance(error, ValidationError):
        return True
    if isinstance(error, BackendError):
        if error.terminal:
            return True
        if error.status_code in _TERMINAL_STATUS_CODES:
            return True
        if error.status_code == 429 and "quota" in error.message.lower():
            return True
    message = str(error).lower()
    return any(marker in message for marker in _TERMINAL_MESSAGE_MARKERS)


def retry_budget_seconds(
    call_timeout: float,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
) -> float:
    """Worst-case wall time of with_retry: every call times out, plus the backoff sleeps."""
    attempts = max(1, max_retries)
    backoff = sum(base_delay * 2 ** (attempt - 1) for attempt in range(1, attempts))
    return call_timeout * attempts + backoff


# =============================================================================
# Backend Contract
# =============================================================================


class GenerationBackend(ABC):
    """
    Abstract base class for generation backends.

    Subclasses implement generate, validate_connection and describe_model,
    and wrap their external call in with_retry.
    """

    def __init__(
        self,
        name: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        call_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.call_timeout = call_timeout
        self._sleep = sleep

    @abstractmethod
    async def generate(
        self, request: GenerationRequest, context: GenerationContext
    ) -> BackendResponse:
        """
        Generate a set of legs for the request.

        Returns:
            BackendResponse wrapping a GeneratedSet

        Raises:
            ValidationError: If the request is incomplete
            BackendError: If the external call or decoding fails
        """
        ...

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Check that the backend is configured and reachable."""
        ...

    @abstractmethod
    def describe_model(self) -> ModelInfo:
        ...

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    def validate_inputs(self, request: GenerationRequest, context: GenerationContext) -> None:
        check_request(request)
        if context.strategy is None:
            raise ValidationError("Strategy configuration is required")
        if context.variety_factors is None:
            raise ValidationError("Variety factors are required")

    def should_not_retry(self, error: BaseException) -> bool:
        """Override for backend-specific terminal errors."""
        return is_terminal_error(error)

    async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.call_timeout is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            raise AttemptTimeout(
                f"{self.name} call timed out after {self.call_timeout}s", self.call_timeout
            )

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        label: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> T:
        """Run operation with exponential backoff between attempts."""
        attempts = max(1, max_retries if max_retries is not None else self.max_retries)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return await self._call(operation)
            except Exception as e:
                last_error = e
                suffix = f" ({label})" if label else ""
                _logger.warning(
                    f"[{self.name.upper()}] attempt {attempt}/{attempts} failed{suffix}: {e}"
                )
                if self.should_not_retry(e):
                    raise
                if attempt < attempts:
                    await self._sleep(self.base_delay * 2 ** (attempt - 1))

        raise last_error

    def new_set_id(self) -> str:
        return f"parlay-{self.name}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
