# generation/errors.py
"""
Error taxonomy for parlay generation.

Every error carries a stable string code. The HTTP boundary is the only
layer that turns codes into status codes; everything below it raises and
propagates these types.

Kinds:
- ValidationError: malformed or incomplete request, never retried
- ConfigurationError: nothing usable is configured, fatal for the request
- BackendError: a backend call failed, terminal or transient
- AllBackendsFailed: every candidate in the try-order failed
"""
from __future__ import annotations

from typing import Any, Dict, Optional


# =============================================================================
# Error Codes
# =============================================================================

CODE_INVALID_REQUEST = "INVALID_REQUEST"
CODE_MISSING_ROSTERS = "MISSING_ROSTERS"
CODE_INSUFFICIENT_ROSTERS = "INSUFFICIENT_ROSTERS"
CODE_MISSING_API_KEY = "MISSING_API_KEY"
CODE_MISSING_CONFIG = "MISSING_CONFIG"
CODE_NO_PROVIDERS_CONFIGURED = "NO_PROVIDERS_CONFIGURED"
CODE_PROVIDER_NOT_AVAILABLE = "PROVIDER_NOT_AVAILABLE"
CODE_OPENAI_ERROR = "OPENAI_ERROR"
CODE_GENERATION_FAILED = "GENERATION_FAILED"
CODE_PARSE_ERROR = "PARSE_ERROR"
CODE_NO_RESPONSE = "NO_RESPONSE"
CODE_ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"


# =============================================================================
# Base
# =============================================================================


class GenerationError(Exception):
    """Base exception for everything the generation core raises."""

    code = CODE_GENERATION_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details
        # Set by the engine when the error escapes an orchestration call
        self.attempt_count: Optional[int] = None


# =============================================================================
# Request / Configuration Errors
# =============================================================================


class ValidationError(GenerationError):
    """Raised when a request is malformed or incomplete."""

    code = CODE_INVALID_REQUEST


class ConfigurationError(GenerationError):
    """Raised when the service has no usable configuration for a request."""

    code = CODE_MISSING_CONFIG


class MissingApiKey(ConfigurationError):
    """Raised when a backend is created without its credentials."""

    code = CODE_MISSING_API_KEY


class NoBackendsConfigured(ConfigurationError):
    """Raised when no backend is registered at all."""

    code = CODE_NO_PROVIDERS_CONFIGURED

    def __init__(self, message: str = "No generation backends are registered"):
        super().__init__(message)


class NoSuitableBackend(ConfigurationError):
    """Raised when the try-order resolves to no registered backend."""

    code = CODE_PROVIDER_NOT_AVAILABLE


# =============================================================================
# Backend Errors
# =============================================================================


class BackendError(GenerationError):
    """
    Raised when a backend call fails.

    terminal=True means retrying the same backend cannot help
    (authentication, bad request, exhausted quota). Terminal errors still
    allow the engine to fall back to the next backend.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        terminal: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.terminal = terminal
        self.status_code = status_code


class OpenAIError(BackendError):
    """Raised when the OpenAI API returns an error response."""

    code = CODE_OPENAI_ERROR


class MalformedOutput(BackendError):
    """Raised when backend output cannot be decoded into a valid set."""

    code = CODE_PARSE_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, terminal=True)


class EmptyResponse(BackendError):
    """Raised when a backend answers without any content."""

    code = CODE_NO_RESPONSE


class AttemptTimeout(BackendError):
    """Raised when a call or a whole attempt runs past its deadline. Transient."""

    def __init__(self, message: str, timeout: float):
        super().__init__(message, details={"timeoutSeconds": timeout})
        self.timeout = timeout


class AllBackendsFailed(GenerationError):
    """Raised when every backend in the try-order failed."""

    code = CODE_ALL_PROVIDERS_FAILED

    def __init__(self, attempt_count: int, last_error: Optional[BaseException]):
        last_message = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(
            f"All generation backends failed after {attempt_count} attempts. "
            f"Last error: {last_message}",
            details={"attemptCount": attempt_count, "lastError": last_message},
        )
        self.attempt_count = attempt_count
        self.last_error = last_error
