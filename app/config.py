# app/config.py
"""
Centralized configuration management with startup validation.

Every setting is OPTIONAL with a safe default. Invalid values fall back to
the default and are collected as warnings instead of failing startup.
Secrets are only ever recorded as presence flags.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from generation.backends.base import DEFAULT_BASE_DELAY_SECONDS, retry_budget_seconds
from generation.engine import EngineConfig, HealthGate

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "parlay-builder"
SERVICE_VERSION = "0.1.0"

DEFAULT_MAX_REQUEST_SIZE_BYTES = 1_048_576  # 1MB
MIN_REQUEST_SIZE_BYTES = 1024  # 1KB minimum

DEFAULT_PRIMARY_BACKEND = "openai"
DEFAULT_FALLBACK_BACKENDS = ("mock",)
DEFAULT_MAX_RETRIES = 3
DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS = 300
DEFAULT_ATTEMPT_TIMEOUT_SECONDS = 45.0
# Per external call; retries of it must fit inside one attempt
DEFAULT_CALL_TIMEOUT_SECONDS = 12.0
MIN_CALL_TIMEOUT_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_MAX_TOKENS = 4000
DEFAULT_OPENAI_TEMPERATURE = 0.7

DEFAULT_RATE_LIMIT_MAX_REQUESTS = 10
DEFAULT_RATE_LIMIT_WINDOW_MINUTES = 60

# Sensitive substrings that should never appear in logs
SENSITIVE_SUBSTRINGS = ("key", "token", "secret", "password", "credential", "auth")


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AppConfig:
    """Application configuration loaded from environment."""

    # Service info
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    environment: str = "development"

    # Security settings
    max_request_size_bytes: int = DEFAULT_MAX_REQUEST_SIZE_BYTES

    # Orchestration
    primary_backend: str = DEFAULT_PRIMARY_BACKEND
    fallback_backends: Tuple[str, ...] = DEFAULT_FALLBACK_BACKENDS
    fallback_enabled: bool = True
    max_retries: int = DEFAULT_MAX_RETRIES
    health_check_interval_seconds: int = DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS
    health_gate: HealthGate = HealthGate.ADVISORY
    attempt_timeout_seconds: float = DEFAULT_ATTEMPT_TIMEOUT_SECONDS
    call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    mock_enabled: bool = True

    # OpenAI (key presence only, never the value)
    openai_api_key_present: bool = False
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_max_tokens: int = DEFAULT_OPENAI_MAX_TOKENS
    openai_temperature: float = DEFAULT_OPENAI_TEMPERATURE

    # Rate limiting
    rate_limit_max_requests: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS
    rate_limit_window_minutes: int = DEFAULT_RATE_LIMIT_WINDOW_MINUTES

    # Warnings collected during config load
    warnings: list = field(default_factory=list)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            primary=self.primary_backend,
            fallbacks=self.fallback_backends,
            fallback_enabled=self.fallback_enabled,
            max_retries=self.max_retries,
            health_gate=self.health_gate,
            attempt_timeout=self.attempt_timeout_seconds,
            health_check_interval=float(self.health_check_interval_seconds),
        )


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_int_env(
    name: str, default: int, min_value: Optional[int] = None
) -> Tuple[int, Optional[str]]:
    """
    Parse an integer environment variable with validation.

    Returns (value, warning_message).
    On invalid input, returns default with a warning.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = int(raw)
    except ValueError:
        return default, f"{name}='{raw}' is not a valid integer; using default {default}"

    if min_value is not None and value < min_value:
        return default, f"{name}={value} is below minimum {min_value}; using default {default}"

    return value, None


def _parse_float_env(
    name: str, default: float, min_value: Optional[float] = None
) -> Tuple[float, Optional[str]]:
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = float(raw)
    except ValueError:
        return default, f"{name}='{raw}' is not a valid number; using default {default}"

    if min_value is not None and value < min_value:
        return default, f"{name}={value} is below minimum {min_value}; using default {default}"

    return value, None


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    raw = os.environ.get(name, "").lower()
    if raw in ("true", "1", "yes", "on"):
        return True
    if raw in ("false", "0", "no", "off"):
        return False
    return default


def _parse_list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Parse a comma-separated environment variable. Empty means no entries."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def get_openai_api_key() -> Optional[str]:
    """OpenAI API key from the environment; None when unset or empty."""
    return os.environ.get("OPENAI_API_KEY") or None


def fit_call_timeout(
    call_timeout: float, max_retries: int, attempt_timeout: float
) -> Tuple[float, Optional[str]]:
    """
    Shrink the per-call timeout so every retry fits inside one attempt.

    Returns (value, warning_message). The warning is set when the value
    changed, or when even MIN_CALL_TIMEOUT_SECONDS does not fit.
    """
    if retry_budget_seconds(call_timeout, max_retries, DEFAULT_BASE_DELAY_SECONDS) <= attempt_timeout:
        return call_timeout, None

    attempts = max(1, max_retries)
    backoff = retry_budget_seconds(0.0, max_retries, DEFAULT_BASE_DELAY_SECONDS)
    fitted = round((attempt_timeout - backoff) / attempts, 2)
    if fitted < MIN_CALL_TIMEOUT_SECONDS:
        return call_timeout, (
            f"{attempts} retries cannot fit inside PARLAY_ATTEMPT_TIMEOUT_SECONDS={attempt_timeout}; "
            "later retries will be cut by the attempt deadline"
        )
    return fitted, (
        f"PARLAY_CALL_TIMEOUT_SECONDS={call_timeout} does not fit {attempts} retries inside "
        f"PARLAY_ATTEMPT_TIMEOUT_SECONDS={attempt_timeout}; using {fitted}"
    )


def get_environment() -> str:
    return (
        os.environ.get("ENV")
        or os.environ.get("RAILWAY_ENVIRONMENT")
        or "development"
    ).lower()


def load_config() -> AppConfig:
    """
    Load and validate application configuration from environment.

    Returns:
        AppConfig instance with validated configuration.
    """
    warnings = []

    def collect(parsed):
        value, warning = parsed
        if warning:
            warnings.append(warning)
        return value

    environment = get_environment()

    max_request_size = collect(_parse_int_env(
        "MAX_REQUEST_SIZE_BYTES", DEFAULT_MAX_REQUEST_SIZE_BYTES, min_value=MIN_REQUEST_SIZE_BYTES,
    ))

    primary = os.environ.get("PARLAY_PRIMARY_BACKEND", DEFAULT_PRIMARY_BACKEND).strip().lower()
    if not primary:
        warnings.append(f"PARLAY_PRIMARY_BACKEND is empty; using default {DEFAULT_PRIMARY_BACKEND}")
        primary = DEFAULT_PRIMARY_BACKEND
    fallbacks = _parse_list_env("PARLAY_FALLBACK_BACKENDS", DEFAULT_FALLBACK_BACKENDS)

    max_retries = collect(_parse_int_env("PARLAY_MAX_RETRIES", DEFAULT_MAX_RETRIES, min_value=1))
    health_interval = collect(_parse_int_env(
        "PARLAY_HEALTH_CHECK_INTERVAL_SECONDS", DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS, min_value=1,
    ))
    attempt_timeout = collect(_parse_float_env(
        "PARLAY_ATTEMPT_TIMEOUT_SECONDS", DEFAULT_ATTEMPT_TIMEOUT_SECONDS, min_value=0.1,
    ))
    request_timeout = collect(_parse_float_env(
        "PARLAY_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS, min_value=0.1,
    ))
    call_timeout = collect(_parse_float_env(
        "PARLAY_CALL_TIMEOUT_SECONDS", DEFAULT_CALL_TIMEOUT_SECONDS, min_value=MIN_CALL_TIMEOUT_SECONDS,
    ))
    call_timeout = collect(fit_call_timeout(call_timeout, max_retries, attempt_timeout))

    raw_gate = os.environ.get("PARLAY_HEALTH_GATE", HealthGate.ADVISORY.value).lower()
    try:
        health_gate = HealthGate(raw_gate)
    except ValueError:
        warnings.append(f"PARLAY_HEALTH_GATE='{raw_gate}' is not valid; using default advisory")
        health_gate = HealthGate.ADVISORY

    # Mock output must never reach production users unless asked for
    mock_enabled = _parse_bool_env("PARLAY_MOCK_ENABLED", environment != "production")

    # API key presence (check presence, don't store value)
    openai_api_key_present = get_openai_api_key() is not None

    openai_model = os.environ.get("OPENAI_MODEL", DEFAULT_OPENAI_MODEL).strip() or DEFAULT_OPENAI_MODEL
    openai_max_tokens = collect(_parse_int_env("OPENAI_MAX_TOKENS", DEFAULT_OPENAI_MAX_TOKENS, min_value=1))
    openai_temperature = collect(_parse_float_env("OPENAI_TEMPERATURE", DEFAULT_OPENAI_TEMPERATURE, min_value=0.0))

    rate_limit_max = collect(_parse_int_env(
        "RATE_LIMIT_MAX_REQUESTS", DEFAULT_RATE_LIMIT_MAX_REQUESTS, min_value=1,
    ))
    rate_limit_window = collect(_parse_int_env(
        "RATE_LIMIT_WINDOW_MINUTES", DEFAULT_RATE_LIMIT_WINDOW_MINUTES, min_value=1,
    ))

    wanted = (primary, *fallbacks)
    if "openai" in wanted and not openai_api_key_present:
        warnings.append("OPENAI_API_KEY is not set; the openai backend will not be registered")
    if not openai_api_key_present and not mock_enabled:
        warnings.append("No generation backend can be registered; generation requests will fail")

    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")

    return AppConfig(
        environment=environment,
        max_request_size_bytes=max_request_size,
        primary_backend=primary,
        fallback_backends=fallbacks,
        fallback_enabled=_parse_bool_env("PARLAY_ENABLE_FALLBACK", True),
        max_retries=max_retries,
        health_check_interval_seconds=health_interval,
        health_gate=health_gate,
        attempt_timeout_seconds=attempt_timeout,
        call_timeout_seconds=call_timeout,
        request_timeout_seconds=request_timeout,
        mock_enabled=mock_enabled,
        openai_api_key_present=openai_api_key_present,
        openai_model=openai_model,
        openai_max_tokens=openai_max_tokens,
        openai_temperature=openai_temperature,
        rate_limit_max_requests=rate_limit_max,
        rate_limit_window_minutes=rate_limit_window,
        warnings=warnings,
    )


def log_config_snapshot(config: AppConfig) -> str:
    """
    Generate and log a safe configuration snapshot.

    Returns the snapshot string for testing purposes.
    Never logs actual secret values - only boolean presence flags.
    """
    snapshot = (
        f"[STARTUP] service={config.service_name} "
        f"version={config.service_version} "
        f"environment={config.environment} "
        f"primary_backend={config.primary_backend} "
        f"fallback_backends={','.join(config.fallback_backends) or 'none'} "
        f"fallback_enabled={config.fallback_enabled} "
        f"health_gate={config.health_gate.value} "
        f"call_timeout_seconds={config.call_timeout_seconds} "
        f"attempt_timeout_seconds={config.attempt_timeout_seconds} "
        f"mock_enabled={config.mock_enabled} "
        f"max_request_size_bytes={config.max_request_size_bytes} "
        f"openai_api_key_present={config.openai_api_key_present}"
    )
    logger.info(snapshot)
    return snapshot


def validate_config_snapshot_safety(snapshot: str) -> bool:
    """
    Validate that a config snapshot doesn't contain sensitive values.

    Returns True if safe, False if potentially unsafe.
    """
    snapshot_lower = snapshot.lower()

    # Allow "key_present=true" but not "key=" followed by a value
    for sensitive in SENSITIVE_SUBSTRINGS:
        pattern = rf"{sensitive}=(?!true|false)"
        if re.search(pattern, snapshot_lower):
            return False

    return True
