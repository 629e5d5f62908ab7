# app/routers/parlay.py
"""
Parlay generation API router.

The only layer that maps error codes onto HTTP statuses. Everything below
raises typed errors; this module turns them into the standard envelope:

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.config import AppConfig
from app.rate_limiter import (
    CODE_RATE_LIMIT_EXCEEDED,
    RateLimiter,
    RateLimitExceeded,
    RateLimitResult,
    client_identity,
)
from app.schemas.parlay import (
    ErrorResponseSchema,
    GenerateParlayRequestSchema,
    GenerateParlayResponseSchema,
    RateLimitStatusResponseSchema,
)
from generation import errors
from generation.engine import GenerationEngine
from generation.errors import GenerationError
from generation.models import utc_now

logger = logging.getLogger(__name__)

CODE_INTERNAL_ERROR = "INTERNAL_ERROR"

STATUS_BY_CODE: Dict[str, int] = {
    errors.CODE_INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    errors.CODE_MISSING_ROSTERS: status.HTTP_400_BAD_REQUEST,
    errors.CODE_INSUFFICIENT_ROSTERS: status.HTTP_400_BAD_REQUEST,
    errors.CODE_MISSING_API_KEY: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.CODE_MISSING_CONFIG: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.CODE_NO_PROVIDERS_CONFIGURED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.CODE_PROVIDER_NOT_AVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    errors.CODE_OPENAI_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    errors.CODE_GENERATION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.CODE_PARSE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.CODE_NO_RESPONSE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.CODE_ALL_PROVIDERS_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    CODE_RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
}


def status_for_code(code: str) -> int:
    """HTTP status for an error code; unknown codes are server errors."""
    return STATUS_BY_CODE.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(tags=["Parlay"])


def get_engine(request: Request) -> GenerationEngine:
    return request.app.state.engine


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


# =============================================================================
# Response Helpers
# =============================================================================


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_time.isoformat(),
    }


def error_response(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_for_code(code),
        content={"success": False, "error": error},
        headers=headers,
    )


def _generation_error_details(error: GenerationError) -> Optional[Dict[str, Any]]:
    details = dict(error.details or {})
    if error.attempt_count is not None:
        details.setdefault("attemptCount", error.attempt_count)
    return details or None


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/generateParlay",
    response_model=GenerateParlayResponseSchema,
    responses={
        400: {"description": "Invalid request", "model": ErrorResponseSchema},
        429: {"description": "Rate limit exceeded", "model": ErrorResponseSchema},
        500: {"description": "Generation failed", "model": ErrorResponseSchema},
        503: {"description": "Backend unavailable", "model": ErrorResponseSchema},
    },
    summary="Generate a parlay",
)
async def generate_parlay(
    body: GenerateParlayRequestSchema,
    request: Request,
    engine: GenerationEngine = Depends(get_engine),
    limiter: RateLimiter = Depends(get_rate_limiter),
    config: AppConfig = Depends(get_app_config),
):
    """
    Generate a three-leg parlay for one event.

    The request counts against the caller's rate limit before any
    generation work starts.
    """
    rate = limiter.check(client_identity(request))
    headers = rate_limit_headers(rate)
    if not rate.allowed:
        exceeded = RateLimitExceeded(rate)
        return error_response(exceeded.code, exceeded.message, rate.to_dict(), headers)

    try:
        result = await asyncio.wait_for(
            engine.generate(body.to_request()),
            timeout=config.request_timeout_seconds,
        )
    except GenerationError as e:
        logger.warning(f"[PARLAY] generation failed: {e.code} {e.message}")
        return error_response(e.code, e.message, _generation_error_details(e), headers)
    except asyncio.TimeoutError:
        logger.error(f"[PARLAY] generation timed out after {config.request_timeout_seconds}s")
        return error_response(
            errors.CODE_GENERATION_FAILED,
            f"Generation timed out after {config.request_timeout_seconds} seconds",
            headers=headers,
        )
    except Exception as e:
        logger.exception("[PARLAY] unexpected error during generation")
        details = {"type": type(e).__name__} if config.environment == "development" else None
        return error_response(
            CODE_INTERNAL_ERROR, "An unexpected error occurred", details, headers
        )

    logger.info(
        f"[PARLAY] generated {result.generated_set.id} via {result.metadata.backend_name}, "
        f"{rate.remaining} requests remaining"
    )
    return JSONResponse(
        content={
            "success": True,
            "data": result.generated_set.to_dict(),
            "metadata": result.metadata.to_dict(),
            "rateLimitInfo": rate.to_dict(),
        },
        headers=headers,
    )


@router.get(
    "/getRateLimitStatus",
    response_model=RateLimitStatusResponseSchema,
    summary="Current rate limit standing",
)
async def get_rate_limit_status(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Report the caller's rate limit without counting a request."""
    result = limiter.status(client_identity(request))
    return JSONResponse(
        content={"success": True, "data": result.to_dict()},
        headers=rate_limit_headers(result),
    )


@router.get("/healthCheck", summary="Generation backend health")
async def health_check(engine: GenerationEngine = Depends(get_engine)):
    """
    Health of every registered backend.

    Healthy overall while at least one backend is healthy; 503 otherwise.
    """
    report = engine.monitor.status()
    report["status"] = "healthy" if report["healthy"] else "unhealthy"
    report["timestamp"] = utc_now().isoformat()
    code = status.HTTP_200_OK if report["healthy"] else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=report)
