"""Parlay Builder API - FastAPI application entrypoint."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import AppConfig, get_openai_api_key, load_config, log_config_snapshot
from app.rate_limiter import create_rate_limiter
from app.routers import parlay
from generation.backends.factory import BackendFactory
from generation.engine import GenerationEngine
from generation.errors import CODE_INVALID_REQUEST, ConfigurationError
from generation.registry import BackendRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests exceeding size limit to prevent payload bombs."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
            return JSONResponse(
                status_code=413,
                content={
                    "success": False,
                    "error": {
                        "code": CODE_INVALID_REQUEST,
                        "message": "Request entity too large",
                    },
                },
            )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Cache-Control"] = "no-store"
        return response


def _build_registry(config: AppConfig) -> BackendRegistry:
    """Registry from config; empty when nothing can be registered."""
    try:
        return BackendFactory.build_registry(config, api_key=get_openai_api_key())
    except ConfigurationError as e:
        logger.error(f"[STARTUP] {e.message}; generation requests will fail")
        return BackendRegistry()


def create_app(
    config: Optional[AppConfig] = None,
    registry: Optional[BackendRegistry] = None,
) -> FastAPI:
    """
    Build the application with its services on app.state.

    Tests pass their own config and registry; production loads both from
    the environment.
    """
    config = config or load_config()
    log_config_snapshot(config)
    registry = registry if registry is not None else _build_registry(config)

    engine = GenerationEngine(registry, config.engine_config())
    started_at = datetime.now(timezone.utc)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.monitor.start()
        logger.info(f"[STARTUP] backends registered: {sorted(registry.list_names())}")
        try:
            yield
        finally:
            await engine.monitor.stop()
            for backend in registry.clear():
                await backend.aclose()

    app = FastAPI(
        title="Parlay Builder",
        description="Multi-backend parlay generation service",
        version=config.service_version,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.engine = engine
    app.state.rate_limiter = create_rate_limiter(
        max_requests=config.rate_limit_max_requests,
        window_minutes=config.rate_limit_window_minutes,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )
    # Added in reverse execution order: size limit runs first
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=config.max_request_size_bytes)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": {
                    "code": CODE_INVALID_REQUEST,
                    "message": "Invalid request data",
                    "details": {"errors": problems},
                },
            },
        )

    app.include_router(parlay.router)

    @app.get("/health")
    async def health():
        """Liveness check for Railway."""
        return {
            "status": "healthy",
            "service": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "started_at": started_at.isoformat(),
        }

    return app


app = create_app()
