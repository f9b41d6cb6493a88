"""
Main Backend FastAPI application.
"""
import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .core.config import settings
from .core.exceptions import SmartPromptsError, UpstreamError
from .api.v1.optimize import router as optimize_router
from .api.v1.usage import router as usage_router
from .api.v1.billing import router as billing_router
from .api.v1.admin import router as admin_router

log_level = logging.DEBUG if settings.debug else logging.INFO

logging.basicConfig(
    level=log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

logging.getLogger("uvicorn.access").setLevel(logging.WARNING)  # Reduce access log noise
logging.getLogger("uvicorn.error").setLevel(logging.INFO)
logging.getLogger("httpx").setLevel(logging.WARNING)  # Supabase and OpenAI request lines

logger = logging.getLogger(__name__)


class ReverseProxyMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle reverse proxy headers.

    Fixes HTTPS redirects when FastAPI is behind a reverse proxy.
    """
    async def dispatch(self, request: Request, call_next):
        forwarded_proto = request.headers.get('x-forwarded-proto')
        if forwarded_proto:
            request.scope['scheme'] = forwarded_proto

        response = await call_next(request)
        return response


async def smartprompts_error_handler(request: Request, exc: SmartPromptsError) -> JSONResponse:
    """Render application errors as ``{"error": ...}`` JSON."""
    if isinstance(exc, UpstreamError):
        # Internal detail stays in the logs
        logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc.detail}")
    elif exc.status_code >= 500:
        logger.error(f"Server error on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.status_code} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup configuration and shutdown."""
    logger.info("🚀 Starting SmartPrompts API...")

    if not settings.stripe_secret_key or not settings.stripe_webhook_secret:
        logger.warning("⚠️  Stripe is not fully configured - checkout and webhooks will fail")
    if not settings.openai_api_key:
        logger.warning("⚠️  OPENAI_API_KEY is not set - optimize requests will fail")
    if settings.billing_protected_tiers:
        logger.info(f"🔒 Billing events will not change tiers: {settings.billing_protected_tiers}")

    logger.info("🟢 Application startup complete")

    yield

    logger.info("🔴 Application shutdown complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=settings.project_name,
        description="Prompt optimization API with tiered usage quotas and Stripe billing",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(ReverseProxyMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )
    logger.info(f"🔒 CORS configured with {len(settings.allowed_origins)} origins")

    app.add_exception_handler(SmartPromptsError, smartprompts_error_handler)

    app.include_router(optimize_router, prefix=settings.api_v1_str)
    app.include_router(usage_router, prefix=settings.api_v1_str)
    app.include_router(admin_router, prefix=settings.api_v1_str)

    # Billing: Stripe checkout and webhook endpoints
    app.include_router(billing_router, prefix=f"{settings.api_v1_str}/billing", tags=["billing"])

    return app


# Create the FastAPI app instance
app = create_application()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "SmartPrompts API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs" if settings.debug else "disabled",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "smartprompts-api",
        "environment": settings.environment,
    }
