"""
Main FastAPI Application for The Elite Vibe marketplace

This module builds the application that ties the components together:
- Authentication endpoints
- Model listings and the public marketplace
- Stripe checkout, customer portal and webhooks
- Seller, buyer and admin dashboards
- Informational pages, the contact form and the VibeAgent assistant
- Health checks, CORS, rate limiting and request logging
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import stripe
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import Settings
from ..database.repository import RecordNotFound
from .admin_endpoints import admin_router
from .auth_endpoints import auth_router
from .checkout_endpoints import checkout_router
from .dashboard_endpoints import dashboard_router
from .dependencies import Services, build_services, limiter
from .model_endpoints import models_router, marketplace_router
from .pages_endpoints import pages_router
from .webhook_endpoints import webhook_router

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Map domain errors onto HTTP responses with a shared error body."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, exc.detail, "http_exception")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return _error_response(422, errors, "validation_error")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error_response(400, str(exc), "bad_request")

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError):
        return _error_response(403, str(exc), "forbidden")

    @app.exception_handler(RecordNotFound)
    async def not_found_handler(request: Request, exc: RecordNotFound):
        return _error_response(404, str(exc), "not_found")

    @app.exception_handler(stripe.StripeError)
    async def stripe_error_handler(request: Request, exc: stripe.StripeError):
        logger.error(f"Stripe error on {request.method} {request.url.path}: {exc}")
        message = getattr(exc, "user_message", None) or "Payment provider error"
        return _error_response(502, message, "payment_provider_error")

    @app.exception_handler(RuntimeError)
    async def runtime_error_handler(request: Request, exc: RuntimeError):
        if "not configured" in str(exc):
            return _error_response(503, str(exc), "service_unavailable")
        return await general_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """General exception handler for unexpected errors."""
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        message = "Internal server error" if settings.is_production else str(exc)
        return _error_response(500, message, "internal_error")

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (read from the environment when None)
        services: Prebuilt service graph; built on startup when None
    """
    settings = settings or Settings.from_env()

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup and shutdown events."""
        logger.info(f"Starting {settings.app_name} API ({settings.environment})...")
        if app.state.services is None:
            app.state.services = build_services(settings)

        missing = [
            name for name, value in (
                ("STRIPE_SECRET_KEY", settings.stripe_secret_key),
                ("STRIPE_WEBHOOK_SECRET", settings.stripe_webhook_secret),
                ("FIREBASE_WEB_API_KEY", settings.firebase_web_api_key),
                ("FIREBASE_STORAGE_BUCKET", settings.firebase_storage_bucket),
            ) if not value
        ]
        if missing:
            logger.warning(f"Missing environment variables: {missing}")

        logger.info(f"{settings.app_name} API started successfully")
        yield
        logger.info(f"Shutting down {settings.app_name} API...")

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="""
        Marketplace API for buying and selling AI models, featuring:

        - **Authentication**: Firebase signup, signin, verification and profiles
        - **Listings**: Seller model listings with moderated media uploads
        - **Payments**: Stripe Checkout for plans and one-time model purchases
        - **Dashboards**: Seller earnings and payouts, buyer purchases and disputes
        - **Admin**: Platform statistics, moderation, payouts and disputes
        """,
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.services = services

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-Requested-With",
            "Accept",
            "Origin",
            "Stripe-Signature",
            "Cache-Control",
        ],
    )

    # Add rate limiting middleware
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    register_exception_handlers(app, settings)

    # Middleware for request logging and timing
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log requests and add timing information."""
        start_time = time.time()

        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(f"Response: {response.status_code} - {process_time:.4f}s")

        return response

    # Health check endpoints
    @app.get("/health", tags=["health"])
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": f"{settings.app_name} API",
            "version": __version__,
            "environment": settings.environment,
        }

    @app.get("/health/detailed", tags=["health"])
    async def detailed_health_check(request: Request):
        """Detailed health check with service dependencies."""
        services = request.app.state.services
        checks = {
            "firebase": "healthy" if services and services.auth.is_initialized() else "unavailable",
            "stripe": "healthy" if services and services.stripe else "not_configured",
            "storage": "healthy" if services and services.listings.storage else "not_configured",
            "webhooks": "healthy" if settings.stripe_webhook_secret else "not_configured",
        }
        degraded = any(value != "healthy" for value in checks.values())
        return {
            "status": "degraded" if degraded else "healthy",
            "service": f"{settings.app_name} API",
            "version": __version__,
            "environment": settings.environment,
            "checks": checks,
        }

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "message": f"Welcome to {settings.app_name} API",
            "version": __version__,
            "documentation": "/docs",
            "health": "/health",
            "features": [
                "AI model marketplace with moderated listings",
                "Creator and explorer subscription plans",
                "Stripe Checkout for plans and model purchases",
                "Seller payouts and buyer disputes",
            ],
        }

    # Include routers
    app.include_router(auth_router)
    app.include_router(models_router)
    app.include_router(marketplace_router)
    app.include_router(checkout_router)
    app.include_router(webhook_router)
    app.include_router(dashboard_router)
    app.include_router(admin_router)
    app.include_router(pages_router)

    return app


app = create_app()
