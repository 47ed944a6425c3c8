"""
CoachBridge Billing - FastAPI Application

Main entry point for the billing backend.
Provides endpoints for plans, checkout, subscriptions, credits and
Stripe webhooks.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import Settings, get_settings, settings as default_settings
from app.infrastructure.auth.credential_resolver import CredentialResolver
from app.infrastructure.db.database import DatabaseManager
from app.infrastructure.exceptions import (
    AuthenticationError,
    CoachBridgeError,
    ConfigurationError,
    DuplicateError,
    NotFoundError,
    PaymentProviderError,
    ValidationError,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.api.routes import checkout, config_status, credits, plans, subscriptions, webhooks

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    app_settings: Settings = app.state.settings
    logger.info(f"CoachBridge billing starting in {app_settings.environment} mode...")

    if not app_settings.is_payments_configured:
        logger.warning("Stripe is not fully configured; billing endpoints will return 503")
    if not app_settings.is_identity_configured:
        logger.warning("Supabase identity is not configured; all callers are anonymous")

    db: Optional[DatabaseManager] = app.state.db
    if db is not None:
        try:
            await db.ping()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database connection check failed: {e}")

    yield

    if db is not None:
        await db.close()
        logger.info("Database connection pool closed")

    logger.info("CoachBridge billing shutting down...")


# ============================================================================
# Exception Handlers
# ============================================================================

async def authentication_error_handler(request: Request, exc: AuthenticationError):
    """Uniform 401 for every credential failure."""
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


async def duplicate_error_handler(request: Request, exc: DuplicateError):
    """Handle uniqueness conflicts."""
    return JSONResponse(
        status_code=409,
        content=exc.to_dict(),
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """A collaborator this endpoint needs is not configured."""
    logger.error(f"{request.url.path}: {exc.message} {exc.details}")
    return JSONResponse(
        status_code=503,
        content=exc.to_dict(),
    )


async def payment_provider_error_handler(request: Request, exc: PaymentProviderError):
    """Stripe failures surface as a generic 500; the cause is only logged."""
    logger.error(f"{request.url.path}: {exc.message} ({exc.original_error})")
    return JSONResponse(
        status_code=500,
        content={"error": exc.__class__.__name__, "message": exc.message, "details": {}},
    )


async def general_error_handler(request: Request, exc: CoachBridgeError):
    """Handle all other application errors."""
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Application Factory
# ============================================================================

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and its collaborators.

    Collaborators whose configuration is missing are left as ``None`` on
    ``app.state``; the endpoints that need them answer 503.
    """
    app_settings = app_settings or get_settings()

    app = FastAPI(
        title="CoachBridge Billing",
        description="Plans, checkout, subscriptions and credits for CoachBridge",
        version="1.0.0",
        lifespan=lifespan,
        debug=app_settings.debug,
    )

    app.state.settings = app_settings
    app.state.credential_resolver = CredentialResolver(app_settings)
    app.state.db = DatabaseManager(app_settings) if app_settings.is_database_configured else None
    app.state.stripe_service = (
        StripeService(app_settings) if app_settings.stripe_secret_key else None
    )

    # CORS configuration from Settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthenticationError, authentication_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_error_handler)
    app.add_exception_handler(DuplicateError, duplicate_error_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(PaymentProviderError, payment_provider_error_handler)
    app.add_exception_handler(CoachBridgeError, general_error_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "coachbridge-billing"}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "CoachBridge Billing API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    app.include_router(plans.router, prefix="/api", tags=["Plans"])
    app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
    app.include_router(checkout.router, prefix="/api", tags=["Checkout"])
    app.include_router(credits.router, prefix="/api", tags=["Credits"])
    app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
    app.include_router(config_status.router, prefix="/api", tags=["Configuration"])

    return app


app = create_app()
