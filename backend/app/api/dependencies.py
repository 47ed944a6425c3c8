"""
API Dependencies

FastAPI dependency injection for authentication, the unit of work and
external services. Everything is read from ``app.state``, populated once
by ``app.main.create_app``.

Security: access tokens are verified by ``CredentialResolver``; a request
is either fully authenticated or rejected with a uniform 401.
"""

import logging
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import Settings
from app.domain.models import AuthenticatedUser
from app.infrastructure.auth.credential_resolver import CredentialResolver
from app.infrastructure.db.unit_of_work import UnitOfWork
from app.infrastructure.exceptions import AuthenticationError, ConfigurationError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.checkout_service import CheckoutService
from app.infrastructure.services.webhook_reconciler import WebhookReconciler


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


# =============================================================================
# Application State
# =============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credential_resolver(request: Request) -> CredentialResolver:
    return request.app.state.credential_resolver


def get_stripe_service(request: Request) -> StripeService:
    """Stripe client, or 503 when payments are not configured."""
    service = request.app.state.stripe_service
    if service is None:
        raise ConfigurationError("Payments not configured", missing_keys=["STRIPE_SECRET_KEY"])
    return service


async def get_unit_of_work(request: Request) -> AsyncGenerator[UnitOfWork, None]:
    """
    One unit of work per request.

    Routes commit explicitly; anything left uncommitted is discarded.
    """
    db = request.app.state.db
    if db is None:
        raise ConfigurationError("Database not configured", missing_keys=["DATABASE_URL"])

    async with UnitOfWork(db.session_factory) as uow:
        yield uow


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
StripeDep = Annotated[StripeService, Depends(get_stripe_service)]
UnitOfWorkDep = Annotated[UnitOfWork, Depends(get_unit_of_work)]


# =============================================================================
# Authentication
# =============================================================================

def _extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_name: str,
) -> Optional[str]:
    """Bearer token first, then the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(cookie_name)


async def get_optional_user(
    request: Request,
    settings: SettingsDep,
    resolver: Annotated[CredentialResolver, Depends(get_credential_resolver)],
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthenticatedUser]:
    """
    Resolve the caller, or ``None`` for anonymous requests.

    Invalid, expired and missing tokens are all treated alike.
    """
    token = _extract_token(request, credentials, settings.session_cookie_name)
    if not token:
        return None
    return resolver.resolve(token)


async def get_current_user(
    user: Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)],
) -> AuthenticatedUser:
    """
    Require an authenticated caller.

    Raises:
        AuthenticationError (401): for any missing or unverifiable credential
    """
    if user is None:
        raise AuthenticationError()
    return user


CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]


# =============================================================================
# Services
# =============================================================================

def get_checkout_service(
    uow: UnitOfWorkDep,
    stripe_service: StripeDep,
    settings: SettingsDep,
) -> CheckoutService:
    return CheckoutService(uow, stripe_service, settings)


def get_webhook_reconciler(
    uow: UnitOfWorkDep,
    stripe_service: StripeDep,
) -> WebhookReconciler:
    return WebhookReconciler(uow, stripe_service)


CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
WebhookReconcilerDep = Annotated[WebhookReconciler, Depends(get_webhook_reconciler)]
