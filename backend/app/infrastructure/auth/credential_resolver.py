"""
Credential Resolver

Turns a Supabase access token into an ``AuthenticatedUser``.

Security: JWT tokens are verified cryptographically, using the Supabase
JWKS endpoint for asymmetric keys (ES256/RS256) and the project JWT secret
for HS256. Never decode without verification.
"""

import logging
from typing import Any, Optional

import jwt
from jwt import PyJWKClient

from app.config.settings import Settings
from app.domain.models import AuthenticatedUser


logger = logging.getLogger(__name__)

AUDIENCE = "authenticated"
ASYMMETRIC_ALGORITHMS = ("ES256", "RS256")
REQUIRED_CLAIMS = ["exp", "sub"]


class CredentialResolver:
    """
    Verifies access tokens against one Supabase project.

    Read-only: resolving a token has no side effects beyond the JWKS cache.
    """

    def __init__(self, settings: Settings):
        self._supabase_url = settings.supabase_url
        self._jwt_secret = settings.supabase_jwt_secret
        # PyJWKClient caches keys internally; created on first asymmetric token
        self._jwks_client: Optional[PyJWKClient] = None

    @property
    def issuer(self) -> str:
        return f"{self._supabase_url}/auth/v1"

    def _get_jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            jwks_url = f"{self.issuer}/.well-known/jwks.json"
            self._jwks_client = PyJWKClient(jwks_url, cache_keys=True)
        return self._jwks_client

    def _decode(self, token: str) -> dict[str, Any]:
        """
        Verify signature, expiry, issuer and audience.

        Raises:
            jwt.PyJWTError (or PyJWKClientError) on any failure
        """
        algorithm = jwt.get_unverified_header(token).get("alg")

        if algorithm in ASYMMETRIC_ALGORITHMS:
            key = self._get_jwks_client().get_signing_key_from_jwt(token).key
        elif algorithm == "HS256" and self._jwt_secret:
            key = self._jwt_secret
        else:
            raise jwt.InvalidAlgorithmError(f"Unsupported token algorithm: {algorithm}")

        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            issuer=self.issuer,
            audience=AUDIENCE,
            options={"require": REQUIRED_CLAIMS},
        )

    def resolve(self, token: Optional[str]) -> Optional[AuthenticatedUser]:
        """
        Resolve a token to its principal.

        Returns:
            The authenticated user, or None for any missing, expired,
            malformed or unverifiable token
        """
        if not token or not self._supabase_url:
            return None

        try:
            claims = self._decode(token)
        except jwt.PyJWTError as e:
            logger.debug("Token verification failed: %s", e)
            return None

        return self._to_user(claims)

    @staticmethod
    def _to_user(claims: dict[str, Any]) -> Optional[AuthenticatedUser]:
        user_id = claims.get("sub")
        if not user_id:
            return None

        metadata = claims.get("user_metadata") or {}
        display_name = metadata.get("full_name") or metadata.get("name")
        email_confirmed = bool(
            metadata.get("email_verified") or claims.get("email_confirmed_at")
        )

        return AuthenticatedUser(
            id=user_id,
            email=claims.get("email"),
            display_name=display_name,
            email_confirmed=email_confirmed,
        )
