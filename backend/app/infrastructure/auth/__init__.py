"""
Auth Infrastructure Module

Verification of Supabase-issued access tokens.
"""

from app.infrastructure.auth.credential_resolver import CredentialResolver

__all__ = ["CredentialResolver"]
