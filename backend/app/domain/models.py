"""
Domain Models for CoachBridge

Pure Pydantic models with no framework dependencies.
"""

from typing import Optional
from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """Principal resolved from a Supabase access token."""
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    email_confirmed: bool = False
