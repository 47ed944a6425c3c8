"""
Configuration Status Route

Reports which external collaborators are configured, without exposing
any of their values.
"""

from fastapi import APIRouter

from app.api.dependencies import SettingsDep
from app.domain.subscription import ConfigStatusResponse


router = APIRouter()


@router.get("/config/status", response_model=ConfigStatusResponse)
async def get_config_status(settings: SettingsDep):
    return ConfigStatusResponse(
        configured=(
            settings.is_payments_configured
            and settings.is_identity_configured
            and settings.is_database_configured
        ),
        payments_configured=settings.is_payments_configured,
        identity_configured=settings.is_identity_configured,
        database_configured=settings.is_database_configured,
        has_url=bool(settings.supabase_url),
        has_key=bool(settings.supabase_anon_key),
    )
