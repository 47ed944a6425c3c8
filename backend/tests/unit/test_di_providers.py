"""
Unit tests for the dependency providers in app.api.dependencies.

Providers read collaborators from app.state and refuse with
ConfigurationError (503) when one is missing.
"""

from types import SimpleNamespace

import pytest

from app.api.dependencies import (
    get_stripe_service,
    get_unit_of_work,
)
from app.infrastructure.db.unit_of_work import UnitOfWork
from app.infrastructure.exceptions import ConfigurationError
from app.main import create_app


def make_request(**state):
    return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(**state)))


class TestStateProviders:

    def test_stripe_service_missing(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_stripe_service(make_request(stripe_service=None))
        assert exc_info.value.details == {"missing_keys": ["STRIPE_SECRET_KEY"]}

    def test_stripe_service_present(self):
        service = object()
        assert get_stripe_service(make_request(stripe_service=service)) is service

    @pytest.mark.asyncio
    async def test_unit_of_work_without_database(self):
        provider = get_unit_of_work(make_request(db=None))
        with pytest.raises(ConfigurationError):
            await provider.__anext__()

    @pytest.mark.asyncio
    async def test_unit_of_work_opens_session(self):
        closed = []

        class Session:
            async def close(self):
                closed.append(True)

            async def rollback(self):
                pass

        db = SimpleNamespace(session_factory=Session)
        provider = get_unit_of_work(make_request(db=db))

        uow = await provider.__anext__()
        assert isinstance(uow, UnitOfWork)

        with pytest.raises(StopAsyncIteration):
            await provider.__anext__()
        assert closed == [True]


class TestCreateApp:

    def test_unconfigured_app_has_no_collaborators(self):
        from app.config.settings import Settings

        app = create_app(Settings(_env_file=None))

        assert app.state.db is None
        assert app.state.stripe_service is None
        assert app.state.credential_resolver is not None

    def test_configured_app_builds_collaborators(self, test_settings):
        app = create_app(test_settings)

        assert app.state.db is not None
        assert app.state.stripe_service is not None
        assert app.state.settings is test_settings
