"""Router test fixtures with a mocked settlement gateway."""

from __future__ import annotations

import os

import pytest
from httpx import ASGITransport, AsyncClient

from open_bank_service.app import create_app
from open_bank_service.config import clear_settings_cache
from open_bank_service.core.lifespan import lifespan
from open_bank_service.core.state import get_app_state, reset_app_state
from open_bank_service.services.ledger_service import LedgerService
from tests.helpers import make_balance, make_mock_settlement_client, write_config


@pytest.fixture
def mock_settlement():
    """Settlement client double shared by the app and the test."""
    return make_mock_settlement_client(make_balance(deposited=5_000_000))


@pytest.fixture
async def app(tmp_path, mock_settlement):
    """Create a test app whose settlement client is a mock."""
    os.environ["CONFIG_PATH"] = str(write_config(tmp_path))

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        # Replace the real gateway client with the mock
        state = get_app_state()
        if state.settlement_client is not None:
            await state.settlement_client.close()
        state.settlement_client = mock_settlement
        state.ledger_service = LedgerService(
            store=state.ledger_store,
            settlement_client=mock_settlement,
            settlement_timeout_seconds=1,
        )

        yield test_app

    reset_app_state()
    clear_settings_cache()
    os.environ.pop("CONFIG_PATH", None)


@pytest.fixture
async def unsettled_app(tmp_path):
    """Create a test app with no settlement section configured."""
    os.environ["CONFIG_PATH"] = str(write_config(tmp_path, with_settlement=False))

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        yield test_app

    reset_app_state()
    clear_settings_cache()
    os.environ.pop("CONFIG_PATH", None)


@pytest.fixture
async def client(app):
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def unsettled_client(unsettled_app):
    transport = ASGITransport(app=unsettled_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
