"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from open_bank_service.clients.settlement_client import HttpSettlementClient
from open_bank_service.config import get_safe_config, get_settings
from open_bank_service.core.state import init_app_state
from open_bank_service.logging import get_logger, setup_logging
from open_bank_service.services.ledger_service import LedgerService
from open_bank_service.services.ledger_store import LedgerStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.logging.directory)
    logger = get_logger(__name__)

    logger.debug("Loaded configuration", extra={"config": get_safe_config()})

    state = init_app_state()

    # Ledger data lives for the process lifetime only
    state.ledger_store = LedgerStore()

    settlement = settings.settlement
    if settlement is not None:
        state.settlement_client = HttpSettlementClient(
            base_url=settlement.base_url,
            balance_path=settlement.balance_path,
            transfer_path=settlement.transfer_path,
            timeout_seconds=settlement.timeout_seconds,
            api_token=settlement.api_token,
        )
        state.ledger_service = LedgerService(
            store=state.ledger_store,
            settlement_client=state.settlement_client,
            settlement_timeout_seconds=settlement.timeout_seconds,
            minor_unit_decimals=settlement.minor_unit_decimals,
        )
    else:
        logger.warning("Settlement not configured; withdrawals are disabled")
        state.ledger_service = LedgerService(store=state.ledger_store)

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "settlement_enabled": settlement is not None,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})
    if state.settlement_client is not None:
        await state.settlement_client.close()
