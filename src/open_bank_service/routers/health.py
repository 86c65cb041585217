"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from open_bank_service.core.state import get_app_state
from open_bank_service.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health and return statistics."""
    state = get_app_state()
    total_users = 0
    total_accounts = 0
    total_deposited = "0"
    settlement_configured = False
    if state.ledger_service is not None:
        stats = await state.ledger_service.statistics()
        total_users = stats.total_users
        total_accounts = stats.total_accounts
        total_deposited = str(stats.total_deposited)
        settlement_configured = state.ledger_service.settlement_configured
    return HealthResponse(
        status="ok",
        uptime_seconds=state.uptime_seconds,
        started_at=state.started_at,
        total_users=total_users,
        total_accounts=total_accounts,
        total_deposited=total_deposited,
        settlement_configured=settlement_configured,
    )
