"""Withdrawal endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from open_bank_service.routers.helpers import (
    error_responses,
    get_ledger_service,
    optional_string,
    parse_json_body,
    require_amount,
    require_string,
)
from open_bank_service.schemas import WithdrawalResponse

router = APIRouter()


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    responses=error_responses(400, 404, 422, 502, 504),
)
@router.post("/withdraw", response_model=WithdrawalResponse, include_in_schema=False)
async def withdraw(request: Request) -> WithdrawalResponse:
    """
    Send funds to the user's wallet through the settlement system.

    A 504 SETTLEMENT_UNCERTAIN response means the transfer may have gone
    through; check GET /users/{user_id}/external-balance before retrying.
    """
    data = parse_json_body(await request.body())
    user_id = require_string(data, "user_id")
    amount = require_amount(data)
    description = optional_string(data, "description")

    receipt = await get_ledger_service().withdraw(user_id, amount, description)
    return WithdrawalResponse(
        status=receipt.state.value,
        user_id=receipt.user_id,
        wallet_address=receipt.wallet_address,
        amount=str(receipt.amount),
        amount_minor_units=receipt.amount_minor_units,
        description=receipt.description,
    )
