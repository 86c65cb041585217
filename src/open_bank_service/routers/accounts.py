"""Account endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from open_bank_service.routers.helpers import (
    account_response,
    error_responses,
    get_ledger_service,
    optional_string,
    parse_json_body,
    require_amount,
    transaction_response,
)
from open_bank_service.schemas import AccountResponse, TransactionListResponse

router = APIRouter()


@router.get(
    "/accounts/{account_id}",
    response_model=AccountResponse,
    responses=error_responses(404),
)
async def get_account(account_id: str) -> AccountResponse:
    """Look up an account and its current balance."""
    account = await get_ledger_service().get_account(account_id)
    return account_response(account)


# === POST /accounts/{account_id}/deposit ===


@router.post(
    "/accounts/{account_id}/deposit",
    status_code=201,
    responses=error_responses(400, 404),
)
async def deposit(request: Request, account_id: str) -> JSONResponse:
    """Record a deposit and return the resulting transaction."""
    data = parse_json_body(await request.body())
    amount = require_amount(data)
    description = optional_string(data, "description")

    transaction = await get_ledger_service().deposit(account_id, amount, description)
    return JSONResponse(status_code=201, content=transaction_response(transaction).model_dump())


@router.get(
    "/accounts/{account_id}/transactions",
    response_model=TransactionListResponse,
    responses=error_responses(404),
)
async def get_transactions(account_id: str) -> TransactionListResponse:
    """Transaction history in application order."""
    transactions = await get_ledger_service().list_transactions(account_id)
    return TransactionListResponse(
        account_id=account_id,
        transactions=[transaction_response(transaction) for transaction in transactions],
    )
