"""User endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from open_bank_service.routers.helpers import (
    account_response,
    error_responses,
    get_ledger_service,
    optional_string,
    parse_json_body,
    require_string,
    user_response,
)
from open_bank_service.schemas import (
    AccountListResponse,
    ExternalBalanceResponse,
    UserResponse,
)

router = APIRouter()


# === POST /users: Register User ===


@router.post("/users", status_code=201, responses=error_responses(400, 409))
async def create_user(request: Request) -> JSONResponse:
    """Register a user, optionally with a settlement wallet address."""
    data = parse_json_body(await request.body())
    email = require_string(data, "email")
    name = require_string(data, "name")
    wallet_address = optional_string(data, "wallet_address")

    user = await get_ledger_service().register_user(email, name, wallet_address)
    return JSONResponse(status_code=201, content=user_response(user).model_dump())


# === GET /users/{user_id} ===


@router.get("/users/{user_id}", response_model=UserResponse, responses=error_responses(404))
async def get_user(user_id: str) -> UserResponse:
    """Look up a user."""
    user = await get_ledger_service().get_user(user_id)
    return user_response(user)


# === GET /users/{user_id}/accounts ===


@router.get(
    "/users/{user_id}/accounts",
    response_model=AccountListResponse,
    responses=error_responses(404),
)
async def get_user_accounts(user_id: str) -> AccountListResponse:
    """List a user's accounts in opening order."""
    accounts = await get_ledger_service().list_user_accounts(user_id)
    return AccountListResponse(
        user_id=user_id,
        accounts=[account_response(account) for account in accounts],
    )


# === POST /users/{user_id}/accounts: Open Account ===


@router.post(
    "/users/{user_id}/accounts",
    status_code=201,
    responses=error_responses(400, 404),
)
@router.post("/users/register/{user_id}", status_code=201, include_in_schema=False)
async def create_account(request: Request, user_id: str) -> JSONResponse:
    """Open a deposit-tracking account for a user."""
    data = parse_json_body(await request.body())
    currency = require_string(data, "currency")

    account = await get_ledger_service().open_account(user_id, currency)
    return JSONResponse(status_code=201, content=account_response(account).model_dump())


# === GET /users/{user_id}/external-balance: Settlement Position ===


@router.get(
    "/users/{user_id}/external-balance",
    response_model=ExternalBalanceResponse,
    responses=error_responses(400, 404, 502),
)
async def get_external_balance(user_id: str) -> ExternalBalanceResponse:
    """Read the user's wallet record from the settlement system."""
    service = get_ledger_service()
    balance = await service.external_balance(user_id)
    user = await service.get_user(user_id)
    return ExternalBalanceResponse(
        user_id=user_id,
        wallet_address=user.wallet_address or "",
        deposited=balance.deposited,
        withdrawn=balance.withdrawn,
        last_deposit_at=balance.last_deposit_at,
        last_withdrawal_at=balance.last_withdrawal_at,
        has_deposited=balance.has_deposited,
    )
