"""Shared router helper functions."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from open_bank_service.core.exceptions import InvalidAmountError, ServiceError
from open_bank_service.core.state import get_app_state
from open_bank_service.schemas import (
    AccountResponse,
    ErrorResponse,
    TransactionResponse,
    UserResponse,
)

if TYPE_CHECKING:
    from datetime import datetime

    from open_bank_service.services.ledger_service import LedgerService
    from open_bank_service.services.ledger_store import Account, Transaction, User


def parse_json_body(body: bytes) -> dict[str, Any]:
    """
    Parse JSON body, raising ServiceError on failure.

    JSON numbers with a fraction are parsed as Decimal so amounts stay exact.
    """
    try:
        data = json.loads(body, parse_float=Decimal)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def require_string(data: dict[str, Any], field: str) -> str:
    """Return a required non-empty string field."""
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ServiceError(
            "INVALID_PAYLOAD",
            "Missing or invalid field",
            400,
            {"field": field},
        )
    return value


def optional_string(data: dict[str, Any], field: str) -> str | None:
    """Return an optional string field (None when absent or null)."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ServiceError(
            "INVALID_PAYLOAD",
            "Field must be a string",
            400,
            {"field": field},
        )
    return value


def require_amount(data: dict[str, Any]) -> Decimal:
    """Return the ``amount`` field as a Decimal. Sign is checked by the ledger."""
    if "amount" not in data:
        raise ServiceError(
            "INVALID_PAYLOAD",
            "Missing or invalid field",
            400,
            {"field": "amount"},
        )
    value = data["amount"]
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise InvalidAmountError(str(value))
    return Decimal(value)


def get_ledger_service() -> LedgerService:
    state = get_app_state()
    if state.ledger_service is None:
        msg = "Ledger service not initialized"
        raise RuntimeError(msg)
    return state.ledger_service


def error_responses(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    """OpenAPI ``responses`` entries documenting the error body for each status."""
    return {status_code: {"model": ErrorResponse} for status_code in status_codes}


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        wallet_address=user.wallet_address,
        created_at=_iso(user.created_at),
        accounts=list(user.account_ids),
    )


def account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        user_id=account.user_id,
        account_type=account.kind.value,
        balance=str(account.balance),
        currency=account.currency,
        created_at=_iso(account.created_at),
        is_active=account.is_active,
    )


def transaction_response(transaction: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        user_id=transaction.user_id,
        account_id=transaction.account_id,
        transaction_type=transaction.kind.value,
        amount=str(transaction.amount),
        description=transaction.description,
        timestamp=_iso(transaction.timestamp),
        balance_after=str(transaction.balance_after),
    )
