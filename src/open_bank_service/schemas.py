"""
Pydantic response models for the API.

Amounts are rendered as decimal strings so no precision is lost in JSON.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_users: int
    total_accounts: int
    total_deposited: str
    settlement_configured: bool


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, Any]
    category: str | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    email: str
    name: str
    wallet_address: str | None
    created_at: str
    accounts: list[str]


class AccountResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    user_id: str
    account_type: str
    balance: str
    currency: str
    created_at: str
    is_active: bool


class AccountListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    user_id: str
    accounts: list[AccountResponse]


class TransactionResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    user_id: str
    account_id: str
    transaction_type: str
    amount: str
    description: str
    timestamp: str
    balance_after: str


class TransactionListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    account_id: str
    transactions: list[TransactionResponse]


class WithdrawalResponse(BaseModel):
    """Response model for a settled withdrawal."""

    model_config = ConfigDict(extra="forbid")
    status: str
    user_id: str
    wallet_address: str
    amount: str
    amount_minor_units: int
    description: str


class ExternalBalanceResponse(BaseModel):
    """The settlement system's record for a user's wallet, in minor units."""

    model_config = ConfigDict(extra="forbid")
    user_id: str
    wallet_address: str
    deposited: int
    withdrawn: int
    last_deposit_at: int
    last_withdrawal_at: int
    has_deposited: bool
