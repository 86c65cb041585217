"""Shared test helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

from open_bank_service.services.settlement import ExternalBalance

if TYPE_CHECKING:
    from pathlib import Path

    from httpx import AsyncClient

WALLET_A = "0x" + "a1" * 20
WALLET_B = "0x" + "b2" * 20

SETTLEMENT_SECTION = """
settlement:
  base_url: "http://mock-settlement:8545"
  balance_path: "/balances"
  transfer_path: "/transfers"
  timeout_seconds: 5
  minor_unit_decimals: 6
  api_token: "secret-token"
"""


def write_config(tmp_path: Path, with_settlement: bool = True, log_level: str = "WARNING") -> Path:
    """Write a complete config.yaml into tmp_path and return its path."""
    config_content = f"""
service:
  name: "open-bank"
  version: "0.1.0"
server:
  host: "127.0.0.1"
  port: 3000
  log_level: "info"
logging:
  level: "{log_level}"
  directory: "{tmp_path / 'logs'}"
request:
  max_body_size: 1024
"""
    if with_settlement:
        config_content += SETTLEMENT_SECTION
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return config_path


def make_balance(deposited: int = 0, withdrawn: int = 0) -> ExternalBalance:
    return ExternalBalance(
        deposited=deposited,
        withdrawn=withdrawn,
        last_deposit_at=1_700_000_000 if deposited else 0,
        last_withdrawal_at=1_700_000_100 if withdrawn else 0,
        has_deposited=deposited > 0,
    )


def make_mock_settlement_client(balance: ExternalBalance | None = None) -> AsyncMock:
    """Settlement client double whose calls succeed by default."""
    client = AsyncMock()
    client.send_funds = AsyncMock(return_value=None)
    client.get_external_balance = AsyncMock(return_value=balance or make_balance())
    client.close = AsyncMock()
    return client


async def register(client: AsyncClient, email: str, wallet_address: str | None = None) -> dict:
    """Register a user through the API and return the response body."""
    payload = {"email": email, "name": email.split("@")[0].title()}
    if wallet_address is not None:
        payload["wallet_address"] = wallet_address
    response = await client.post("/users", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def open_account(client: AsyncClient, user_id: str, currency: str = "USD") -> dict:
    response = await client.post(f"/users/{user_id}/accounts", json={"currency": currency})
    assert response.status_code == 201, response.text
    return response.json()
