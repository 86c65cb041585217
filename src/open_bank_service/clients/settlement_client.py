"""Async HTTP client for the settlement gateway."""

from __future__ import annotations

from typing import Any

import httpx

from open_bank_service.core.exceptions import (
    InvalidAddressError,
    SettlementAddressRejectedError,
    SettlementRejectedError,
    SettlementUnavailableError,
    SettlementUncertainError,
)
from open_bank_service.logging import get_logger
from open_bank_service.services.settlement import ExternalBalance, is_valid_address

# The request never left this process; retrying is safe.
_NOT_DELIVERED = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)
# The request may have been applied; only a balance query can tell.
_MAYBE_DELIVERED = (
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


class HttpSettlementClient:
    """
    Client for the settlement gateway fronting the on-chain contract.

    Two operations:
    1. get_external_balance: GET {balance_path}/{address}, returns the
       contract's view of a wallet (deposited, withdrawn, timestamps).
    2. send_funds: POST {transfer_path}, asks the contract owner to send
       minor units to a wallet.

    The client keeps no ledger state.
    """

    def __init__(
        self,
        base_url: str,
        balance_path: str,
        transfer_path: str,
        timeout_seconds: float,
        api_token: str | None = None,
    ) -> None:
        self._base_url = base_url
        self._balance_path = balance_path.rstrip("/")
        self._transfer_path = transfer_path
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
        )

    async def get_external_balance(self, address: str) -> ExternalBalance:
        """
        Read a wallet's balance record from the settlement system.

        Raises:
            InvalidAddressError: address is malformed (checked locally or by the gateway)
            SettlementUnavailableError: transport failure, unexpected status, or unparsable body
        """
        logger = get_logger(__name__)

        if not is_valid_address(address):
            raise InvalidAddressError(address)

        try:
            response = await self._client.get(f"{self._balance_path}/{address}")
        except httpx.HTTPError as exc:
            logger.warning(
                "Settlement gateway request failed on balance query",
                extra={"error": str(exc), "address": address, "base_url": self._base_url},
            )
            raise SettlementUnavailableError("TRANSPORT_ERROR") from exc

        if response.status_code == 400:
            raise InvalidAddressError(address)

        if response.status_code != 200:
            logger.warning(
                "Settlement gateway unexpected status on balance query",
                extra={
                    "status_code": response.status_code,
                    "address": address,
                    "base_url": self._base_url,
                },
            )
            raise SettlementUnavailableError("UNEXPECTED_STATUS")

        try:
            body: dict[str, Any] = response.json()
            return ExternalBalance(
                deposited=int(body["deposited"]),
                withdrawn=int(body["withdrawn"]),
                last_deposit_at=int(body["last_deposit"]),
                last_withdrawal_at=int(body["last_withdrawal"]),
                has_deposited=bool(body["has_deposited"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Settlement gateway returned an unparsable balance",
                extra={"error": str(exc), "address": address},
            )
            raise SettlementUnavailableError("INVALID_RESPONSE") from exc

    async def send_funds(
        self,
        destination_address: str,
        amount_minor_units: int,
        description: str,
    ) -> None:
        """
        Send minor units from the contract to a wallet.

        Raises:
            InvalidAddressError: destination is malformed (checked before any I/O)
            SettlementAddressRejectedError: the gateway refused the destination
            SettlementRejectedError: the gateway or contract refused the transfer
            SettlementUnavailableError: the request was not delivered or the gateway errored
            SettlementUncertainError: the request may have been applied (timeout after send)
        """
        logger = get_logger(__name__)

        if not is_valid_address(destination_address):
            raise InvalidAddressError(destination_address)

        try:
            response = await self._client.post(
                self._transfer_path,
                json={
                    "recipient": destination_address,
                    "amount": amount_minor_units,
                    "description": description,
                },
            )
        except _NOT_DELIVERED as exc:
            logger.warning(
                "Settlement gateway connection failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise SettlementUnavailableError("CONNECTION_FAILED") from exc
        except _MAYBE_DELIVERED as exc:
            logger.error(
                "Settlement transfer outcome unknown",
                extra={
                    "error": str(exc),
                    "address": destination_address,
                    "amount_minor_units": amount_minor_units,
                },
            )
            raise SettlementUncertainError(
                "TRANSPORT_INTERRUPTED",
                address=destination_address,
                amount_minor_units=amount_minor_units,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Settlement gateway HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise SettlementUnavailableError("TRANSPORT_ERROR") from exc

        if response.status_code in (200, 201, 202):
            return

        error_body = _safe_json(response)
        upstream_error = error_body.get("error")

        if response.status_code == 400 and upstream_error == "INVALID_ADDRESS":
            raise SettlementAddressRejectedError(destination_address)

        if response.status_code == 504:
            raise SettlementUncertainError(
                "GATEWAY_TIMEOUT",
                address=destination_address,
                amount_minor_units=amount_minor_units,
            )

        if 400 <= response.status_code < 500:
            raise SettlementRejectedError(
                "REJECTED_BY_SETTLEMENT",
                upstream_error=upstream_error if isinstance(upstream_error, str) else None,
            )

        logger.warning(
            "Settlement gateway unexpected status on transfer",
            extra={"status_code": response.status_code, "base_url": self._base_url},
        )
        raise SettlementUnavailableError("UNEXPECTED_STATUS")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
