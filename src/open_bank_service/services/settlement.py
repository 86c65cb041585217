"""Settlement system contract: balance type, client protocol, amount and address helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, Inexact, localcontext
from typing import Protocol

from open_bank_service.core.exceptions import InvalidAmountError

# USDT-style fixed point: 1 unit == 10**6 minor units.
DEFAULT_MINOR_UNIT_DECIMALS = 6

_ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")


@dataclass(frozen=True)
class ExternalBalance:
    """A user's position in the settlement system, in minor units and unix seconds."""

    deposited: int
    withdrawn: int
    last_deposit_at: int
    last_withdrawal_at: int
    has_deposited: bool


class SettlementClient(Protocol):
    """
    Narrow capability the ledger needs from the external settlement system.

    Implementations raise SettlementUnavailableError, SettlementRejectedError,
    InvalidAddressError or SettlementUncertainError; nothing else.
    """

    async def get_external_balance(self, address: str) -> ExternalBalance: ...

    async def send_funds(
        self,
        destination_address: str,
        amount_minor_units: int,
        description: str,
    ) -> None: ...

    async def close(self) -> None: ...


def is_valid_address(address: str) -> bool:
    """True for a 0x-prefixed, 20-byte hex address."""
    return _ADDRESS_PATTERN.fullmatch(address) is not None


def to_minor_units(amount: Decimal, decimals: int = DEFAULT_MINOR_UNIT_DECIMALS) -> int:
    """
    Convert a ledger amount to the settlement system's integer minor units.

    Exact: an amount with more fractional digits than ``decimals`` is
    rejected rather than rounded.

    Raises:
        InvalidAmountError: amount is not finite, not positive, or would lose precision.
    """
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(amount)
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        try:
            minor_units = amount.scaleb(decimals).to_integral_exact()
        except Inexact as exc:
            raise InvalidAmountError(amount) from exc
    return int(minor_units)


def from_minor_units(minor_units: int, decimals: int = DEFAULT_MINOR_UNIT_DECIMALS) -> Decimal:
    """Inverse of to_minor_units, for display."""
    return Decimal(minor_units).scaleb(-decimals)
