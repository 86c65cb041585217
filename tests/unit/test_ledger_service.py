"""Ledger service tests: registration, deposits, and the withdrawal state machine."""

from __future__ import annotations

import asyncio
import threading
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from open_bank_service.core.exceptions import (
    SETTLEMENT,
    VALIDATION,
    InvalidAddressError,
    InvalidAmountError,
    NotFoundError,
    NoWalletAddressError,
    SettlementAddressRejectedError,
    SettlementRejectedError,
    SettlementUnavailableError,
    SettlementUncertainError,
)
from open_bank_service.services.ledger_service import (
    DEFAULT_WITHDRAWAL_DESCRIPTION,
    LedgerService,
    WithdrawalState,
)
from open_bank_service.services.ledger_store import LedgerStore
from tests.helpers import WALLET_A, make_balance, make_mock_settlement_client

pytestmark = pytest.mark.unit


@pytest.fixture
def store() -> LedgerStore:
    return LedgerStore()


@pytest.fixture
def settlement() -> AsyncMock:
    return make_mock_settlement_client(make_balance(deposited=5_000_000))


@pytest.fixture
def service(store, settlement) -> LedgerService:
    return LedgerService(store=store, settlement_client=settlement, settlement_timeout_seconds=1)


def _snapshot(store: LedgerStore) -> tuple[int, int, Decimal]:
    return store.count_users(), store.count_accounts(), store.total_deposited()


# === Registration ===


async def test_register_user_with_wallet_reads_external_balance(service, settlement):
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    assert user.wallet_address == WALLET_A
    settlement.get_external_balance.assert_awaited_once_with(WALLET_A)


async def test_register_user_survives_settlement_outage(service, settlement, store):
    settlement.get_external_balance.side_effect = SettlementUnavailableError("TRANSPORT_ERROR")

    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    assert store.get_user(user.id) == user


async def test_register_user_without_wallet_skips_settlement(service, settlement):
    await service.register_user("alice@example.com", "Alice")

    settlement.get_external_balance.assert_not_awaited()


async def test_register_user_rejects_malformed_wallet(service, store):
    with pytest.raises(InvalidAddressError) as exc_info:
        await service.register_user("alice@example.com", "Alice", "0x1234")

    assert exc_info.value.details == {"address": "0x1234"}
    assert store.count_users() == 0


# === Accounts and deposits ===


async def test_deposit_flow_through_service(service):
    user = await service.register_user("alice@example.com", "Alice")
    account = await service.open_account(user.id, "USD")

    first = await service.deposit(account.id, Decimal("100.0"), "init")
    second = await service.deposit(account.id, Decimal("50.0"))

    assert first.balance_after == Decimal("100.0")
    assert second.balance_after == Decimal("150.0")
    assert [tx.id for tx in await service.list_transactions(account.id)] == [first.id, second.id]
    assert [a.id for a in await service.list_user_accounts(user.id)] == [account.id]
    assert (await service.get_account(account.id)).balance == Decimal("150.0")


async def test_open_account_for_unknown_user(service, store):
    with pytest.raises(NotFoundError):
        await service.open_account("u-missing", "USD")

    assert store.count_accounts() == 0


# === Withdrawals: validation ===


async def test_withdraw_without_wallet_fails_and_leaves_store_unchanged(service, settlement, store):
    user = await service.register_user("bob@example.com", "Bob")
    account = await service.open_account(user.id, "USD")
    await service.deposit(account.id, Decimal("10"))
    before = _snapshot(store)

    with pytest.raises(NoWalletAddressError) as exc_info:
        await service.withdraw(user.id, Decimal("1"))

    assert exc_info.value.category == VALIDATION
    assert exc_info.value.details == {"user_id": user.id}
    assert _snapshot(store) == before
    assert len(store.list_transactions(account.id)) == 1
    settlement.send_funds.assert_not_awaited()


@pytest.mark.parametrize("amount", [Decimal(0), Decimal("-3"), Decimal("0.0000001")])
async def test_withdraw_rejects_invalid_amount(service, settlement, amount):
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    with pytest.raises(InvalidAmountError):
        await service.withdraw(user.id, amount)

    settlement.send_funds.assert_not_awaited()


async def test_withdraw_for_unknown_user(service, settlement):
    with pytest.raises(NotFoundError) as exc_info:
        await service.withdraw("u-missing", Decimal("1"))

    assert exc_info.value.error == "USER_NOT_FOUND"
    settlement.send_funds.assert_not_awaited()


async def test_withdraw_without_settlement_client(store):
    service = LedgerService(store=store)
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    with pytest.raises(SettlementUnavailableError) as exc_info:
        await service.withdraw(user.id, Decimal("1"))

    assert exc_info.value.details == {"reason": "NOT_CONFIGURED"}
    assert service.settlement_configured is False


# === Withdrawals: settlement outcomes ===


async def test_withdraw_settles_without_local_debit(service, settlement, store):
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)
    account = await service.open_account(user.id, "USD")
    await service.deposit(account.id, Decimal("100"))
    before = _snapshot(store)

    receipt = await service.withdraw(user.id, Decimal("25.5"))

    assert receipt.state is WithdrawalState.SETTLED
    assert receipt.wallet_address == WALLET_A
    assert receipt.amount_minor_units == 25_500_000
    assert receipt.description == DEFAULT_WITHDRAWAL_DESCRIPTION
    settlement.send_funds.assert_awaited_once_with(
        WALLET_A, 25_500_000, DEFAULT_WITHDRAWAL_DESCRIPTION
    )
    # The settlement system is the record of outflows.
    assert _snapshot(store) == before
    assert len(store.list_transactions(account.id)) == 1


async def test_withdraw_passes_description(service, settlement):
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    await service.withdraw(user.id, Decimal("1"), "rent")

    settlement.send_funds.assert_awaited_once_with(WALLET_A, 1_000_000, "rent")


@pytest.mark.parametrize(
    "error",
    [
        SettlementUnavailableError("CONNECTION_FAILED"),
        SettlementRejectedError("REJECTED_BY_SETTLEMENT", "INSUFFICIENT_CONTRACT_BALANCE"),
        SettlementAddressRejectedError(WALLET_A),
    ],
)
async def test_withdraw_surfaces_settlement_failure_unchanged(service, settlement, store, error):
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)
    before = _snapshot(store)
    settlement.send_funds.side_effect = error

    with pytest.raises(type(error)) as exc_info:
        await service.withdraw(user.id, Decimal("1"))

    assert exc_info.value is error
    assert _snapshot(store) == before


async def test_withdraw_timeout_reports_uncertain_and_does_not_retry(store, settlement):
    async def hang(*_args: object) -> None:
        await asyncio.sleep(10)

    settlement.send_funds.side_effect = hang
    service = LedgerService(
        store=store,
        settlement_client=settlement,
        settlement_timeout_seconds=0.05,
    )
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    with pytest.raises(SettlementUncertainError) as exc_info:
        await service.withdraw(user.id, Decimal("2"))

    error = exc_info.value
    assert error.category == SETTLEMENT
    assert error.status_code == 504
    assert error.details["reason"] == "TIMEOUT"
    assert error.details["user_id"] == user.id
    assert error.details["address"] == WALLET_A
    assert error.details["amount_minor_units"] == 2_000_000
    assert error.details["recovery"] == "GET_EXTERNAL_BALANCE"
    assert settlement.send_funds.await_count == 1


async def test_withdraw_client_uncertainty_gains_request_context(service, settlement):
    settlement.send_funds.side_effect = SettlementUncertainError("TRANSPORT_INTERRUPTED")
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)

    with pytest.raises(SettlementUncertainError) as exc_info:
        await service.withdraw(user.id, Decimal("3"))

    assert exc_info.value.details["reason"] == "TRANSPORT_INTERRUPTED"
    assert exc_info.value.details["user_id"] == user.id
    assert exc_info.value.details["amount_minor_units"] == 3_000_000


# === Recovery path ===


async def test_external_balance_is_recovery_path_after_uncertain(service, settlement):
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)
    settlement.send_funds.side_effect = SettlementUncertainError("GATEWAY_TIMEOUT")
    with pytest.raises(SettlementUncertainError):
        await service.withdraw(user.id, Decimal("1"))

    settlement.get_external_balance.return_value = make_balance(
        deposited=5_000_000, withdrawn=1_000_000
    )
    balance = await service.external_balance(user.id)

    assert balance.withdrawn == 1_000_000
    assert settlement.send_funds.await_count == 1


async def test_external_balance_requires_wallet(service):
    user = await service.register_user("bob@example.com", "Bob")

    with pytest.raises(NoWalletAddressError):
        await service.external_balance(user.id)


async def test_external_balance_timeout_is_unavailable(store, settlement):
    async def hang(*_args: object) -> None:
        await asyncio.sleep(10)

    service = LedgerService(store=store, settlement_client=settlement)
    user = await service.register_user("alice@example.com", "Alice", WALLET_A)
    service = LedgerService(
        store=store,
        settlement_client=settlement,
        settlement_timeout_seconds=0.05,
    )
    settlement.get_external_balance.side_effect = hang

    with pytest.raises(SettlementUnavailableError) as exc_info:
        await service.external_balance(user.id)

    assert exc_info.value.details == {"reason": "TIMEOUT"}


# === Statistics ===


async def test_statistics_reads_store_off_the_event_loop(service, store, monkeypatch):
    loop_thread = threading.get_ident()
    seen_threads: list[int] = []
    original = store.count_users

    def count_users() -> int:
        seen_threads.append(threading.get_ident())
        return original()

    monkeypatch.setattr(store, "count_users", count_users)
    user = await service.register_user("alice@example.com", "Alice")
    account = await service.open_account(user.id, "USD")
    await service.deposit(account.id, Decimal("4.5"))

    stats = await service.statistics()

    assert stats.total_users == 1
    assert stats.total_accounts == 1
    assert stats.total_deposited == Decimal("4.5")
    assert seen_threads
    assert loop_thread not in seen_threads
