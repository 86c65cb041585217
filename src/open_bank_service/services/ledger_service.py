"""Ledger orchestration: request validation, store mutations, and withdrawal settlement."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from starlette.concurrency import run_in_threadpool

from open_bank_service.core.exceptions import (
    InvalidAddressError,
    NoWalletAddressError,
    ServiceError,
    SettlementUnavailableError,
    SettlementUncertainError,
)
from open_bank_service.logging import get_logger
from open_bank_service.services.settlement import (
    DEFAULT_MINOR_UNIT_DECIMALS,
    ExternalBalance,
    SettlementClient,
    is_valid_address,
    to_minor_units,
)

if TYPE_CHECKING:
    from decimal import Decimal

    from open_bank_service.services.ledger_store import (
        Account,
        LedgerStore,
        Transaction,
        User,
    )

DEFAULT_WITHDRAWAL_DESCRIPTION = "API withdrawal"


class WithdrawalState(StrEnum):
    REQUESTED = "requested"
    VALIDATED = "validated"
    EXTERNAL_CALL_SENT = "external_call_sent"
    SETTLED = "settled"
    EXTERNAL_CALL_FAILED = "external_call_failed"
    UNCERTAIN = "uncertain"


@dataclass(frozen=True)
class WithdrawalReceipt:
    """Result of a settled withdrawal."""

    user_id: str
    wallet_address: str
    amount: Decimal
    amount_minor_units: int
    description: str
    state: WithdrawalState


@dataclass(frozen=True)
class LedgerStatistics:
    total_users: int
    total_accounts: int
    total_deposited: Decimal


class LedgerService:
    """
    Entry point for every ledger operation.

    Store calls run in the thread pool so store locks are never awaited
    on the event loop. Withdrawals validate against the store first, then
    call the settlement client with no store lock held.

    Withdrawals do not debit the local ledger. The settlement system is
    the record of outflows; reconcile through external_balance().
    """

    def __init__(
        self,
        store: LedgerStore,
        settlement_client: SettlementClient | None = None,
        settlement_timeout_seconds: float = 30.0,
        minor_unit_decimals: int = DEFAULT_MINOR_UNIT_DECIMALS,
    ) -> None:
        self._store = store
        self._settlement_client = settlement_client
        self._settlement_timeout_seconds = settlement_timeout_seconds
        self._minor_unit_decimals = minor_unit_decimals

    @property
    def settlement_configured(self) -> bool:
        return self._settlement_client is not None

    # === Users and accounts ===

    async def register_user(
        self,
        email: str,
        name: str,
        wallet_address: str | None = None,
    ) -> User:
        """
        Register a user, optionally bound to a settlement wallet.

        When a wallet is given and settlement is configured, the wallet's
        external balance is looked up and logged. That lookup never fails
        the registration.

        Raises:
            InvalidAddressError: wallet_address is malformed.
            DuplicateEmailError, DuplicateWalletError: uniqueness violation.
        """
        if wallet_address is not None and not is_valid_address(wallet_address):
            raise InvalidAddressError(wallet_address)

        user = await run_in_threadpool(self._store.create_user, email, name, wallet_address)
        logger = get_logger(__name__)
        logger.info("User registered", extra={"user_id": user.id})

        if wallet_address is not None and self._settlement_client is not None:
            try:
                balance = await asyncio.wait_for(
                    self._settlement_client.get_external_balance(wallet_address),
                    timeout=self._settlement_timeout_seconds,
                )
            except (ServiceError, TimeoutError) as exc:
                logger.warning(
                    "Could not read external balance for new user",
                    extra={
                        "user_id": user.id,
                        "wallet_address": wallet_address,
                        "error": getattr(exc, "error", type(exc).__name__),
                    },
                )
            else:
                logger.info(
                    "New user has external balance",
                    extra={
                        "user_id": user.id,
                        "deposited": balance.deposited,
                        "withdrawn": balance.withdrawn,
                    },
                )

        return user

    async def get_user(self, user_id: str) -> User:
        return await run_in_threadpool(self._store.get_user, user_id)

    async def open_account(self, user_id: str, currency: str) -> Account:
        account = await run_in_threadpool(self._store.create_account, user_id, currency)
        get_logger(__name__).info(
            "Account opened",
            extra={"account_id": account.id, "user_id": user_id, "currency": currency},
        )
        return account

    async def get_account(self, account_id: str) -> Account:
        return await run_in_threadpool(self._store.get_account, account_id)

    async def list_user_accounts(self, user_id: str) -> list[Account]:
        return await run_in_threadpool(self._store.list_accounts_for_user, user_id)

    # === Deposits ===

    async def deposit(
        self,
        account_id: str,
        amount: Decimal,
        description: str | None = None,
    ) -> Transaction:
        transaction = await run_in_threadpool(
            self._store.record_deposit, account_id, amount, description
        )
        get_logger(__name__).info(
            "Deposit recorded",
            extra={
                "account_id": account_id,
                "tx_id": transaction.id,
                "amount": str(amount),
                "balance_after": str(transaction.balance_after),
            },
        )
        return transaction

    async def list_transactions(self, account_id: str) -> list[Transaction]:
        return await run_in_threadpool(self._store.list_transactions, account_id)

    # === Statistics ===

    async def statistics(self) -> LedgerStatistics:
        return await run_in_threadpool(self._collect_statistics)

    def _collect_statistics(self) -> LedgerStatistics:
        return LedgerStatistics(
            total_users=self._store.count_users(),
            total_accounts=self._store.count_accounts(),
            total_deposited=self._store.total_deposited(),
        )

    # === Withdrawals ===

    async def withdraw(
        self,
        user_id: str,
        amount: Decimal,
        description: str | None = None,
    ) -> WithdrawalReceipt:
        """
        Send funds from the settlement contract to the user's wallet.

        Validation failures are raised before any external call and leave
        no trace. After validation the only outcomes are SETTLED (returned),
        EXTERNAL_CALL_FAILED (the settlement error is re-raised unchanged),
        or UNCERTAIN (SettlementUncertainError; query external_balance()
        before deciding to retry).

        Raises:
            InvalidAmountError, NotFoundError, NoWalletAddressError,
            SettlementUnavailableError: validation failures.
            SettlementAddressRejectedError, SettlementUnavailableError,
            SettlementRejectedError: external call failed.
            SettlementUncertainError: external call outcome unknown.
        """
        logger = get_logger(__name__)
        description = description or DEFAULT_WITHDRAWAL_DESCRIPTION
        self._log_transition(WithdrawalState.REQUESTED, user_id=user_id, amount=str(amount))

        amount_minor_units = to_minor_units(amount, self._minor_unit_decimals)
        user = await run_in_threadpool(self._store.get_user, user_id)
        if user.wallet_address is None:
            raise NoWalletAddressError(user_id)
        if self._settlement_client is None:
            raise SettlementUnavailableError("NOT_CONFIGURED")
        wallet_address = user.wallet_address
        self._log_transition(
            WithdrawalState.VALIDATED,
            user_id=user_id,
            wallet_address=wallet_address,
            amount_minor_units=amount_minor_units,
        )

        self._log_transition(WithdrawalState.EXTERNAL_CALL_SENT, user_id=user_id)
        try:
            await asyncio.wait_for(
                self._settlement_client.send_funds(
                    wallet_address,
                    amount_minor_units,
                    description,
                ),
                timeout=self._settlement_timeout_seconds,
            )
        except TimeoutError as exc:
            self._log_transition(WithdrawalState.UNCERTAIN, user_id=user_id, reason="TIMEOUT")
            raise SettlementUncertainError(
                "TIMEOUT",
                user_id=user_id,
                address=wallet_address,
                amount_minor_units=amount_minor_units,
            ) from exc
        except SettlementUncertainError as exc:
            self._log_transition(WithdrawalState.UNCERTAIN, user_id=user_id, reason=exc.reason)
            raise SettlementUncertainError(
                exc.reason,
                user_id=user_id,
                address=wallet_address,
                amount_minor_units=amount_minor_units,
            ) from exc
        except ServiceError as exc:
            self._log_transition(
                WithdrawalState.EXTERNAL_CALL_FAILED,
                user_id=user_id,
                error_code=exc.error,
            )
            raise

        self._log_transition(
            WithdrawalState.SETTLED,
            user_id=user_id,
            wallet_address=wallet_address,
            amount_minor_units=amount_minor_units,
        )
        logger.info(
            "Withdrawal settled",
            extra={"user_id": user_id, "amount": str(amount), "wallet_address": wallet_address},
        )
        return WithdrawalReceipt(
            user_id=user_id,
            wallet_address=wallet_address,
            amount=amount,
            amount_minor_units=amount_minor_units,
            description=description,
            state=WithdrawalState.SETTLED,
        )

    async def external_balance(self, user_id: str) -> ExternalBalance:
        """
        Read the user's position in the settlement system.

        This is the recovery path after an UNCERTAIN withdrawal.

        Raises:
            NotFoundError, NoWalletAddressError, SettlementUnavailableError,
            InvalidAddressError.
        """
        user = await run_in_threadpool(self._store.get_user, user_id)
        if user.wallet_address is None:
            raise NoWalletAddressError(user_id)
        if self._settlement_client is None:
            raise SettlementUnavailableError("NOT_CONFIGURED")
        try:
            return await asyncio.wait_for(
                self._settlement_client.get_external_balance(user.wallet_address),
                timeout=self._settlement_timeout_seconds,
            )
        except TimeoutError as exc:
            raise SettlementUnavailableError("TIMEOUT") from exc

    @staticmethod
    def _log_transition(state: WithdrawalState, **fields: object) -> None:
        get_logger(__name__).info(
            "Withdrawal state changed",
            extra={"withdrawal_state": state.value, **fields},
        )
