"""In-memory ledger of users, accounts, and account transaction histories."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import MAX_EMAX, MIN_EMIN, Decimal, Inexact, Overflow, localcontext
from enum import StrEnum
from threading import Lock, RLock

from open_bank_service.core.exceptions import (
    DuplicateEmailError,
    DuplicateWalletError,
    InvalidAmountError,
    NotFoundError,
)

DEFAULT_DEPOSIT_DESCRIPTION = "Deposit"


class AccountKind(StrEnum):
    DEPOSIT = "deposit"


class TransactionKind(StrEnum):
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class User:
    """A registered user. ``account_ids`` only ever grows."""

    id: str
    email: str
    name: str
    wallet_address: str | None
    created_at: datetime
    account_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Account:
    """A tracking-deposit account owned by exactly one user."""

    id: str
    user_id: str
    kind: AccountKind
    balance: Decimal
    currency: str
    created_at: datetime
    is_active: bool = True


@dataclass(frozen=True)
class Transaction:
    """An immutable ledger entry; ``balance_after`` is the balance right after it applied."""

    id: str
    user_id: str
    account_id: str
    kind: TransactionKind
    amount: Decimal
    description: str
    timestamp: datetime
    balance_after: Decimal


def new_user_id() -> str:
    return f"u-{uuid.uuid4()}"


def new_account_id() -> str:
    return f"acc-{uuid.uuid4()}"


def new_transaction_id() -> str:
    return f"tx-{uuid.uuid4()}"


def _now() -> datetime:
    return datetime.now(UTC)


def _add_exact(balance: Decimal, amount: Decimal) -> Decimal:
    """
    Return ``balance + amount`` or reject the amount.

    The default context keeps 28 significant digits, so a sum such as
    ``100 + 1E-28`` would be rounded back to 100. Rounding or overflow
    would leave the balance different from the sum of its transactions.

    Raises:
        InvalidAmountError: the exact sum is not representable.
    """
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        ctx.traps[Overflow] = True
        try:
            return balance + amount
        except (Inexact, Overflow) as exc:
            raise InvalidAmountError(amount) from exc


class LedgerStore:
    """
    Owns the user, account and transaction collections.

    Each collection has its own lock. Deposits on one account are
    serialized by that account's lock, so deposits on different accounts
    never wait on each other for the read-modify-write.

    Lock order is fixed: account lock, users, accounts, transactions.
    Every operation that takes more than one lock takes them in that order.

    Only frozen snapshots leave the store; the underlying dicts never do.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._accounts: dict[str, Account] = {}
        self._transactions: dict[str, list[Transaction]] = {}
        self._account_locks: dict[str, Lock] = {}

        self._users_lock = RLock()
        self._accounts_lock = RLock()
        self._transactions_lock = RLock()

    # === Users ===

    def create_user(self, email: str, name: str, wallet_address: str | None = None) -> User:
        """
        Register a new user.

        The uniqueness checks and the insert happen under one lock, so two
        concurrent registrations with the same email cannot both succeed.

        Raises:
            DuplicateEmailError: email already registered.
            DuplicateWalletError: wallet_address already registered, in any letter case.
        """
        with self._users_lock:
            for existing in self._users.values():
                if existing.email == email:
                    raise DuplicateEmailError(email)
            if wallet_address is not None:
                wallet_key = wallet_address.lower()
                for existing in self._users.values():
                    if existing.wallet_address is not None and (
                        existing.wallet_address.lower() == wallet_key
                    ):
                        raise DuplicateWalletError(wallet_address)

            user = User(
                id=new_user_id(),
                email=email,
                name=name,
                wallet_address=wallet_address,
                created_at=_now(),
            )
            self._users[user.id] = user
            return user

    def get_user(self, user_id: str) -> User:
        with self._users_lock:
            user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    # === Accounts ===

    def create_account(self, user_id: str, currency: str) -> Account:
        """
        Open a deposit account for a user.

        Inserts the account, links it to the user and creates its empty
        transaction history while holding all three collection locks, so
        no reader can see one effect without the others.

        Raises:
            NotFoundError: user does not exist. Nothing is mutated.
        """
        with self._users_lock, self._accounts_lock, self._transactions_lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError("user", user_id)

            account = Account(
                id=new_account_id(),
                user_id=user_id,
                kind=AccountKind.DEPOSIT,
                balance=Decimal(0),
                currency=currency,
                created_at=_now(),
            )
            self._accounts[account.id] = account
            self._account_locks[account.id] = Lock()
            self._transactions[account.id] = []
            self._users[user_id] = replace(user, account_ids=(*user.account_ids, account.id))
            return account

    def get_account(self, account_id: str) -> Account:
        with self._accounts_lock:
            account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError("account", account_id)
        return account

    def list_accounts_for_user(self, user_id: str) -> list[Account]:
        """Accounts of a user, in the order they were opened."""
        with self._users_lock, self._accounts_lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            return [
                self._accounts[account_id]
                for account_id in user.account_ids
                if account_id in self._accounts
            ]

    # === Transactions ===

    def record_deposit(
        self,
        account_id: str,
        amount: Decimal,
        description: str | None = None,
    ) -> Transaction:
        """
        Credit an account and append the matching transaction.

        Args:
            account_id: Target account.
            amount: Positive, finite decimal.
            description: Free text; defaults to "Deposit".

        Returns:
            The appended Transaction, whose balance_after is the new balance.

        Raises:
            InvalidAmountError: amount <= 0, not finite, or the new balance would
                not be exact. Nothing is mutated.
            NotFoundError: account does not exist.
        """
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(amount)

        with self._accounts_lock:
            account_lock = self._account_locks.get(account_id)
        if account_lock is None:
            raise NotFoundError("account", account_id)

        with account_lock:
            # Holding the account lock, no other writer can change this balance.
            with self._accounts_lock:
                account = self._accounts[account_id]
            new_balance = _add_exact(account.balance, amount)
            transaction = Transaction(
                id=new_transaction_id(),
                user_id=account.user_id,
                account_id=account_id,
                kind=TransactionKind.DEPOSIT,
                amount=amount,
                description=description or DEFAULT_DEPOSIT_DESCRIPTION,
                timestamp=_now(),
                balance_after=new_balance,
            )
            with self._accounts_lock, self._transactions_lock:
                self._accounts[account_id] = replace(account, balance=new_balance)
                self._transactions[account_id].append(transaction)
            return transaction

    def list_transactions(self, account_id: str) -> list[Transaction]:
        """Transactions of an account in application order."""
        with self._transactions_lock:
            history = self._transactions.get(account_id)
            if history is None:
                raise NotFoundError("account", account_id)
            return list(history)

    # === Statistics ===

    def count_users(self) -> int:
        with self._users_lock:
            return len(self._users)

    def count_accounts(self) -> int:
        with self._accounts_lock:
            return len(self._accounts)

    def total_deposited(self) -> Decimal:
        """Sum of all account balances. Rounded to the context precision, never overflowing."""
        with self._accounts_lock:
            balances = [account.balance for account in self._accounts.values()]
        with localcontext() as ctx:
            ctx.Emax = MAX_EMAX
            ctx.Emin = MIN_EMIN
            return sum(balances, Decimal(0))
