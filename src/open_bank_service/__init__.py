"""Open Bank Service - user, account and deposit ledger with on-chain withdrawals."""

__version__ = "0.1.0"
