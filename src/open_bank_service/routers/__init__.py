"""API routers."""

from open_bank_service.routers import accounts, health, users, withdrawals

__all__ = ["accounts", "health", "users", "withdrawals"]
