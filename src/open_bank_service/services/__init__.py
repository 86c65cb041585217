"""Service layer."""

from open_bank_service.services.ledger_service import LedgerService
from open_bank_service.services.ledger_store import LedgerStore

__all__ = ["LedgerService", "LedgerStore"]
