"""Clients for external systems."""

from open_bank_service.clients.settlement_client import HttpSettlementClient

__all__ = ["HttpSettlementClient"]
