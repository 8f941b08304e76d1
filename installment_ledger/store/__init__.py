"""Ledger state storage."""

from installment_ledger.store.ledger import LedgerStore

__all__ = ["LedgerStore"]
