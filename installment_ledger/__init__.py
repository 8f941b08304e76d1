"""Installment Ledger - payment reconciliation and contract lifecycle engine."""

__version__ = "0.1.0"
