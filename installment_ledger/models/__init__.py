"""Data models for the installment ledger."""

from installment_ledger.models.audit import AuditChange, AuditLogEntry
from installment_ledger.models.enums import (
    AuditAction,
    AuditEntity,
    ContractStatus,
    PaymentStatus,
    PaymentType,
    ReceiptKind,
    ReceiptStatus,
    Role,
)
from installment_ledger.models.ledger import (
    ZERO,
    Actor,
    Balance,
    Contract,
    ContractEdit,
    CurrencyBreakdown,
    Customer,
    Debtor,
    Expense,
    FieldChange,
    ImpactSummary,
    Payment,
    PaymentReceipt,
)
from installment_ledger.models.outcomes import (
    AmendmentPreview,
    AmendmentResult,
    DebtorDraft,
    DebtReportRow,
    ExpiryResult,
    Overpaid,
    Paid,
    PaymentDateChange,
    PaymentOutcome,
    Pending,
    SlotAllocation,
    SweepResult,
    Underpaid,
)

__all__ = [
    "ZERO",
    "Actor",
    "AmendmentPreview",
    "AmendmentResult",
    "AuditAction",
    "AuditChange",
    "AuditEntity",
    "AuditLogEntry",
    "Balance",
    "Contract",
    "ContractEdit",
    "ContractStatus",
    "CurrencyBreakdown",
    "Customer",
    "Debtor",
    "DebtorDraft",
    "DebtReportRow",
    "ExpiryResult",
    "Expense",
    "FieldChange",
    "ImpactSummary",
    "Overpaid",
    "Paid",
    "Payment",
    "PaymentDateChange",
    "PaymentOutcome",
    "PaymentReceipt",
    "PaymentStatus",
    "PaymentType",
    "Pending",
    "ReceiptKind",
    "ReceiptStatus",
    "Role",
    "SlotAllocation",
    "SweepResult",
    "Underpaid",
]
