"""Enumeration types for ledger entities."""

from enum import Enum


class ContractStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    UNDERPAID = "UNDERPAID"
    OVERPAID = "OVERPAID"


class PaymentType(str, Enum):
    INITIAL = "INITIAL"
    MONTHLY = "MONTHLY"


class ReceiptStatus(str, Enum):
    """Review state of cash collected in the field."""

    PENDING = "PENDING"
    PAID = "PAID"
    UNDERPAID = "UNDERPAID"
    OVERPAID = "OVERPAID"
    REJECTED = "REJECTED"


class ReceiptKind(str, Enum):
    MONTHLY = "MONTHLY"
    REMAINING = "REMAINING"
    ALL_MONTHS = "ALL_MONTHS"


class Role(str, Enum):
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    CASHIER = "CASHIER"
    MANAGER = "MANAGER"
    SELLER = "SELLER"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    PAYMENT = "PAYMENT"
    CONFIRM = "CONFIRM"
    REJECT = "REJECT"
    DECLARE = "DECLARE"
    SWEEP = "SWEEP"
    WITHDRAW = "WITHDRAW"
    RETURN = "RETURN"


class AuditEntity(str, Enum):
    CONTRACT = "CONTRACT"
    PAYMENT = "PAYMENT"
    RECEIPT = "RECEIPT"
    DEBTOR = "DEBTOR"
    BALANCE = "BALANCE"
    EXPENSE = "EXPENSE"
