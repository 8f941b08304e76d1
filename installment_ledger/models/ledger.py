"""Ledger record models: contracts, payment slots, debtors and cash balances."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from installment_ledger.models.enums import (
    ContractStatus,
    PaymentStatus,
    PaymentType,
    ReceiptKind,
    ReceiptStatus,
    Role,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Actor:
    """Authenticated user performing an operation."""

    user_id: str
    role: Role


@dataclass(frozen=True)
class CurrencyBreakdown:
    """Cash handed over, split by currency."""

    dollar: Decimal = ZERO
    sum: Decimal = ZERO  # Local currency, display only


@dataclass
class Customer:
    """Buyer on one or more contracts (read-only to the engine)."""

    customer_id: str
    full_name: str
    phone: str
    manager_id: str | None = None
    created_at: datetime | None = None


@dataclass
class FieldChange:
    """One field's before/after values inside a contract edit."""

    field: str
    old_value: str | None
    new_value: str | None
    difference: int = 0


@dataclass
class ImpactSummary:
    underpaid_count: int = 0
    overpaid_count: int = 0
    total_shortage: Decimal = ZERO
    total_excess: Decimal = ZERO
    additional_payments_created: int = 0


@dataclass
class ContractEdit:
    """Immutable record of one administrative amendment."""

    date: datetime
    edited_by: str
    changes: list[FieldChange]
    affected_payments: list[str]
    impact_summary: ImpactSummary = field(default_factory=ImpactSummary)


@dataclass
class Contract:
    """Installment-sale agreement."""

    contract_id: str
    customer_id: str
    product_name: str
    total_price: Decimal
    initial_payment: Decimal
    monthly_payment: Decimal
    period: int  # Months
    start_date: date
    original_payment_day: int
    next_payment_date: date
    prepaid_balance: Decimal = ZERO
    status: ContractStatus = ContractStatus.ACTIVE
    is_active: bool = True
    is_declare: bool = False
    is_deleted: bool = False
    deleted_at: datetime | None = None
    payment_ids: list[str] = field(default_factory=list)  # Advisory order only
    edit_history: list[ContractEdit] = field(default_factory=list)
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Payment:
    """Scheduled slot (initial payment or one month of the term)."""

    payment_id: str
    contract_id: str
    amount: Decimal  # Expected
    due_date: date
    payment_type: PaymentType
    target_month: int | None = None  # 1..period for MONTHLY
    actual_amount: Decimal = ZERO
    is_paid: bool = False
    status: PaymentStatus = PaymentStatus.PENDING
    remaining_amount: Decimal = ZERO
    excess_amount: Decimal = ZERO
    prepaid_used: Decimal = ZERO
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None
    reminder_date: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def outstanding(self) -> Decimal:
        """Amount still owed on this slot."""
        return max(ZERO, self.amount - self.actual_amount)


@dataclass
class Debtor:
    """Materialized overdue marker for one unpaid, past-due slot."""

    debtor_id: str
    contract_id: str
    debt_amount: Decimal
    due_date: date
    overdue_days: int
    created_by: str
    created_at: datetime | None = None


@dataclass
class Balance:
    """Cash held by one manager."""

    manager_id: str
    dollar: Decimal = ZERO
    sum: Decimal = ZERO
    updated_at: datetime | None = None


@dataclass
class Expense:
    """Cash withdrawn from a manager's balance."""

    expense_id: str
    manager_id: str
    dollar: Decimal
    sum: Decimal
    exchange_rate: Decimal
    notes: str
    created_by: str
    created_at: datetime
    is_active: bool = True
    returned_at: datetime | None = None


@dataclass
class PaymentReceipt:
    """Field collection awaiting cashier confirmation."""

    receipt_id: str
    contract_id: str
    kind: ReceiptKind
    amount: Decimal
    breakdown: CurrencyBreakdown
    submitted_by: str
    submitted_at: datetime
    payment_id: str | None = None  # Target slot for REMAINING receipts
    status: ReceiptStatus = ReceiptStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    reject_reason: str | None = None
