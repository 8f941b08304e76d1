"""Structured results returned by engine operations."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from installment_ledger.models.enums import PaymentStatus, PaymentType
from installment_ledger.models.ledger import ZERO, ContractEdit


@dataclass(frozen=True)
class SlotAllocation:
    """Portion of a surplus applied to a later slot."""

    payment_id: str
    target_month: int
    applied: Decimal
    status: PaymentStatus
    remaining: Decimal = ZERO


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of one receipt event against one slot.

    Concrete results are one of ``Paid``, ``Underpaid``, ``Overpaid`` or
    ``Pending``; branch with ``isinstance`` or ``match``.
    """

    contract_id: str
    payment_id: str | None = None
    applied: Decimal = ZERO
    prepaid_used: Decimal = ZERO

    @property
    def status(self) -> PaymentStatus:
        raise NotImplementedError


@dataclass(frozen=True)
class Paid(PaymentOutcome):
    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus.PAID


@dataclass(frozen=True)
class Underpaid(PaymentOutcome):
    remaining: Decimal = ZERO

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus.UNDERPAID


@dataclass(frozen=True)
class Overpaid(PaymentOutcome):
    excess: Decimal = ZERO
    allocations: tuple[SlotAllocation, ...] = ()
    banked: Decimal = ZERO  # Added to the contract's prepaid balance

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus.OVERPAID


@dataclass(frozen=True)
class Pending(PaymentOutcome):
    receipt_id: str = ""

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus.PENDING


@dataclass(frozen=True)
class PaymentDateChange:
    payment_id: str
    payment_type: PaymentType
    target_month: int | None
    old_due_date: date
    new_due_date: date


@dataclass(frozen=True)
class DebtorDraft:
    """Debtor row a schedule would produce, before it is stored."""

    payment_id: str
    due_date: date
    debt_amount: Decimal
    overdue_days: int


@dataclass
class AmendmentPreview:
    """Computed impact of moving a contract's start date."""

    contract_id: str
    old_start_date: date
    new_start_date: date
    day_delta: int
    month_delta: int
    old_next_payment_date: date
    new_next_payment_date: date
    changes: list[PaymentDateChange] = field(default_factory=list)
    debtors: list[DebtorDraft] = field(default_factory=list)

    @property
    def affected_payment_ids(self) -> list[str]:
        return [c.payment_id for c in self.changes]

    @property
    def new_due_dates(self) -> dict[str, date]:
        return {c.payment_id: c.new_due_date for c in self.changes}


@dataclass
class AmendmentResult:
    preview: AmendmentPreview
    edit: ContractEdit
    removed_debtor_ids: list[str] = field(default_factory=list)
    created_debtor_ids: list[str] = field(default_factory=list)
    declare_cleared: bool = False

    @property
    def contract_id(self) -> str:
        return self.preview.contract_id

    @property
    def affected_payment_ids(self) -> list[str]:
        return self.preview.affected_payment_ids


@dataclass(frozen=True)
class SweepResult:
    created: int = 0
    updated: int = 0
    removed: int = 0


@dataclass(frozen=True)
class ExpiryResult:
    rejected_count: int = 0
    rejected_receipt_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DebtReportRow:
    """One contract in the collections report."""

    contract_id: str
    customer_id: str
    customer_name: str
    product_name: str
    total_price: Decimal
    total_paid: Decimal
    remaining_debt: Decimal
    due_date: date
    delay_days: int
    is_declare: bool
