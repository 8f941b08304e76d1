"""Ledger state store with referential integrity and all-or-nothing writes."""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterator

from installment_ledger.exceptions import (
    ConflictError,
    EntityNotFoundError,
    InternalError,
    LedgerError,
    ReferentialIntegrityError,
    ValidationError,
)
from installment_ledger.models import (
    ZERO,
    AuditLogEntry,
    Balance,
    Contract,
    Customer,
    Debtor,
    Expense,
    Payment,
    PaymentReceipt,
    PaymentType,
    ReceiptStatus,
)

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    "customer": "M",
    "contract": "S",
    "payment": "T",
    "debtor": "D",
    "receipt": "R",
    "expense": "X",
    "audit": "A",
}

# Restored from a snapshot when a unit of work fails. Records are restored in
# place so objects fetched before the failure stay the stored ones.
_RECORD_COLLECTIONS = (
    "customers",
    "contracts",
    "payments",
    "debtors",
    "balances",
    "expenses",
    "receipts",
)
_TRANSACTIONAL_FIELDS = _RECORD_COLLECTIONS + (
    "exchange_rate",
    "_monthly_slots",
    "_debtor_keys",
    "_contract_debtors",
)


def _slot_order(payment: Payment) -> tuple[int, int]:
    if payment.payment_type == PaymentType.INITIAL:
        return (0, 0)
    return (1, payment.target_month or 0)


@dataclass
class LedgerStore:
    """In-memory store for ledger records with relationship tracking."""

    # Primary records
    customers: dict[str, Customer] = field(default_factory=dict)
    contracts: dict[str, Contract] = field(default_factory=dict)
    payments: dict[str, Payment] = field(default_factory=dict)
    debtors: dict[str, Debtor] = field(default_factory=dict)
    balances: dict[str, Balance] = field(default_factory=dict)
    expenses: dict[str, Expense] = field(default_factory=dict)
    receipts: dict[str, PaymentReceipt] = field(default_factory=dict)

    # Append-only, outside any unit of work
    audit_log: list[AuditLogEntry] = field(default_factory=list)

    # Local currency units per dollar
    exchange_rate: Decimal = Decimal("12650")

    # Relationship indexes
    _monthly_slots: dict[tuple[str, int], str] = field(default_factory=dict)
    _debtor_keys: dict[tuple[str, date], str] = field(default_factory=dict)
    _contract_debtors: dict[str, list[str]] = field(default_factory=dict)

    _sequences: dict[str, int] = field(default_factory=dict)
    _lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)
    _depth: int = field(default=0, repr=False, compare=False)

    def next_id(self, kind: str) -> str:
        """Allocate the next sequential id for a record kind (e.g. ``S0001``)."""
        prefix = ID_PREFIXES[kind]
        with self._lock:
            value = self._sequences.get(kind, 0) + 1
            self._sequences[kind] = value
        return f"{prefix}{value:04d}"

    @contextmanager
    def unit_of_work(self) -> Iterator["LedgerStore"]:
        """Serialize a group of writes and roll all of them back on failure.

        Nested units join the outermost one. Ledger errors propagate as-is;
        anything else is wrapped in ``InternalError``. Rolled-back records are
        restored in place, so references taken before the unit stay valid.
        """
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield self
            except LedgerError:
                if snapshot is not None:
                    self._restore(snapshot)
                raise
            except Exception as e:
                if snapshot is not None:
                    self._restore(snapshot)
                    logger.exception("Unit of work rolled back")
                    raise InternalError(f"Ledger write failed: {e}") from e
                raise
            finally:
                self._depth -= 1

    def _snapshot(self) -> dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in _TRANSACTIONAL_FIELDS}

    def _restore(self, snapshot: dict[str, Any]) -> None:
        for name, saved in snapshot.items():
            if name not in _RECORD_COLLECTIONS:
                setattr(self, name, saved)
                continue
            live = getattr(self, name)
            restored = {}
            for key, record in saved.items():
                current = live.get(key)
                if current is None:
                    restored[key] = record
                else:
                    vars(current).update(vars(record))
                    restored[key] = current
            live.clear()
            live.update(restored)

    # Writes
    def add_customer(self, customer: Customer) -> None:
        """Add a customer to the store."""
        self.customers[customer.customer_id] = customer

    def add_contract(self, contract: Contract) -> None:
        """Add a contract to the store."""
        if contract.customer_id not in self.customers:
            raise ReferentialIntegrityError(f"Customer {contract.customer_id} not found")
        if contract.contract_id in self.contracts:
            raise ConflictError(f"Contract {contract.contract_id} already exists")

        self.contracts[contract.contract_id] = contract
        self._contract_debtors[contract.contract_id] = []

    def add_payment(self, payment: Payment) -> None:
        """Add a payment slot and link it to its contract."""
        contract = self.contracts.get(payment.contract_id)
        if contract is None:
            raise ReferentialIntegrityError(f"Contract {payment.contract_id} not found")

        if payment.payment_type == PaymentType.MONTHLY:
            if payment.target_month is None:
                raise ValidationError(f"Monthly payment {payment.payment_id} has no target month")
            key = (payment.contract_id, payment.target_month)
            if key in self._monthly_slots:
                raise ConflictError(
                    f"Contract {payment.contract_id} already has a slot for month {payment.target_month}"
                )
            self._monthly_slots[key] = payment.payment_id

        self.payments[payment.payment_id] = payment
        contract.payment_ids.append(payment.payment_id)

    def add_debtor(self, debtor: Debtor) -> None:
        """Add a debtor row; at most one per (contract, due date)."""
        if debtor.contract_id not in self.contracts:
            raise ReferentialIntegrityError(f"Contract {debtor.contract_id} not found")
        key = (debtor.contract_id, debtor.due_date)
        if key in self._debtor_keys:
            raise ConflictError(
                f"Debtor for {debtor.contract_id} due {debtor.due_date.isoformat()} already exists"
            )

        self.debtors[debtor.debtor_id] = debtor
        self._debtor_keys[key] = debtor.debtor_id
        self._contract_debtors.setdefault(debtor.contract_id, []).append(debtor.debtor_id)

    def delete_debtor(self, debtor_id: str) -> Debtor:
        """Remove one debtor row."""
        debtor = self.debtors.pop(debtor_id, None)
        if debtor is None:
            raise EntityNotFoundError(f"Debtor {debtor_id} not found")
        self._debtor_keys.pop((debtor.contract_id, debtor.due_date), None)
        self._contract_debtors.get(debtor.contract_id, []).remove(debtor_id)
        return debtor

    def delete_contract_debtors(self, contract_id: str) -> list[str]:
        """Remove every debtor row of a contract and return their ids."""
        removed = list(self._contract_debtors.get(contract_id, []))
        for debtor_id in removed:
            self.delete_debtor(debtor_id)
        return removed

    def add_expense(self, expense: Expense) -> None:
        """Add an expense to the store."""
        if expense.manager_id not in self.balances:
            raise ReferentialIntegrityError(f"Balance for manager {expense.manager_id} not found")
        self.expenses[expense.expense_id] = expense

    def add_receipt(self, receipt: PaymentReceipt) -> None:
        """Add a field receipt to the store."""
        if receipt.contract_id not in self.contracts:
            raise ReferentialIntegrityError(f"Contract {receipt.contract_id} not found")
        if receipt.payment_id is not None and receipt.payment_id not in self.payments:
            raise ReferentialIntegrityError(f"Payment {receipt.payment_id} not found")
        self.receipts[receipt.receipt_id] = receipt

    def get_or_create_balance(self, manager_id: str) -> Balance:
        """Get a manager's balance, opening an empty one on first use."""
        balance = self.balances.get(manager_id)
        if balance is None:
            balance = Balance(manager_id=manager_id)
            self.balances[manager_id] = balance
        return balance

    def set_exchange_rate(self, rate: Decimal) -> None:
        """Record the latest local-currency-per-dollar rate."""
        if rate <= 0:
            raise ValidationError("Exchange rate must be positive")
        self.exchange_rate = rate

    def append_audit(self, entry: AuditLogEntry) -> None:
        """Append an audit entry (never updated or removed)."""
        self.audit_log.append(entry)

    # Query methods
    def get_customer(self, customer_id: str) -> Customer:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise EntityNotFoundError(f"Customer {customer_id} not found")
        return customer

    def get_contract(self, contract_id: str) -> Contract:
        contract = self.contracts.get(contract_id)
        if contract is None:
            raise EntityNotFoundError(f"Contract {contract_id} not found")
        return contract

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise EntityNotFoundError(f"Payment {payment_id} not found")
        return payment

    def get_receipt(self, receipt_id: str) -> PaymentReceipt:
        receipt = self.receipts.get(receipt_id)
        if receipt is None:
            raise EntityNotFoundError(f"Receipt {receipt_id} not found")
        return receipt

    def get_expense(self, expense_id: str) -> Expense:
        expense = self.expenses.get(expense_id)
        if expense is None:
            raise EntityNotFoundError(f"Expense {expense_id} not found")
        return expense

    def get_balance(self, manager_id: str) -> Balance:
        balance = self.balances.get(manager_id)
        if balance is None:
            raise EntityNotFoundError(f"Balance for manager {manager_id} not found")
        return balance

    def get_contract_payments(self, contract_id: str) -> list[Payment]:
        """Get all slots of a contract, INITIAL first then by target month."""
        contract = self.get_contract(contract_id)
        slots = [self.payments[pid] for pid in contract.payment_ids if pid in self.payments]
        return sorted(slots, key=_slot_order)

    def get_unpaid_payments(self, contract_id: str) -> list[Payment]:
        """Get the unpaid slots of a contract in schedule order."""
        return [p for p in self.get_contract_payments(contract_id) if not p.is_paid]

    def get_contract_debtors(self, contract_id: str) -> list[Debtor]:
        """Get the debtor rows of a contract ordered by due date."""
        ids = self._contract_debtors.get(contract_id, [])
        return sorted((self.debtors[did] for did in ids), key=lambda d: d.due_date)

    def find_debtor(self, contract_id: str, due_date: date) -> Debtor | None:
        debtor_id = self._debtor_keys.get((contract_id, due_date))
        return self.debtors.get(debtor_id) if debtor_id else None

    def get_pending_receipts(self) -> list[PaymentReceipt]:
        return [r for r in self.receipts.values() if r.status == ReceiptStatus.PENDING]

    def latest_exchange_rate(self) -> Decimal:
        return self.exchange_rate

    def total_paid(self, contract_id: str) -> Decimal:
        """Sum of actual amounts over the contract's paid slots."""
        return sum(
            (p.actual_amount for p in self.get_contract_payments(contract_id) if p.is_paid),
            ZERO,
        )

    def remaining_debt(self, contract_id: str) -> Decimal:
        contract = self.get_contract(contract_id)
        return max(ZERO, contract.total_price - self.total_paid(contract_id))

    def summary(self) -> dict[str, int]:
        """Return summary counts of all records."""
        return {
            "customers": len(self.customers),
            "contracts": len(self.contracts),
            "payments": len(self.payments),
            "debtors": len(self.debtors),
            "balances": len(self.balances),
            "expenses": len(self.expenses),
            "receipts": len(self.receipts),
            "audit_log": len(self.audit_log),
        }
