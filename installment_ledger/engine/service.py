"""Boundary facade wiring the engine components together."""

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from installment_ledger.audit import AuditRecorder
from installment_ledger.clock import Clock, SystemClock
from installment_ledger.config import EngineConfig
from installment_ledger.engine.amendment import ContractAmendmentHandler
from installment_ledger.engine.balance import BalanceLedger
from installment_ledger.engine.contracts import ContractManager
from installment_ledger.engine.debtors import DebtorManager
from installment_ledger.engine.distributor import ExcessDistributor
from installment_ledger.engine.payments import PaymentProcessor
from installment_ledger.models import (
    Actor,
    AmendmentPreview,
    AmendmentResult,
    Contract,
    CurrencyBreakdown,
    DebtReportRow,
    ExpiryResult,
    Expense,
    Payment,
    PaymentOutcome,
    PaymentReceipt,
    SweepResult,
)
from installment_ledger.scheduling import Scheduler
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class LedgerService:
    """Operations exposed to controllers, bots and schedulers.

    Parameters
    ----------
    store : LedgerStore | None
        Ledger records; a fresh in-memory store by default.
    config : EngineConfig | None
        Thresholds and task intervals.
    clock : Clock | None
        Time source; wall-clock time by default.
    publisher : KafkaSink | None
        Optional sink audit entries are published to.
    audit_topic : str
        Topic for published audit entries.
    """

    def __init__(
        self,
        store: LedgerStore | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        publisher: Any | None = None,
        audit_topic: str = "ledger.audit-log",
    ) -> None:
        self.store = store if store is not None else LedgerStore()
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()

        self.audit = AuditRecorder(self.store, self.clock, publisher=publisher, topic=audit_topic)
        self.distributor = ExcessDistributor(self.store, self.config, self.clock)
        self.debtors = DebtorManager(self.store, self.clock, self.audit)
        self.balances = BalanceLedger(self.store, self.clock, self.audit)
        self.contracts = ContractManager(
            self.store, self.clock, self.distributor, self.debtors, self.audit
        )
        self.amendments = ContractAmendmentHandler(self.store, self.clock, self.debtors, self.audit)
        self.payments = PaymentProcessor(
            self.store,
            self.config,
            self.clock,
            self.distributor,
            self.debtors,
            self.balances,
            self.audit,
        )

    # Contracts
    def create_contract(
        self,
        customer_id: str,
        product_name: str,
        total_price: Decimal | int | str,
        initial_payment: Decimal | int | str,
        monthly_payment: Decimal | int | str,
        period: int,
        start_date: date,
        actor: Actor,
        initial_paid: bool = True,
    ) -> Contract:
        return self.contracts.create_contract(
            customer_id,
            product_name,
            total_price,
            initial_payment,
            monthly_payment,
            period,
            start_date,
            actor,
            initial_paid=initial_paid,
        )

    def approve_contract(self, contract_id: str, actor: Actor) -> Contract:
        return self.contracts.approve_contract(contract_id, actor)

    def delete_contract(self, contract_id: str, actor: Actor) -> Contract:
        return self.contracts.delete_contract(contract_id, actor)

    # Payments
    def receive_payment(
        self,
        contract_id: str,
        amount: Decimal | int | str,
        currency_breakdown: CurrencyBreakdown | None,
        actor: Actor,
    ) -> PaymentOutcome:
        return self.payments.receive_payment(contract_id, amount, currency_breakdown, actor)

    def pay_remaining(
        self,
        payment_id: str,
        amount: Decimal | int | str,
        currency_breakdown: CurrencyBreakdown | None,
        actor: Actor,
    ) -> PaymentOutcome:
        return self.payments.pay_remaining(payment_id, amount, currency_breakdown, actor)

    def pay_all_remaining_months(
        self,
        contract_id: str,
        amount: Decimal | int | str,
        currency_breakdown: CurrencyBreakdown | None,
        actor: Actor,
    ) -> list[PaymentOutcome]:
        return self.payments.pay_all_remaining_months(contract_id, amount, currency_breakdown, actor)

    def confirm_receipt(self, receipt_id: str, actor: Actor) -> list[PaymentOutcome]:
        return self.payments.confirm_receipt(receipt_id, actor)

    def reject_receipt(self, receipt_id: str, reason: str, actor: Actor) -> PaymentReceipt:
        return self.payments.reject_receipt(receipt_id, reason, actor)

    def check_expired_pending_payments(self) -> ExpiryResult:
        return self.payments.check_expired_pending_payments()

    def set_reminder(self, payment_id: str, reminder_date: date, actor: Actor) -> Payment:
        return self.payments.set_reminder(payment_id, reminder_date, actor)

    def clear_expired_reminders(self) -> int:
        return self.payments.clear_expired_reminders()

    # Amendments
    def preview_amendment(self, contract_id: str, new_start_date: date) -> AmendmentPreview:
        return self.amendments.preview(contract_id, new_start_date)

    def amend_start_date(self, contract_id: str, new_start_date: date, actor: Actor) -> AmendmentResult:
        return self.amendments.amend(contract_id, new_start_date, actor)

    # Debtors
    def declare_debtors(self, contract_ids: Iterable[str], actor: Actor) -> int:
        return self.debtors.declare(contract_ids, actor)

    def sweep_overdue_debtors(self) -> SweepResult:
        return self.debtors.sweep()

    def overdue_report(self, reference_date: date | None = None) -> list[DebtReportRow]:
        return self.debtors.overdue_report(reference_date)

    # Cash
    def withdraw(
        self,
        manager_id: str,
        dollar: Decimal | int | str,
        sum_amount: Decimal | int | str,
        notes: str,
        actor: Actor,
    ) -> Expense:
        return self.balances.withdraw(manager_id, dollar, sum_amount, notes, actor)

    def return_expense(self, expense_id: str, actor: Actor) -> Expense:
        return self.balances.return_expense(expense_id, actor)

    def build_scheduler(self, clock: Clock | None = None) -> Scheduler:
        """Register the periodic sweep, pending-expiry and reminder-cleanup tasks."""
        scheduler = Scheduler(clock or self.clock)
        scheduler.add_task(
            "sweep_overdue_debtors",
            timedelta(hours=self.config.sweep_interval_hours),
            self.sweep_overdue_debtors,
        )
        scheduler.add_task(
            "check_expired_pending_payments",
            timedelta(minutes=self.config.pending_check_interval_minutes),
            self.check_expired_pending_payments,
        )
        scheduler.add_task(
            "clear_expired_reminders",
            timedelta(hours=self.config.reminder_cleanup_interval_hours),
            self.clear_expired_reminders,
        )
        return scheduler
