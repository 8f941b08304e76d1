"""Debtor lifecycle: overdue materialization, declaration and reporting."""

import logging
from collections.abc import Iterable
from datetime import date

from installment_ledger.audit import AuditRecorder
from installment_ledger.clock import Clock
from installment_ledger.engine.roles import ADMIN_ROLES, SYSTEM_USER, require_role
from installment_ledger.engine.schedule import virtual_due_date
from installment_ledger.exceptions import ConflictError
from installment_ledger.models import (
    Actor,
    AuditAction,
    AuditChange,
    AuditEntity,
    Contract,
    ContractStatus,
    Debtor,
    DebtorDraft,
    DebtReportRow,
    Payment,
    PaymentType,
    SweepResult,
)
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def plan_debtors(payments: Iterable[Payment], today: date) -> list[DebtorDraft]:
    """Debtor rows owed for the given slots: one per unpaid slot due before ``today``.

    Slots sharing a due date collapse into one row.
    """
    drafts: dict[date, DebtorDraft] = {}
    for payment in payments:
        if payment.is_paid or payment.due_date >= today:
            continue
        existing = drafts.get(payment.due_date)
        if existing is not None:
            drafts[payment.due_date] = DebtorDraft(
                payment_id=existing.payment_id,
                due_date=existing.due_date,
                debt_amount=existing.debt_amount + payment.outstanding,
                overdue_days=existing.overdue_days,
            )
            continue
        drafts[payment.due_date] = DebtorDraft(
            payment_id=payment.payment_id,
            due_date=payment.due_date,
            debt_amount=payment.outstanding,
            overdue_days=(today - payment.due_date).days,
        )
    return sorted(drafts.values(), key=lambda d: d.due_date)


class DebtorManager:
    """Keeps the debtor table in step with unpaid, past-due slots."""

    def __init__(self, store: LedgerStore, clock: Clock, audit: AuditRecorder) -> None:
        self.store = store
        self.clock = clock
        self.audit = audit

    def rebuild_for_contract(
        self,
        contract: Contract,
        actor_id: str,
        drafts: list[DebtorDraft] | None = None,
    ) -> tuple[list[str], list[str]]:
        """Delete every debtor row of the contract and recreate them from its schedule.

        Caller must hold a unit of work.

        Returns
        -------
        tuple[list[str], list[str]]
            Removed and created debtor ids.
        """
        if drafts is None:
            drafts = plan_debtors(
                self.store.get_unpaid_payments(contract.contract_id), self.clock.today()
            )

        removed = self.store.delete_contract_debtors(contract.contract_id)
        created = [self._create(contract.contract_id, draft, actor_id).debtor_id for draft in drafts]
        logger.debug(
            "Rebuilt debtors for %s: removed=%d created=%d",
            contract.contract_id,
            len(removed),
            len(created),
        )
        return removed, created

    def reconcile_after_payment(self, contract: Contract, actor_id: str) -> None:
        """Bring a contract's debtor rows up to date after money was applied.

        Declared contracts keep their coarse row until nothing is overdue.
        """
        if contract.is_declare:
            overdue = plan_debtors(
                self.store.get_unpaid_payments(contract.contract_id), self.clock.today()
            )
            if not overdue:
                self.store.delete_contract_debtors(contract.contract_id)
            return
        self.rebuild_for_contract(contract, actor_id)

    def sweep(self) -> SweepResult:
        """Upsert one debtor per overdue unpaid monthly slot and prune stale rows.

        Idempotent: a second run with no intervening activity changes nothing.
        """
        today = self.clock.today()
        created = updated = removed = 0

        with self.store.unit_of_work():
            for contract_id in sorted(self.store.contracts):
                contract = self.store.contracts[contract_id]
                if not self._sweepable(contract):
                    continue

                overdue = [
                    p for p in self.store.get_unpaid_payments(contract_id) if p.due_date < today
                ]
                overdue_dates = {p.due_date for p in overdue}

                for payment in overdue:
                    if payment.payment_type != PaymentType.MONTHLY:
                        continue
                    overdue_days = (today - payment.due_date).days
                    debtor = self.store.find_debtor(contract_id, payment.due_date)
                    if debtor is None:
                        draft = DebtorDraft(
                            payment_id=payment.payment_id,
                            due_date=payment.due_date,
                            debt_amount=payment.outstanding,
                            overdue_days=overdue_days,
                        )
                        self._create(contract_id, draft, SYSTEM_USER)
                        created += 1
                    elif debtor.overdue_days != overdue_days:
                        debtor.overdue_days = overdue_days
                        updated += 1

                for debtor in self.store.get_contract_debtors(contract_id):
                    if debtor.due_date not in overdue_dates:
                        self.store.delete_debtor(debtor.debtor_id)
                        removed += 1

        result = SweepResult(created=created, updated=updated, removed=removed)
        logger.info(
            "Debtor sweep complete: created=%d, updated=%d, removed=%d",
            created,
            updated,
            removed,
        )
        if created or updated or removed:
            self.audit.record(
                AuditAction.SWEEP,
                AuditEntity.DEBTOR,
                "sweep",
                SYSTEM_USER,
                metadata={
                    "created": created,
                    "updated": updated,
                    "removed": removed,
                    "today": today.isoformat(),
                },
            )
        return result

    def declare(self, contract_ids: Iterable[str], actor: Actor) -> int:
        """Mark contracts' debt as formally announced.

        Seeds one coarse debtor row, keyed off ``next_payment_date``, for each
        contract that has none. Fails as a whole if any contract is unknown,
        deleted or already declared.
        """
        require_role(actor, ADMIN_ROLES, "declare debtors")
        today = self.clock.today()
        declared: list[tuple[str, str | None]] = []

        with self.store.unit_of_work():
            for contract_id in dict.fromkeys(contract_ids):
                contract = self.store.get_contract(contract_id)
                if contract.is_deleted:
                    raise ConflictError(f"Contract {contract_id} is deleted")
                if contract.is_declare:
                    raise ConflictError(f"Contract {contract_id} is already declared")

                contract.is_declare = True
                contract.updated_at = self.clock.now()
                seeded = None
                if not self.store.get_contract_debtors(contract_id):
                    draft = DebtorDraft(
                        payment_id="",
                        due_date=contract.next_payment_date,
                        debt_amount=contract.monthly_payment,
                        overdue_days=max(0, (today - contract.next_payment_date).days),
                    )
                    seeded = self._create(contract_id, draft, actor.user_id).debtor_id
                declared.append((contract_id, seeded))

        for contract_id, seeded in declared:
            self.audit.record(
                AuditAction.DECLARE,
                AuditEntity.CONTRACT,
                contract_id,
                actor.user_id,
                changes=[AuditChange(field="is_declare", old_value=False, new_value=True)],
                metadata={"seeded_debtor_id": seeded},
            )

        created = sum(1 for _, seeded in declared if seeded)
        logger.info("Declared %d contract(s), seeded %d debtor row(s)", len(declared), created)
        return created

    def overdue_report(self, reference_date: date | None = None) -> list[DebtReportRow]:
        """Contracts with an outstanding overdue obligation, most delayed first.

        Without ``reference_date`` the report is live: it ages each contract from
        its earliest overdue slot or cached ``next_payment_date``. With a
        reference date it reconstructs that month's due date from
        ``original_payment_day`` and skips contracts that already paid a slot
        falling in that month. Read-only.
        """
        as_of = reference_date or self.clock.today()
        rows: list[DebtReportRow] = []

        for contract in self.store.contracts.values():
            if not self._reportable(contract):
                continue
            payments = self.store.get_contract_payments(contract.contract_id)
            remaining = self.store.remaining_debt(contract.contract_id)
            if remaining <= 0:
                continue

            earliest_overdue = min(
                (p.due_date for p in payments if not p.is_paid and p.due_date < as_of),
                default=None,
            )
            fallback = earliest_overdue or contract.next_payment_date

            if reference_date is None:
                due = fallback
            else:
                if contract.start_date >= reference_date:
                    continue
                if self._paid_in_month(payments, reference_date):
                    continue
                virtual = virtual_due_date(reference_date, contract.original_payment_day)
                due = virtual if virtual < reference_date else fallback

            if due > as_of:
                continue

            customer = self.store.customers.get(contract.customer_id)
            rows.append(
                DebtReportRow(
                    contract_id=contract.contract_id,
                    customer_id=contract.customer_id,
                    customer_name=customer.full_name if customer else "",
                    product_name=contract.product_name,
                    total_price=contract.total_price,
                    total_paid=self.store.total_paid(contract.contract_id),
                    remaining_debt=remaining,
                    due_date=due,
                    delay_days=max(0, (as_of - due).days),
                    is_declare=contract.is_declare,
                )
            )

        rows.sort(key=lambda r: (-r.delay_days, r.contract_id))
        return rows

    def _create(self, contract_id: str, draft: DebtorDraft, actor_id: str) -> Debtor:
        debtor = Debtor(
            debtor_id=self.store.next_id("debtor"),
            contract_id=contract_id,
            debt_amount=draft.debt_amount,
            due_date=draft.due_date,
            overdue_days=draft.overdue_days,
            created_by=actor_id,
            created_at=self.clock.now(),
        )
        self.store.add_debtor(debtor)
        return debtor

    @staticmethod
    def _sweepable(contract: Contract) -> bool:
        return (
            contract.is_active
            and not contract.is_deleted
            and not contract.is_declare
            and contract.status == ContractStatus.ACTIVE
        )

    @staticmethod
    def _reportable(contract: Contract) -> bool:
        return (
            contract.is_active
            and not contract.is_deleted
            and contract.status == ContractStatus.ACTIVE
        )

    @staticmethod
    def _paid_in_month(payments: list[Payment], reference: date) -> bool:
        return any(
            p.is_paid
            and p.payment_type == PaymentType.MONTHLY
            and (p.due_date.year, p.due_date.month) == (reference.year, reference.month)
            for p in payments
        )
