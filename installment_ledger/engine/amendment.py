"""Start-date amendments: schedule recomputation, debtor rebuild and edit history."""

import logging
from dataclasses import replace
from datetime import date, datetime, time

from installment_ledger.audit import AuditRecorder, diff_changes
from installment_ledger.clock import Clock
from installment_ledger.engine.debtors import DebtorManager, plan_debtors
from installment_ledger.engine.roles import ADMIN_ROLES, require_role
from installment_ledger.engine.schedule import monthly_due_date, months_between, schedule_end
from installment_ledger.exceptions import ConflictError, ValidationError
from installment_ledger.models import (
    Actor,
    AmendmentPreview,
    AmendmentResult,
    AuditAction,
    AuditEntity,
    Contract,
    ContractEdit,
    FieldChange,
    ImpactSummary,
    Payment,
    PaymentDateChange,
    PaymentType,
)
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def plan_amendment(
    contract: Contract,
    payments: list[Payment],
    new_start_date: date,
    today: date,
) -> AmendmentPreview:
    """Compute the schedule and debtor set a new start date would produce.

    Pure: neither ``contract`` nor ``payments`` is modified. Paid slots keep
    their dates; unpaid INITIAL slots move to the new start, unpaid MONTHLY
    slots to ``new_start_date + target_month`` months (day clamped to month end).
    """
    changes: list[PaymentDateChange] = []
    new_dates: dict[str, date] = {}

    for payment in payments:
        if payment.is_paid:
            continue
        if payment.payment_type == PaymentType.INITIAL:
            new_due = new_start_date
        else:
            new_due = monthly_due_date(new_start_date, payment.target_month or 0)
        new_dates[payment.payment_id] = new_due
        if new_due != payment.due_date:
            changes.append(
                PaymentDateChange(
                    payment_id=payment.payment_id,
                    payment_type=payment.payment_type,
                    target_month=payment.target_month,
                    old_due_date=payment.due_date,
                    new_due_date=new_due,
                )
            )

    unpaid_monthly = [
        new_dates[p.payment_id]
        for p in payments
        if not p.is_paid and p.payment_type == PaymentType.MONTHLY
    ]
    new_next = min(unpaid_monthly) if unpaid_monthly else schedule_end(new_start_date, contract.period)

    rescheduled = [
        _with_due_date(p, new_dates[p.payment_id]) for p in payments if not p.is_paid
    ]

    return AmendmentPreview(
        contract_id=contract.contract_id,
        old_start_date=contract.start_date,
        new_start_date=new_start_date,
        day_delta=(new_start_date - contract.start_date).days,
        month_delta=months_between(contract.start_date, new_start_date),
        old_next_payment_date=contract.next_payment_date,
        new_next_payment_date=new_next,
        changes=changes,
        debtors=plan_debtors(rescheduled, today),
    )


def _with_due_date(payment: Payment, due_date: date) -> Payment:
    return replace(payment, due_date=due_date)


class ContractAmendmentHandler:
    """Moves a contract's start date and everything that hangs off it."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        debtors: DebtorManager,
        audit: AuditRecorder,
    ) -> None:
        self.store = store
        self.clock = clock
        self.debtors = debtors
        self.audit = audit

    def preview(self, contract_id: str, new_start_date: date) -> AmendmentPreview:
        """Report what ``amend`` would change, without changing anything."""
        contract = self._amendable_contract(contract_id, new_start_date)
        return plan_amendment(
            contract,
            self.store.get_contract_payments(contract_id),
            new_start_date,
            self.clock.today(),
        )

    def amend(self, contract_id: str, new_start_date: date, actor: Actor) -> AmendmentResult:
        """Move the start date, reschedule unpaid slots and rebuild debtors.

        Raises
        ------
        ForbiddenError
            Actor is not an admin or moderator.
        EntityNotFoundError
            Unknown contract.
        ConflictError
            Contract is soft-deleted.
        ValidationError
            ``new_start_date`` is not strictly before now.
        """
        require_role(actor, ADMIN_ROLES, "amend contracts")

        with self.store.unit_of_work():
            contract = self._amendable_contract(contract_id, new_start_date)
            payments = self.store.get_contract_payments(contract_id)
            plan = plan_amendment(contract, payments, new_start_date, self.clock.today())

            for change in plan.changes:
                payment = self.store.get_payment(change.payment_id)
                payment.due_date = change.new_due_date
                payment.updated_at = self.clock.now()

            contract.start_date = new_start_date
            contract.original_payment_day = new_start_date.day
            contract.next_payment_date = plan.new_next_payment_date

            removed, created = self.debtors.rebuild_for_contract(
                contract, actor.user_id, drafts=plan.debtors
            )

            edit = ContractEdit(
                date=self.clock.now(),
                edited_by=actor.user_id,
                changes=[
                    FieldChange(
                        field="start_date",
                        old_value=plan.old_start_date.isoformat(),
                        new_value=new_start_date.isoformat(),
                        difference=plan.day_delta,
                    ),
                    FieldChange(
                        field="next_payment_date",
                        old_value=plan.old_next_payment_date.isoformat(),
                        new_value=plan.new_next_payment_date.isoformat(),
                        difference=0,
                    ),
                ],
                affected_payments=plan.affected_payment_ids,
                impact_summary=ImpactSummary(),
            )
            contract.edit_history.append(edit)

            declare_cleared = bool(created) and contract.is_declare
            if created:
                contract.is_declare = False
            contract.updated_at = self.clock.now()

        self.audit.record(
            AuditAction.UPDATE,
            AuditEntity.CONTRACT,
            contract_id,
            actor.user_id,
            changes=diff_changes(
                {
                    "start_date": plan.old_start_date.isoformat(),
                    "next_payment_date": plan.old_next_payment_date.isoformat(),
                },
                {
                    "start_date": new_start_date.isoformat(),
                    "next_payment_date": plan.new_next_payment_date.isoformat(),
                },
            ),
            metadata={
                "day_delta": plan.day_delta,
                "month_delta": plan.month_delta,
                "affected_entities": {
                    "contract": contract_id,
                    "payments": plan.affected_payment_ids,
                    "removed_debtors": removed,
                    "created_debtors": created,
                },
            },
        )
        logger.info(
            "Contract %s start moved %s -> %s: %d slot(s) rescheduled, %d debtor(s) created",
            contract_id,
            plan.old_start_date,
            new_start_date,
            len(plan.changes),
            len(created),
        )
        return AmendmentResult(
            preview=plan,
            edit=edit,
            removed_debtor_ids=removed,
            created_debtor_ids=created,
            declare_cleared=declare_cleared,
        )

    def _amendable_contract(self, contract_id: str, new_start_date: date) -> Contract:
        contract = self.store.get_contract(contract_id)
        if contract.is_deleted:
            raise ConflictError(f"Contract {contract_id} is deleted")
        # TODO: confirm with product whether forward-dated corrections should be allowed
        if datetime.combine(new_start_date, time.min) >= self.clock.now():
            raise ValidationError("New start date must be in the past")
        return contract
