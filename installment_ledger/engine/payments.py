"""Payment receipt operations: direct cash-desk payments and field receipts."""

import logging
from datetime import date, timedelta
from decimal import Decimal

from installment_ledger.audit import AuditRecorder
from installment_ledger.clock import Clock
from installment_ledger.config import EngineConfig
from installment_ledger.engine.balance import BalanceLedger
from installment_ledger.engine.debtors import DebtorManager
from installment_ledger.engine.distributor import ExcessDistributor
from installment_ledger.engine.roles import (
    CASH_DESK_ROLES,
    FIELD_ROLES,
    REMINDER_ROLES,
    SYSTEM_USER,
    require_role,
)
from installment_ledger.engine.status import PaymentCalculation, to_money
from installment_ledger.exceptions import ConflictError, ValidationError
from installment_ledger.models import (
    Actor,
    AuditAction,
    AuditChange,
    AuditEntity,
    Contract,
    CurrencyBreakdown,
    ExpiryResult,
    Overpaid,
    Paid,
    Payment,
    PaymentOutcome,
    PaymentReceipt,
    PaymentStatus,
    Pending,
    ReceiptKind,
    ReceiptStatus,
    SlotAllocation,
    Underpaid,
)
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Not confirmed within {hours} hours"


class PaymentProcessor:
    """Receives money against contracts.

    Cash-desk roles (admin, moderator, cashier) apply payments immediately.
    Field roles (manager, seller) record a pending receipt that a cash-desk
    user later confirms or rejects.
    """

    def __init__(
        self,
        store: LedgerStore,
        config: EngineConfig,
        clock: Clock,
        distributor: ExcessDistributor,
        debtors: DebtorManager,
        balances: BalanceLedger,
        audit: AuditRecorder,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock
        self.distributor = distributor
        self.debtors = debtors
        self.balances = balances
        self.audit = audit

    # Inbound payments
    def receive_payment(
        self,
        contract_id: str,
        amount: Decimal | int | str,
        breakdown: CurrencyBreakdown | None,
        actor: Actor,
    ) -> PaymentOutcome:
        """Apply a payment to the contract's earliest unpaid slot.

        Surplus flows forward over later months and then into the prepaid
        balance; a shortfall stays on the slot that received it.
        """
        amount = self._validate_amount(amount)
        if actor.role in FIELD_ROLES:
            return self._submit_receipt(ReceiptKind.MONTHLY, contract_id, amount, breakdown, actor)
        require_role(actor, CASH_DESK_ROLES, "receive payments")

        with self.store.unit_of_work():
            contract = self._payable_contract(contract_id)
            outcome = self._apply_to_next_slot(contract, amount, actor.user_id)
            self.balances.credit(actor.user_id, amount, breakdown)
            self._after_payment(contract, actor.user_id)

        self._audit_outcomes([outcome], amount, actor.user_id)
        return outcome

    def pay_remaining(
        self,
        payment_id: str,
        amount: Decimal | int | str,
        breakdown: CurrencyBreakdown | None,
        actor: Actor,
    ) -> PaymentOutcome:
        """Top up an underpaid slot in place."""
        amount = self._validate_amount(amount)
        payment = self.store.get_payment(payment_id)
        self._check_has_remaining(payment)
        if actor.role in FIELD_ROLES:
            return self._submit_receipt(
                ReceiptKind.REMAINING,
                payment.contract_id,
                amount,
                breakdown,
                actor,
                payment_id=payment_id,
            )
        require_role(actor, CASH_DESK_ROLES, "receive payments")

        with self.store.unit_of_work():
            contract = self._payable_contract(payment.contract_id)
            outcome = self._apply_remaining(contract, payment_id, amount, actor.user_id)
            self.balances.credit(actor.user_id, amount, breakdown)
            self._after_payment(contract, actor.user_id)

        self._audit_outcomes([outcome], amount, actor.user_id)
        return outcome

    def pay_all_remaining_months(
        self,
        contract_id: str,
        amount: Decimal | int | str,
        breakdown: CurrencyBreakdown | None,
        actor: Actor,
    ) -> list[PaymentOutcome]:
        """Spread one payment over the unpaid slots in schedule order.

        Each slot takes what it still owes; the last one reached may end up
        underpaid, and anything left after every slot is banked as prepaid.
        """
        amount = self._validate_amount(amount)
        if actor.role in FIELD_ROLES:
            return [
                self._submit_receipt(ReceiptKind.ALL_MONTHS, contract_id, amount, breakdown, actor)
            ]
        require_role(actor, CASH_DESK_ROLES, "receive payments")

        with self.store.unit_of_work():
            contract = self._payable_contract(contract_id)
            outcomes = self._apply_across_slots(contract, amount, actor.user_id)
            self.balances.credit(actor.user_id, amount, breakdown)
            self._after_payment(contract, actor.user_id)

        self._audit_outcomes(outcomes, amount, actor.user_id)
        return outcomes

    # Field receipts
    def confirm_receipt(self, receipt_id: str, actor: Actor) -> list[PaymentOutcome]:
        """Apply a pending field receipt and credit the collector's balance."""
        require_role(actor, CASH_DESK_ROLES, "confirm receipts")

        with self.store.unit_of_work():
            receipt = self._pending_receipt(receipt_id)
            contract = self._payable_contract(receipt.contract_id)
            if receipt.kind == ReceiptKind.MONTHLY:
                outcomes = [self._apply_to_next_slot(contract, receipt.amount, actor.user_id)]
            elif receipt.kind == ReceiptKind.REMAINING:
                payment = self.store.get_payment(receipt.payment_id or "")
                self._check_has_remaining(payment)
                outcomes = [
                    self._apply_remaining(contract, payment.payment_id, receipt.amount, actor.user_id)
                ]
            else:
                outcomes = self._apply_across_slots(contract, receipt.amount, actor.user_id)

            receipt.status = ReceiptStatus(outcomes[-1].status.value)
            receipt.reviewed_by = actor.user_id
            receipt.reviewed_at = self.clock.now()
            self.balances.credit(receipt.submitted_by, receipt.amount, receipt.breakdown)
            self._after_payment(contract, actor.user_id)

        self.audit.record(
            AuditAction.CONFIRM,
            AuditEntity.RECEIPT,
            receipt_id,
            actor.user_id,
            changes=[
                AuditChange(
                    field="status",
                    old_value=ReceiptStatus.PENDING.value,
                    new_value=receipt.status.value,
                )
            ],
            metadata={"contract_id": receipt.contract_id, "submitted_by": receipt.submitted_by},
        )
        self._audit_outcomes(outcomes, receipt.amount, actor.user_id)
        logger.info("Receipt %s confirmed by %s", receipt_id, actor.user_id)
        return outcomes

    def reject_receipt(self, receipt_id: str, reason: str, actor: Actor) -> PaymentReceipt:
        """Reject a pending field receipt; no ledger state changes."""
        require_role(actor, CASH_DESK_ROLES, "reject receipts")
        with self.store.unit_of_work():
            receipt = self._pending_receipt(receipt_id)
            self._reject(receipt, reason, actor.user_id)

        self._audit_rejection(receipt, actor.user_id)
        logger.info("Receipt %s rejected by %s: %s", receipt_id, actor.user_id, reason)
        return receipt

    def check_expired_pending_payments(self) -> ExpiryResult:
        """Reject field receipts left pending longer than the configured timeout."""
        hours = self.config.pending_timeout_hours
        cutoff = self.clock.now() - timedelta(hours=hours)
        reason = EXPIRED_REASON.format(hours=hours)

        with self.store.unit_of_work():
            expired = [r for r in self.store.get_pending_receipts() if r.submitted_at < cutoff]
            for receipt in expired:
                self._reject(receipt, reason, SYSTEM_USER)

        for receipt in expired:
            self._audit_rejection(receipt, SYSTEM_USER)
        if expired:
            logger.info("Auto-rejected %d expired receipt(s)", len(expired))
        return ExpiryResult(
            rejected_count=len(expired),
            rejected_receipt_ids=tuple(r.receipt_id for r in expired),
        )

    # Reminders
    def set_reminder(self, payment_id: str, reminder_date: date, actor: Actor) -> Payment:
        """Attach a follow-up date to an unpaid slot."""
        require_role(actor, REMINDER_ROLES, "set reminders")
        if reminder_date < self.clock.today():
            raise ValidationError("Reminder date must not be in the past")

        with self.store.unit_of_work():
            payment = self.store.get_payment(payment_id)
            if payment.is_paid:
                raise ConflictError(f"Payment {payment_id} is already paid")
            old = payment.reminder_date
            payment.reminder_date = reminder_date
            payment.updated_at = self.clock.now()

        self.audit.record(
            AuditAction.UPDATE,
            AuditEntity.PAYMENT,
            payment_id,
            actor.user_id,
            changes=[
                AuditChange(
                    field="reminder_date",
                    old_value=old.isoformat() if old else None,
                    new_value=reminder_date.isoformat(),
                )
            ],
        )
        return payment

    def clear_expired_reminders(self) -> int:
        """Drop reminder dates that have passed."""
        today = self.clock.today()
        with self.store.unit_of_work():
            stale = [
                p
                for p in self.store.payments.values()
                if p.reminder_date is not None and p.reminder_date < today
            ]
            for payment in stale:
                payment.reminder_date = None
        if stale:
            logger.info("Cleared %d expired reminder(s)", len(stale))
        return len(stale)

    # Internals; callers hold a unit of work
    def _apply_to_next_slot(self, contract: Contract, amount: Decimal, actor_id: str) -> PaymentOutcome:
        unpaid = self.store.get_unpaid_payments(contract.contract_id)
        if not unpaid:
            raise ConflictError(f"Contract {contract.contract_id} has no unpaid slots")
        slot = unpaid[0]
        calc = self.distributor.apply_to_slot(contract, slot, amount, actor_id)
        return self._settle(contract, slot, calc, actor_id)

    def _apply_remaining(
        self, contract: Contract, payment_id: str, amount: Decimal, actor_id: str
    ) -> PaymentOutcome:
        slot = self.store.get_payment(payment_id)
        calc = self.distributor.apply_to_slot(contract, slot, amount, actor_id, use_prepaid=False)
        return self._settle(contract, slot, calc, actor_id)

    def _apply_across_slots(
        self, contract: Contract, amount: Decimal, actor_id: str
    ) -> list[PaymentOutcome]:
        unpaid = self.store.get_unpaid_payments(contract.contract_id)
        if not unpaid:
            raise ConflictError(f"Contract {contract.contract_id} has no unpaid slots")

        outcomes: list[PaymentOutcome] = []
        remaining = amount
        for slot in unpaid:
            # the first slot always takes the payment, however small
            if outcomes and remaining <= self.config.tolerance:
                break
            portion = min(remaining, slot.outstanding)
            calc = self.distributor.apply_to_slot(contract, slot, portion, actor_id, use_prepaid=False)
            remaining -= portion
            outcomes.append(self._settle(contract, slot, calc, actor_id))

        if remaining > 0:
            self.distributor.bank(contract, remaining)
            last = outcomes[-1]
            if remaining > self.config.tolerance and isinstance(last, Paid):
                slot = self.store.get_payment(last.payment_id or "")
                slot.status = PaymentStatus.OVERPAID
                slot.excess_amount = remaining
                outcomes[-1] = Overpaid(
                    contract_id=last.contract_id,
                    payment_id=last.payment_id,
                    applied=last.applied,
                    excess=remaining,
                    banked=remaining,
                )
        return outcomes

    def _settle(
        self,
        contract: Contract,
        slot: Payment,
        calc: PaymentCalculation,
        actor_id: str,
    ) -> PaymentOutcome:
        """Turn a slot classification into an outcome, distributing any surplus."""
        if calc.status == PaymentStatus.UNDERPAID:
            return Underpaid(
                contract_id=contract.contract_id,
                payment_id=slot.payment_id,
                applied=calc.actual_amount,
                prepaid_used=calc.prepaid_used,
                remaining=calc.remaining_amount,
            )
        if calc.status == PaymentStatus.PAID:
            return Paid(
                contract_id=contract.contract_id,
                payment_id=slot.payment_id,
                applied=calc.actual_amount,
                prepaid_used=calc.prepaid_used,
            )

        allocations, banked = self.distributor.distribute_excess(
            contract, calc.excess_amount, actor_id
        )
        return Overpaid(
            contract_id=contract.contract_id,
            payment_id=slot.payment_id,
            applied=calc.actual_amount - calc.excess_amount,
            prepaid_used=calc.prepaid_used,
            excess=calc.excess_amount,
            allocations=tuple(allocations),
            banked=banked,
        )

    def _after_payment(self, contract: Contract, actor_id: str) -> None:
        self.distributor.refresh_contract(contract)
        self.debtors.reconcile_after_payment(contract, actor_id)

    def _submit_receipt(
        self,
        kind: ReceiptKind,
        contract_id: str,
        amount: Decimal,
        breakdown: CurrencyBreakdown | None,
        actor: Actor,
        payment_id: str | None = None,
    ) -> Pending:
        with self.store.unit_of_work():
            contract = self._payable_contract(contract_id)
            if not self.store.get_unpaid_payments(contract.contract_id):
                raise ConflictError(f"Contract {contract_id} has no unpaid slots")
            receipt = PaymentReceipt(
                receipt_id=self.store.next_id("receipt"),
                contract_id=contract_id,
                kind=kind,
                amount=amount,
                breakdown=breakdown or CurrencyBreakdown(dollar=amount),
                submitted_by=actor.user_id,
                submitted_at=self.clock.now(),
                payment_id=payment_id,
            )
            self.store.add_receipt(receipt)

        self.audit.record(
            AuditAction.CREATE,
            AuditEntity.RECEIPT,
            receipt.receipt_id,
            actor.user_id,
            metadata={
                "contract_id": contract_id,
                "kind": kind.value,
                "amount": str(amount),
                "payment_id": payment_id,
            },
        )
        logger.info(
            "Receipt %s of %s on %s awaiting confirmation",
            receipt.receipt_id,
            amount,
            contract_id,
        )
        return Pending(contract_id=contract_id, payment_id=payment_id, receipt_id=receipt.receipt_id)

    def _pending_receipt(self, receipt_id: str) -> PaymentReceipt:
        receipt = self.store.get_receipt(receipt_id)
        if receipt.status != ReceiptStatus.PENDING:
            raise ConflictError(f"Receipt {receipt_id} is already {receipt.status.value}")
        return receipt

    def _reject(self, receipt: PaymentReceipt, reason: str, actor_id: str) -> None:
        receipt.status = ReceiptStatus.REJECTED
        receipt.reject_reason = reason
        receipt.reviewed_by = actor_id
        receipt.reviewed_at = self.clock.now()

    def _payable_contract(self, contract_id: str) -> Contract:
        contract = self.store.get_contract(contract_id)
        if contract.is_deleted:
            raise ConflictError(f"Contract {contract_id} is deleted")
        if not contract.is_active:
            raise ConflictError(f"Contract {contract_id} is awaiting approval")
        return contract

    def _check_has_remaining(self, payment: Payment) -> None:
        if payment.is_paid or payment.outstanding <= self.config.tolerance:
            raise ValidationError(f"Payment {payment.payment_id} has no remaining debt")
        if payment.status != PaymentStatus.UNDERPAID:
            raise ValidationError(
                f"Payment {payment.payment_id} is not underpaid; use receive_payment"
            )

    def _validate_amount(self, amount: Decimal | int | str) -> Decimal:
        amount = to_money(amount)
        if amount < self.config.min_payment_amount:
            raise ValidationError("Payment amount must be positive")
        if amount > self.config.max_single_payment:
            raise ValidationError(
                f"Payment amount {amount} exceeds the maximum of {self.config.max_single_payment}"
            )
        return amount

    def _audit_outcomes(self, outcomes: list[PaymentOutcome], amount: Decimal, user_id: str) -> None:
        for outcome in outcomes:
            metadata: dict = {
                "contract_id": outcome.contract_id,
                "amount": str(amount),
                "applied": str(outcome.applied),
                "payment_status": outcome.status.value,
            }
            if outcome.prepaid_used > 0:
                metadata["prepaid_used"] = str(outcome.prepaid_used)
            if isinstance(outcome, Underpaid):
                metadata["remaining_amount"] = str(outcome.remaining)
            elif isinstance(outcome, Overpaid):
                metadata["excess_amount"] = str(outcome.excess)
                metadata["banked"] = str(outcome.banked)
                metadata["allocations"] = [_allocation_dict(a) for a in outcome.allocations]
            self.audit.record(
                AuditAction.PAYMENT,
                AuditEntity.PAYMENT,
                outcome.payment_id or outcome.contract_id,
                user_id,
                metadata=metadata,
            )

    def _audit_rejection(self, receipt: PaymentReceipt, user_id: str) -> None:
        self.audit.record(
            AuditAction.REJECT,
            AuditEntity.RECEIPT,
            receipt.receipt_id,
            user_id,
            changes=[
                AuditChange(
                    field="status",
                    old_value=ReceiptStatus.PENDING.value,
                    new_value=ReceiptStatus.REJECTED.value,
                )
            ],
            metadata={"contract_id": receipt.contract_id, "reason": receipt.reject_reason},
        )


def _allocation_dict(allocation: SlotAllocation) -> dict:
    return {
        "payment_id": allocation.payment_id,
        "target_month": allocation.target_month,
        "applied": str(allocation.applied),
        "status": allocation.status.value,
    }
