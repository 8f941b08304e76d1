"""Applying receipts to slots and carrying surplus forward."""

import logging
from decimal import Decimal

from installment_ledger.clock import Clock
from installment_ledger.config import EngineConfig
from installment_ledger.engine.schedule import schedule_end
from installment_ledger.engine.status import PaymentCalculation, calculate_payment_status
from installment_ledger.exceptions import ConflictError, ValidationError
from installment_ledger.models import (
    ZERO,
    Contract,
    ContractStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    SlotAllocation,
)
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class ExcessDistributor:
    """Mutates slots and the contract's prepaid balance for one receipt.

    All methods assume the caller holds a ``store.unit_of_work()``.
    """

    def __init__(self, store: LedgerStore, config: EngineConfig, clock: Clock) -> None:
        self.store = store
        self.config = config
        self.clock = clock

    @property
    def tolerance(self) -> Decimal:
        return self.config.tolerance

    def apply_to_slot(
        self,
        contract: Contract,
        payment: Payment,
        received: Decimal,
        actor_id: str,
        use_prepaid: bool = True,
    ) -> PaymentCalculation:
        """Classify ``received`` against what the slot still expects and record it.

        An UNDERPAID slot stays unpaid with its shortage in ``remaining_amount``;
        an OVERPAID slot is settled at its expected amount, keeps the OVERPAID
        status and reports the surplus for forward distribution.
        """
        if payment.is_paid:
            raise ConflictError(f"Payment {payment.payment_id} is already paid")

        expected = payment.outstanding
        calc = calculate_payment_status(
            received,
            expected,
            contract.prepaid_balance if use_prepaid else ZERO,
            self.tolerance,
        )
        if calc.prepaid_used > 0:
            contract.prepaid_balance -= calc.prepaid_used
            payment.prepaid_used += calc.prepaid_used
            logger.debug(
                "Drew %s from prepaid balance of %s for %s",
                calc.prepaid_used,
                contract.contract_id,
                payment.payment_id,
            )

        if calc.status == PaymentStatus.UNDERPAID:
            payment.actual_amount += calc.actual_amount
            payment.remaining_amount = calc.remaining_amount
            payment.status = PaymentStatus.UNDERPAID
        elif calc.status == PaymentStatus.PAID:
            payment.actual_amount += calc.actual_amount
            self._mark_paid(payment, actor_id)
        else:
            payment.actual_amount += expected
            payment.excess_amount = calc.excess_amount
            self._mark_paid(payment, actor_id)
            payment.status = PaymentStatus.OVERPAID

        payment.updated_at = self.clock.now()
        logger.debug(
            "Slot %s classified %s (actual=%s, expected=%s)",
            payment.payment_id,
            calc.status.value,
            calc.actual_amount,
            expected,
        )
        return calc

    def distribute_excess(
        self,
        contract: Contract,
        excess: Decimal,
        actor_id: str,
    ) -> tuple[list[SlotAllocation], Decimal]:
        """Walk unpaid monthly slots by target month, paying them from ``excess``.

        Returns
        -------
        tuple[list[SlotAllocation], Decimal]
            Per-slot allocations and the amount banked as prepaid balance.
        """
        allocations: list[SlotAllocation] = []
        for slot in self.unpaid_monthly_slots(contract.contract_id):
            if excess <= self.tolerance:
                break
            portion = min(excess, slot.outstanding)
            slot.actual_amount += portion
            excess -= portion
            if slot.outstanding <= self.tolerance:
                self._mark_paid(slot, actor_id)
            else:
                slot.status = PaymentStatus.UNDERPAID
                slot.remaining_amount = slot.outstanding
            slot.updated_at = self.clock.now()
            allocations.append(
                SlotAllocation(
                    payment_id=slot.payment_id,
                    target_month=slot.target_month or 0,
                    applied=portion,
                    status=slot.status,
                    remaining=slot.remaining_amount,
                )
            )

        banked = ZERO
        if excess > 0:
            self.bank(contract, excess)
            banked = excess

        logger.info(
            "Distributed surplus on %s across %d slot(s), banked %s",
            contract.contract_id,
            len(allocations),
            banked,
        )
        return allocations, banked

    def bank(self, contract: Contract, amount: Decimal) -> None:
        """Add ``amount`` to the prepaid balance, enforcing the configured cap."""
        new_balance = contract.prepaid_balance + amount
        if new_balance > self.config.max_prepaid_balance:
            raise ValidationError(
                f"Prepaid balance of {contract.contract_id} would reach {new_balance}, "
                f"above the maximum of {self.config.max_prepaid_balance}"
            )
        contract.prepaid_balance = new_balance

    def unpaid_monthly_slots(self, contract_id: str) -> list[Payment]:
        return [
            p
            for p in self.store.get_unpaid_payments(contract_id)
            if p.payment_type == PaymentType.MONTHLY
        ]

    def refresh_contract(self, contract: Contract) -> None:
        """Recompute ``next_payment_date`` and the completion status."""
        unpaid = self.unpaid_monthly_slots(contract.contract_id)
        if unpaid:
            contract.next_payment_date = min(p.due_date for p in unpaid)
        else:
            contract.next_payment_date = schedule_end(contract.start_date, contract.period)

        remaining = self.store.remaining_debt(contract.contract_id)
        previous = contract.status
        if remaining - contract.prepaid_balance <= self.tolerance:
            contract.status = ContractStatus.COMPLETED
        else:
            contract.status = ContractStatus.ACTIVE
        if contract.status != previous:
            logger.info("Contract %s is now %s", contract.contract_id, contract.status.value)
        contract.updated_at = self.clock.now()

    def _mark_paid(self, payment: Payment, actor_id: str) -> None:
        payment.is_paid = True
        payment.status = PaymentStatus.PAID
        payment.remaining_amount = ZERO
        payment.confirmed_at = self.clock.now()
        payment.confirmed_by = actor_id
        payment.reminder_date = None
