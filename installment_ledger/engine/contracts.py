"""Contract creation, approval and soft deletion."""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterator

from installment_ledger.audit import AuditRecorder
from installment_ledger.clock import Clock
from installment_ledger.engine.debtors import DebtorManager
from installment_ledger.engine.distributor import ExcessDistributor
from installment_ledger.engine.roles import ADMIN_ROLES, CONTRACT_ROLES, require_role
from installment_ledger.engine.schedule import monthly_due_date
from installment_ledger.engine.status import to_money
from installment_ledger.exceptions import ConflictError, ValidationError
from installment_ledger.models import (
    ZERO,
    Actor,
    AuditAction,
    AuditChange,
    AuditEntity,
    Contract,
    Payment,
    PaymentStatus,
    PaymentType,
    Role,
)
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class ContractManager:
    """Creates contracts with their full schedule and retires them."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        distributor: ExcessDistributor,
        debtors: DebtorManager,
        audit: AuditRecorder,
    ) -> None:
        self.store = store
        self.clock = clock
        self.distributor = distributor
        self.debtors = debtors
        self.audit = audit

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
        """Create a contract and one unpaid slot per month of its term.

        Parameters
        ----------
        customer_id : str
            Buyer; must exist in the store.
        product_name : str
            What was sold.
        total_price, initial_payment, monthly_payment : Decimal
            Contract amounts.
        period : int
            Term in months.
        start_date : date
            Sale date; month ``n`` falls due ``n`` calendar months later.
        actor : Actor
            Creator. Contracts created by sellers wait for approval.
        initial_paid : bool
            Whether the initial payment was collected at signing.

        Returns
        -------
        Contract
            The stored contract.
        """
        require_role(actor, CONTRACT_ROLES, "create contracts")
        total_price = to_money(total_price)
        initial_payment = to_money(initial_payment)
        monthly_payment = to_money(monthly_payment)
        if period < 1:
            raise ValidationError("Contract period must be at least one month")
        if total_price <= 0 or monthly_payment <= 0:
            raise ValidationError("Contract amounts must be positive")
        if initial_payment < 0 or initial_payment > total_price:
            raise ValidationError("Initial payment must be between zero and the total price")

        now = self.clock.now()
        with self.store.unit_of_work():
            contract = Contract(
                contract_id=self.store.next_id("contract"),
                customer_id=customer_id,
                product_name=product_name,
                total_price=total_price,
                initial_payment=initial_payment,
                monthly_payment=monthly_payment,
                period=period,
                start_date=start_date,
                original_payment_day=start_date.day,
                next_payment_date=monthly_due_date(start_date, 1),
                is_active=actor.role != Role.SELLER,
                created_by=actor.user_id,
                created_at=now,
                updated_at=now,
            )
            self.store.add_contract(contract)
            for payment in self._schedule(contract, initial_paid, actor.user_id):
                self.store.add_payment(payment)

            self.distributor.refresh_contract(contract)
            self.debtors.rebuild_for_contract(contract, actor.user_id)

        self.audit.record(
            AuditAction.CREATE,
            AuditEntity.CONTRACT,
            contract.contract_id,
            actor.user_id,
            metadata={
                "customer_id": customer_id,
                "total_price": str(total_price),
                "period": period,
                "payment_ids": list(contract.payment_ids),
            },
        )
        logger.info(
            "Created contract %s for %s: %d months of %s",
            contract.contract_id,
            customer_id,
            period,
            monthly_payment,
        )
        return contract

    def approve_contract(self, contract_id: str, actor: Actor) -> Contract:
        """Activate a contract submitted by a seller."""
        require_role(actor, ADMIN_ROLES, "approve contracts")
        with self.store.unit_of_work():
            contract = self.store.get_contract(contract_id)
            if contract.is_deleted:
                raise ConflictError(f"Contract {contract_id} is deleted")
            if contract.is_active:
                raise ConflictError(f"Contract {contract_id} is already active")
            contract.is_active = True
            contract.updated_at = self.clock.now()

        self.audit.record(
            AuditAction.UPDATE,
            AuditEntity.CONTRACT,
            contract_id,
            actor.user_id,
            changes=[AuditChange(field="is_active", old_value=False, new_value=True)],
        )
        return contract

    def delete_contract(self, contract_id: str, actor: Actor) -> Contract:
        """Soft-delete a contract and drop it from collections."""
        require_role(actor, ADMIN_ROLES, "delete contracts")
        with self.store.unit_of_work():
            contract = self.store.get_contract(contract_id)
            if contract.is_deleted:
                raise ConflictError(f"Contract {contract_id} is already deleted")
            contract.is_deleted = True
            contract.deleted_at = self.clock.now()
            contract.updated_at = contract.deleted_at
            removed = self.store.delete_contract_debtors(contract_id)

        self.audit.record(
            AuditAction.DELETE,
            AuditEntity.CONTRACT,
            contract_id,
            actor.user_id,
            changes=[AuditChange(field="is_deleted", old_value=False, new_value=True)],
            metadata={"removed_debtor_ids": removed},
        )
        logger.info("Contract %s deleted by %s", contract_id, actor.user_id)
        return contract

    def _schedule(self, contract: Contract, initial_paid: bool, actor_id: str) -> Iterator[Payment]:
        """Generate the initial slot (if any) and every monthly slot."""
        now = self.clock.now()
        if contract.initial_payment > 0:
            initial = Payment(
                payment_id=self.store.next_id("payment"),
                contract_id=contract.contract_id,
                amount=contract.initial_payment,
                due_date=contract.start_date,
                payment_type=PaymentType.INITIAL,
                created_at=now,
            )
            if initial_paid:
                initial.actual_amount = contract.initial_payment
                initial.is_paid = True
                initial.status = PaymentStatus.PAID
                initial.confirmed_at = now
                initial.confirmed_by = actor_id
            yield initial

        for month in range(1, contract.period + 1):
            yield Payment(
                payment_id=self.store.next_id("payment"),
                contract_id=contract.contract_id,
                amount=contract.monthly_payment,
                due_date=monthly_due_date(contract.start_date, month),
                payment_type=PaymentType.MONTHLY,
                target_month=month,
                actual_amount=ZERO,
                created_at=now,
            )
