"""Per-manager cash balances and expenses."""

import logging
from decimal import Decimal

from installment_ledger.audit import AuditRecorder
from installment_ledger.clock import Clock
from installment_ledger.engine.roles import CASH_DESK_ROLES, require_role
from installment_ledger.engine.status import to_money
from installment_ledger.exceptions import ConflictError, InsufficientFundsError, ValidationError
from installment_ledger.models import (
    ZERO,
    Actor,
    AuditAction,
    AuditChange,
    AuditEntity,
    Balance,
    CurrencyBreakdown,
    Expense,
)
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Running cash totals held by each manager.

    ``dollar`` is the whole holding expressed in dollars; ``sum`` tracks the
    part held in local currency for display.
    """

    def __init__(self, store: LedgerStore, clock: Clock, audit: AuditRecorder) -> None:
        self.store = store
        self.clock = clock
        self.audit = audit

    def credit(
        self,
        manager_id: str,
        amount: Decimal,
        breakdown: CurrencyBreakdown | None = None,
    ) -> Balance:
        """Add collected cash to a manager's balance, opening it on first use.

        Caller must hold a unit of work.
        """
        balance = self.store.get_or_create_balance(manager_id)
        balance.dollar += amount
        if breakdown is not None:
            balance.sum += breakdown.sum
        balance.updated_at = self.clock.now()
        logger.debug("Credited %s to balance of %s", amount, manager_id)
        return balance

    def withdraw(
        self,
        manager_id: str,
        dollar: Decimal | int | str,
        sum_amount: Decimal | int | str = ZERO,
        notes: str = "",
        actor: Actor | None = None,
    ) -> Expense:
        """Take cash out of a manager's balance as an expense.

        The local-currency part is converted at the latest exchange rate; the
        balance must cover the dollar equivalent or nothing changes.

        Raises
        ------
        EntityNotFoundError
            The manager has no balance.
        InsufficientFundsError
            The balance is smaller than the requested equivalent.
        """
        if actor is not None:
            require_role(actor, CASH_DESK_ROLES, "withdraw cash")
        dollar = to_money(dollar)
        sum_amount = to_money(sum_amount)
        if dollar < 0 or sum_amount < 0 or (dollar == 0 and sum_amount == 0):
            raise ValidationError("Withdrawal must be a positive amount")

        with self.store.unit_of_work():
            balance = self.store.get_balance(manager_id)
            rate = self.store.latest_exchange_rate()
            required = dollar + sum_amount / rate
            if balance.dollar < required:
                logger.warning(
                    "Withdrawal of %s from %s refused: balance is %s",
                    required,
                    manager_id,
                    balance.dollar,
                )
                raise InsufficientFundsError()

            before = balance.dollar
            balance.dollar -= required
            balance.sum -= sum_amount
            balance.updated_at = self.clock.now()
            expense = Expense(
                expense_id=self.store.next_id("expense"),
                manager_id=manager_id,
                dollar=dollar,
                sum=sum_amount,
                exchange_rate=rate,
                notes=notes,
                created_by=actor.user_id if actor else manager_id,
                created_at=self.clock.now(),
            )
            self.store.add_expense(expense)

        self.audit.record(
            AuditAction.WITHDRAW,
            AuditEntity.BALANCE,
            manager_id,
            expense.created_by,
            changes=[AuditChange(field="dollar", old_value=str(before), new_value=str(balance.dollar))],
            metadata={"expense_id": expense.expense_id, "exchange_rate": str(rate)},
        )
        logger.info("Manager %s withdrew %s (expense %s)", manager_id, required, expense.expense_id)
        return expense

    def return_expense(self, expense_id: str, actor: Actor | None = None) -> Expense:
        """Reverse an active expense back into the manager's balance, once."""
        if actor is not None:
            require_role(actor, CASH_DESK_ROLES, "return expenses")

        with self.store.unit_of_work():
            expense = self.store.get_expense(expense_id)
            if not expense.is_active:
                raise ConflictError(f"Expense {expense_id} was already returned")

            balance = self.store.get_balance(expense.manager_id)
            balance.dollar += expense.dollar + expense.sum / expense.exchange_rate
            balance.sum += expense.sum
            balance.updated_at = self.clock.now()
            expense.is_active = False
            expense.returned_at = self.clock.now()

        self.audit.record(
            AuditAction.RETURN,
            AuditEntity.EXPENSE,
            expense_id,
            actor.user_id if actor else expense.manager_id,
            changes=[AuditChange(field="is_active", old_value=True, new_value=False)],
            metadata={"manager_id": expense.manager_id},
        )
        logger.info("Expense %s returned to %s", expense_id, expense.manager_id)
        return expense
