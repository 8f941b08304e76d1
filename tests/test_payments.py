"""Tests for receiving payments, field receipts and reminders."""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal

import pytest

from installment_ledger.clock import FixedClock
from installment_ledger.config import EngineConfig
from installment_ledger.engine import LedgerService
from installment_ledger.exceptions import (
    ConflictError,
    EntityNotFoundError,
    ForbiddenError,
    ValidationError,
)
from installment_ledger.models import (
    Actor,
    AuditAction,
    Contract,
    ContractStatus,
    CurrencyBreakdown,
    Overpaid,
    Paid,
    Payment,
    PaymentStatus,
    Pending,
    ReceiptStatus,
    Underpaid,
)
from installment_ledger.store import LedgerStore


def _slots(store: LedgerStore, contract: Contract) -> list[Payment]:
    return store.get_contract_payments(contract.contract_id)


def _assert_consistent(store: LedgerStore, contract_id: str) -> None:
    """total_paid matches the paid slots and never exceeds the price."""
    contract = store.get_contract(contract_id)
    paid = [p for p in store.get_contract_payments(contract_id) if p.is_paid]
    assert store.total_paid(contract_id) == sum((p.actual_amount for p in paid), Decimal("0"))
    assert contract.total_price - store.total_paid(contract_id) >= 0


class TestReceivePayment:
    """Tests for cash-desk payments."""

    def test_surplus_flows_forward(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        """250 over a 3 x 100 schedule pays two months and leaves 50 owed on the third."""
        contract = make_contract()

        outcome = service.receive_payment(contract.contract_id, "250", None, cashier)

        m1, m2, m3 = _slots(store, contract)
        assert isinstance(outcome, Overpaid)
        assert outcome.payment_id == m1.payment_id
        assert outcome.excess == Decimal("150")
        assert outcome.banked == 0
        assert [a.payment_id for a in outcome.allocations] == [m2.payment_id, m3.payment_id]

        assert m1.is_paid and m1.status == PaymentStatus.OVERPAID
        assert m1.actual_amount == Decimal("100")
        assert m1.excess_amount == Decimal("150")
        assert m2.is_paid and m2.actual_amount == Decimal("100")
        assert not m3.is_paid
        assert m3.status == PaymentStatus.UNDERPAID
        assert m3.remaining_amount == Decimal("50")

        assert store.debtors == {}
        assert store.get_contract(contract.contract_id).next_payment_date == m3.due_date
        assert store.get_contract(contract.contract_id).status == ContractStatus.ACTIVE

    def test_small_surplus_marks_receiving_slot_overpaid(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcome = service.receive_payment(contract.contract_id, "105", None, cashier)

        m1, m2, _ = _slots(store, contract)
        assert isinstance(outcome, Overpaid)
        assert outcome.banked == 0
        assert m1.status == PaymentStatus.OVERPAID
        assert m1.excess_amount == Decimal("5")
        assert m1.actual_amount == Decimal("100")
        assert m2.status == PaymentStatus.UNDERPAID
        assert m2.remaining_amount == Decimal("95")

    def test_exact_payment(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcome = service.receive_payment(
            contract.contract_id,
            Decimal("100"),
            CurrencyBreakdown(dollar=Decimal("60"), sum=Decimal("506000")),
            cashier,
        )

        assert isinstance(outcome, Paid)
        assert outcome.status == PaymentStatus.PAID
        m1 = _slots(store, contract)[0]
        assert m1.confirmed_by == "cashier-1"
        assert m1.confirmed_at is not None

        balance = store.get_balance("cashier-1")
        assert balance.dollar == Decimal("100")
        assert balance.sum == Decimal("506000")

    def test_underpayment_stays_on_slot(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        first = service.receive_payment(contract.contract_id, "60", None, cashier)
        second = service.receive_payment(contract.contract_id, "40", None, cashier)

        m1 = _slots(store, contract)[0]
        assert isinstance(first, Underpaid)
        assert first.remaining == Decimal("40")
        assert isinstance(second, Paid)
        assert second.payment_id == m1.payment_id
        assert m1.is_paid
        assert m1.actual_amount == Decimal("100")
        assert store.total_paid(contract.contract_id) == Decimal("100")

    def test_surplus_beyond_schedule_is_banked(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcome = service.receive_payment(contract.contract_id, "350", None, cashier)

        stored = store.get_contract(contract.contract_id)
        m1 = _slots(store, contract)[0]
        assert isinstance(outcome, Overpaid)
        assert outcome.banked == Decimal("50")
        assert m1.status == PaymentStatus.OVERPAID
        assert stored.prepaid_balance == Decimal("50")
        assert stored.status == ContractStatus.COMPLETED

    def test_prepaid_balance_covers_shortage(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        store.get_contract(contract.contract_id).prepaid_balance = Decimal("30")

        outcome = service.receive_payment(contract.contract_id, "70", None, cashier)

        m1 = _slots(store, contract)[0]
        assert isinstance(outcome, Paid)
        assert outcome.prepaid_used == Decimal("30")
        assert m1.prepaid_used == Decimal("30")
        assert m1.actual_amount == Decimal("100")
        assert store.get_contract(contract.contract_id).prepaid_balance == 0

    def test_prepaid_cap_rolls_back_everything(
        self,
        store: LedgerStore,
        clock: FixedClock,
        customer: object,
        admin: Actor,
        cashier: Actor,
    ) -> None:
        service = LedgerService(
            store=store, config=EngineConfig(max_prepaid_balance=Decimal("10")), clock=clock
        )
        contract = service.create_contract(
            "M0001", "Artel Refrigerator", "300", "0", "100", 3, clock.today(), admin
        )

        with pytest.raises(ValidationError, match="Prepaid balance"):
            service.receive_payment(contract.contract_id, "350", None, cashier)

        assert all(not p.is_paid for p in store.get_contract_payments(contract.contract_id))
        assert store.get_contract(contract.contract_id).prepaid_balance == 0
        assert "cashier-1" not in store.balances

    @pytest.mark.parametrize("amount", ["0", "-5", "100000.01"])
    def test_amount_out_of_range(
        self,
        service: LedgerService,
        cashier: Actor,
        make_contract: Callable[..., Contract],
        amount: str,
    ) -> None:
        contract = make_contract()
        with pytest.raises(ValidationError):
            service.receive_payment(contract.contract_id, amount, None, cashier)

    def test_unknown_contract(self, service: LedgerService, cashier: Actor) -> None:
        with pytest.raises(EntityNotFoundError):
            service.receive_payment("S9999", "100", None, cashier)

    def test_deleted_contract(
        self,
        service: LedgerService,
        admin: Actor,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        service.delete_contract(contract.contract_id, admin)

        with pytest.raises(ConflictError, match="deleted"):
            service.receive_payment(contract.contract_id, "100", None, cashier)

    def test_unapproved_contract(
        self,
        service: LedgerService,
        store: LedgerStore,
        customer: object,
        seller: Actor,
        admin: Actor,
        cashier: Actor,
    ) -> None:
        contract = service.create_contract(
            "M0001", "Xiaomi Laptop", "300", "0", "100", 3, date(2024, 6, 15), seller
        )
        assert contract.is_active is False

        with pytest.raises(ConflictError, match="awaiting approval"):
            service.receive_payment(contract.contract_id, "100", None, cashier)

        service.approve_contract(contract.contract_id, admin)
        assert isinstance(service.receive_payment(contract.contract_id, "100", None, cashier), Paid)

    def test_fully_paid_contract(
        self,
        service: LedgerService,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        service.receive_payment(contract.contract_id, "300", None, cashier)

        with pytest.raises(ConflictError, match="no unpaid slots"):
            service.receive_payment(contract.contract_id, "100", None, cashier)

    def test_payment_clears_overdue_debtor(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract(start_date=date(2024, 3, 1))
        assert len(store.get_contract_debtors(contract.contract_id)) == 3

        service.receive_payment(contract.contract_id, "100", None, cashier)

        debtors = store.get_contract_debtors(contract.contract_id)
        assert [d.due_date for d in debtors] == [date(2024, 5, 1), date(2024, 6, 1)]

    def test_payment_is_audited(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        service.receive_payment(contract.contract_id, "60", None, cashier)

        entry = store.audit_log[-1]
        assert entry.action == AuditAction.PAYMENT
        assert entry.user_id == "cashier-1"
        assert entry.metadata["payment_status"] == "UNDERPAID"
        assert entry.metadata["remaining_amount"] == "40"


class TestPayRemaining:
    """Tests for topping up an underpaid slot."""

    def test_tops_up_slot(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        underpaid = service.receive_payment(contract.contract_id, "60", None, cashier)

        outcome = service.pay_remaining(underpaid.payment_id, "40", None, cashier)

        assert isinstance(outcome, Paid)
        assert store.get_payment(underpaid.payment_id).is_paid

    def test_surplus_moves_to_next_month(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        underpaid = service.receive_payment(contract.contract_id, "60", None, cashier)

        outcome = service.pay_remaining(underpaid.payment_id, "100", None, cashier)

        m2 = _slots(store, contract)[1]
        assert isinstance(outcome, Overpaid)
        assert outcome.excess == Decimal("60")
        assert m2.actual_amount == Decimal("60")
        assert m2.status == PaymentStatus.UNDERPAID

    def test_nothing_remaining(
        self,
        service: LedgerService,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        paid = service.receive_payment(contract.contract_id, "100", None, cashier)

        with pytest.raises(ValidationError, match="no remaining debt"):
            service.pay_remaining(paid.payment_id, "10", None, cashier)

    @pytest.mark.parametrize("role_fixture", ["cashier", "seller"])
    def test_untouched_slot_rejected(
        self,
        request: pytest.FixtureRequest,
        service: LedgerService,
        store: LedgerStore,
        make_contract: Callable[..., Contract],
        role_fixture: str,
    ) -> None:
        actor = request.getfixturevalue(role_fixture)
        contract = make_contract()
        slot = _slots(store, contract)[0]
        assert slot.status == PaymentStatus.PENDING

        with pytest.raises(ValidationError, match="not underpaid"):
            service.pay_remaining(slot.payment_id, "100", None, actor)

        assert store.get_pending_receipts() == []
        assert not store.get_payment(slot.payment_id).is_paid


class TestPayAllRemainingMonths:
    """Tests for spreading one payment over every unpaid slot."""

    def test_spreads_in_schedule_order(
        self,
        service: LedgerService,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcomes = service.pay_all_remaining_months(contract.contract_id, "250", None, cashier)

        assert [o.status for o in outcomes] == [
            PaymentStatus.PAID,
            PaymentStatus.PAID,
            PaymentStatus.UNDERPAID,
        ]
        assert outcomes[-1].remaining == Decimal("50")

    def test_leftover_is_banked(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcomes = service.pay_all_remaining_months(contract.contract_id, "350", None, cashier)

        m3 = _slots(store, contract)[2]
        assert isinstance(outcomes[-1], Overpaid)
        assert outcomes[-1].banked == Decimal("50")
        assert m3.status == PaymentStatus.OVERPAID
        assert store.get_contract(contract.contract_id).prepaid_balance == Decimal("50")
        assert store.get_contract(contract.contract_id).status == ContractStatus.COMPLETED

    def test_minimum_amount_underpays_first_slot(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcomes = service.pay_all_remaining_months(contract.contract_id, "0.01", None, cashier)

        m1 = _slots(store, contract)[0]
        assert len(outcomes) == 1
        assert isinstance(outcomes[0], Underpaid)
        assert outcomes[0].remaining == Decimal("99.99")
        assert m1.actual_amount == Decimal("0.01")
        assert m1.status == PaymentStatus.UNDERPAID
        assert store.get_contract(contract.contract_id).prepaid_balance == 0
        assert store.get_balance("cashier-1").dollar == Decimal("0.01")


class TestFieldReceipts:
    """Tests for pending receipts collected by field roles."""

    def test_manager_payment_is_pending(
        self,
        service: LedgerService,
        store: LedgerStore,
        manager: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        outcome = service.receive_payment(contract.contract_id, "100", None, manager)

        assert isinstance(outcome, Pending)
        assert outcome.status == PaymentStatus.PENDING
        receipt = store.get_receipt(outcome.receipt_id)
        assert receipt.status == ReceiptStatus.PENDING
        assert receipt.submitted_by == "manager-1"
        assert all(not p.is_paid for p in _slots(store, contract))
        assert "manager-1" not in store.balances

    def test_confirm_applies_and_credits_collector(
        self,
        service: LedgerService,
        store: LedgerStore,
        manager: Actor,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        pending = service.receive_payment(contract.contract_id, "100", None, manager)

        outcomes = service.confirm_receipt(pending.receipt_id, cashier)

        receipt = store.get_receipt(pending.receipt_id)
        assert [o.status for o in outcomes] == [PaymentStatus.PAID]
        assert receipt.status == ReceiptStatus.PAID
        assert receipt.reviewed_by == "cashier-1"
        assert store.get_balance("manager-1").dollar == Decimal("100")
        assert "cashier-1" not in store.balances
        assert _slots(store, contract)[0].confirmed_by == "cashier-1"

    def test_confirm_twice_conflicts(
        self,
        service: LedgerService,
        manager: Actor,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        pending = service.receive_payment(contract.contract_id, "100", None, manager)
        service.confirm_receipt(pending.receipt_id, cashier)

        with pytest.raises(ConflictError, match="already PAID"):
            service.confirm_receipt(pending.receipt_id, cashier)

    def test_field_role_cannot_confirm(
        self,
        service: LedgerService,
        manager: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        pending = service.receive_payment(contract.contract_id, "100", None, manager)

        with pytest.raises(ForbiddenError):
            service.confirm_receipt(pending.receipt_id, manager)

    def test_reject_changes_nothing(
        self,
        service: LedgerService,
        store: LedgerStore,
        manager: Actor,
        admin: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        pending = service.receive_payment(contract.contract_id, "100", None, manager)

        receipt = service.reject_receipt(pending.receipt_id, "Wrong contract", admin)

        assert receipt.status == ReceiptStatus.REJECTED
        assert receipt.reject_reason == "Wrong contract"
        assert all(not p.is_paid for p in _slots(store, contract))
        assert store.get_pending_receipts() == []

    def test_remaining_receipt(
        self,
        service: LedgerService,
        store: LedgerStore,
        seller: Actor,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        underpaid = service.receive_payment(contract.contract_id, "60", None, cashier)

        pending = service.pay_remaining(underpaid.payment_id, "40", None, seller)
        assert isinstance(pending, Pending)
        assert pending.payment_id == underpaid.payment_id

        outcomes = service.confirm_receipt(pending.receipt_id, cashier)

        assert isinstance(outcomes[0], Paid)
        assert store.get_payment(underpaid.payment_id).is_paid
        assert store.get_balance("seller-1").dollar == Decimal("40")

    def test_all_months_receipt(
        self,
        service: LedgerService,
        store: LedgerStore,
        manager: Actor,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        pending = service.pay_all_remaining_months(contract.contract_id, "300", None, manager)
        assert len(pending) == 1
        assert isinstance(pending[0], Pending)

        outcomes = service.confirm_receipt(pending[0].receipt_id, cashier)

        assert len(outcomes) == 3
        assert store.get_contract(contract.contract_id).status == ContractStatus.COMPLETED

    def test_expired_receipts_auto_rejected(
        self,
        service: LedgerService,
        store: LedgerStore,
        clock: FixedClock,
        manager: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        pending = service.receive_payment(contract.contract_id, "100", None, manager)

        clock.advance(timedelta(hours=23))
        assert service.check_expired_pending_payments().rejected_count == 0

        clock.advance(timedelta(hours=2))
        result = service.check_expired_pending_payments()

        receipt = store.get_receipt(pending.receipt_id)
        assert result.rejected_count == 1
        assert result.rejected_receipt_ids == (pending.receipt_id,)
        assert receipt.status == ReceiptStatus.REJECTED
        assert receipt.reject_reason == "Not confirmed within 24 hours"
        assert receipt.reviewed_by == "system"
        assert store.audit_log[-1].action == AuditAction.REJECT


class TestReminders:
    """Tests for follow-up reminders on unpaid slots."""

    def test_set_and_clear(
        self,
        service: LedgerService,
        store: LedgerStore,
        clock: FixedClock,
        manager: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        slot = _slots(store, contract)[0]

        service.set_reminder(slot.payment_id, date(2024, 6, 20), manager)
        assert store.get_payment(slot.payment_id).reminder_date == date(2024, 6, 20)

        assert service.clear_expired_reminders() == 0
        clock.advance(timedelta(days=10))
        assert service.clear_expired_reminders() == 1
        assert store.get_payment(slot.payment_id).reminder_date is None

    def test_past_date_rejected(
        self,
        service: LedgerService,
        store: LedgerStore,
        manager: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        slot = _slots(store, contract)[0]

        with pytest.raises(ValidationError):
            service.set_reminder(slot.payment_id, date(2024, 6, 14), manager)

    def test_cashier_cannot_set(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        slot = _slots(store, contract)[0]

        with pytest.raises(ForbiddenError):
            service.set_reminder(slot.payment_id, date(2024, 6, 20), cashier)

    def test_paying_slot_clears_reminder(
        self,
        service: LedgerService,
        store: LedgerStore,
        manager: Actor,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        slot = _slots(store, contract)[0]
        service.set_reminder(slot.payment_id, date(2024, 6, 20), manager)

        service.receive_payment(contract.contract_id, "100", None, cashier)

        assert store.get_payment(slot.payment_id).reminder_date is None
        with pytest.raises(ConflictError):
            service.set_reminder(slot.payment_id, date(2024, 6, 20), manager)


class TestLedgerConsistency:
    """total_paid and remaining debt stay consistent across payments and amendments."""

    def test_distribute_then_amend(
        self,
        service: LedgerService,
        store: LedgerStore,
        clock: FixedClock,
        cashier: Actor,
        admin: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        cid = contract.contract_id

        service.receive_payment(cid, "250", None, cashier)
        _assert_consistent(store, cid)
        paid_dates = [p.due_date for p in _slots(store, contract) if p.is_paid]

        service.amend_start_date(cid, clock.today() - timedelta(days=40), admin)
        _assert_consistent(store, cid)
        assert [p.due_date for p in _slots(store, contract) if p.is_paid] == paid_dates
        assert store.total_paid(cid) == Decimal("200")

        m3 = _slots(store, contract)[2]
        service.pay_remaining(m3.payment_id, "50", None, cashier)
        _assert_consistent(store, cid)
        assert store.total_paid(cid) == store.get_contract(cid).total_price
        assert store.get_contract(cid).status == ContractStatus.COMPLETED

    def test_overpayment_never_exceeds_price(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        service.receive_payment(contract.contract_id, "350", None, cashier)

        _assert_consistent(store, contract.contract_id)
        assert store.total_paid(contract.contract_id) == Decimal("300")
        assert store.get_contract(contract.contract_id).prepaid_balance == Decimal("50")


class TestConcurrentPayments:
    """Payments racing on one contract are applied one after the other."""

    def _race(self, service: LedgerService, contract_id: str, amount: str, cashier: Actor) -> list:
        barrier = threading.Barrier(2)

        def pay() -> object:
            barrier.wait()
            return service.receive_payment(contract_id, amount, None, cashier)

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(pay) for _ in range(2)]
            return [f.result() for f in futures]

    def test_prepaid_balance_spent_once(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        for _ in range(10):
            contract = make_contract()
            cid = contract.contract_id
            store.get_contract(cid).prepaid_balance = Decimal("50")

            outcomes = self._race(service, cid, "50", cashier)

            slots = _slots(store, contract)
            assert sorted(type(o).__name__ for o in outcomes) == ["Paid", "Underpaid"]
            assert sum((p.prepaid_used for p in slots), Decimal("0")) == Decimal("50")
            assert store.get_contract(cid).prepaid_balance == 0
            assert store.total_paid(cid) == Decimal("100")
            _assert_consistent(store, cid)

    def test_excess_distributed_once(
        self,
        service: LedgerService,
        store: LedgerStore,
        cashier: Actor,
        make_contract: Callable[..., Contract],
    ) -> None:
        for _ in range(10):
            contract = make_contract()
            cid = contract.contract_id

            self._race(service, cid, "150", cashier)

            assert all(p.is_paid for p in _slots(store, contract))
            assert store.total_paid(cid) == Decimal("300")
            assert store.get_contract(cid).prepaid_balance == 0
            assert store.get_contract(cid).status == ContractStatus.COMPLETED
            _assert_consistent(store, cid)
        assert store.get_balance("cashier-1").dollar == Decimal("3000")
