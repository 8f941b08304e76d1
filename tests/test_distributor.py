"""Tests for ExcessDistributor."""

from collections.abc import Callable
from decimal import Decimal

import pytest

from installment_ledger.engine import LedgerService
from installment_ledger.exceptions import ConflictError
from installment_ledger.models import Contract, ContractStatus, PaymentStatus
from installment_ledger.store import LedgerStore


class TestApplyToSlot:
    """Tests for ExcessDistributor.apply_to_slot."""

    def test_paid_slot_conflicts(
        self,
        service: LedgerService,
        store: LedgerStore,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        slot = store.get_contract_payments(contract.contract_id)[0]

        with store.unit_of_work():
            service.distributor.apply_to_slot(contract, slot, Decimal("100"), "cashier-1")

        with pytest.raises(ConflictError, match="already paid"):
            service.distributor.apply_to_slot(contract, slot, Decimal("100"), "cashier-1")

    def test_prepaid_ignored_when_disabled(
        self,
        service: LedgerService,
        store: LedgerStore,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        contract.prepaid_balance = Decimal("100")
        slot = store.get_contract_payments(contract.contract_id)[0]

        calc = service.distributor.apply_to_slot(
            contract, slot, Decimal("40"), "cashier-1", use_prepaid=False
        )

        assert calc.status == PaymentStatus.UNDERPAID
        assert contract.prepaid_balance == Decimal("100")
        assert slot.remaining_amount == Decimal("60")


class TestDistributeExcess:
    """Tests for ExcessDistributor.distribute_excess."""

    def test_walks_slots_by_target_month(
        self,
        service: LedgerService,
        store: LedgerStore,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract(period=4)

        allocations, banked = service.distributor.distribute_excess(
            contract, Decimal("230"), "cashier-1"
        )

        assert [a.target_month for a in allocations] == [1, 2, 3]
        assert [a.applied for a in allocations] == [Decimal("100"), Decimal("100"), Decimal("30")]
        assert allocations[-1].status == PaymentStatus.UNDERPAID
        assert allocations[-1].remaining == Decimal("70")
        assert banked == 0

    def test_crumbs_are_banked(
        self,
        service: LedgerService,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()

        allocations, banked = service.distributor.distribute_excess(
            contract, Decimal("0.005"), "cashier-1"
        )

        assert allocations == []
        assert banked == Decimal("0.005")
        assert contract.prepaid_balance == Decimal("0.005")


class TestRefreshContract:
    """Tests for ExcessDistributor.refresh_contract."""

    def test_prepaid_counts_toward_completion(
        self,
        service: LedgerService,
        store: LedgerStore,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        contract.prepaid_balance = Decimal("299.995")

        service.distributor.refresh_contract(contract)

        assert contract.status == ContractStatus.COMPLETED

    def test_reopens_when_debt_returns(
        self,
        service: LedgerService,
        make_contract: Callable[..., Contract],
    ) -> None:
        contract = make_contract()
        contract.status = ContractStatus.COMPLETED

        service.distributor.refresh_contract(contract)

        assert contract.status == ContractStatus.ACTIVE
