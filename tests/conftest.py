"""Pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

import pytest

from installment_ledger.clock import FixedClock
from installment_ledger.engine import LedgerService
from installment_ledger.models import Actor, Contract, Customer, Role
from installment_ledger.store import LedgerStore

TODAY = date(2024, 6, 15)


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at noon on 2024-06-15."""
    return FixedClock(datetime(2024, 6, 15, 12, 0))


@pytest.fixture
def store() -> LedgerStore:
    """Create a fresh store for each test."""
    return LedgerStore()


@pytest.fixture
def service(store: LedgerStore, clock: FixedClock) -> LedgerService:
    """Service over the fresh store and fixed clock."""
    return LedgerService(store=store, clock=clock)


@pytest.fixture
def admin() -> Actor:
    return Actor("admin-1", Role.ADMIN)


@pytest.fixture
def moderator() -> Actor:
    return Actor("moderator-1", Role.MODERATOR)


@pytest.fixture
def cashier() -> Actor:
    return Actor("cashier-1", Role.CASHIER)


@pytest.fixture
def manager() -> Actor:
    return Actor("manager-1", Role.MANAGER)


@pytest.fixture
def seller() -> Actor:
    return Actor("seller-1", Role.SELLER)


@pytest.fixture
def customer(store: LedgerStore) -> Customer:
    """Customer registered in the store."""
    customer = Customer(
        customer_id="M0001",
        full_name="Test Customer",
        phone="+998901234567",
        manager_id="manager-1",
        created_at=datetime(2024, 1, 1, 9, 0),
    )
    store.add_customer(customer)
    return customer


@pytest.fixture
def make_contract(
    service: LedgerService, customer: Customer, admin: Actor
) -> Callable[..., Contract]:
    """Factory creating contracts through the service.

    Defaults to a 3 x 100 schedule starting today with no initial payment.
    """

    def _make(
        period: int = 3,
        monthly: str = "100",
        initial: str = "0",
        start_date: date = TODAY,
        total: str | None = None,
    ) -> Contract:
        if total is None:
            total = str(Decimal(initial) + Decimal(monthly) * period)
        return service.create_contract(
            customer.customer_id,
            "Samsung Smartphone",
            total,
            initial,
            monthly,
            period,
            start_date,
            admin,
        )

    return _make
