"""Installment portfolio scenario: contracts with realistic payment histories."""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from installment_ledger.clock import Clock, FixedClock
from installment_ledger.config import EngineConfig
from installment_ledger.engine import LedgerService
from installment_ledger.generators import ContractTermsGenerator, CustomerGenerator
from installment_ledger.models import Actor, ContractStatus, CurrencyBreakdown, PaymentType, Role
from installment_ledger.sinks import export_ledger

logger = logging.getLogger(__name__)


class PortfolioScenario:
    """Generate a portfolio of installment contracts and replay their payments.

    Every payment goes through ``LedgerService``, so the resulting ledger
    holds the same invariants as production data:
    - Customers spread over field managers
    - Contracts started up to a year before the reference date
    - Monthly history per contract: on time, underpaid, prepaid ahead, or
      stopped paying (becomes a debtor)
    - A few receipts still waiting for cashier confirmation
    """

    def __init__(
        self,
        num_customers: int = 100,
        num_managers: int = 5,
        on_time_rate: float = 0.80,
        underpay_rate: float = 0.08,
        prepay_rate: float = 0.04,
        pending_rate: float = 0.05,
        declare_rate: float = 0.10,
        seed: int | None = None,
        reference_date: date | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        publisher: Any | None = None,
        audit_topic: str = "ledger.audit-log",
    ) -> None:
        """Initialize portfolio scenario.

        Parameters
        ----------
        num_customers : int
            Number of customers; each buys one product.
        num_managers : int
            Field managers collecting cash.
        on_time_rate : float
            Probability a due month is paid in full.
        underpay_rate : float
            Probability a due month is paid only partly.
        prepay_rate : float
            Probability a customer pays two months at once.
        pending_rate : float
            Probability a contract has a field receipt awaiting confirmation.
        declare_rate : float
            Share of overdue contracts formally declared.
        seed : int | None
            Random seed for reproducibility.
        reference_date : date | None
            "Today" for the portfolio; defaults to the current date.
        config : EngineConfig | None
            Engine thresholds.
        clock : Clock | None
            Clock for the engine; defaults to noon of ``reference_date``.
        publisher : Any | None
            Sink audit entries are published to while generating.
        audit_topic : str
            Topic for published audit entries.
        """
        self.num_customers = num_customers
        self.num_managers = num_managers
        self.on_time_rate = on_time_rate
        self.underpay_rate = underpay_rate
        self.prepay_rate = prepay_rate
        self.pending_rate = pending_rate
        self.declare_rate = declare_rate
        if clock is not None:
            reference_date = reference_date or clock.today()
        self.reference_date = reference_date or date.today()

        self.rng = random.Random(seed)
        self.clock = clock or FixedClock(datetime.combine(self.reference_date, time(12, 0)))
        self.service = LedgerService(
            config=config, clock=self.clock, publisher=publisher, audit_topic=audit_topic
        )

        self.admin = Actor("admin-1", Role.ADMIN)
        self.cashier = Actor("cashier-1", Role.CASHIER)
        self.managers = [Actor(f"manager-{i}", Role.MANAGER) for i in range(1, num_managers + 1)]

        self._customer_gen = CustomerGenerator(seed=seed)
        self._terms_gen = ContractTermsGenerator(seed=seed)

    def generate(self) -> LedgerService:
        """Generate customers, contracts and payment history.

        Returns
        -------
        LedgerService
            Service whose store holds the generated ledger.
        """
        logger.info(
            "Starting portfolio scenario: %d customers, reference date %s",
            self.num_customers,
            self.reference_date,
        )
        store = self.service.store

        ids = [store.next_id("customer") for _ in range(self.num_customers)]
        manager_ids = [m.user_id for m in self.managers]
        for customer in self._customer_gen.generate_batch(ids, manager_ids):
            store.add_customer(customer)

        for customer in list(store.customers.values()):
            terms = self._terms_gen.generate(self.reference_date)
            contract = self.service.create_contract(
                customer.customer_id,
                terms.product_name,
                terms.total_price,
                terms.initial_payment,
                terms.monthly_payment,
                terms.period,
                terms.start_date,
                self.admin,
            )
            self._replay_history(contract.contract_id, customer.manager_id)

        sweep = self.service.sweep_overdue_debtors()
        self._declare_some()
        logger.info(
            "Generated %d contracts; sweep created=%d updated=%d removed=%d",
            len(store.contracts),
            sweep.created,
            sweep.updated,
            sweep.removed,
        )
        return self.service

    def _replay_history(self, contract_id: str, manager_id: str | None) -> None:
        """Pay the months already due according to the behavior rates."""
        store = self.service.store
        contract = store.get_contract(contract_id)
        due_months = [
            p
            for p in store.get_contract_payments(contract_id)
            if p.payment_type == PaymentType.MONTHLY and p.due_date <= self.reference_date
        ]

        for _ in due_months:
            contract = store.get_contract(contract_id)
            if contract.status == ContractStatus.COMPLETED:
                break
            roll = self.rng.random()
            if roll < self.on_time_rate:
                amount = contract.monthly_payment
            elif roll < self.on_time_rate + self.underpay_rate:
                amount = (contract.monthly_payment * Decimal("0.6")).quantize(Decimal("0.01"))
            elif roll < self.on_time_rate + self.underpay_rate + self.prepay_rate:
                amount = contract.monthly_payment * 2
            else:
                # Stops paying from here on
                break
            self.service.receive_payment(
                contract_id, amount, CurrencyBreakdown(dollar=amount), self.cashier
            )

        contract = store.get_contract(contract_id)
        if (
            manager_id is not None
            and contract.status == ContractStatus.ACTIVE
            and self.rng.random() < self.pending_rate
        ):
            collector = next(m for m in self.managers if m.user_id == manager_id)
            self.service.receive_payment(
                contract_id,
                contract.monthly_payment,
                CurrencyBreakdown(dollar=contract.monthly_payment),
                collector,
            )

    def _declare_some(self) -> None:
        overdue = sorted({d.contract_id for d in self.service.store.debtors.values()})
        chosen = [cid for cid in overdue if self.rng.random() < self.declare_rate]
        if chosen:
            self.service.declare_debtors(chosen, self.admin)

    def export(self, sinks: list[Any]) -> None:
        """Export the generated ledger to sinks.

        Parameters
        ----------
        sinks : list[Any]
            Sink instances (JsonFileSink, PostgresSink, ...).
        """
        for sink in sinks:
            export_ledger(self.service.store, sink)
        logger.info("Exported portfolio to %d sinks", len(sinks))

    def get_portfolio_summary(self) -> dict[str, Any]:
        """Get summary statistics for the generated portfolio.

        Returns
        -------
        dict[str, Any]
            Portfolio summary statistics.
        """
        store = self.service.store
        contracts = list(store.contracts.values())
        if not contracts:
            return {}

        status_counts: dict[str, int] = {}
        for contract in contracts:
            status_counts[contract.status.value] = status_counts.get(contract.status.value, 0) + 1

        return {
            "total_contracts": len(contracts),
            "contract_status_distribution": status_counts,
            "total_price": sum((c.total_price for c in contracts), Decimal("0")),
            "total_paid": sum((store.total_paid(c.contract_id) for c in contracts), Decimal("0")),
            "debtors": len(store.debtors),
            "declared_contracts": sum(1 for c in contracts if c.is_declare),
            "pending_receipts": len(store.get_pending_receipts()),
            "prepaid_balance": sum((c.prepaid_balance for c in contracts), Decimal("0")),
        }
