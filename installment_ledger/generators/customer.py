"""Customer generator."""

from __future__ import annotations

from datetime import datetime
from typing import Iterator

from installment_ledger.generators.base import BaseGenerator
from installment_ledger.models import Customer


class CustomerGenerator(BaseGenerator):
    """Generate synthetic buyers."""

    # Mobile operator code -> share of subscribers
    OPERATOR_CODES = {90: 0.25, 91: 0.1, 93: 0.2, 94: 0.1, 97: 0.2, 99: 0.15}

    def generate(self, customer_id: str, manager_id: str | None = None) -> Customer:
        """Generate a single customer.

        Parameters
        ----------
        customer_id : str
            Id allocated by the store.
        manager_id : str | None
            Field manager responsible for the customer.

        Returns
        -------
        Customer
            Generated customer.
        """
        return Customer(
            customer_id=customer_id,
            full_name=self.fake.name(),
            phone=f"+998{self.weighted_choice(self.OPERATOR_CODES)}{self.rng.randint(1000000, 9999999)}",
            manager_id=manager_id,
            created_at=datetime.now(),
        )

    def generate_batch(self, ids: list[str], managers: list[str] | None = None) -> Iterator[Customer]:
        """Generate one customer per id, spreading them over ``managers``."""
        for customer_id in ids:
            manager = self.rng.choice(managers) if managers else None
            yield self.generate(customer_id, manager)
