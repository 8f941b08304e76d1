"""Contract terms generator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from installment_ledger.engine.schedule import add_months
from installment_ledger.generators.base import BaseGenerator


@dataclass(frozen=True)
class ContractTerms:
    """Sale terms ready to pass to ``LedgerService.create_contract``."""

    product_name: str
    total_price: Decimal
    initial_payment: Decimal
    monthly_payment: Decimal
    period: int
    start_date: date


class ContractTermsGenerator(BaseGenerator):
    """Generate installment-sale terms for consumer goods."""

    # Product -> price range in dollars
    PRODUCTS = {
        "Smartphone": (200, 1500),
        "Laptop": (400, 2500),
        "Television": (300, 2000),
        "Refrigerator": (350, 1800),
        "Washing machine": (300, 1200),
        "Air conditioner": (400, 1500),
        "Motorcycle": (900, 4000),
    }
    BRANDS = ["Samsung", "Artel", "LG", "Xiaomi", "Lenovo", "Haier"]
    # Period in months -> relative frequency
    PERIODS = {3: 1, 6: 3, 9: 2, 12: 4, 18: 1, 24: 1}
    # Down payment percentage -> relative frequency
    DOWN_PAYMENTS = {0: 4, 10: 3, 20: 2, 30: 1}
    # Markup applied to the cash price for buying on installments
    MARKUP = Decimal("0.25")

    def generate(self, reference_date: date, max_age_months: int = 12) -> ContractTerms:
        """Generate terms for a sale made within ``max_age_months`` before ``reference_date``.

        Parameters
        ----------
        reference_date : date
            "Today" for the generated portfolio.
        max_age_months : int
            Oldest allowed sale, in months.

        Returns
        -------
        ContractTerms
            Terms whose monthly amounts add up to the total price.
        """
        product = self.rng.choice(list(self.PRODUCTS))
        low, high = self.PRODUCTS[product]
        cash_price = self.amount(low, high, step=10)
        period = self.weighted_choice(self.PERIODS)

        total = (cash_price * (1 + self.MARKUP)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        initial = (total * self.weighted_choice(self.DOWN_PAYMENTS) / 100).quantize(Decimal("1"))
        monthly = ((total - initial) / period).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        # Keep total == initial + period * monthly
        total = initial + monthly * period

        age_months = self.rng.randint(1, max_age_months)
        start = add_months(reference_date, -age_months, day=self.rng.randint(1, 28))

        return ContractTerms(
            product_name=f"{self.rng.choice(self.BRANDS)} {product}",
            total_price=total,
            initial_payment=initial,
            monthly_payment=monthly,
            period=period,
            start_date=start,
        )
