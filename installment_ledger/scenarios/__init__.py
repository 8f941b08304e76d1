"""Pre-built data generation scenarios."""

from installment_ledger.scenarios.portfolio import PortfolioScenario

__all__ = ["PortfolioScenario"]
