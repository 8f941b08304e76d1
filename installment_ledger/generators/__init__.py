"""Synthetic data generators."""

from installment_ledger.generators.contract import ContractTerms, ContractTermsGenerator
from installment_ledger.generators.customer import CustomerGenerator

__all__ = ["ContractTerms", "ContractTermsGenerator", "CustomerGenerator"]
