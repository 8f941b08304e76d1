"""Payment reconciliation and contract lifecycle engine."""

from installment_ledger.engine.amendment import ContractAmendmentHandler, plan_amendment
from installment_ledger.engine.balance import BalanceLedger
from installment_ledger.engine.contracts import ContractManager
from installment_ledger.engine.debtors import DebtorManager, plan_debtors
from installment_ledger.engine.distributor import ExcessDistributor
from installment_ledger.engine.payments import PaymentProcessor
from installment_ledger.engine.service import LedgerService
from installment_ledger.engine.status import PaymentCalculation, calculate_payment_status

__all__ = [
    "BalanceLedger",
    "ContractAmendmentHandler",
    "ContractManager",
    "DebtorManager",
    "ExcessDistributor",
    "LedgerService",
    "PaymentCalculation",
    "PaymentProcessor",
    "calculate_payment_status",
    "plan_amendment",
    "plan_debtors",
]
