# Bank reconciliation services
from .bank_matching import BankMatchingEngine
from .bank_reconciliation import BankReconciliationService

__all__ = ["BankMatchingEngine", "BankReconciliationService"]
