from __future__ import annotations


class SmartBudgetError(RuntimeError):
    pass


class TransactionNotUnderstoodError(SmartBudgetError):
    """The classifier output for a manual entry failed validation."""


class ClassifierUnavailableError(SmartBudgetError):
    pass


class EmptyStatementError(SmartBudgetError):
    pass


class ConfirmationRequiredError(SmartBudgetError):
    pass


class PersistenceError(SmartBudgetError):
    pass
