from __future__ import annotations

import json
import unittest
from datetime import date, datetime
from decimal import Decimal

from application.budget_service import BudgetService
from application.selection import MonthSelection, YearSelection
from application.store import TransactionStore
from domain.errors import (
    ClassifierUnavailableError,
    ConfirmationRequiredError,
    EmptyStatementError,
    TransactionNotUnderstoodError,
)
from domain.models import AccountType, Category, IncomeSource
from domain.schemas import BudgetConfig, ManualTransactionRequest
from infrastructure.llm.llm_client import LLMClientError
from infrastructure.persistence.state_repository import InMemoryStateRepository
from llm.advisor import FALLBACK_ADVICE, AdvisorLLM
from llm.transaction_parser import TransactionParserLLM

_STATEMENT = {
    "account": {"accountName": "Spořicí účet", "accountType": "SAVINGS", "balance": 15000, "currency": "CZK"},
    "transactions": [
        {"date": "2026-01-02", "amount": 5000, "currency": "CZK", "description": "To savings", "category": "SAVINGS", "type": "TRANSFER"},
        {"date": "2026-01-05", "amount": 40000, "currency": "CZK", "description": "Salary", "category": "INCOME", "type": "INCOME"},
        {"date": "2026-01-10", "amount": 10000, "currency": "CZK", "description": "Rent", "category": "NEEDS", "type": "EXPENSE"},
        {"date": "2026-01-11", "amount": -1, "description": "Broken", "category": "NEEDS"},
    ],
}


class _ScriptedLLMClient:
    def __init__(self, *responses: str, error: Exception | None = None):
        self._responses = list(responses)
        self._error = error

    def complete(self, prompt: str, json_mode: bool = False, attachments=None) -> str:
        if self._error is not None:
            raise self._error
        return self._responses.pop(0) if self._responses else ""


def _today() -> date:
    return date(2026, 10, 17)


class BudgetServiceTests(unittest.TestCase):
    def _service(self, client) -> BudgetService:
        store = TransactionStore(InMemoryStateRepository(), clock=lambda: datetime(2026, 10, 17, 9, 0))
        return BudgetService(
            store=store,
            parser=TransactionParserLLM(client),
            advisor=AdvisorLLM(client),
            config=BudgetConfig(),
            month_selection=MonthSelection(today=_today),
            year_selection=YearSelection(today=_today),
        )

    def test_add_from_text(self) -> None:
        service = self._service(
            _ScriptedLLMClient('{"amount": 1200, "currency": "CZK", "category": "WANTS", "description": "Dinner with family"}')
        )

        txn = service.add_from_text("Dinner with family 1200")

        self.assertEqual(txn.category, Category.WANTS)
        self.assertEqual(txn.amount, Decimal("1200"))
        self.assertTrue(txn.is_ai_generated)
        self.assertEqual(txn.month_key, "2026-10")
        self.assertEqual(service.months.current, "2026-10")

    def test_add_from_text_not_understood(self) -> None:
        service = self._service(_ScriptedLLMClient("sorry"))

        with self.assertRaises(TransactionNotUnderstoodError):
            service.add_from_text("blah")
        self.assertEqual(service.store.all(), ())

    def test_add_from_text_classifier_unavailable(self) -> None:
        service = self._service(_ScriptedLLMClient(error=LLMClientError("down")))

        with self.assertRaises(ClassifierUnavailableError):
            service.add_from_text("coffee 80")

    def test_add_manual_uses_default_currency(self) -> None:
        service = self._service(_ScriptedLLMClient())

        txn = service.add_manual(
            ManualTransactionRequest(description="Gift", amount=Decimal("500"), category="giving", date=datetime(2026, 9, 1))
        )

        self.assertEqual(txn.currency, "CZK")
        self.assertFalse(txn.is_ai_generated)
        self.assertEqual(txn.category, Category.GIVING)

    def test_statement_import_drives_dashboard(self) -> None:
        service = self._service(_ScriptedLLMClient(json.dumps(_STATEMENT)))

        result = service.import_statement("january.pdf", b"%PDF-1.4")

        self.assertEqual(result.accepted, 3)
        self.assertEqual(result.dropped, 1)
        self.assertEqual(result.document.transaction_count, 3)
        self.assertEqual(service.months.current, "2026-01")

        view = service.dashboard()
        self.assertEqual(view.month, "2026-01")
        self.assertEqual(view.effective_income, Decimal("40000"))
        self.assertEqual(view.income_source, IncomeSource.TRANSACTIONS)
        self.assertEqual(view.expenses_total, Decimal("10000"))
        self.assertEqual(view.transfers_total, Decimal("5000"))
        self.assertEqual(view.net_flow, Decimal("30000"))
        needs = next(s for s in view.categories if s.category == Category.NEEDS)
        self.assertEqual(needs.target, Decimal("16000"))
        self.assertFalse(needs.is_over)

        balances = service.balances()
        self.assertEqual(len(balances), 1)
        self.assertEqual(balances[0].balance, Decimal("15000"))
        self.assertEqual(balances[0].account_type, AccountType.SAVINGS)

    def test_empty_statement_is_rejected(self) -> None:
        service = self._service(_ScriptedLLMClient('{"transactions": [{"amount": -3}]}'))

        with self.assertRaises(EmptyStatementError):
            service.import_statement("empty.pdf", b"%PDF")
        self.assertEqual(service.store.documents(), ())

    def test_delete_document_cascades_after_confirmation(self) -> None:
        service = self._service(_ScriptedLLMClient(json.dumps(_STATEMENT)))
        manual = service.add_manual(
            ManualTransactionRequest(description="Coffee", amount=Decimal("80"), category="WANTS", date=datetime(2026, 1, 3))
        )
        result = service.import_statement("january.pdf", b"%PDF-1.4")

        with self.assertRaises(ConfirmationRequiredError):
            service.delete_document(result.document.id)

        service.delete_document(result.document.id, confirm=True)

        self.assertEqual(service.store.all(), (manual,))
        self.assertEqual(service.balances(), [])
        self.assertEqual(service.dashboard().income_source, IncomeSource.NOMINAL)

    def test_category_breakdown_and_annual_report(self) -> None:
        service = self._service(_ScriptedLLMClient(json.dumps(_STATEMENT)))
        service.import_statement("january.pdf", b"%PDF-1.4")

        breakdown = service.category_breakdown("NEEDS")
        report = service.annual_report()

        self.assertEqual(breakdown.total_amount, Decimal("10000"))
        self.assertEqual([g.name for g in breakdown.groups], ["Rent"])
        self.assertEqual(report.year, 2026)
        self.assertEqual(report.income, Decimal("40000"))
        self.assertEqual(report.expenses, Decimal("10000"))
        self.assertEqual(report.balance, Decimal("30000"))

    def test_set_income_feeds_nominal_dashboard(self) -> None:
        service = self._service(_ScriptedLLMClient())

        service.set_income(Decimal("60000"))
        view = service.dashboard()

        self.assertEqual(view.month, "2026-10")
        self.assertEqual(view.effective_income, Decimal("60000"))
        self.assertEqual(view.income_source, IncomeSource.NOMINAL)

    def test_invalid_month_rejected(self) -> None:
        service = self._service(_ScriptedLLMClient())

        with self.assertRaises(ValueError):
            service.dashboard("2026-13")

    def test_advice_falls_back_when_model_is_down(self) -> None:
        service = self._service(_ScriptedLLMClient(error=LLMClientError("down")))

        view = service.advice()

        self.assertEqual(view.advice, FALLBACK_ADVICE)
        self.assertFalse(view.generated)
        self.assertEqual(view.month, "2026-10")


if __name__ == "__main__":
    unittest.main()
