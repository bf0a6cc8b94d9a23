from __future__ import annotations

import logging
import time
from decimal import Decimal

from application import aggregation
from application.classification import validate_parsed_transaction, validate_statement
from application.selection import MonthSelection, YearSelection, is_month_key
from application.store import TransactionStore
from domain.errors import EmptyStatementError
from domain.models import Category, ImportedDocument, Transaction, TransactionDraft
from domain.schemas import (
    AccountBalance,
    AdviceView,
    AnnualReport,
    BudgetConfig,
    CategoryBreakdown,
    DashboardView,
    ImportResult,
    ManualTransactionRequest,
    document_view,
    transaction_view,
)
from llm.advisor import AdvisorLLM
from llm.transaction_parser import TransactionParserLLM

logger = logging.getLogger(__name__)


class BudgetService:
    """Entry point used by the API and CLI; wires the store, classifier and views."""

    def __init__(
        self,
        store: TransactionStore,
        parser: TransactionParserLLM,
        advisor: AdvisorLLM,
        config: BudgetConfig | None = None,
        month_selection: MonthSelection | None = None,
        year_selection: YearSelection | None = None,
    ):
        self._store = store
        self._parser = parser
        self._advisor = advisor
        self._config = config or BudgetConfig()
        self._months = month_selection or MonthSelection()
        self._years = year_selection or YearSelection()
        self._months.attach(store)
        self._years.attach(store)

    @property
    def store(self) -> TransactionStore:
        return self._store

    @property
    def months(self) -> MonthSelection:
        return self._months

    @property
    def years(self) -> YearSelection:
        return self._years

    # ---- transactions ----
    def add_from_text(self, text: str) -> Transaction:
        t = time.perf_counter()
        payload = self._parser.parse_text(text)
        logger.info("Classifier complete in %.2fs", time.perf_counter() - t)
        draft = validate_parsed_transaction(payload, default_currency=self._config.default_currency)
        return self._store.add(draft)

    def add_manual(self, request: ManualTransactionRequest) -> Transaction:
        draft = TransactionDraft(
            description=request.description,
            amount=request.amount,
            currency=request.currency or self._config.default_currency,
            category=request.category,
            date=request.date,
        )
        return self._store.add(draft)

    def remove_transaction(self, transaction_id: str) -> bool:
        return self._store.remove(transaction_id)

    def reassign_category(self, transaction_id: str, category: Category | str) -> Transaction | None:
        return self._store.reassign_category(transaction_id, category)

    def set_income(self, value: Decimal) -> Decimal:
        return self._store.set_nominal_income(value)

    # ---- documents ----
    def import_statement(self, name: str, content: bytes, mime_type: str = "application/pdf") -> ImportResult:
        logger.info("Statement import start name=%s bytes=%d", name, len(content))
        t0 = time.perf_counter()

        payload = self._parser.parse_statement(content, mime_type=mime_type)
        logger.info("Classifier complete in %.2fs", time.perf_counter() - t0)

        validated = validate_statement(payload, default_currency=self._config.default_currency)
        if not validated.drafts:
            raise EmptyStatementError(f"No transactions found in {name}")

        document, transactions = self._store.add_batch(validated.drafts, validated.metadata, name)
        logger.info(
            "Statement import complete in %.2fs document_id=%s accepted=%d dropped=%d",
            time.perf_counter() - t0,
            document.id,
            len(transactions),
            validated.dropped,
        )
        return ImportResult(
            document=document_view(document),
            accepted=len(transactions),
            dropped=validated.dropped,
            transactions=[transaction_view(txn) for txn in transactions],
        )

    def delete_document(self, document_id: str, confirm: bool = False) -> ImportedDocument | None:
        return self._store.remove_by_document(document_id, confirm=confirm)

    def balances(self) -> list[AccountBalance]:
        return self._store.registry.balance_sheet()

    def _month(self, month: str | None) -> str:
        if month is None:
            return self._months.current
        if not is_month_key(month):
            raise ValueError(f"Month must be YYYY-MM, got {month!r}")
        return month

    # ---- views ----
    def dashboard(self, month: str | None = None) -> DashboardView:
        t = time.perf_counter()
        view = aggregation.build_dashboard(
            self._store.all(),
            self._store.documents(),
            nominal_income=self._store.nominal_income,
            month_key=self._month(month),
            config=self._config,
        )
        logger.info("Dashboard built in %.3fs month=%s", time.perf_counter() - t, view.month)
        return view

    def category_breakdown(self, category: Category | str, month: str | None = None) -> CategoryBreakdown:
        month_txns = aggregation.filter_month(self._store.all(), self._month(month))
        return aggregation.description_breakdown(
            month_txns,
            Category(category),
            top_k=self._config.breakdown_top_k,
        )

    def annual_report(self, year: int | None = None) -> AnnualReport:
        return aggregation.annual_report(self._store.all(), year or self._years.current)

    def advice(self, month: str | None = None) -> AdviceView:
        month_key = self._month(month)
        month_txns = aggregation.filter_month(self._store.all(), month_key)
        income, _ = aggregation.effective_income(month_txns, self._store.nominal_income)
        statuses = aggregation.budget_statuses(month_txns, income)

        t = time.perf_counter()
        text, generated = self._advisor.generate_advice(income, statuses, currency=self._config.default_currency)
        logger.info("Advice generation complete in %.2fs generated=%s", time.perf_counter() - t, generated)
        return AdviceView(month=month_key, advice=text, generated=generated)
