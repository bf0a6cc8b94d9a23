from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator

from domain.models import (
    AccountMetadata,
    AccountType,
    Category,
    ImportedDocument,
    IncomeSource,
    Transaction,
    signed_amount,
)

# Amounts stay Decimal inside the engine; JSON responses carry plain numbers.
DisplayAmount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d.%m.%Y", "%m/%d/%Y")


def _coerce_calendar_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return _to_local_naive(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return value

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return _to_local_naive(datetime.fromisoformat(text.replace("Z", "+00:00"))).date()
    except ValueError:
        return value


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _normalize_category(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


# ---------------------------------------------------------------------------
# Classifier output contracts
# ---------------------------------------------------------------------------


class ParsedTransaction(BaseModel):
    """Single transaction proposed by the classifier for a free-text entry."""

    amount: Decimal = Field(ge=0)
    currency: Optional[str] = None
    category: Category
    description: str = Field(min_length=1)
    confidence: Optional[float] = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return _normalize_category(value)

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class StatementEntry(ParsedTransaction):
    """One row extracted from a bank statement."""

    model_config = ConfigDict(populate_by_name=True)

    posted_on: date = Field(alias="date")
    type: Optional[Literal["EXPENSE", "INCOME", "TRANSFER"]] = None

    @field_validator("posted_on", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return _coerce_calendar_date(value)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @model_validator(mode="after")
    def reconcile_type_and_category(self) -> "StatementEntry":
        # The flow type is the stronger signal for income and transfers.
        if self.type == "INCOME":
            self.category = Category.INCOME
        elif self.type == "TRANSFER":
            self.category = Category.TRANSFER
        elif self.type == "EXPENSE" and self.category in (Category.INCOME, Category.TRANSFER):
            raise ValueError("EXPENSE entries must carry a budget category")
        return self


class StatementAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_name: Optional[str] = Field(default=None, alias="accountName")
    account_type: Optional[AccountType] = Field(default=None, alias="accountType")
    balance: Optional[Decimal] = None
    currency: Optional[str] = None

    @field_validator("account_type", mode="before")
    @classmethod
    def normalize_account_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    def to_metadata(self) -> AccountMetadata:
        return AccountMetadata(
            account_name=self.account_name,
            account_type=self.account_type,
            balance=self.balance,
            currency=self.currency,
        )


class StatementParseResult(BaseModel):
    """Raw statement payload; the account block and entries are validated downstream."""

    account: Optional[Dict[str, Any]] = None
    transactions: List[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {"transactions": value}
        return value

    @field_validator("account", mode="before")
    @classmethod
    def drop_malformed_account(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, dict):
            return None
        return value


# ---------------------------------------------------------------------------
# Persisted state records
# ---------------------------------------------------------------------------


class TransactionRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    description: str
    amount: Decimal = Field(ge=0)
    currency: str
    category: Category
    date: datetime
    is_ai_generated: bool = Field(default=False, alias="isAiGenerated")
    document_id: Optional[str] = Field(default=None, alias="documentId")

    @field_validator("date", mode="after")
    @classmethod
    def localize(cls, value: datetime) -> datetime:
        return _to_local_naive(value)

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionRecord":
        return cls(
            id=txn.id,
            description=txn.description,
            amount=txn.amount,
            currency=txn.currency,
            category=txn.category,
            date=txn.date,
            is_ai_generated=txn.is_ai_generated,
            document_id=txn.document_id,
        )

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            description=self.description,
            amount=self.amount,
            currency=self.currency,
            category=self.category,
            date=self.date,
            is_ai_generated=self.is_ai_generated,
            document_id=self.document_id,
        )


class DocumentRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    upload_date: datetime = Field(alias="uploadDate")
    transaction_count: int = Field(ge=0, alias="transactionCount")
    account_name: Optional[str] = Field(default=None, alias="accountName")
    account_type: Optional[AccountType] = Field(default=None, alias="accountType")
    balance: Optional[Decimal] = None
    currency: Optional[str] = None

    @field_validator("upload_date", mode="after")
    @classmethod
    def localize(cls, value: datetime) -> datetime:
        return _to_local_naive(value)

    @classmethod
    def from_domain(cls, doc: ImportedDocument) -> "DocumentRecord":
        return cls(
            id=doc.id,
            name=doc.name,
            upload_date=doc.upload_date,
            transaction_count=doc.transaction_count,
            account_name=doc.account_name,
            account_type=doc.account_type,
            balance=doc.balance,
            currency=doc.currency,
        )

    def to_domain(self) -> ImportedDocument:
        return ImportedDocument(
            id=self.id,
            name=self.name,
            upload_date=self.upload_date,
            transaction_count=self.transaction_count,
            account_name=self.account_name,
            account_type=self.account_type,
            balance=self.balance,
            currency=self.currency,
        )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class BudgetConfig(BaseModel):
    default_income: Decimal = Field(default=Decimal("50000"), ge=0)
    default_currency: str = "CZK"
    breakdown_top_k: int = Field(default=8, ge=1)
    history_months: int = Field(default=6, ge=1)


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------


class ParseTextRequest(BaseModel):
    text: str = Field(min_length=1)


class ManualTransactionRequest(BaseModel):
    description: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    currency: Optional[str] = None
    category: Category
    date: Optional[datetime] = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return _normalize_category(value)

    @field_validator("date", mode="after")
    @classmethod
    def localize(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_local_naive(value) if value is not None else None


class CategoryUpdateRequest(BaseModel):
    category: Category

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return _normalize_category(value)


class StatementUploadRequest(BaseModel):
    name: str = Field(min_length=1)
    content_base64: str = Field(min_length=1)
    mime_type: str = "application/pdf"


class IncomeUpdateRequest(BaseModel):
    amount: Decimal = Field(ge=0)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class TransactionView(BaseModel):
    id: str
    description: str
    amount: DisplayAmount
    signed_amount: DisplayAmount
    currency: str
    category: Category
    date: datetime
    is_ai_generated: bool = False
    document_id: Optional[str] = None


class DocumentView(BaseModel):
    id: str
    name: str
    upload_date: datetime
    transaction_count: int
    account_name: Optional[str] = None
    account_type: Optional[AccountType] = None
    balance: Optional[DisplayAmount] = None
    currency: Optional[str] = None


class CategoryBudgetStatus(BaseModel):
    category: Category
    label: str
    percentage: int
    spent: DisplayAmount
    target: DisplayAmount
    percent_used: DisplayAmount
    is_over: bool


class MonthBucket(BaseModel):
    month: str
    income: DisplayAmount
    expenses: DisplayAmount
    invested: DisplayAmount
    net_flow: DisplayAmount
    savings_growth: DisplayAmount
    transaction_count: int


class HistoryPoint(BaseModel):
    month: str
    income: DisplayAmount
    expenses: DisplayAmount
    net_flow: DisplayAmount


class SavingsPoint(BaseModel):
    month: str
    savings_growth: DisplayAmount
    cumulative_savings: DisplayAmount


class DescriptionGroup(BaseModel):
    name: str
    amount: DisplayAmount
    transaction_count: int
    share_percent: DisplayAmount
    is_other: bool = False


class CategoryBreakdown(BaseModel):
    category: Category
    label: str
    total_amount: DisplayAmount
    transaction_count: int
    groups: List[DescriptionGroup] = Field(default_factory=list)


class AccountBalance(BaseModel):
    document_id: str
    name: str
    balance: DisplayAmount
    account_type: Optional[AccountType] = None
    currency: str


class AnnualCategoryShare(BaseModel):
    category: Category
    label: str
    target_percentage: int
    amount: DisplayAmount
    percent_of_income: DisplayAmount
    is_over: bool


class AnnualReport(BaseModel):
    year: int
    income: DisplayAmount
    expenses: DisplayAmount
    savings: DisplayAmount
    balance: DisplayAmount
    total_saved: DisplayAmount
    savings_rate: DisplayAmount
    by_category: List[AnnualCategoryShare] = Field(default_factory=list)
    transaction_count: int


class DashboardView(BaseModel):
    month: str
    effective_income: DisplayAmount
    income_source: IncomeSource
    expenses_total: DisplayAmount
    transfers_total: DisplayAmount
    net_flow: DisplayAmount
    categories: List[CategoryBudgetStatus] = Field(default_factory=list)
    history: List[HistoryPoint] = Field(default_factory=list)
    savings_trajectory: List[SavingsPoint] = Field(default_factory=list)
    balances: List[AccountBalance] = Field(default_factory=list)
    transaction_count: int


class ImportResult(BaseModel):
    document: DocumentView
    accepted: int
    dropped: int
    transactions: List[TransactionView] = Field(default_factory=list)


class AdviceView(BaseModel):
    month: str
    advice: str
    generated: bool


def transaction_view(txn: Transaction) -> TransactionView:
    return TransactionView(
        id=txn.id,
        description=txn.description,
        amount=txn.amount,
        signed_amount=signed_amount(txn),
        currency=txn.currency,
        category=txn.category,
        date=txn.date,
        is_ai_generated=txn.is_ai_generated,
        document_id=txn.document_id,
    )


def document_view(doc: ImportedDocument) -> DocumentView:
    return DocumentView(
        id=doc.id,
        name=doc.name,
        upload_date=doc.upload_date,
        transaction_count=doc.transaction_count,
        account_name=doc.account_name,
        account_type=doc.account_type,
        balance=doc.balance,
        currency=doc.currency,
    )


def entry_datetime(value: date) -> datetime:
    return datetime.combine(value, time())
