from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class Category(str, Enum):
    NEEDS = "NEEDS"
    WANTS = "WANTS"
    SAVINGS = "SAVINGS"
    GIVING = "GIVING"
    INCOME = "INCOME"
    TRANSFER = "TRANSFER"


class AccountType(str, Enum):
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


class IncomeSource(str, Enum):
    TRANSACTIONS = "transactions"
    NOMINAL = "nominal"


@dataclass(frozen=True)
class BudgetRule:
    category: Category
    label: str
    percentage: int
    description: str
    color: str
    is_budget_category: bool


BUDGET_RULES: dict[Category, BudgetRule] = {
    Category.NEEDS: BudgetRule(
        category=Category.NEEDS,
        label="Needs (40%)",
        percentage=40,
        description="Housing, groceries, utilities, commuting",
        color="#3b82f6",
        is_budget_category=True,
    ),
    Category.WANTS: BudgetRule(
        category=Category.WANTS,
        label="Wants (30%)",
        percentage=30,
        description="Entertainment, restaurants, hobbies, shopping",
        color="#a855f7",
        is_budget_category=True,
    ),
    Category.SAVINGS: BudgetRule(
        category=Category.SAVINGS,
        label="Future (20%)",
        percentage=20,
        description="Investments, savings accounts, debt repayment",
        color="#22c55e",
        is_budget_category=True,
    ),
    Category.GIVING: BudgetRule(
        category=Category.GIVING,
        label="Giving (10%)",
        percentage=10,
        description="Charity, gifts, emergency buffer",
        color="#f97316",
        is_budget_category=True,
    ),
    Category.INCOME: BudgetRule(
        category=Category.INCOME,
        label="Income",
        percentage=0,
        description="Salary, dividends, deposits",
        color="#10b981",
        is_budget_category=False,
    ),
    Category.TRANSFER: BudgetRule(
        category=Category.TRANSFER,
        label="Internal transfer",
        percentage=0,
        description="Moves between own accounts, credit card repayments",
        color="#94a3b8",
        is_budget_category=False,
    ),
}


def rule_for(category: Category | str) -> BudgetRule:
    # Category(...) raises ValueError for anything outside the closed set.
    return BUDGET_RULES[Category(category)]


def budget_categories() -> list[Category]:
    return [category for category, rule in BUDGET_RULES.items() if rule.is_budget_category]


@dataclass(frozen=True)
class TransactionDraft:
    """A classified transaction that has not been assigned an id yet."""

    description: str
    amount: Decimal
    currency: str
    category: Category
    date: datetime | None = None
    is_ai_generated: bool = False


@dataclass(frozen=True)
class Transaction:
    id: str
    description: str
    amount: Decimal
    currency: str
    category: Category
    date: datetime
    is_ai_generated: bool = False
    document_id: str | None = None

    @property
    def month_key(self) -> str:
        return month_key(self.date)

    @property
    def year(self) -> int:
        return self.date.year


@dataclass(frozen=True)
class AccountMetadata:
    account_name: str | None = None
    account_type: AccountType | None = None
    balance: Decimal | None = None
    currency: str | None = None


@dataclass(frozen=True)
class ImportedDocument:
    id: str
    name: str
    upload_date: datetime
    transaction_count: int
    account_name: str | None = None
    account_type: AccountType | None = None
    balance: Decimal | None = None
    currency: str | None = None


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def signed_amount(txn: Transaction) -> Decimal:
    """Display amount: income is positive, budget spending negative, transfers unsigned."""
    if txn.category in (Category.INCOME, Category.TRANSFER):
        return txn.amount
    return -txn.amount
