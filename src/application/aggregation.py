from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from domain.models import (
    Category,
    ImportedDocument,
    IncomeSource,
    Transaction,
    budget_categories,
    rule_for,
)
from domain.schemas import (
    AccountBalance,
    AnnualCategoryShare,
    AnnualReport,
    BudgetConfig,
    CategoryBreakdown,
    CategoryBudgetStatus,
    DashboardView,
    DescriptionGroup,
    HistoryPoint,
    MonthBucket,
    SavingsPoint,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
OTHER_LABEL = "Other"
ANNUAL_OVER_BUFFER = Decimal("5")

_NON_EXPENSE = frozenset({Category.INCOME, Category.TRANSFER})


def is_expense(category: Category) -> bool:
    return category not in _NON_EXPENSE


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return part / whole * HUNDRED


# ---------------------------------------------------------------------------
# Period filters
# ---------------------------------------------------------------------------


def filter_month(transactions: Iterable[Transaction], month_key: str) -> list[Transaction]:
    return [t for t in transactions if t.month_key == month_key]


def filter_year(transactions: Iterable[Transaction], year: int) -> list[Transaction]:
    return [t for t in transactions if t.year == year]


def available_months(transactions: Iterable[Transaction]) -> list[str]:
    return sorted({t.month_key for t in transactions})


def available_years(transactions: Iterable[Transaction]) -> list[int]:
    return sorted({t.year for t in transactions})


# ---------------------------------------------------------------------------
# Totals and budget targets
# ---------------------------------------------------------------------------


def total_for(transactions: Iterable[Transaction], category: Category) -> Decimal:
    category = Category(category)
    return _sum(t.amount for t in transactions if t.category == category)


def expenses_total(transactions: Iterable[Transaction]) -> Decimal:
    return _sum(t.amount for t in transactions if is_expense(t.category))


def effective_income(
    transactions: Iterable[Transaction],
    nominal_income: Decimal,
) -> tuple[Decimal, IncomeSource]:
    """
    Income recorded in the period if there is any, otherwise the nominal figure.

    The switch is all-or-nothing: a single INCOME transaction replaces the
    nominal income for the whole period, the two are never blended.
    """
    incomes = [t.amount for t in transactions if t.category == Category.INCOME]
    if incomes:
        return _sum(incomes), IncomeSource.TRANSACTIONS
    return nominal_income, IncomeSource.NOMINAL


def budget_target(income: Decimal, category: Category) -> Decimal:
    rule = rule_for(category)
    if not rule.is_budget_category:
        raise ValueError(f"{rule.category.value} has no budget target")
    return income * rule.percentage / HUNDRED


def budget_status(
    transactions: Iterable[Transaction],
    category: Category,
    income: Decimal,
) -> CategoryBudgetStatus:
    rule = rule_for(category)
    spent = total_for(transactions, rule.category)
    target = budget_target(income, rule.category)
    percent_used = min(HUNDRED, _percent(spent, target))
    return CategoryBudgetStatus(
        category=rule.category,
        label=rule.label,
        percentage=rule.percentage,
        spent=spent,
        target=target,
        percent_used=percent_used,
        is_over=target > 0 and spent > target,
    )


def budget_statuses(transactions: Sequence[Transaction], income: Decimal) -> list[CategoryBudgetStatus]:
    return [budget_status(transactions, category, income) for category in budget_categories()]


# ---------------------------------------------------------------------------
# Monthly buckets and savings trend
# ---------------------------------------------------------------------------


def monthly_buckets(transactions: Iterable[Transaction]) -> list[MonthBucket]:
    groups: dict[str, dict[str, Decimal]] = defaultdict(
        lambda: {"income": ZERO, "expenses": ZERO, "invested": ZERO}
    )
    counts: dict[str, int] = defaultdict(int)

    for txn in transactions:
        entry = groups[txn.month_key]
        counts[txn.month_key] += 1
        if txn.category == Category.INCOME:
            entry["income"] += txn.amount
        elif txn.category != Category.TRANSFER:
            entry["expenses"] += txn.amount
            if txn.category == Category.SAVINGS:
                entry["invested"] += txn.amount

    buckets: list[MonthBucket] = []
    for key in sorted(groups):
        entry = groups[key]
        net_flow = entry["income"] - entry["expenses"]
        buckets.append(
            MonthBucket(
                month=key,
                income=entry["income"],
                expenses=entry["expenses"],
                invested=entry["invested"],
                net_flow=net_flow,
                # SAVINGS left the checking flow but is still wealth.
                savings_growth=net_flow + entry["invested"],
                transaction_count=counts[key],
            )
        )
    return buckets


def recent_history(buckets: Sequence[MonthBucket], months: int = 6) -> list[HistoryPoint]:
    return [
        HistoryPoint(month=b.month, income=b.income, expenses=b.expenses, net_flow=b.net_flow)
        for b in list(buckets)[-months:]
    ]


def savings_trajectory(
    buckets: Sequence[MonthBucket],
    opening_balance: Decimal = ZERO,
) -> list[SavingsPoint]:
    running = opening_balance
    points: list[SavingsPoint] = []
    for bucket in sorted(buckets, key=lambda b: b.month):
        running += bucket.savings_growth
        points.append(
            SavingsPoint(month=bucket.month, savings_growth=bucket.savings_growth, cumulative_savings=running)
        )
    return points


# ---------------------------------------------------------------------------
# Category drill-down and balances
# ---------------------------------------------------------------------------


def description_breakdown(
    transactions: Iterable[Transaction],
    category: Category,
    top_k: int = 8,
) -> CategoryBreakdown:
    rule = rule_for(category)
    matching = [t for t in transactions if t.category == rule.category]
    total = _sum(t.amount for t in matching)

    amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for txn in matching:
        key = txn.description.strip()
        amounts[key] += txn.amount
        counts[key] += 1

    ranked = sorted(amounts.items(), key=lambda item: item[1], reverse=True)
    groups = [
        DescriptionGroup(
            name=name,
            amount=amount,
            transaction_count=counts[name],
            share_percent=_percent(amount, total),
        )
        for name, amount in ranked[:top_k]
    ]

    rest = ranked[top_k:]
    other_amount = _sum(amount for _, amount in rest)
    if other_amount > 0:
        groups.append(
            DescriptionGroup(
                name=OTHER_LABEL,
                amount=other_amount,
                transaction_count=sum(counts[name] for name, _ in rest),
                share_percent=_percent(other_amount, total),
                is_other=True,
            )
        )

    return CategoryBreakdown(
        category=rule.category,
        label=rule.label,
        total_amount=total,
        transaction_count=len(matching),
        groups=groups,
    )


def account_balances(
    documents: Iterable[ImportedDocument],
    default_currency: str = "CZK",
) -> list[AccountBalance]:
    return [
        AccountBalance(
            document_id=doc.id,
            name=doc.account_name or doc.name,
            balance=doc.balance,
            account_type=doc.account_type,
            currency=doc.currency or default_currency,
        )
        for doc in documents
        if doc.balance is not None
    ]


# ---------------------------------------------------------------------------
# Composite views
# ---------------------------------------------------------------------------


def annual_report(transactions: Iterable[Transaction], year: int) -> AnnualReport:
    year_txns = filter_year(transactions, year)
    income = total_for(year_txns, Category.INCOME)
    expenses = _sum(
        t.amount for t in year_txns if t.category in (Category.NEEDS, Category.WANTS, Category.GIVING)
    )
    savings = total_for(year_txns, Category.SAVINGS)
    balance = income - expenses - savings
    total_saved = savings + max(ZERO, balance)

    by_category: list[AnnualCategoryShare] = []
    for category in (Category.NEEDS, Category.WANTS, Category.GIVING, Category.SAVINGS):
        rule = rule_for(category)
        amount = total_for(year_txns, category)
        share = _percent(amount, income)
        by_category.append(
            AnnualCategoryShare(
                category=category,
                label=rule.label,
                target_percentage=rule.percentage,
                amount=amount,
                percent_of_income=share,
                # Saving more than the target is never a problem.
                is_over=category != Category.SAVINGS and share > rule.percentage + ANNUAL_OVER_BUFFER,
            )
        )

    return AnnualReport(
        year=year,
        income=income,
        expenses=expenses,
        savings=savings,
        balance=balance,
        total_saved=total_saved,
        savings_rate=_percent(total_saved, income),
        by_category=by_category,
        transaction_count=len(year_txns),
    )


def build_dashboard(
    transactions: Sequence[Transaction],
    documents: Sequence[ImportedDocument],
    nominal_income: Decimal,
    month_key: str,
    config: BudgetConfig | None = None,
    opening_balance: Decimal = ZERO,
) -> DashboardView:
    config = config or BudgetConfig()
    month_txns = filter_month(transactions, month_key)
    income, source = effective_income(month_txns, nominal_income)
    expenses = expenses_total(month_txns)
    buckets = monthly_buckets(transactions)

    return DashboardView(
        month=month_key,
        effective_income=income,
        income_source=source,
        expenses_total=expenses,
        transfers_total=total_for(month_txns, Category.TRANSFER),
        net_flow=total_for(month_txns, Category.INCOME) - expenses,
        categories=budget_statuses(month_txns, income),
        history=recent_history(buckets, months=config.history_months),
        savings_trajectory=savings_trajectory(buckets, opening_balance=opening_balance),
        balances=account_balances(documents, default_currency=config.default_currency),
        transaction_count=len(month_txns),
    )
