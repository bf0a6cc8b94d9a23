from __future__ import annotations

import logging
import os

from pydantic import ValidationError

from domain.schemas import BudgetConfig

logger = logging.getLogger(__name__)

_ENV_FIELDS = {
    "default_income": "SMARTBUDGET_DEFAULT_INCOME",
    "default_currency": "SMARTBUDGET_DEFAULT_CURRENCY",
    "breakdown_top_k": "SMARTBUDGET_BREAKDOWN_TOP_K",
    "history_months": "SMARTBUDGET_HISTORY_MONTHS",
}


def load_budget_config() -> BudgetConfig:
    values = {field: os.getenv(env) for field, env in _ENV_FIELDS.items()}
    values = {field: value for field, value in values.items() if value not in (None, "")}
    try:
        return BudgetConfig.model_validate(values)
    except ValidationError as exc:
        logger.warning("Invalid budget configuration in environment; using defaults: %s", exc)
        return BudgetConfig()
