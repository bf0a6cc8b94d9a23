from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List

from domain.schemas import CategoryBudgetStatus
from infrastructure.llm.llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)

FALLBACK_ADVICE = "Sorry, budget advice is not available right now. Please try again later."


class AdvisorLLM:
    """Asks the model for short 40/30/20/10 coaching based on the month's numbers."""

    def __init__(self, llm_client: LLMClient):
        self._llm = llm_client

    def build_prompt(self, income: Decimal, statuses: List[CategoryBudgetStatus], currency: str) -> str:
        prompt_payload: Dict[str, Any] = {
            "task": (
                "Act as an experienced but empathetic personal finance adviser using the 40/30/20/10 budget. "
                "Analyse whether the spending follows the rule."
            ),
            "monthly_income": float(income),
            "currency": currency,
            "spending": [
                {
                    "category": status.category.value,
                    "label": status.label,
                    "target_percentage": status.percentage,
                    "spent": float(status.spent),
                    "target": float(status.target),
                }
                for status in statuses
            ],
            "rules": [
                "Give exactly 3 concrete, actionable points.",
                "Be brief, professional and encouraging.",
                "Format the answer as Markdown.",
            ],
        }
        return json.dumps(prompt_payload, indent=2, default=str)

    def generate_advice(
        self,
        income: Decimal,
        statuses: List[CategoryBudgetStatus],
        currency: str = "CZK",
    ) -> tuple[str, bool]:
        logger.info("AdvisorLLM generate_advice start categories=%d", len(statuses))
        try:
            raw = self._llm.complete(self.build_prompt(income, statuses, currency)).strip()
        except LLMClientError:
            logger.info("AdvisorLLM unavailable; using fallback advice")
            return FALLBACK_ADVICE, False

        if not raw:
            logger.info("AdvisorLLM empty response; using fallback advice")
            return FALLBACK_ADVICE, False
        return raw, True
