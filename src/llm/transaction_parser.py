from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any

from domain.errors import ClassifierUnavailableError
from domain.models import BUDGET_RULES, Category
from domain.schemas import ParsedTransaction, StatementAccount
from infrastructure.llm.llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TEXT_MIME_PREFIXES = ("text/", "application/csv", "application/json")


def _category_guide() -> list[str]:
    return [
        f"{rule.category.value}: {rule.label} - {rule.description}"
        for rule in BUDGET_RULES.values()
    ]


def extract_json(raw: str) -> Any:
    """Parse a model response that may be wrapped in markdown fences."""
    text = _FENCE_RE.sub("", raw.strip()).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class TransactionParserLLM:
    """Builds classification prompts and returns the model's raw JSON payloads."""

    def __init__(self, llm_client: LLMClient, default_currency: str = "CZK"):
        self._llm = llm_client
        self._default_currency = default_currency

    def build_text_prompt(self, text: str) -> str:
        prompt_payload = {
            "task": "Extract one transaction from the user's text and classify it under the 40/30/20/10 rule.",
            "text": text,
            "categories": _category_guide(),
            "output_contract": ParsedTransaction.model_json_schema(),
            "rules": [
                "Return JSON only.",
                "amount is always a positive number.",
                f"If no currency is mentioned assume {self._default_currency}.",
                "category is one of NEEDS, WANTS, SAVINGS, GIVING for spending.",
                "Keep description short.",
            ],
        }
        return json.dumps(prompt_payload, indent=2, default=str)

    def build_statement_prompt(self, statement_text: str | None = None) -> str:
        prompt_payload: dict[str, Any] = {
            "task": "Extract every transaction and the account summary from this bank statement.",
            "categories": _category_guide(),
            "output_contract": {
                "account": StatementAccount.model_json_schema(by_alias=True),
                "transactions": [
                    {
                        "date": "YYYY-MM-DD",
                        "amount": "number >= 0",
                        "currency": "string",
                        "description": "string",
                        "category": [c.value for c in Category],
                        "type": ["EXPENSE", "INCOME", "TRANSFER"],
                    }
                ],
            },
            "rules": [
                "Return JSON only.",
                "amount is always a positive number; direction goes in type.",
                "Moves between the holder's own accounts and credit card repayments are TRANSFER.",
                "Salary, dividends and deposits from others are INCOME.",
                "balance is the closing balance of the statement, or null if unknown.",
                "accountType is CURRENT or SAVINGS.",
            ],
        }
        if statement_text is not None:
            prompt_payload["statement"] = statement_text
        return json.dumps(prompt_payload, indent=2, default=str)

    def parse_text(self, text: str) -> Any:
        logger.info("TransactionParserLLM parse_text start chars=%d", len(text))
        raw = self._complete(self.build_text_prompt(text))
        parsed = extract_json(raw)
        if parsed is None:
            logger.info("TransactionParserLLM empty or invalid JSON for text entry")
        return parsed

    def parse_statement(self, content: bytes, mime_type: str = "application/pdf") -> Any:
        logger.info("TransactionParserLLM parse_statement start bytes=%d mime_type=%s", len(content), mime_type)
        if mime_type.startswith(_TEXT_MIME_PREFIXES):
            prompt = self.build_statement_prompt(content.decode("utf-8", errors="replace"))
            raw = self._complete(prompt)
        else:
            encoded = base64.b64encode(content).decode("ascii")
            raw = self._complete(self.build_statement_prompt(), attachments=[encoded])
        parsed = extract_json(raw)
        if parsed is None:
            logger.info("TransactionParserLLM empty or invalid JSON for statement")
        return parsed

    def _complete(self, prompt: str, attachments: list[str] | None = None) -> str:
        try:
            return self._llm.complete(prompt, json_mode=True, attachments=attachments)
        except LLMClientError as exc:
            raise ClassifierUnavailableError("Transaction classifier is unavailable") from exc
