from __future__ import annotations

import base64
import json
import unittest
from decimal import Decimal

from application.aggregation import budget_statuses
from domain.errors import ClassifierUnavailableError
from infrastructure.llm.llm_client import LLMClientError
from llm.advisor import FALLBACK_ADVICE, AdvisorLLM
from llm.transaction_parser import TransactionParserLLM, extract_json


class _StubLLMClient:
    def __init__(self, response: str = "", error: Exception | None = None):
        self._response = response
        self._error = error
        self.calls: list[dict] = []

    def complete(self, prompt: str, json_mode: bool = False, attachments=None) -> str:
        self.calls.append({"prompt": prompt, "json_mode": json_mode, "attachments": attachments})
        if self._error is not None:
            raise self._error
        return self._response


class ExtractJsonTests(unittest.TestCase):
    def test_plain_and_fenced_json(self) -> None:
        self.assertEqual(extract_json('{"amount": 5}'), {"amount": 5})
        self.assertEqual(extract_json('```json\n{"amount": 5}\n```'), {"amount": 5})
        self.assertEqual(extract_json("```\n[1, 2]\n```"), [1, 2])

    def test_non_json_is_none(self) -> None:
        self.assertIsNone(extract_json(""))
        self.assertIsNone(extract_json("I think this is groceries"))


class TransactionParserLLMTests(unittest.TestCase):
    def test_parse_text_requests_json_and_returns_payload(self) -> None:
        client = _StubLLMClient('{"amount": 1200, "category": "WANTS", "description": "Dinner"}')
        parser = TransactionParserLLM(client, default_currency="CZK")

        payload = parser.parse_text("Dinner with family 1200 CZK")

        self.assertEqual(payload["category"], "WANTS")
        self.assertTrue(client.calls[0]["json_mode"])
        prompt = json.loads(client.calls[0]["prompt"])
        self.assertEqual(prompt["text"], "Dinner with family 1200 CZK")
        self.assertIn("If no currency is mentioned assume CZK.", prompt["rules"])

    def test_unreadable_response_is_none(self) -> None:
        parser = TransactionParserLLM(_StubLLMClient("no idea"))

        self.assertIsNone(parser.parse_text("???"))

    def test_transport_failure_is_unavailable(self) -> None:
        parser = TransactionParserLLM(_StubLLMClient(error=LLMClientError("connection refused")))

        with self.assertRaises(ClassifierUnavailableError):
            parser.parse_text("coffee 80")
        with self.assertRaises(ClassifierUnavailableError):
            parser.parse_statement(b"%PDF-1.4")

    def test_binary_statement_sent_as_attachment(self) -> None:
        client = _StubLLMClient('{"transactions": []}')
        parser = TransactionParserLLM(client)

        payload = parser.parse_statement(b"%PDF-1.4 data", mime_type="application/pdf")

        self.assertEqual(payload, {"transactions": []})
        self.assertEqual(client.calls[0]["attachments"], [base64.b64encode(b"%PDF-1.4 data").decode("ascii")])
        self.assertNotIn("statement", json.loads(client.calls[0]["prompt"]))

    def test_text_statement_inlined_in_prompt(self) -> None:
        client = _StubLLMClient("[]")
        parser = TransactionParserLLM(client)

        parser.parse_statement("2026-01-03;Rent;-15000".encode("utf-8"), mime_type="text/csv")

        self.assertIsNone(client.calls[0]["attachments"])
        self.assertEqual(json.loads(client.calls[0]["prompt"])["statement"], "2026-01-03;Rent;-15000")


class AdvisorLLMTests(unittest.TestCase):
    def _statuses(self):
        return budget_statuses([], Decimal("50000"))

    def test_returns_model_text(self) -> None:
        client = _StubLLMClient("1. Cut dining out\n2. Automate savings\n3. Give monthly")
        advisor = AdvisorLLM(client)

        text, generated = advisor.generate_advice(Decimal("50000"), self._statuses())

        self.assertTrue(generated)
        self.assertTrue(text.startswith("1. Cut dining out"))
        prompt = json.loads(client.calls[0]["prompt"])
        self.assertEqual(prompt["monthly_income"], 50000.0)
        self.assertEqual([s["target_percentage"] for s in prompt["spending"]], [40, 30, 20, 10])

    def test_falls_back_when_unavailable_or_empty(self) -> None:
        for client in (_StubLLMClient(error=LLMClientError("timeout")), _StubLLMClient("   ")):
            with self.subTest(client=client):
                text, generated = AdvisorLLM(client).generate_advice(Decimal("50000"), self._statuses())
                self.assertEqual(text, FALLBACK_ADVICE)
                self.assertFalse(generated)


if __name__ == "__main__":
    unittest.main()
