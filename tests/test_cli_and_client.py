from __future__ import annotations

import http.client
import io
import json
import tempfile
import unittest
import urllib.error
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

from domain.errors import ClassifierUnavailableError
from infrastructure.llm.llm_client import LLMClient, LLMClientError
from infrastructure.persistence.state_repository import InMemoryStateRepository
from interface.cli import build_service, main
from llm.transaction_parser import TransactionParserLLM


class _StubLLMClient:
    def __init__(self, *responses: str):
        self._responses = list(responses)
        self.attachments: list = []

    def complete(self, prompt: str, json_mode: bool = False, attachments=None) -> str:
        self.attachments.append(attachments)
        return self._responses.pop(0) if self._responses else ""


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class CliTests(unittest.TestCase):
    def _run(self, argv: list[str], *responses: str) -> tuple[str, _StubLLMClient]:
        llm = _StubLLMClient(*responses)
        service = build_service(repository=InMemoryStateRepository(), llm_client=llm)
        out = io.StringIO()
        with redirect_stdout(out):
            main(argv, service=service)
        return out.getvalue(), llm

    def test_text_argument_adds_transaction(self) -> None:
        output, _ = self._run(
            ["Dinner", "with", "family", "1200"],
            '{"amount": 1200, "currency": "CZK", "category": "WANTS", "description": "Dinner with family"}',
        )

        self.assertIn("Added Dinner with family: 1200 CZK -> WANTS", output)
        self.assertIn('"income_source": "nominal"', output)

    def test_unreadable_text_is_reported(self) -> None:
        output, _ = self._run(["???"], "nonsense")

        self.assertIn("Could not understand this transaction", output)

    def test_statement_import(self) -> None:
        statement = {
            "transactions": [
                {"date": "2026-03-01", "amount": 30000, "description": "Salary", "category": "INCOME", "type": "INCOME"},
            ]
        }
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "march.csv"
            path.write_text("2026-03-01;Salary;30000", encoding="utf-8")
            output, llm = self._run(["--import", str(path), "--month", "2026-03"], json.dumps(statement))

        self.assertIn("Imported 1 transactions from march.csv (dropped 0)", output)
        self.assertIn('"effective_income": 30000.0', output)
        self.assertEqual(llm.attachments, [None])


class LLMClientTests(unittest.TestCase):
    def test_payload_carries_json_format_and_images(self) -> None:
        client = LLMClient(base_url="http://llm.local/", model="test-model", timeout_seconds=5)
        captured = {}

        def fake_urlopen(req, timeout):
            captured["url"] = req.full_url
            captured["payload"] = json.loads(req.data.decode("utf-8"))
            return _FakeResponse(json.dumps({"response": '  {"ok": true}  '}).encode("utf-8"))

        with mock.patch("urllib.request.urlopen", side_effect=fake_urlopen):
            text = client.complete("hello", json_mode=True, attachments=["QUJD"])

        self.assertEqual(text, '{"ok": true}')
        self.assertEqual(captured["url"], "http://llm.local/api/generate")
        self.assertEqual(captured["payload"]["format"], "json")
        self.assertEqual(captured["payload"]["images"], ["QUJD"])
        self.assertEqual(captured["payload"]["model"], "test-model")

    def test_plain_request_has_no_format_or_images(self) -> None:
        client = LLMClient(base_url="http://llm.local", model="m", timeout_seconds=5)
        captured = {}

        def fake_urlopen(req, timeout):
            captured["payload"] = json.loads(req.data.decode("utf-8"))
            return _FakeResponse(json.dumps({"response": "tips"}).encode("utf-8"))

        with mock.patch("urllib.request.urlopen", side_effect=fake_urlopen):
            self.assertEqual(client.complete("advise me"), "tips")

        self.assertNotIn("format", captured["payload"])
        self.assertNotIn("images", captured["payload"])

    def test_transport_failure_raises(self) -> None:
        client = LLMClient(base_url="http://llm.local", model="m", timeout_seconds=5)

        with mock.patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            with self.assertRaises(LLMClientError):
                client.complete("hello")

    def test_connection_level_failures_raise_client_error(self) -> None:
        client = LLMClient(base_url="http://llm.local", model="m", timeout_seconds=5)
        errors = [
            ConnectionResetError("reset"),
            http.client.RemoteDisconnected("closed"),
            http.client.IncompleteRead(b""),
            TimeoutError("slow"),
        ]
        for error in errors:
            with self.subTest(error=type(error).__name__):
                with mock.patch("urllib.request.urlopen", side_effect=error):
                    with self.assertRaises(LLMClientError):
                        client.complete("hello")

    def test_undecodable_body_raises_client_error(self) -> None:
        client = LLMClient(base_url="http://llm.local", model="m", timeout_seconds=5)

        with mock.patch("urllib.request.urlopen", return_value=_FakeResponse(b"\xff\xfe\x00")):
            with self.assertRaises(LLMClientError):
                client.complete("hello")

    def test_connection_reset_reaches_callers_as_unavailable(self) -> None:
        client = LLMClient(base_url="http://llm.local", model="m", timeout_seconds=5)
        service = build_service(repository=InMemoryStateRepository(), llm_client=client)
        out = io.StringIO()

        with mock.patch("urllib.request.urlopen", side_effect=ConnectionResetError("reset")):
            with self.assertRaises(ClassifierUnavailableError):
                TransactionParserLLM(client).parse_text("coffee 50")
            with redirect_stdout(out):
                main(["coffee", "50"], service=service)

        self.assertIn("The classifier is not available right now", out.getvalue())


if __name__ == "__main__":
    unittest.main()
