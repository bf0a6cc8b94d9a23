from __future__ import annotations

import http.client
import json
import logging
import os
import time
import urllib.request
from typing import Sequence

logger = logging.getLogger(__name__)


class LLMClientError(RuntimeError):
    pass


class LLMClient:
    """Minimal client for an Ollama-compatible /api/generate endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")).rstrip("/")
        self.model = model or os.getenv("OLLAMA_MODEL", "llama3.1:8b")
        self.timeout_seconds = timeout_seconds or float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "60"))

    def complete(
        self,
        prompt: str,
        json_mode: bool = False,
        attachments: Sequence[str] | None = None,
    ) -> str:
        """
        Send one prompt and return the response text.

        `attachments` are base64-encoded payloads forwarded in the `images`
        field. Transport failures raise LLMClientError; an empty completion is
        returned as "".
        """
        started = time.perf_counter()
        payload: dict = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": float(os.getenv("OLLAMA_TEMPERATURE", "0.1")),
            },
        }
        if json_mode:
            payload["format"] = "json"
        if attachments:
            payload["images"] = list(attachments)

        req = urllib.request.Request(
            url=f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            logger.info(
                "LLMClient request start model=%s base_url=%s prompt_chars=%d attachments=%d timeout=%.1fs",
                self.model,
                self.base_url,
                len(prompt),
                len(attachments or []),
                self.timeout_seconds,
            )
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                body = json.loads(resp.read().decode("utf-8"))
        except (OSError, http.client.HTTPException, ValueError) as exc:
            elapsed = time.perf_counter() - started
            logger.warning("LLMClient request failed after %.2fs: %s", elapsed, exc)
            raise LLMClientError(f"LLM request to {self.base_url} failed: {exc}") from exc

        response_text = body.get("response", "") if isinstance(body, dict) else ""
        elapsed = time.perf_counter() - started
        logger.info("LLMClient request complete in %.2fs response_chars=%d", elapsed, len(str(response_text)))
        return response_text.strip() if isinstance(response_text, str) else ""
