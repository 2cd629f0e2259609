from __future__ import annotations

import logging
import os
from typing import Any, Dict

import requests

from branchops.core.ai.models import AIGatewayNotConfiguredError, AIUpstreamError

log = logging.getLogger("branchops.ai")

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 60


class OpenAIChatClient:
    """Chat Completions over plain HTTP. Reads OPENAI_API_KEY and BRANCHOPS_LLM_BASE_URL."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.api_key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        self.base_url = (base_url or os.getenv("BRANCHOPS_LLM_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(
        self,
        *,
        task: str,
        model: str,
        system_prompt: str,
        user_content: str,
        json_mode: bool,
        temperature: float,
    ) -> tuple[str, int, int]:
        if not self.api_key:
            raise AIGatewayNotConfiguredError()

        body: Dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        try:
            resp = self.session.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AIUpstreamError(f"LLM request failed: {exc}") from exc

        if resp.status_code >= 400:
            log.warning("llm upstream error task=%s status=%s", task, resp.status_code)
            raise AIUpstreamError(f"LLM request failed with status {resp.status_code}", status_code=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise AIUpstreamError("LLM response was not valid JSON", status_code=resp.status_code) from exc
        choices = payload.get("choices") or []
        if not choices:
            raise AIUpstreamError("LLM response contained no choices")
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = payload.get("usage") or {}
        return content, int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)
