"""LLM gateway: configuration gate, JSON-mode validation with one retry, schema checks."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from branchops.core.ai.models import (
    AIGatewayNotConfiguredError,
    AIGatewayRequest,
    AIOutputValidationError,
    LLMClient,
    LLMResponse,
)
from branchops.core.ai.openai_client import OpenAIChatClient
from branchops.core.observability.metrics import AI_REQUESTS_TOTAL

log = logging.getLogger("branchops.ai")

JSON_RETRY_SUFFIX = "Return only valid JSON. Do not include markdown code fences."


def _strip_fences(content: str) -> str:
    text = (content or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


class AIGatewayService:
    def __init__(
        self,
        *,
        client: LLMClient | None = None,
        require_api_key: bool = True,
    ):
        self.client: LLMClient = client or OpenAIChatClient()
        self.require_api_key = bool(require_api_key)

    def _require_config(self) -> None:
        if not self.require_api_key:
            return
        api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
        if not api_key:
            raise AIGatewayNotConfiguredError()

    @staticmethod
    def _parse_json(content: str) -> Dict[str, Any]:
        try:
            data = json.loads(_strip_fences(content))
        except ValueError as exc:
            raise AIOutputValidationError(raw_output=content, validation_error=str(exc)) from exc
        if not isinstance(data, dict):
            raise AIOutputValidationError(raw_output=content, validation_error="expected a JSON object")
        return data

    def _call(self, req: AIGatewayRequest, user_content: str) -> tuple[str, int, int]:
        return self.client.complete(
            task=req.task,
            model=req.model,
            system_prompt=req.system_prompt,
            user_content=user_content,
            json_mode=req.json_mode,
            temperature=req.temperature,
        )

    def complete(self, req: AIGatewayRequest) -> LLMResponse:
        self._require_config()

        content, prompt_tokens, completion_tokens = self._call(req, req.user_content)
        total_prompt_tokens = int(prompt_tokens)
        total_completion_tokens = int(completion_tokens)

        if req.json_mode:
            try:
                self._parse_json(content)
            except AIOutputValidationError:
                log.info("llm json invalid, retrying task=%s", req.task)
                retry_content, retry_prompt_tokens, retry_completion_tokens = self._call(
                    req, f"{req.user_content}\n\n{JSON_RETRY_SUFFIX}"
                )
                total_prompt_tokens += int(retry_prompt_tokens)
                total_completion_tokens += int(retry_completion_tokens)
                try:
                    self._parse_json(retry_content)
                except AIOutputValidationError:
                    AI_REQUESTS_TOTAL.labels(task=req.task, outcome="invalid_output").inc()
                    raise
                content = retry_content

        AI_REQUESTS_TOTAL.labels(task=req.task, outcome="ok").inc()
        log.info(
            "llm complete task=%s model=%s prompt_tokens=%d completion_tokens=%d",
            req.task,
            req.model,
            total_prompt_tokens,
            total_completion_tokens,
        )
        return LLMResponse(
            content=content,
            model=req.model,
            prompt_tokens=total_prompt_tokens,
            completion_tokens=total_completion_tokens,
            task=req.task,
        )

    def complete_json(
        self,
        req: AIGatewayRequest,
        schema: Optional[Type[BaseModel]] = None,
    ) -> Dict[str, Any]:
        """JSON-mode completion parsed to a dict, optionally validated against a pydantic model."""
        if not req.json_mode:
            req = req.model_copy(update={"json_mode": True})
        out = self.complete(req)
        data = self._parse_json(out.content)
        if schema is None:
            return data
        try:
            return schema.model_validate(data).model_dump(by_alias=True)
        except PydanticValidationError as exc:
            AI_REQUESTS_TOTAL.labels(task=req.task, outcome="schema_mismatch").inc()
            raise AIOutputValidationError(raw_output=out.content, validation_error=str(exc)) from exc
