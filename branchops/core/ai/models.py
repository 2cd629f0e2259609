"""AI request/response contracts and AI-specific exceptions."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel


class LLMResponse(BaseModel):
    content: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    task: str


class AIGatewayNotConfiguredError(Exception):
    def __init__(self, message: str = "OPENAI_API_KEY is not configured"):
        super().__init__(message)


class AIUpstreamError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class AIOutputValidationError(Exception):
    def __init__(self, *, raw_output: str, validation_error: str):
        self.raw_output = raw_output
        self.validation_error = validation_error
        super().__init__(f"AI output validation failed: {validation_error}")


class LLMClient(Protocol):
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
        ...


class AIGatewayRequest(BaseModel):
    task: str
    model: str = "gpt-4o-mini"
    system_prompt: str
    user_content: str
    json_mode: bool = False
    temperature: float = 0.3
