"""Abstract base for LLM providers (the oracle behind planning and summaries)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field


class LLMMessage(BaseModel):
    role: str  # "user", "assistant"
    content: str | list[dict[str, Any]]

    model_config = {"frozen": True}


History = tuple[LLMMessage, ...]


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any]


class LLMResponse(BaseModel):
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    stop_reason: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


class BaseLLMProvider(ABC):
    """The oracle: plans delegations with tools, then writes the final answer."""

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        system: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 4096,
        tool_choice: dict | None = None,
    ) -> LLMResponse:
        """One completion. ``tool_choice`` is only honoured when ``tools`` are given."""
