"""Anthropic Claude as the planning and summarising oracle."""

from __future__ import annotations

from typing import Any

import anthropic

from a2ahost.llm.base import BaseLLMProvider, LLMMessage, LLMResponse, ToolCall

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicProvider(BaseLLMProvider):
    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[LLMMessage],
        system: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 4096,
        tool_choice: dict | None = None,
    ) -> LLMResponse:
        # Build API-compatible messages
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [m.model_dump() for m in messages],
        }
        if system:
            request["system"] = system
        # tool_choice without tools is rejected by the API
        if tools:
            request["tools"] = tools
            if tool_choice:
                request["tool_choice"] = tool_choice

        response = await self._client.messages.create(**request)
        return self._parse(response)

    @staticmethod
    def _parse(response: Any) -> LLMResponse:
        # Parse response
        texts: list[str] = []
        calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input))
            elif block.type == "text":
                texts.append(block.text)

        usage = response.usage
        return LLMResponse(
            content="".join(texts) or None,
            tool_calls=calls,
            stop_reason=response.stop_reason or "",
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
