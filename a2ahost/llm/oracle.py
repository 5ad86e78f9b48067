"""Oracle — one LLM turn with optional function calling, over an immutable history.

Each call takes the history so far and returns a new tuple; nothing is
mutated in place. When the model calls a capability the oracle runs it and
records both the call and its response in the returned history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import orjson

from a2ahost.capabilities.table import Capability, PendingRequest
from a2ahost.exceptions import CapabilityNotFoundError
from a2ahost.llm.base import BaseLLMProvider, History, LLMMessage, ToolCall

_logger = logging.getLogger(__name__)


def as_history(messages: Iterable[LLMMessage | dict[str, Any]] | None) -> History:
    """Coerce caller-supplied history into the immutable form."""
    return tuple(
        m if isinstance(m, LLMMessage) else LLMMessage.model_validate(m)
        for m in messages or ()
    )


def render_function_response(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, PendingRequest):
        return orjson.dumps(result.envelope).decode()
    return orjson.dumps(result, default=str).decode()


@dataclass(frozen=True)
class OracleTurn:
    """Outcome of one oracle call."""

    history: History
    text: str | None = None
    call: ToolCall | None = None
    function_response: Any = None
    error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def with_function_response(self, content: str) -> History:
        """History with the recorded function response swapped for ``content``."""
        if self.call is None or not self.history:
            return self.history
        replacement = LLMMessage(role="user", content=[{
            "type": "tool_result",
            "tool_use_id": self.call.id,
            "content": content,
        }])
        return self.history[:-1] + (replacement,)


class Oracle:
    """Stateless wrapper around a provider; history goes in and comes back out."""

    def __init__(self, llm: BaseLLMProvider, max_tokens: int = 4096) -> None:
        self._llm = llm
        self._max_tokens = max_tokens

    async def generate(
        self,
        prompt: str,
        history: History = (),
        system: str | None = None,
        capabilities: list[Capability] | None = None,
    ) -> OracleTurn:
        """Send ``prompt`` after ``history``; run the capability if one is called."""
        messages = history + (LLMMessage(role="user", content=prompt),)
        tools = [c.schema.to_tool() for c in capabilities or ()]

        response = await self._llm.complete(
            messages=list(messages),
            system=system,
            tools=tools or None,
            max_tokens=self._max_tokens,
            tool_choice={"type": "auto"} if tools else None,
        )
        raw = response.model_dump()

        if not response.tool_calls:
            text = response.content or ""
            return OracleTurn(
                history=messages + (LLMMessage(role="assistant", content=text),),
                text=text,
                raw=raw,
            )

        call = response.tool_calls[0]
        assistant_content: list[dict[str, Any]] = []
        if response.content:
            assistant_content.append({"type": "text", "text": response.content})
        assistant_content.append({
            "type": "tool_use",
            "id": call.id,
            "name": call.name,
            "input": call.arguments,
        })
        messages += (LLMMessage(role="assistant", content=assistant_content),)

        by_name = {c.name: c for c in capabilities or ()}
        result: Any = None
        error: str | None = None
        try:
            if call.name not in by_name:
                raise CapabilityNotFoundError(f"Capability '{call.name}' not offered")
            result = await by_name[call.name].invoke(call.arguments)
        except Exception as e:
            _logger.warning("Capability '%s' failed: %s", call.name, e)
            error = f"{type(e).__name__}: {e}"

        tool_result: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": call.id,
            "content": error or render_function_response(result),
        }
        if error:
            tool_result["is_error"] = True
        messages += (LLMMessage(role="user", content=[tool_result]),)

        return OracleTurn(
            history=messages,
            text=response.content,
            call=call,
            function_response=result,
            error=error,
            raw=raw,
        )
