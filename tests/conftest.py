"""Shared test fixtures — MockLLMProvider and MockTransport, no network."""

from __future__ import annotations

from typing import Callable

import orjson
import pytest

from a2ahost.a2a.models import AgentCard, AgentSkill
from a2ahost.a2a.transport import BaseTransport, HttpRequest, HttpResponse
from a2ahost.config import HostSettings
from a2ahost.llm.base import BaseLLMProvider, LLMResponse, ToolCall


class MockLLMProvider(BaseLLMProvider):
    """LLM provider that returns canned responses. No API calls."""

    def __init__(self, responses: list[LLMResponse] | None = None):
        self._responses = responses or []
        self._call_count = 0
        self.calls: list[dict] = []  # record all calls for assertions

    async def complete(self, messages, system=None, tools=None, max_tokens=4096, tool_choice=None):
        self.calls.append({
            "messages": messages,
            "system": system,
            "tools": tools,
            "max_tokens": max_tokens,
            "tool_choice": tool_choice,
        })
        if self._call_count < len(self._responses):
            resp = self._responses[self._call_count]
            self._call_count += 1
            return resp
        return LLMResponse(
            content="Done.",
            stop_reason="end_turn",
            input_tokens=10,
            output_tokens=5,
        )


class MockTransport(BaseTransport):
    """Transport that answers every request through ``responder``."""

    def __init__(self, responder: Callable[[HttpRequest], HttpResponse] | None = None):
        self._responder = responder or (lambda r: HttpResponse(status_code=404, body="Not found"))
        self.batches: list[list[HttpRequest]] = []

    @property
    def requests(self) -> list[HttpRequest]:
        return [r for batch in self.batches for r in batch]

    async def fetch_all(self, requests):
        self.batches.append(list(requests))
        return [self._responder(r) for r in requests]


def text_reply(text: str) -> LLMResponse:
    return LLMResponse(content=text, stop_reason="end_turn")


def tool_reply(name: str, arguments: dict, call_id: str = "call_1") -> LLMResponse:
    return LLMResponse(
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
        stop_reason="tool_use",
    )


def plan_reply(*steps: tuple[str, str]) -> LLMResponse:
    return text_reply(orjson.dumps([{"name": n, "task": t} for n, t in steps]).decode())


def peer_answer(
    request: HttpRequest,
    parts: list[dict] | None = None,
    state: str = "completed",
    artifacts: list[dict] | None = None,
    **overrides,
) -> HttpResponse:
    """A ``tasks/send`` reply echoing the ids of ``request``.

    ``overrides`` replace top-level (``id``) or result (``result_id``,
    ``session_id``) fields to simulate a peer that answers the wrong call.
    """
    envelope = orjson.loads(request.payload)
    params = envelope["params"]
    result = {
        "id": overrides.get("result_id", params["id"]),
        "sessionId": overrides.get("session_id", params["sessionId"]),
        "status": {
            "state": state,
            "message": {"role": "agent", "parts": parts or []},
        },
        "artifacts": artifacts or [],
    }
    body = {"jsonrpc": "2.0", "id": overrides.get("id", envelope["id"]), "result": result}
    return HttpResponse(status_code=200, body=orjson.dumps(body).decode())


@pytest.fixture
def mock_llm():
    return MockLLMProvider()


@pytest.fixture
def mock_llm_with_responses():
    def _factory(responses: list[LLMResponse]) -> MockLLMProvider:
        return MockLLMProvider(responses=responses)
    return _factory


@pytest.fixture
def llm_replies():
    """Namespace of canned-response builders."""
    class _Replies:
        text = staticmethod(text_reply)
        tool = staticmethod(tool_reply)
        plan = staticmethod(plan_reply)
    return _Replies


@pytest.fixture
def answer_peer():
    return peer_answer


@pytest.fixture
def translator_card():
    return AgentCard(
        name="Translator",
        description="Translates text between languages.",
        url="https://translator.example.com/a2a",
        skills=[AgentSkill(
            id="translate", name="translate",
            description="Translate text", examples=["hello -> bonjour"],
        )],
    )


@pytest.fixture
def host_settings(tmp_path):
    return HostSettings(
        anthropic_api_key="test",
        audit_db_path=tmp_path / "a2a_log.db",
        blob_dir=tmp_path / "blobs",
        lock_timeout_seconds=1.0,
    )


@pytest.fixture
def make_transport():
    def _factory(responder=None) -> MockTransport:
        return MockTransport(responder)
    return _factory
