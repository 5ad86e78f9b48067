"""Tests for the protocol dispatcher: card serving, access key, methods."""

import base64

import orjson
import pytest

from a2ahost.a2a.dispatcher import ProtocolDispatcher, error_envelope, parse_body
from a2ahost.a2a.models import AgentCard, AgentSkill, InboundEvent, file_part, text_part
from a2ahost.audit import AuditBuffer, Direction
from a2ahost.capabilities.schema import CapabilitySchema
from a2ahost.capabilities.table import FALLBACK_NAME, Capability
from a2ahost.exceptions import (
    ConfigurationError,
    ErrorCode,
    InvalidPayloadError,
    InvalidRequestError,
)
from a2ahost.orchestrator import Orchestrator


def _host_card():
    return AgentCard(
        name="Host",
        description="Delegating host.",
        url="https://host.example.com/a2a",
        skills=[AgentSkill(id="delegate", name="delegate")],
    )


def _rpc(method, params=None, id=1):
    return {"jsonrpc": "2.0", "id": id, "method": method, "params": params}


def _send_params(text="hi", **extra):
    return {"message": {"role": "user", "parts": [text_part(text)]}, **extra}


def _fallback_replies(llm_replies, *finals):
    return [
        llm_replies.plan((FALLBACK_NAME, "greet")),
        llm_replies.tool(FALLBACK_NAME, {"task": "greet", "response": "Hello!"}),
        llm_replies.text("Hello there!"),
        *(llm_replies.text(f) for f in finals),
    ]


@pytest.fixture
def build_dispatcher(make_transport):
    def _factory(llm, transport=None, access_key=None):
        orchestrator = Orchestrator(llm, transport or make_transport())
        return ProtocolDispatcher(orchestrator, access_key=access_key)
    return _factory


class TestParseBody:
    def test_empty_body(self):
        assert parse_body(InboundEvent()) == {}

    def test_invalid_json(self):
        with pytest.raises(InvalidPayloadError):
            parse_body(InboundEvent(contents="{nope"))

    def test_not_an_object(self):
        with pytest.raises(InvalidRequestError):
            parse_body(InboundEvent(contents="[1, 2]"))


class TestErrorEnvelope:
    def test_label_and_detail(self):
        wire = error_envelope(9, ConfigurationError("Agent card was not found.")).to_wire()
        assert wire["id"] == 9
        assert wire["error"]["code"] == ErrorCode.RESOURCE_UNAVAILABLE
        assert wire["error"]["message"] == (
            "A required resource is unavailable. Agent card was not found."
        )


class TestAgentCardPaths:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", [
        "/.well-known/agent.json", ".well-known/agent-card.json", "/.well-known/agent-card.json/",
    ])
    async def test_serves_merged_card(self, mock_llm, build_dispatcher, translator_card, path):
        dispatcher = build_dispatcher(mock_llm)
        card = await dispatcher.dispatch(
            InboundEvent(path_info=path), {},
            agent_card=_host_card, agent_cards=[translator_card],
        )
        assert card["name"] == "Host"
        assert card["description"] == "Delegating host.\nTranslates text between languages."
        assert [s["id"] for s in card["skills"]] == ["delegate", "translate"]
        assert mock_llm.calls == []

    @pytest.mark.asyncio
    async def test_card_from_dict_provider(self, mock_llm, build_dispatcher):
        dispatcher = build_dispatcher(mock_llm)
        card = await dispatcher.dispatch(
            InboundEvent(path_info=".well-known/agent.json"), {},
            agent_card=lambda: {"name": "Plain Host", "url": "https://h"},
        )
        assert card["name"] == "Plain_Host"

    @pytest.mark.asyncio
    async def test_missing_card_provider(self, mock_llm, build_dispatcher):
        dispatcher = build_dispatcher(mock_llm)
        with pytest.raises(ConfigurationError):
            await dispatcher.dispatch(InboundEvent(path_info=".well-known/agent.json"), {})


class TestAccessKey:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("parameter", [{"accessKey": "K2"}, {}])
    async def test_rejects_wrong_or_missing_key(self, mock_llm, build_dispatcher, parameter):
        dispatcher = build_dispatcher(mock_llm, access_key="K1")
        audit = AuditBuffer()
        reply = await dispatcher.dispatch(
            InboundEvent(parameter=parameter), _rpc("message/send", _send_params(), id="req-7"),
            functions=lambda: [], audit=audit,
        )
        assert reply == {
            "jsonrpc": "2.0",
            "id": "req-7",
            "error": {"code": -32008, "message": "Authorization failed. Invalid access key."},
        }
        assert mock_llm.calls == []
        assert [r.direction for r in audit.records] == [
            Direction.CLIENT_TO_SERVER, Direction.AT_SERVER, Direction.SERVER_TO_CLIENT,
        ]

    @pytest.mark.asyncio
    async def test_accepts_matching_key(self, mock_llm_with_responses, llm_replies, build_dispatcher):
        llm = mock_llm_with_responses(_fallback_replies(llm_replies, "Final"))
        dispatcher = build_dispatcher(llm, access_key="K1")
        reply = await dispatcher.dispatch(
            InboundEvent(parameter={"accessKey": "K1"}), _rpc("message/send", _send_params()),
            functions=lambda: [],
        )
        assert "result" in reply


class TestNotHandled:
    @pytest.mark.asyncio
    async def test_no_method(self, mock_llm, build_dispatcher):
        assert await build_dispatcher(mock_llm).dispatch(InboundEvent(), {"id": 1}) is None

    @pytest.mark.asyncio
    async def test_unknown_method(self, mock_llm, build_dispatcher):
        reply = await build_dispatcher(mock_llm).dispatch(
            InboundEvent(), _rpc("tasks/get", {"id": "t"}), functions=lambda: [],
        )
        assert reply is None

    @pytest.mark.asyncio
    async def test_no_functions_getter(self, mock_llm, build_dispatcher):
        reply = await build_dispatcher(mock_llm).dispatch(
            InboundEvent(), _rpc("message/send", _send_params()),
        )
        assert reply is None


class TestMethods:
    @pytest.mark.asyncio
    async def test_message_send(self, mock_llm_with_responses, llm_replies, build_dispatcher):
        llm = mock_llm_with_responses(_fallback_replies(llm_replies, "Final answer"))
        reply = await build_dispatcher(llm).dispatch(
            InboundEvent(),
            _rpc("Message/Send", _send_params("hello", messageId="m-1"), id=3),
            functions=lambda: [],
        )
        assert reply["id"] == 3
        assert reply["result"] == {
            "kind": "message",
            "messageId": "m-1",
            "parts": [{"type": "text", "kind": "text", "text": "Final answer"}],
            "role": "agent",
        }
        assert "<Question>hello</Question>" in llm.calls[-1]["messages"][-1].content

    @pytest.mark.asyncio
    async def test_tasks_send(self, mock_llm_with_responses, llm_replies, build_dispatcher):
        llm = mock_llm_with_responses(_fallback_replies(llm_replies, "Final answer"))
        reply = await build_dispatcher(llm).dispatch(
            InboundEvent(),
            _rpc("tasks/send", _send_params(id="task-1", sessionId="sess-1")),
            functions=lambda: [],
        )
        result = reply["result"]
        assert result["kind"] == "task"
        assert result["id"] == "task-1"
        assert result["sessionId"] == "sess-1"
        assert result["status"]["state"] == "completed"
        assert result["status"]["message"]["parts"][0]["text"] == "Final answer"
        assert result["artifacts"] == [{
            "name": "Answer", "index": 0,
            "parts": [{"type": "text", "kind": "text", "text": "Final answer"}],
        }]

    @pytest.mark.asyncio
    async def test_file_output_becomes_placeholder(
        self, mock_llm_with_responses, llm_replies, build_dispatcher, make_transport,
        answer_peer, translator_card,
    ):
        llm = mock_llm_with_responses([
            llm_replies.plan(("Translator", "draw")),
            llm_replies.tool("Translator", {"task": "draw"}),
        ])
        data = base64.b64encode(b"PNG").decode()
        transport = make_transport(lambda r: answer_peer(
            r, parts=[file_part("cat.png", "image/png", data)],
        ))
        reply = await build_dispatcher(llm, transport).dispatch(
            InboundEvent(), _rpc("tasks/send", _send_params("draw a cat", id="t", sessionId="s")),
            functions=lambda: [], agent_cards=[translator_card],
        )
        result = reply["result"]
        assert result["status"]["message"]["parts"] == [
            text_part('The data "cat.png" was downloaded.'),
        ]
        [artifact] = result["artifacts"]
        assert artifact["parts"][0]["file"] == {"name": "cat.png", "mimeType": "image/png", "bytes": data}

    @pytest.mark.asyncio
    async def test_caller_functions_are_offered(self, mock_llm_with_responses, llm_replies,
                                                build_dispatcher):
        llm = mock_llm_with_responses([llm_replies.text("[]")])
        clock = Capability.local(
            CapabilitySchema(name="clock", description="Tells the time"), lambda: "noon",
        )
        await build_dispatcher(llm).dispatch(
            InboundEvent(), _rpc("message/send", _send_params()), functions=lambda: [clock],
        )
        assert 'Name: "clock"' in llm.calls[0]["system"]

    @pytest.mark.asyncio
    async def test_planning_failure(self, mock_llm_with_responses, llm_replies, build_dispatcher):
        llm = mock_llm_with_responses([llm_replies.text("I cannot plan this")])
        reply = await build_dispatcher(llm).dispatch(
            InboundEvent(), _rpc("message/send", _send_params(), id=5), functions=lambda: [],
        )
        assert reply["id"] == 5
        assert reply["error"]["code"] == -32603
        assert reply["error"]["message"].endswith("Try again.")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [None, "text", {"message": {"parts": []}}, {"message": {
        "parts": [file_part("a", "b", "c")],
    }}])
    async def test_invalid_params(self, mock_llm, build_dispatcher, params):
        reply = await build_dispatcher(mock_llm).dispatch(
            InboundEvent(), _rpc("message/send", params), functions=lambda: [],
        )
        assert reply["error"]["code"] == -32602
        assert mock_llm.calls == []

    @pytest.mark.asyncio
    async def test_other_jsonrpc_version_is_rejected(self, mock_llm, build_dispatcher):
        body = {**_rpc("message/send", _send_params()), "jsonrpc": "1.0"}
        with pytest.raises(InvalidRequestError, match="jsonrpc"):
            await build_dispatcher(mock_llm).dispatch(InboundEvent(), body, functions=lambda: [])
        assert mock_llm.calls == []

    @pytest.mark.asyncio
    async def test_audit_trail(self, mock_llm_with_responses, llm_replies, build_dispatcher):
        llm = mock_llm_with_responses(_fallback_replies(llm_replies, "Final"))
        audit = AuditBuffer()
        body = _rpc("message/send", _send_params(), id=11)
        await build_dispatcher(llm).dispatch(InboundEvent(), body, functions=lambda: [], audit=audit)

        first, last = audit.records[0], audit.records[-1]
        assert first.direction == Direction.CLIENT_TO_SERVER
        assert first.method == "message/send"
        assert orjson.loads(first.payload) == body
        assert last.direction == Direction.SERVER_TO_CLIENT
        assert last.correlation_id == 11
