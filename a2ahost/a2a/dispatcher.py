"""Protocol Dispatcher — routes one inbound A2A request.

Serves the Agent Card on the two well-known paths and handles the
``message/send`` and ``tasks/send`` JSON-RPC methods. Anything else yields
``None`` ("not handled"); the caller decides what to send back.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable

import orjson
from pydantic import ValidationError

from a2ahost.a2a.models import (
    WELL_KNOWN_PATHS,
    A2AArtifact,
    A2AMessage,
    AgentCard,
    InboundEvent,
    JsonRpcRequest,
    JsonRpcResponse,
    MessageResult,
    PartType,
    TaskRecord,
    TaskState,
    TaskStatus,
    file_part,
    merge_agent_cards,
    part_type,
    text_part,
)
from a2ahost.audit import AuditBuffer, Direction
from a2ahost.capabilities.table import Capability
from a2ahost.exceptions import (
    A2AHostError,
    AuthorizationFailedError,
    ConfigurationError,
    InvalidParamsError,
    InvalidPayloadError,
    InvalidRequestError,
    PlanningFailedError,
)
from a2ahost.orchestrator import Orchestrator
from a2ahost.storage import Blob

_logger = logging.getLogger(__name__)

CardProvider = Callable[[], AgentCard | dict[str, Any]]
FunctionsGetter = Callable[[], Iterable[Capability]]
Handler = Callable[..., Awaitable[Any]]


def parse_body(event: InboundEvent) -> dict[str, Any]:
    """Decode the request body. An empty body is an empty object."""
    if not event.contents:
        return {}
    try:
        body = orjson.loads(event.contents)
    except orjson.JSONDecodeError as e:
        raise InvalidPayloadError(str(e)) from e
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def error_envelope(id: Any, error: A2AHostError, detail: str | None = None) -> JsonRpcResponse:
    message = error.label
    detail = detail if detail is not None else str(error)
    if detail:
        message = f"{message}. {detail}"
    return JsonRpcResponse.err(id, int(error.code), message)


class ProtocolDispatcher:
    """Validates, authenticates and routes one inbound envelope."""

    def __init__(self, orchestrator: Orchestrator, access_key: str | None = None) -> None:
        self._orchestrator = orchestrator
        self._access_key = access_key
        self._handlers: dict[str, Handler] = {
            "message/send": self._handle_message_send,
            "tasks/send": self._handle_tasks_send,
        }

    async def dispatch(
        self,
        event: InboundEvent,
        body: dict[str, Any],
        agent_card: CardProvider | None = None,
        functions: FunctionsGetter | None = None,
        agent_cards: list[AgentCard] | None = None,
        audit: AuditBuffer | None = None,
    ) -> dict[str, Any] | None:
        """Return the wire response, or ``None`` when the request is not handled."""
        audit = audit if audit is not None else AuditBuffer()
        cards = agent_cards or []
        id = body.get("id")

        if event.normalized_path in WELL_KNOWN_PATHS:
            card = self.build_agent_card(agent_card, cards).to_wire()
            audit.record(Direction.SERVER_TO_CLIENT, card, correlation_id=id)
            return card

        if not isinstance(body.get("method"), str):
            return None
        method = body["method"].lower()
        audit.record(Direction.CLIENT_TO_SERVER, body, method=method, correlation_id=id)
        request = self._envelope(body)

        if self._access_key and event.parameter.get("accessKey") != self._access_key:
            _logger.warning("Rejected %s: invalid access key", method)
            audit.record(Direction.AT_SERVER, "Invalid accessKey.", method=method, correlation_id=id)
            response = error_envelope(id, AuthorizationFailedError(), "Invalid access key.")
            return self._reply(response, method, audit)

        handler = self._handlers.get(method)
        if handler is None or functions is None:
            return None

        params = request.params
        try:
            if not isinstance(params, dict):
                raise InvalidParamsError("params must be an object")
            result = await handler(params, functions(), cards, audit)
            response = JsonRpcResponse.success(id, result)
        except PlanningFailedError as e:
            _logger.warning("Planning failed for %s: %s", method, e)
            response = error_envelope(id, e, "Try again.")
        except InvalidParamsError as e:
            response = error_envelope(id, e)
        return self._reply(response, method, audit)

    def build_agent_card(
        self, provider: CardProvider | None, peers: list[AgentCard],
    ) -> AgentCard:
        """The host's card with every attached peer folded in."""
        if provider is None or not callable(provider):
            raise ConfigurationError("Agent card was not found.")
        base = provider()
        if not isinstance(base, AgentCard):
            base = AgentCard.model_validate(base)
        return merge_agent_cards(base, peers)

    @staticmethod
    def _envelope(body: dict[str, Any]) -> JsonRpcRequest:
        try:
            return JsonRpcRequest.model_validate(body)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(p) for p in error["loc"])
            raise InvalidRequestError(f"{field}: {error['msg']}") from e

    @staticmethod
    def _reply(response: JsonRpcResponse, method: str, audit: AuditBuffer) -> dict[str, Any]:
        wire = response.to_wire()
        audit.record(Direction.SERVER_TO_CLIENT, wire, method=method, correlation_id=response.id)
        return wire

    # ── Methods ──────────────────────────────────────────────

    async def _handle_message_send(
        self,
        params: dict[str, Any],
        functions: Iterable[Capability],
        cards: list[AgentCard],
        audit: AuditBuffer,
    ) -> dict[str, Any]:
        message = self._message(params)
        parts, _ = await self._answer(message, functions, cards, audit)
        message_id = params.get("messageId") or (params.get("message") or {}).get("messageId")
        result = MessageResult(parts=parts)
        if message_id:
            result.message_id = message_id
        return result.model_dump(by_alias=True)

    async def _handle_tasks_send(
        self,
        params: dict[str, Any],
        functions: Iterable[Capability],
        cards: list[AgentCard],
        audit: AuditBuffer,
    ) -> dict[str, Any]:
        message = self._message(params)
        parts, artifacts = await self._answer(message, functions, cards, audit)
        record = TaskRecord(
            id=params.get("id"),
            session_id=params.get("sessionId"),
            status=TaskStatus(
                state=TaskState.COMPLETED,
                message=A2AMessage(role="agent", parts=parts),
            ),
            artifacts=artifacts,
        )
        return record.model_dump(by_alias=True, mode="json")

    @staticmethod
    def _message(params: dict[str, Any]) -> A2AMessage:
        raw = params.get("message")
        if not isinstance(raw, dict) or not isinstance(raw.get("parts"), list):
            raise InvalidParamsError("params.message.parts is required")
        message = A2AMessage(role=raw.get("role", "user"), parts=[
            p for p in raw["parts"] if isinstance(p, dict)
        ])
        if message.first_text() is None:
            raise InvalidParamsError("params.message needs a text part")
        return message

    async def _answer(
        self,
        message: A2AMessage,
        functions: Iterable[Capability],
        cards: list[AgentCard],
        audit: AuditBuffer,
    ) -> tuple[list[dict[str, Any]], list[A2AArtifact]]:
        """Run the orchestrator and turn its outputs into reply parts + artifacts.

        Each text output is summarized on its own against the question.
        """
        prompt = message.first_text() or ""
        outcome = await self._orchestrator.run(
            prompt,
            agent_cards=cards,
            functions=functions,
            file_as_blob=True,
            audit=audit,
        )

        parts: list[dict[str, Any]] = []
        artifacts: list[A2AArtifact] = []
        for index, output in enumerate(outcome.result):
            if isinstance(output, str):
                turn = await self._orchestrator.summarize(prompt, [output], outcome.history)
                part = text_part(turn.text or "")
                parts.append(part)
                artifacts.append(A2AArtifact(index=index, parts=[part]))
                continue

            if isinstance(output, Blob):
                output = file_part(output.name, output.mime_type, output.to_base64())

            kind = part_type(output)
            if kind in (PartType.FILE.value, PartType.DATA.value):
                payload = output.get(kind)
                name = payload.get("name", "") if isinstance(payload, dict) else ""
                parts.append(text_part(f'The data "{name}" was downloaded.'))
            else:
                parts.append(output)
            artifacts.append(A2AArtifact(index=index, parts=[output]))
        return parts, artifacts
