"""A2AHost — the two entry points: ``server()`` and ``client()``.

Both run under the Session Guard and never raise: the server always answers
with a JSON-RPC envelope (or ``None`` when the request is not for it) and the
client returns either an ``OrchestrationResult`` or a ``JsonRpcError``.

Usage:
    host = A2AHost()
    reply = await host.server(
        InboundEvent(path_info="", parameter={}, contents=raw_body),
        agent_card=my_card,
        functions=lambda: [my_capability],
        agent_card_urls=["https://peer.example.com/a2a"],
    )
    answer = await host.client("translate 'hello' to French",
                               agent_card_urls=["https://peer.example.com/a2a"])
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from a2ahost.a2a.dispatcher import (
    CardProvider,
    FunctionsGetter,
    ProtocolDispatcher,
    error_envelope,
    parse_body,
)
from a2ahost.a2a.models import AgentCard, InboundEvent, JsonRpcError
from a2ahost.a2a.registry import CardRegistry
from a2ahost.a2a.transport import BaseTransport, HttpxTransport
from a2ahost.audit import AuditBuffer, AuditSink, Direction, SqliteAuditSink
from a2ahost.capabilities.table import Capability
from a2ahost.config import HostSettings, settings as default_settings
from a2ahost.exceptions import (
    A2AHostError,
    ErrorCode,
    InternalError,
    PlanningFailedError,
    SessionTimeoutError,
)
from a2ahost.guard import BaseLock, SessionGuard
from a2ahost.llm.anthropic import AnthropicProvider
from a2ahost.llm.base import BaseLLMProvider, LLMMessage
from a2ahost.orchestrator import OrchestrationResult, Orchestrator
from a2ahost.storage import BlobStore, LocalBlobStore

_logger = logging.getLogger(__name__)


class A2AHost:
    """Wires the collaborators together and exposes the entry points."""

    def __init__(
        self,
        llm: BaseLLMProvider | None = None,
        *,
        transport: BaseTransport | None = None,
        settings: HostSettings | None = None,
        lock: BaseLock | None = None,
        audit_sink: AuditSink | None = None,
        blob_store: BlobStore | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._settings = settings or default_settings
        cfg = self._settings

        if llm is None:
            llm = AnthropicProvider(api_key=cfg.anthropic_api_key, model=cfg.model)
        transport = transport or HttpxTransport(timeout=cfg.http_timeout_seconds)
        if audit_sink is None and cfg.enable_logging:
            audit_sink = SqliteAuditSink(str(cfg.audit_db_path))

        self._orchestrator = Orchestrator(
            llm,
            transport,
            blob_store=blob_store or LocalBlobStore(cfg.blob_dir),
            fetch_limit=cfg.fetch_limit,
            headers=headers,
            timezone=cfg.timezone,
        )
        self._dispatcher = ProtocolDispatcher(self._orchestrator, access_key=cfg.access_key)
        self._registry = CardRegistry(transport, headers=headers, limit=cfg.fetch_limit)
        self._guard = SessionGuard(
            lock,
            timeout=cfg.lock_timeout_seconds,
            sink=audit_sink,
            enable_logging=cfg.enable_logging,
            max_chars=cfg.audit_max_chars,
        )

    async def server(
        self,
        event: InboundEvent | dict[str, Any],
        *,
        agent_card: CardProvider | None = None,
        functions: FunctionsGetter | None = None,
        agent_cards: list[AgentCard] | None = None,
        agent_card_urls: list[str] | None = None,
    ) -> dict[str, Any] | None:
        """Answer one inbound request. ``None`` means "not handled"."""
        if not isinstance(event, InboundEvent):
            event = InboundEvent.model_validate(event)
        id: Any = None

        try:
            async with self._guard.session() as audit:
                try:
                    body = parse_body(event)
                    id = body.get("id")
                    cards = list(agent_cards or [])
                    if not cards and agent_card_urls:
                        cards = await self._registry.resolve(agent_card_urls)
                    return await self._dispatcher.dispatch(
                        event, body,
                        agent_card=agent_card,
                        functions=functions,
                        agent_cards=cards,
                        audit=audit,
                    )
                except A2AHostError as e:
                    _logger.warning("Request failed: %s", e)
                    response = error_envelope(id, e)
                except Exception as e:
                    _logger.exception("Unexpected error while serving request")
                    response = error_envelope(id, InternalError(), f"Error message: {e}")
                wire = response.to_wire()
                audit.record(Direction.SERVER_TO_CLIENT, wire, correlation_id=id)
                return wire
        except SessionTimeoutError as e:
            wire = error_envelope(id, e, "Error message: Timeout.").to_wire()
            await self._record_outside_session(Direction.SERVER_TO_CLIENT, wire, id)
            return wire

    async def client(
        self,
        prompt: str,
        *,
        agent_card_urls: list[str] | None = None,
        agent_cards: list[AgentCard] | None = None,
        functions: Iterable[Capability] | None = None,
        history: Iterable[LLMMessage | dict[str, Any]] | None = None,
        file_as_blob: bool = False,
    ) -> OrchestrationResult | JsonRpcError:
        """Plan and run ``prompt`` locally against peers and functions."""
        try:
            async with self._guard.session() as audit:
                try:
                    cards = list(agent_cards or [])
                    if not cards and agent_card_urls:
                        cards = await self._registry.resolve(agent_card_urls)
                    return await self._orchestrator.run(
                        prompt,
                        agent_cards=cards,
                        functions=functions,
                        history=history,
                        file_as_blob=file_as_blob,
                        audit=audit,
                    )
                except PlanningFailedError as e:
                    _logger.warning("Planning failed: %s", e)
                    error = JsonRpcError(code=int(e.code), message=f"{e.label}. Try again.")
                except Exception as e:
                    _logger.exception("Unexpected error in client call")
                    error = JsonRpcError(
                        code=int(ErrorCode.INTERNAL_ERROR),
                        message=f"{InternalError.label}. Error message: {e}",
                    )
                audit.record(Direction.CLIENT_SIDE, error.model_dump())
                return error
        except SessionTimeoutError as e:
            error = JsonRpcError(code=int(e.code), message=f"{e.label}. Error message: Timeout.")
            await self._record_outside_session(Direction.CLIENT_SIDE, error.model_dump(), None)
            return error

    async def _record_outside_session(self, direction: str, payload: Any, id: Any) -> None:
        audit = AuditBuffer()
        audit.record(direction, payload, correlation_id=id)
        await self._guard.flush(audit)
