"""Capability Table — every callable the planner may route a step to.

Three kinds of entries share one table, keyed by name:

- builtin: ``without_agent``, the "answer directly" fallback
- peer: one proxy per discovered Agent Card; invoking it yields a
  ``PendingRequest`` the orchestrator dispatches itself
- local: caller-supplied functions, run in-process

Caller-supplied entries are merged last and win on name collisions.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Callable, Iterable, Iterator

import orjson
from pydantic import BaseModel

from a2ahost.a2a.models import AgentCard, text_part
from a2ahost.a2a.transport import HttpRequest
from a2ahost.audit import AuditBuffer, Direction
from a2ahost.capabilities.schema import CapabilityParameter, CapabilitySchema
from a2ahost.exceptions import CapabilityNotFoundError
from a2ahost.types import new_uuid, timestamp_token

_logger = logging.getLogger(__name__)

Handler = Callable[..., Any]

FALLBACK_NAME = "without_agent"


class CapabilityKind(str, Enum):
    BUILTIN = "builtin"
    PEER = "peer"
    LOCAL = "local"


class PendingRequest(BaseModel):
    """An outbound ``tasks/send`` call a peer capability asks to have sent."""

    agent_name: str
    agent_url: str
    task: str
    request: HttpRequest
    envelope: dict[str, Any]

    @property
    def correlation(self) -> tuple[Any, Any, Any]:
        params = self.envelope.get("params", {})
        return self.envelope.get("id"), params.get("id"), params.get("sessionId")


class Capability:
    """A named, invokable unit with the schema used to brief the oracle."""

    def __init__(self, kind: CapabilityKind, schema: CapabilitySchema, handler: Handler) -> None:
        self.kind = kind
        self.schema = schema
        self._handler = handler

    @classmethod
    def local(cls, schema: CapabilitySchema, handler: Handler) -> Capability:
        """Wrap a caller-supplied function (sync or async)."""
        return cls(CapabilityKind.LOCAL, schema, handler)

    @property
    def name(self) -> str:
        return self.schema.name

    async def invoke(self, arguments: dict[str, Any]) -> Any:
        result = self._handler(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"Capability(name={self.name!r}, kind={self.kind.value})"


class CapabilityTable:
    """Name → Capability mapping plus the parallel schema table."""

    def __init__(self, capabilities: Iterable[Capability] = ()) -> None:
        self._entries: dict[str, Capability] = {}
        for capability in capabilities:
            self.add(capability)

    def add(self, capability: Capability) -> None:
        self._entries[capability.name] = capability

    def get(self, name: str) -> Capability:
        entry = self._entries.get(name)
        if entry is None:
            raise CapabilityNotFoundError(f"Capability '{name}' not found")
        return entry

    def names(self) -> list[str]:
        return list(self._entries)

    def schemas(self) -> dict[str, CapabilitySchema]:
        return {name: c.schema for name, c in self._entries.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


# ── Builtin fallback ─────────────────────────────────────────


def _without_agent(task: str = "", response: str = "", **_: Any) -> dict[str, Any]:
    _logger.debug("without_agent: %s", task)
    return {"task": task, "result": response}


def fallback_capability() -> Capability:
    return Capability(
        CapabilityKind.BUILTIN,
        CapabilitySchema(
            name=FALLBACK_NAME,
            description="Use this, if the agent and other functions can not resolve the tasks.",
            parameters=[
                CapabilityParameter(name="task", description="Details of task."),
                CapabilityParameter(name="response", description="Response to the task."),
            ],
        ),
        _without_agent,
    )


# ── Peer proxies ─────────────────────────────────────────────


def describe_card(card: AgentCard) -> str:
    """Flatten a card into the description the oracle sees."""
    skills = "\n".join(
        f"id: {s.id}, name: {s.name}, description: {s.description}, "
        f"examples: {', '.join(s.examples)}"
        for s in card.skills
    )
    lines = [
        f"Agent name: {card.name}",
        f"Description: {card.description}",
        f"URL: {card.url}",
        f"Skills: {skills}",
    ]
    if card.provider:
        lines.append(f"Provider: {card.provider.organization}, {card.provider.url}")
    return "\n".join(lines)


def build_task_envelope(task: str) -> dict[str, Any]:
    """A fresh ``tasks/send`` request carrying ``task`` as one text part."""
    return {
        "jsonrpc": "2.0",
        "id": timestamp_token(),
        "method": "tasks/send",
        "params": {
            "id": new_uuid(),
            "sessionId": new_uuid(),
            "message": {"role": "user", "parts": [text_part(task)]},
            "acceptedOutputModes": ["text", "text/plain"],
        },
    }


def peer_capability(
    card: AgentCard,
    headers: dict[str, str] | None = None,
    audit: AuditBuffer | None = None,
) -> Capability:
    """Proxy capability that turns a task into a pending ``tasks/send`` call.

    The request always goes to the card's own URL; ``agent_url`` from the
    oracle is only echoed back.
    """

    def invoke(agent_name: str = "", agent_url: str = "", task: str = "", **_: Any) -> PendingRequest:
        _logger.info("Delegating to %s: %s", card.name, task)
        envelope = build_task_envelope(task)
        if audit is not None:
            audit.record(
                Direction.CLIENT_TO_SERVER, envelope,
                method="tasks/send", correlation_id=envelope["id"],
            )
        return PendingRequest(
            agent_name=agent_name or card.name,
            agent_url=agent_url or card.url,
            task=task,
            request=HttpRequest(
                url=card.url,
                method="post",
                headers=dict(headers or {}),
                payload=orjson.dumps(envelope).decode(),
            ),
            envelope=envelope,
        )

    schema = CapabilitySchema(
        name=card.name,
        description=describe_card(card),
        parameters=[
            CapabilityParameter(name="agent_name", description="Agent name you selected."),
            CapabilityParameter(name="agent_url", description="URL of the agent."),
            CapabilityParameter(
                name="task",
                description="Details of task. Give the suitable task to this agent.",
            ),
        ],
    )
    return Capability(CapabilityKind.PEER, schema, invoke)


def build_capability_table(
    cards: list[AgentCard],
    extra: Iterable[Capability] | None = None,
    headers: dict[str, str] | None = None,
    audit: AuditBuffer | None = None,
) -> CapabilityTable:
    """Fallback, then one proxy per card, then caller functions (which win)."""
    table = CapabilityTable([fallback_capability()])
    for card in cards:
        table.add(peer_capability(card, headers=headers, audit=audit))
    for capability in extra or ():
        if capability.name in table:
            _logger.info("Caller capability '%s' overrides an existing entry", capability.name)
        table.add(capability)
    return table
