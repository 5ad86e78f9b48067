"""A2A protocol data models.

Covers Agent Cards, Messages and Parts, Tasks, and JSON-RPC 2.0 wrappers.
Parts are kept as plain dicts on the wire; the helpers here build them with
both the ``type`` and ``kind`` tags so older and newer peers can read them.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, AliasPath, BaseModel, Field, field_validator

from a2ahost.types import new_uuid, utcnow

WELL_KNOWN_PATHS = (".well-known/agent.json", ".well-known/agent-card.json")
AGENT_CARD_SUFFIX = "/.well-known/agent-card.json"


# ── Agent Card ────────────────────────────────────────────────


class AgentSkill(BaseModel):
    """A capability that an agent advertises."""

    id: str
    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "allow"}


class AgentCapabilities(BaseModel):
    """Protocol features the agent supports."""

    streaming: bool = False
    push_notifications: bool = Field(default=False, alias="pushNotifications")
    state_transition_history: bool = Field(
        default=False, alias="stateTransitionHistory",
    )

    model_config = {"populate_by_name": True}


class AgentProvider(BaseModel):
    """Who provides this agent."""

    organization: str = ""
    url: str = ""


class AgentCard(BaseModel):
    """A2A Agent Card — the identity document of an agent.

    The name doubles as a capability-table key, so whitespace in it is
    replaced with underscores on ingestion.
    """

    name: str
    description: str = ""
    url: str = ""
    version: str = "1.0.0"
    provider: AgentProvider | None = None
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    skills: list[AgentSkill] = Field(default_factory=list)
    default_input_modes: list[str] = Field(
        default_factory=lambda: ["text/plain"],
        alias="defaultInputModes",
    )
    default_output_modes: list[str] = Field(
        default_factory=lambda: ["text/plain"],
        alias="defaultOutputModes",
    )

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return re.sub(r"\s", "_", value.strip())

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def merge_agent_cards(base: AgentCard, peers: list[AgentCard]) -> AgentCard:
    """Fold peer descriptions, skills and modes into the host's own card.

    Lists are unioned in first-seen order.
    """
    description = base.description
    skills = list(base.skills)
    input_modes = list(base.default_input_modes)
    output_modes = list(base.default_output_modes)

    for peer in peers:
        description += "\n" + peer.description
        for skill in peer.skills:
            if skill not in skills:
                skills.append(skill)
        input_modes.extend(m for m in peer.default_input_modes if m not in input_modes)
        output_modes.extend(m for m in peer.default_output_modes if m not in output_modes)

    return base.model_copy(update={
        "description": description,
        "skills": skills,
        "default_input_modes": input_modes,
        "default_output_modes": output_modes,
    })


# ── Parts, Messages & Artifacts ──────────────────────────────


class PartType(str, Enum):
    TEXT = "text"
    FILE = "file"
    DATA = "data"


def text_part(text: str) -> dict[str, Any]:
    return {"type": PartType.TEXT.value, "kind": PartType.TEXT.value, "text": text}


def file_part(name: str, mime_type: str, data_b64: str) -> dict[str, Any]:
    return {
        "type": PartType.FILE.value,
        "kind": PartType.FILE.value,
        "file": {"name": name, "mimeType": mime_type, "bytes": data_b64},
    }


def part_type(part: Any) -> str | None:
    """Return the tag of a wire part (``type`` first, then ``kind``)."""
    if not isinstance(part, dict):
        return None
    return part.get("type") or part.get("kind")


class A2AMessage(BaseModel):
    """A single communication turn."""

    role: str = "user"  # "user" | "agent"
    parts: list[dict[str, Any]] = Field(default_factory=list)

    def first_text(self) -> str | None:
        for part in self.parts:
            if part_type(part) == PartType.TEXT.value and isinstance(part.get("text"), str):
                return part["text"]
        return None


class A2AArtifact(BaseModel):
    """A named output fragment attached to a task result."""

    name: str = "Answer"
    index: int = 0
    parts: list[dict[str, Any]] = Field(default_factory=list)


# ── Tasks ─────────────────────────────────────────────────────


class TaskState(str, Enum):
    """A2A task lifecycle states."""

    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"
    UNKNOWN = "unknown"


class TaskStatus(BaseModel):
    """Current status of a task."""

    state: TaskState = TaskState.COMPLETED
    message: A2AMessage | None = None
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())


class TaskRecord(BaseModel):
    """Result body of a ``tasks/send`` call."""

    kind: str = "task"
    id: Any = None
    session_id: Any = Field(default=None, alias="sessionId")
    status: TaskStatus = Field(default_factory=TaskStatus)
    artifacts: list[A2AArtifact] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class MessageResult(BaseModel):
    """Result body of a ``message/send`` call."""

    kind: str = "message"
    message_id: str = Field(default_factory=new_uuid, alias="messageId")
    parts: list[dict[str, Any]] = Field(default_factory=list)
    role: str = "agent"

    model_config = {"populate_by_name": True}


# ── JSON-RPC 2.0 ─────────────────────────────────────────────


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request. ``params`` is checked by the method handler."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: Any = None
    method: str
    params: Any = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response. Exactly one of ``result``/``error`` is emitted."""

    jsonrpc: str = "2.0"
    id: Any = None
    result: Any = None
    error: JsonRpcError | None = None

    @classmethod
    def success(cls, id: Any, result: Any) -> JsonRpcResponse:
        return cls(id=id, result=result)

    @classmethod
    def err(cls, id: Any, code: int, message: str) -> JsonRpcResponse:
        return cls(id=id, error=JsonRpcError(code=code, message=message))

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            body["error"] = self.error.model_dump()
        else:
            body["result"] = self.result
        return body


# ── Inbound transport ────────────────────────────────────────


class InboundEvent(BaseModel):
    """What the inbound adapter hands to the server entry point.

    The body is read from ``contents`` or, for raw web-app events, from
    ``postData.contents``.
    """

    path_info: str = Field(default="", alias="pathInfo")
    parameter: dict[str, Any] = Field(default_factory=dict)
    contents: str | None = Field(
        default=None,
        validation_alias=AliasChoices("contents", AliasPath("postData", "contents")),
    )

    model_config = {"populate_by_name": True}

    @property
    def normalized_path(self) -> str:
        return self.path_info.strip("/")
