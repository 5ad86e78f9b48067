"""Orchestrator — plan, execute step by step, reduce, summarize.

The oracle first produces a flat ordered plan of ``{name, task}`` steps over
the capability table. Steps then run strictly in order; each one sees the
conversation left behind by the previous step. A failing step becomes an
inline error marker in the result list instead of aborting the plan.
"""

from __future__ import annotations

import binascii
import logging
from datetime import datetime
from typing import Any, Iterable
from zoneinfo import ZoneInfo

import orjson
from pydantic import BaseModel, Field, ValidationError

from a2ahost.a2a.models import AgentCard, PartType, TaskState, part_type
from a2ahost.a2a.transport import DEFAULT_FETCH_LIMIT, BaseTransport, fetch_all
from a2ahost.audit import AuditBuffer, Direction
from a2ahost.capabilities.table import (
    FALLBACK_NAME,
    Capability,
    CapabilityTable,
    PendingRequest,
    build_capability_table,
)
from a2ahost.exceptions import CapabilityNotFoundError, PlanningFailedError
from a2ahost.llm.base import BaseLLMProvider, History, LLMMessage
from a2ahost.llm.oracle import Oracle, OracleTurn, as_history, render_function_response
from a2ahost.storage import Blob, BlobStore

_logger = logging.getLogger(__name__)

FILE_CREATED = 'The file was created as an answer. The file URL is "{location}".'
FILE_MISSING = (
    "The type of file was returned. "
    "But, the file content was not included in the response."
)


class PlanStep(BaseModel):
    name: str
    task: str = ""


class OrchestrationResult(BaseModel):
    """What a client call returns."""

    result: list[Any] = Field(default_factory=list)
    history: History = ()
    agent_cards: list[AgentCard] = Field(default_factory=list)


def parse_plan(raw: str | None) -> list[PlanStep]:
    """Parse the oracle's JSON array of steps. Empty or malformed → error."""
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise PlanningFailedError(f"Plan is not JSON: {e}") from e

    if not isinstance(data, list) or not data:
        raise PlanningFailedError("Plan must be a non-empty array")
    try:
        return [PlanStep.model_validate(item) for item in data]
    except ValidationError as e:
        raise PlanningFailedError(f"Malformed plan step: {e}") from e


def step_error(step: PlanStep) -> str:
    return f"Error: {step.name}, {step.task}"


def digest_parts(parts: list[dict[str, Any]]) -> str:
    """Short textual stand-in for peer output, folded back into the history."""
    texts = [p.get("text", "") for p in parts if part_type(p) == PartType.TEXT.value]
    if texts:
        return "\n".join(str(t) for t in texts)
    if not parts:
        return "(no output)"
    lines = []
    for p in parts:
        payload = p.get(part_type(p) or "", {})
        if not isinstance(payload, dict):
            payload = {}
        lines.append(f"Name: {payload.get('name')}, MimeType: {payload.get('mimeType')}")
    return "Data is as follows.\n" + "\n".join(lines)


def _parts_of(holder: Any) -> list[dict[str, Any]] | None:
    """Dict parts of a message or artifact; ``None`` when it is malformed."""
    if not isinstance(holder, dict):
        return None
    parts = holder.get("parts") or []
    if not isinstance(parts, list):
        return None
    return [p for p in parts if isinstance(p, dict)]


class Orchestrator:
    """Runs one prompt end to end against agents and local functions."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        transport: BaseTransport,
        blob_store: BlobStore | None = None,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        headers: dict[str, str] | None = None,
        timezone: str = "UTC",
    ) -> None:
        self._oracle = Oracle(llm)
        self._transport = transport
        self._blob_store = blob_store
        self._fetch_limit = fetch_limit
        self._headers = headers or {}
        self._timezone = timezone

    async def run(
        self,
        prompt: str,
        agent_cards: list[AgentCard] | None = None,
        functions: Iterable[Capability] | None = None,
        history: Iterable[LLMMessage | dict[str, Any]] | None = None,
        file_as_blob: bool = False,
        audit: AuditBuffer | None = None,
    ) -> OrchestrationResult:
        """Plan, execute, reduce and summarize.

        Raises:
            PlanningFailedError: the oracle did not produce a usable plan.
        """
        audit = audit if audit is not None else AuditBuffer()
        cards = list(agent_cards or [])
        table = build_capability_table(
            cards, extra=functions, headers=self._headers, audit=audit,
        )

        plan, plan_history = await self._plan(prompt, cards, table, as_history(history), audit)
        _logger.info("Plan: %s", ", ".join(s.name for s in plan))

        outputs: list[Any] = []
        step_history = plan_history
        for step in plan:
            produced, step_history = await self._execute_step(step, table, step_history, audit)
            outputs.extend(produced)

        reduced = await self._reduce(outputs, file_as_blob)

        texts = [o for o in reduced if isinstance(o, str)]
        final_history = step_history
        if texts:
            turn = await self.summarize(prompt, texts, step_history)
            final_history = turn.history
            reduced = [turn.text or "", *(o for o in reduced if not isinstance(o, str))]

        audit.record(Direction.CLIENT_SIDE, reduced)
        return OrchestrationResult(result=reduced, history=final_history, agent_cards=cards)

    async def summarize(self, prompt: str, answers: list[str], history: History = ()) -> OracleTurn:
        """One oracle call condensing ``answers`` with respect to ``prompt``."""
        text = "\n".join([
            "Summarize answers by considering the question.",
            f"<Question>{prompt}</Question>",
            f"<Answers>{chr(10).join(answers)}</Answers>",
        ])
        return await self._oracle.generate(text, history)

    # ── Planning ─────────────────────────────────────────────

    def _brief(self, cards: list[AgentCard], table: CapabilityTable) -> str:
        agents = [
            f'- Name: "{c.name}", Description: "{c.description}", URL: "{c.url}", skills: "'
            + "; ".join(
                f"Skill name: {s.name}, Description of skill: {s.description}, "
                f"Examples: {','.join(s.examples)}"
                for s in c.skills
            )
            + '"'
            for c in cards
        ] or ["No agents."]
        functions = [
            f'- Name: "{name}", Details: {orjson.dumps(schema.to_brief()).decode()}'
            for name, schema in table.schemas().items()
        ] or ["No functions."]
        now = datetime.now(ZoneInfo(self._timezone))

        return "\n".join([
            "You are an expert delegator capable of assigning user requests to "
            "appropriate remote agents. You create the suitable order for "
            "processing agents and functions.",
            "<Agents>",
            "The following agents are the available agent list.",
            *agents,
            "</Agents>",
            "<Functions>",
            "The following functions are the available function list. The value "
            "of 'Details' is the JSON schema used for function calling.",
            *functions,
            "</Functions>",
            "<Mission>",
            "- Understand the agents and the tasks that the agents can do.",
            "- Understand the functions and the tasks that the functions can do.",
            "- Understand requests of the user's prompt.",
            "- For actionable tasks, select a suitable one of the given agents and "
            "functions for accurately resolving requests of the user's prompt in "
            "the suitable order.",
            "- If multiple processes can be run with a single agent or function, "
            "create one task for it that includes all of those processes.",
            f"- If no suitable agent or function can be found, use '{FALLBACK_NAME}' "
            "and answer directly.",
            "</Mission>",
            "<Important>",
            "- Do not fabricate responses.",
            "- If you are unsure, ask the user for more details.",
            "- When the requests include parts an agent can resolve and parts it "
            f"cannot, order the agents, the functions and '{FALLBACK_NAME}' together.",
            '- Don\'t include or suggest code in the response value like "tool_code".',
            f'- The current date time is "{now:%Y-%m-%d %H:%M:%S}". '
            f"The timezone is {self._timezone}.",
            "</Important>",
            "<Output>",
            'Respond with ONLY a JSON array of objects {"name": "<agent or function '
            'name>", "task": "<task for that agent or function, without the agent URL>"}.',
            "No markdown, no explanation.",
            "</Output>",
        ])

    async def _plan(
        self,
        prompt: str,
        cards: list[AgentCard],
        table: CapabilityTable,
        history: History,
        audit: AuditBuffer,
    ) -> tuple[list[PlanStep], History]:
        turn = await self._oracle.generate(
            f"User's prompt is as follows.\n<UserPrompt>{prompt}</UserPrompt>",
            history,
            system=self._brief(cards, table),
        )
        try:
            plan = parse_plan(turn.text)
        except PlanningFailedError:
            audit.record(Direction.CLIENT_SIDE, turn.text or "")
            raise
        audit.record(Direction.CLIENT_SIDE, [s.model_dump() for s in plan])
        return plan, turn.history

    # ── Execution ────────────────────────────────────────────

    async def _execute_step(
        self,
        step: PlanStep,
        table: CapabilityTable,
        history: History,
        audit: AuditBuffer,
    ) -> tuple[list[Any], History]:
        try:
            capability = table.get(step.name)
        except CapabilityNotFoundError as e:
            _logger.warning("Plan step names an unknown capability: %s", step.name)
            return [self._marker(step, e.args[0])], history

        turn = await self._oracle.generate(
            "\n".join([
                "Your task is as follows.",
                f"<Task>{step.task}</Task>",
                "<Important>",
                '- If you do not have enough information to resolve "Task", ask '
                "the user for more details without generating content forcefully.",
                "</Important>",
            ]),
            history,
            capabilities=[capability],
        )

        if turn.call is None or turn.error:
            return [self._marker(step, turn.error or turn.raw)], turn.history

        result = turn.function_response
        if isinstance(result, PendingRequest):
            return await self._delegate(step, result, turn, audit)

        if isinstance(result, dict) and "result" in result:
            result = result["result"]
        if result is None:
            return [self._marker(step, turn.raw)], turn.history
        return [render_function_response(result)], turn.history

    async def _delegate(
        self,
        step: PlanStep,
        pending: PendingRequest,
        turn: OracleTurn,
        audit: AuditBuffer,
    ) -> tuple[list[Any], History]:
        """Send a peer's ``tasks/send`` call and vet its answer."""
        [resp] = await fetch_all(self._transport, [pending.request], limit=self._fetch_limit)
        sent_id, task_id, session_id = pending.correlation
        audit.record(
            Direction.SERVER_TO_CLIENT, resp.body,
            method="tasks/send", correlation_id=sent_id,
        )

        if not resp.ok:
            _logger.warning("Agent %s answered HTTP %d", step.name, resp.status_code)
            return [step_error(step)], turn.history
        try:
            body = resp.json()
        except orjson.JSONDecodeError:
            _logger.warning("Agent %s answered with non-JSON body", step.name)
            return [step_error(step)], turn.history
        if not isinstance(body, dict):
            return [step_error(step)], turn.history

        result = body.get("result")
        if not isinstance(result, dict):
            if body.get("error"):
                error = orjson.dumps(body["error"], default=str).decode()
                return [f"{step_error(step)}. {error}"], turn.history
            return [step_error(step)], turn.history

        status = result.get("status")
        if (
            not isinstance(status, dict)
            or status.get("state") != TaskState.COMPLETED.value
            or body.get("id") != sent_id
            or result.get("id") != task_id
            or result.get("sessionId") != session_id
        ):
            _logger.warning("Agent %s answer does not match the request", step.name)
            return [step_error(step)], turn.history

        artifacts = result.get("artifacts") or []
        held = [_parts_of(status.get("message") or {})]
        held += [_parts_of(a) for a in artifacts] if isinstance(artifacts, list) else [None]
        if any(p is None for p in held):
            _logger.warning("Agent %s answered with a malformed task", step.name)
            return [step_error(step)], turn.history

        parts = [p for group in held for p in group]

        return parts, turn.with_function_response(digest_parts(parts))

    @staticmethod
    def _marker(step: PlanStep, detail: Any) -> dict[str, str]:
        if not isinstance(detail, str):
            detail = orjson.dumps(detail, default=str).decode()
        return {"error": f"Error: Name: {step.name}, Task: {step.task}, Result: {detail}"}

    # ── Reduction ────────────────────────────────────────────

    async def _reduce(self, outputs: list[Any], file_as_blob: bool) -> list[Any]:
        """Text → str; file/data → Blob or a text reference; others pass through."""
        reduced: list[Any] = []
        for item in outputs:
            if isinstance(item, str):
                reduced.append(item)
                continue

            kind = part_type(item)
            if kind == PartType.TEXT.value:
                text = item.get("text", "")
                reduced.append(text if isinstance(text, str) else render_function_response(text))
            elif kind in (PartType.FILE.value, PartType.DATA.value):
                reduced.append(await self._reduce_payload(item.get(kind), file_as_blob))
            else:
                reduced.append(item)
        return reduced

    async def _reduce_payload(self, payload: Any, file_as_blob: bool) -> Blob | str:
        if not isinstance(payload, dict) or not payload.get("bytes"):
            return FILE_MISSING
        try:
            blob = Blob.from_base64(payload["bytes"], payload.get("mimeType"), payload.get("name"))
        except (binascii.Error, ValueError, TypeError):
            _logger.warning("Inline file content is not valid base64")
            return FILE_MISSING
        if file_as_blob:
            return blob
        if self._blob_store is None:
            _logger.warning("No blob store configured; dropping file '%s'", blob.name)
            return FILE_MISSING
        location = await self._blob_store.save(blob)
        return FILE_CREATED.format(location=location)
