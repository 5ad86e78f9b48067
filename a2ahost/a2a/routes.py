"""HTTP adapter — exposes an A2AHost over FastAPI.

  GET  /.well-known/agent-card.json  — agent discovery
  GET  /.well-known/agent.json       — legacy discovery path
  POST /a2a                          — JSON-RPC endpoint

Query parameters (e.g. ``accessKey``) are passed through untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import orjson
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from a2ahost.a2a.dispatcher import CardProvider, FunctionsGetter, error_envelope
from a2ahost.a2a.models import InboundEvent
from a2ahost.exceptions import MethodNotFoundError
from a2ahost.host import A2AHost

_logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class _Binding:
    host: A2AHost
    agent_card: CardProvider | None = None
    functions: FunctionsGetter | None = None
    agent_card_urls: list[str] = field(default_factory=list)


# ── Module-level state (injected by configure) ────────────────

_binding: _Binding | None = None


def configure(
    host: A2AHost | None,
    agent_card: CardProvider | None = None,
    functions: FunctionsGetter | None = None,
    agent_card_urls: list[str] | None = None,
) -> None:
    global _binding
    if host is None:
        _binding = None
        return
    _binding = _Binding(host, agent_card, functions, list(agent_card_urls or []))


async def _serve(binding: _Binding, event: InboundEvent) -> Any:
    return await binding.host.server(
        event,
        agent_card=binding.agent_card,
        functions=binding.functions,
        agent_card_urls=binding.agent_card_urls,
    )


def _request_id(raw: str) -> Any:
    try:
        body = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    return body.get("id") if isinstance(body, dict) else None


def _not_initialized() -> JSONResponse:
    return JSONResponse({"error": "A2A not initialized"}, status_code=503)


# ── Routes ────────────────────────────────────────────────────


@router.get("/.well-known/agent-card.json")
@router.get("/.well-known/agent.json")
async def agent_card(request: Request) -> JSONResponse:
    """Serve the host's Agent Card for A2A discovery."""
    if _binding is None:
        return _not_initialized()
    reply = await _serve(_binding, InboundEvent(
        path_info=request.url.path,
        parameter=dict(request.query_params),
    ))
    if reply is None:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return JSONResponse(reply)


@router.post("/a2a")
async def a2a_rpc(request: Request) -> JSONResponse:
    """JSON-RPC 2.0 endpoint for A2A protocol."""
    if _binding is None:
        return _not_initialized()

    raw = (await request.body()).decode("utf-8", errors="replace")
    reply = await _serve(_binding, InboundEvent(
        path_info="a2a",
        parameter=dict(request.query_params),
        contents=raw,
    ))
    if reply is None:
        _logger.info("Unhandled A2A request")
        resp = error_envelope(_request_id(raw), MethodNotFoundError())
        return JSONResponse(resp.to_wire())
    return JSONResponse(reply)


def create_app(**kwargs: Any) -> FastAPI:
    """Build a FastAPI app serving ``kwargs["host"]`` (see ``configure``)."""
    configure(**kwargs)
    app = FastAPI(title="a2ahost")
    app.include_router(router)
    return app
