"""Outbound HTTP — request descriptors, transports, and the bounded fetcher.

Transports never raise on HTTP status codes; the caller inspects
``status_code``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
import orjson
from pydantic import BaseModel, Field

from a2ahost.exceptions import InvalidArgumentError

_logger = logging.getLogger(__name__)

DEFAULT_FETCH_LIMIT = 20


class HttpRequest(BaseModel):
    """An outbound request waiting to be dispatched."""

    url: str
    method: str = "get"
    headers: dict[str, str] = Field(default_factory=dict)
    payload: str | None = None
    content_type: str = "application/json"


class HttpResponse(BaseModel):
    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    def json(self) -> Any:
        return orjson.loads(self.body)


class BaseTransport(ABC):
    @abstractmethod
    async def fetch_all(self, requests: list[HttpRequest]) -> list[HttpResponse]:
        """Execute ``requests`` together, returning responses in order."""


class HttpxTransport(BaseTransport):
    """Concurrent transport backed by ``httpx.AsyncClient``.

    Connection-level failures and unusable URLs become a synthetic response
    with status 0.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    async def fetch_all(self, requests: list[HttpRequest]) -> list[HttpResponse]:
        if not requests:
            return []
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            return list(await asyncio.gather(
                *(self._send(client, r) for r in requests)
            ))

    async def _send(self, client: httpx.AsyncClient, request: HttpRequest) -> HttpResponse:
        headers = dict(request.headers)
        if request.payload is not None:
            headers.setdefault("content-type", request.content_type)
        try:
            resp = await client.request(
                request.method.upper(),
                request.url,
                headers=headers,
                content=request.payload,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            _logger.warning("Request to %s failed: %s", request.url, e)
            return HttpResponse(status_code=0, body=str(e))
        return HttpResponse(status_code=resp.status_code, body=resp.text)


async def fetch_all(
    transport: BaseTransport,
    requests: list[HttpRequest],
    limit: int = DEFAULT_FETCH_LIMIT,
) -> list[HttpResponse]:
    """Dispatch ``requests`` in consecutive chunks of at most ``limit``.

    Chunks run one after another so no more than ``limit`` connections are
    open at once; responses come back in request order.
    """
    if limit < 1:
        raise InvalidArgumentError(f"limit must be at least 1, got {limit}")

    responses: list[HttpResponse] = []
    for start in range(0, len(requests), limit):
        chunk = requests[start:start + limit]
        responses.extend(await transport.fetch_all(chunk))
    return responses
