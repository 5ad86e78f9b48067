"""Card Registry — turns peer URLs into validated Agent Cards.

Discovery is best-effort: a peer that is down, answers with something other
than a card, or sends a malformed card is skipped with a warning.
"""

from __future__ import annotations

import logging

import orjson
from pydantic import ValidationError

from a2ahost.a2a.models import AGENT_CARD_SUFFIX, AgentCard
from a2ahost.a2a.query import add_query, parse_query
from a2ahost.a2a.transport import (
    DEFAULT_FETCH_LIMIT,
    BaseTransport,
    HttpRequest,
    HttpResponse,
    fetch_all,
)

_logger = logging.getLogger(__name__)


def discovery_url(url: str) -> str:
    """``<base>/.well-known/agent-card.json`` with the original query kept."""
    base, params = parse_query(url.strip())
    return add_query(base.rstrip("/") + AGENT_CARD_SUFFIX, params or {})


class CardRegistry:
    """Resolves peer URLs into Agent Cards through the bounded fetcher."""

    def __init__(
        self,
        transport: BaseTransport,
        headers: dict[str, str] | None = None,
        limit: int = DEFAULT_FETCH_LIMIT,
    ) -> None:
        self._transport = transport
        self._headers = headers or {}
        self._limit = limit

    async def resolve(self, urls: list[str]) -> list[AgentCard]:
        """Fetch every card; return the ones that parsed, in input order."""
        if not urls:
            _logger.warning("No agent card URLs given")
            return []

        _logger.info("Resolving %d agent card(s)", len(urls))
        requests = [
            HttpRequest(url=discovery_url(u), headers=dict(self._headers))
            for u in urls
        ]
        responses = await fetch_all(self._transport, requests, limit=self._limit)

        cards: list[AgentCard] = []
        for url, resp in zip(urls, responses):
            card = self._parse(url, resp)
            if card is not None:
                cards.append(card)

        if not cards:
            _logger.warning("No agent cards could be resolved")
        return cards

    @staticmethod
    def _parse(url: str, resp: HttpResponse) -> AgentCard | None:
        if not resp.ok:
            _logger.warning(
                "Didn't get agent card from %s (HTTP %d)", url, resp.status_code,
            )
            return None
        try:
            data = orjson.loads(resp.body)
        except orjson.JSONDecodeError as e:
            _logger.warning("Agent card from %s is not JSON: %s", url, e)
            return None
        if not isinstance(data, dict) or not data.get("name"):
            _logger.warning("Agent card from %s has no name", url)
            return None
        if not data.get("url"):
            data["url"] = url
        try:
            return AgentCard.model_validate(data)
        except ValidationError as e:
            _logger.warning("Invalid agent card from %s: %s", url, e)
            return None
