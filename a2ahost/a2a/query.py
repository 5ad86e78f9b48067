"""Query-string helpers used when deriving peer discovery URLs."""

from __future__ import annotations

from typing import Any, Mapping, NamedTuple
from urllib.parse import quote, unquote

from a2ahost.exceptions import InvalidArgumentError

# Characters encodeURIComponent leaves alone
_SAFE = "-_.!~*'()"


class ParsedUrl(NamedTuple):
    base: str
    params: dict[str, list[Any]] | None


def _coerce(value: str) -> Any:
    """Turn canonical numeric strings into numbers, leave the rest alone."""
    try:
        number = int(value)
        if str(number) == value:
            return number
    except ValueError:
        pass
    try:
        number = float(value)
        if repr(number) == value:
            return number
    except ValueError:
        pass
    return value


def parse_query(url: str) -> ParsedUrl:
    """Split ``url`` into its base and a mapping of key → list of values."""
    if not isinstance(url, str):
        raise InvalidArgumentError("URL must be a string including the query parameters")

    base, sep, query = url.partition("?")
    if not sep:
        return ParsedUrl(base, None)

    params: dict[str, list[Any]] = {}
    for pair in query.split("&"):
        if not pair.strip():
            continue
        key, _, value = pair.partition("=")
        key = unquote(key.strip())
        params.setdefault(key, []).append(_coerce(unquote(value.strip())))
    return ParsedUrl(base, params)


def add_query(base: str, params: Mapping[str, Any]) -> str:
    """Append percent-encoded ``params`` to ``base``.

    List values expand into repeated ``key=value`` pairs.
    """
    if base is None or params is None or not isinstance(base, str):
        raise InvalidArgumentError("Give a base URL (str) and a query parameter mapping")

    pairs: list[str] = []
    for key, value in params.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for v in values:
            pairs.append(f"{quote(str(key), safe=_SAFE)}={quote(str(v), safe=_SAFE)}")

    if not pairs:
        return base
    return f"{base}?{'&'.join(pairs)}"
