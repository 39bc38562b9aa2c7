"""Parsing of the structured response headers the history service sends."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .errors import ProtocolError


def parse_content_disposition(value: str) -> tuple[str, dict[str, str]]:
    """Split a Content-Disposition value into its type and named parameters.

    ``attachment; filename="a.db"; modification-date="2017-...Z"`` gives
    ``("attachment", {"filename": "a.db", "modification-date": "2017-...Z"})``.
    Parameter names are lower-cased; quotes around values are removed.
    Semicolons inside quoted values are kept.

    Raises:
        ProtocolError: On an empty value, a parameter without ``=``,
            an unterminated quote or a repeated parameter.
    """
    parts = _split_params(value)
    if not parts or not parts[0]:
        raise ProtocolError(f"Malformed Content-Disposition header: '{value}'")

    disposition = parts[0].lower()
    params: dict[str, str] = {}
    for part in parts[1:]:
        if not part:
            continue
        name, sep, raw = part.partition("=")
        name = name.strip().lower()
        if not sep or not name:
            raise ProtocolError(f"Malformed Content-Disposition parameter: '{part}'")
        if name in params:
            raise ProtocolError(f"Repeated Content-Disposition parameter: '{name}'")
        params[name] = _unquote(raw.strip(), value)
    return disposition, params


def parse_modification_date(value: Optional[str]) -> Optional[datetime]:
    """Extract the modification-date parameter from a Content-Disposition value.

    Returns None if the header or the parameter is absent.

    Raises:
        ProtocolError: If the header is malformed or the date is not RFC 3339.
    """
    if not value:
        return None
    _, params = parse_content_disposition(value)
    stamp = params.get("modification-date")
    if stamp is None:
        return None
    return parse_rfc3339(stamp)


def parse_rfc3339(stamp: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Raises:
        ProtocolError: If the timestamp is not RFC 3339 with a zone.
    """
    text = stamp.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ProtocolError(f"Malformed modification date: '{stamp}'") from exc
    if parsed.tzinfo is None:
        raise ProtocolError(f"Modification date has no time zone: '{stamp}'")
    return parsed


def _split_params(value: str) -> list[str]:
    parts = []
    current = []
    quoted = False
    for char in value:
        if char == '"':
            quoted = not quoted
        if char == ";" and not quoted:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if quoted:
        raise ProtocolError(f"Unterminated quote in Content-Disposition header: '{value}'")
    parts.append("".join(current).strip())
    return parts


def _unquote(raw: str, header: str) -> str:
    if raw.startswith('"'):
        if len(raw) < 2 or not raw.endswith('"'):
            raise ProtocolError(f"Malformed quoted value in Content-Disposition header: '{header}'")
        return raw[1:-1]
    return raw
