"""
Remote history service transport.

The SyncClient talks to a RemoteService. The HTTP implementation here
builds requests against a DBHub.io style API; tests substitute a fake
that records calls. Transports report what the server said and leave
the interpretation of status codes to the client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol
from urllib.parse import quote

import requests

from .config import DioConfig
from .errors import ProtocolError, RemoteError
from .headers import parse_rfc3339
from .models import CommitInfo, Metadata

logger = logging.getLogger("dio.remote")


@dataclass
class RemoteResponse:
    """What came back from one request."""

    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str:
        """Case-insensitive header lookup, empty string when absent."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return ""


class RemoteService(Protocol):
    """The three calls the sync protocol needs."""

    @property
    def base_url(self) -> str:
        ...

    def fetch_metadata(self, db_name: str) -> RemoteResponse:
        ...

    def download(self, db_name: str, query: dict[str, str]) -> RemoteResponse:
        ...

    def upload(self, db_name: str, filename: str, data: bytes, query: dict[str, str]) -> RemoteResponse:
        ...


class HttpRemoteService:
    """RemoteService over HTTPS using a requests session.

    Client certificate, CA bundle and timeout come from DioConfig.
    """

    def __init__(self, config: DioConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._base_url = config.cloud.rstrip("/")
        self.session = session or requests.Session()
        if config.cert_file:
            self.session.cert = str(Path(config.cert_file).expanduser())
        if config.ca_file:
            self.session.verify = str(Path(config.ca_file).expanduser())
        else:
            self.session.verify = config.verify_tls

    @property
    def base_url(self) -> str:
        return self._base_url

    def _db_url(self, db_name: str) -> str:
        return f"{self._base_url}/{quote(self.config.user, safe='')}/{quote(db_name, safe='')}"

    def _send(self, method: str, url: str, **kwargs: Any) -> RemoteResponse:
        logger.debug("%s %s params=%s", method, url, kwargs.get("params"))
        try:
            resp = self.session.request(
                method, url, timeout=self.config.timeout_seconds, **kwargs,
            )
        except requests.RequestException as exc:
            raise RemoteError(f"Error when contacting {self._base_url}: {exc}", reason=str(exc)) from exc
        logger.debug("%s %s -> %d %s", method, url, resp.status_code, resp.reason)
        return RemoteResponse(
            status=resp.status_code,
            reason=resp.reason or "",
            headers=dict(resp.headers),
            body=resp.content,
        )

    def fetch_metadata(self, db_name: str) -> RemoteResponse:
        url = f"{self._base_url}/metadata/get/{quote(self.config.user, safe='')}/{quote(db_name, safe='')}"
        return self._send("GET", url)

    def download(self, db_name: str, query: dict[str, str]) -> RemoteResponse:
        return self._send("GET", self._db_url(db_name), params=query or None)

    def upload(self, db_name: str, filename: str, data: bytes, query: dict[str, str]) -> RemoteResponse:
        return self._send(
            "POST",
            self._db_url(db_name),
            params=query,
            files={"file1": (filename, data)},
        )


# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------


def metadata_from_payload(payload: Any) -> Metadata:
    """Build Metadata from the service's JSON metadata document.

    Branch values may be a bare commit id or an object with a
    ``commit`` field. Commit content digests come from ``sha256`` or
    from the first entry of a ``tree``.

    Raises:
        ProtocolError: If the document does not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise ProtocolError("Metadata response is not a JSON object")

    branches_raw = payload.get("branches") or {}
    commits_raw = payload.get("commits") or {}
    if not isinstance(branches_raw, dict) or not isinstance(commits_raw, dict):
        raise ProtocolError("Metadata response has malformed branches or commits")

    branches: dict[str, str] = {}
    for name, value in branches_raw.items():
        if isinstance(value, dict):
            value = value.get("commit", "")
        if not isinstance(value, str) or not value:
            raise ProtocolError(f"Branch '{name}' has no commit id")
        branches[str(name)] = value

    commits: dict[str, CommitInfo] = {}
    for commit_id, raw in commits_raw.items():
        if not isinstance(raw, dict):
            raise ProtocolError(f"Commit '{commit_id}' is not an object")
        commits[str(commit_id)] = CommitInfo(
            commit_id=str(commit_id),
            parent=str(raw.get("parent") or ""),
            author_name=str(raw.get("author_name") or raw.get("author") or ""),
            author_email=str(raw.get("author_email") or raw.get("email") or ""),
            message=str(raw.get("message") or ""),
            timestamp=_optional_timestamp(raw.get("timestamp")),
            content_sha256=_commit_digest(raw),
        )

    default_branch = str(payload.get("default_branch") or "")
    return Metadata(
        default_branch=default_branch if default_branch in branches else "",
        branches=branches,
        commits=commits,
    )


def _optional_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"Malformed commit timestamp: {value!r}")
    return parse_rfc3339(value)


def _commit_digest(raw: dict[str, Any]) -> str:
    if raw.get("sha256"):
        return str(raw["sha256"])
    tree = raw.get("tree")
    if isinstance(tree, dict):
        entries = tree.get("entries") or []
        if entries and isinstance(entries[0], dict):
            return str(entries[0].get("sha256") or "")
    return ""
