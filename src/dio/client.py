"""
Sync client -- pull and push a database against the history service.

    dio pull  ->  metadata -> check selector -> download -> cache ->
                  working copy -> mtime -> metadata -> pointers
    dio push  ->  preflight -> upload -> parse commit id -> cache ->
                  metadata -> pointers

Local state is only touched after the network step it depends on has
succeeded. Content always lands before the metadata that refers to it,
so an interrupted run leaves stale metadata at worst, never a record
pointing at bytes that were never written. Rerunning a pull is
idempotent and reconciles that state.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .cache import ContentCache
from .config import DioConfig
from .errors import (
    ConflictError,
    NotFoundError,
    ProtocolError,
    RemoteError,
    StorageError,
)
from .fsutil import atomic_write_bytes
from .headers import parse_modification_date
from .metadata import MetadataStore
from .models import (
    ByBranch,
    ByCommit,
    CommitInfo,
    Metadata,
    PullOutcome,
    PushOutcome,
    PushRequest,
    ResolvedBy,
    StatusReport,
    SyncState,
    Unspecified,
)
from .policy import PolicyGuard, check_db_name
from .remote import RemoteResponse, RemoteService, metadata_from_payload

logger = logging.getLogger("dio.client")

DEFAULT_PUSH_BRANCH = "master"
HTTP_OK = 200
HTTP_CREATED = 201
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def classify_state(local_commit: str, remote: Metadata, branch: str) -> SyncState:
    """Compare the locally recorded commit with the remote branch head.

    Args:
        local_commit: Commit the working copy was last pulled or pushed as.
        remote: Metadata fetched from the service.
        branch: Branch the working copy tracks.

    Returns:
        SyncState: SYNCED at the head, TRACKED when behind it (or when
        nothing to compare against), DIVERGED when off its history.
    """
    remote_head = remote.head(branch)
    if not local_commit or not remote_head:
        return SyncState.TRACKED
    if local_commit == remote_head:
        return SyncState.SYNCED
    if remote.is_ancestor(local_commit, remote_head):
        return SyncState.TRACKED
    return SyncState.DIVERGED


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class SyncClient:
    """Orchestrates pull, push and status for databases in one directory.

    Everything environmental arrives through the constructor: the
    config, the remote service, and optionally pre-built stores.
    """

    def __init__(
        self,
        config: DioConfig,
        remote: RemoteService,
        cache: Optional[ContentCache] = None,
        store: Optional[MetadataStore] = None,
        guard: Optional[PolicyGuard] = None,
    ):
        self.config = config
        self.remote = remote
        self.work_dir = Path(config.work_dir).expanduser()
        self.cache = cache or ContentCache(self.work_dir)
        self.store = store or MetadataStore(self.work_dir)
        self.guard = guard or PolicyGuard(config)

    # ------------------------------------------------------------------
    # Remote metadata
    # ------------------------------------------------------------------

    def fetch_remote_metadata(self, db_name: str) -> Metadata:
        """Fetch branches and commits for ``db_name`` without any content.

        Raises:
            NotFoundError: If the service does not know the database.
            RemoteError: On any other non-200 status.
            ProtocolError: If the body is not a metadata document, or its
                branches point at commits it does not list.
        """
        resp = self.remote.fetch_metadata(db_name)
        if resp.status == HTTP_NOT_FOUND:
            raise NotFoundError(f"Database '{db_name}' is not known on {self.remote.base_url}")
        if resp.status != HTTP_OK:
            raise RemoteError(
                f"Metadata request failed: HTTP status {resp.status} - '{resp.reason}'",
                status=resp.status,
                reason=resp.reason,
            )
        try:
            payload = json.loads(resp.body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ProtocolError(f"Error parsing metadata response: {exc}") from exc
        meta = metadata_from_payload(payload)
        problems = meta.violations()
        if problems:
            raise ProtocolError(
                f"Inconsistent metadata for '{db_name}': " + "; ".join(problems)
            )
        return meta

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(
        self,
        db_name: str,
        branch: Optional[str] = None,
        commit: Optional[str] = None,
    ) -> PullOutcome:
        """Download a database into the working directory.

        Args:
            db_name: Database to pull.
            branch: Branch to pull the head of.
            commit: Specific commit to pull.

        Returns:
            PullOutcome: What was downloaded and how it was resolved.

        Raises:
            InvalidSelectorError: If both branch and commit are given.
            NotFoundError: Unknown database, branch or commit.
            RemoteError: Download failed with another status.
            ProtocolError: Malformed modification date. The file and
                metadata are kept; the outcome rides on the error.
            StorageError: Local disk failure.
        """
        selector = self.guard.check_pull(db_name, branch, commit)

        # Metadata is held in memory until the content is safely on disk
        meta = self.fetch_remote_metadata(db_name)
        if isinstance(selector, ByBranch) and selector.name not in meta.branches:
            raise NotFoundError(f"The requested branch doesn't exist: '{selector.name}'")
        if isinstance(selector, ByCommit) and selector.commit_id not in meta.commits:
            raise NotFoundError(f"The requested commit doesn't exist: '{selector.commit_id}'")

        resp = self.remote.download(db_name, selector.query())
        self._check_download(db_name, selector, resp)

        data = resp.body
        digest = self.cache.put(db_name, data)
        working = self.work_dir / db_name
        atomic_write_bytes(working, data)
        logger.info("Wrote %d bytes to %s", len(data), working)

        modified_at = None
        date_error: Optional[ProtocolError] = None
        try:
            modified_at = parse_modification_date(resp.header("Content-Disposition"))
        except ProtocolError as exc:
            logger.warning("Keeping %s despite bad modification date: %s", db_name, exc)
            date_error = exc
        if modified_at is not None:
            try:
                os.utime(working, (time.time(), modified_at.timestamp()))
            except OSError as exc:
                raise StorageError(f"Could not set modification time on {working}: {exc}") from exc

        previous = self.store.load(db_name)
        server_branch = resp.header("Branch")
        server_commit = resp.header("Commit-Id")
        if previous.active_branch in meta.branches:
            meta.active_branch = previous.active_branch
        if server_branch:
            if server_branch in meta.branches:
                meta.active_branch = server_branch
            else:
                logger.warning(
                    "Server declared branch '%s' which is not in the metadata for %s",
                    server_branch,
                    db_name,
                )
        elif isinstance(selector, ByBranch):
            meta.active_branch = selector.name
        self.store.save(db_name, meta)

        pointer_branch = server_branch
        if not pointer_branch and isinstance(selector, ByBranch):
            pointer_branch = selector.name
        if not pointer_branch and isinstance(selector, Unspecified):
            pointer_branch = meta.active_branch or meta.default_branch
        pointer_commit = server_commit
        if not pointer_commit and isinstance(selector, ByCommit):
            pointer_commit = selector.commit_id
        if not pointer_commit and pointer_branch:
            pointer_commit = meta.head(pointer_branch)
        self.store.write_pointers(
            db_name,
            branch=pointer_branch or None,
            commit=pointer_commit or None,
        )

        if isinstance(selector, ByBranch):
            resolved_by = ResolvedBy.BRANCH
        elif isinstance(selector, ByCommit):
            resolved_by = ResolvedBy.COMMIT
        else:
            resolved_by = ResolvedBy.DEFAULT

        outcome = PullOutcome(
            db_name=db_name,
            path=working,
            size=len(data),
            sha256=digest,
            resolved_by=resolved_by,
            branch=pointer_branch,
            commit_id=pointer_commit,
            modified_at=modified_at,
        )
        logger.info("Pulled %s (%s) as %s", db_name, selector.describe(), digest[:12])

        if date_error is not None:
            raise ProtocolError(str(date_error), outcome=outcome) from date_error
        return outcome

    def _check_download(self, db_name: str, selector, resp: RemoteResponse) -> None:
        if resp.status == HTTP_OK:
            return
        if resp.status == HTTP_NOT_FOUND:
            if isinstance(selector, ByBranch):
                raise NotFoundError(
                    f"That database & branch aren't known: '{db_name}' on branch '{selector.name}'"
                )
            if isinstance(selector, ByCommit):
                raise NotFoundError(
                    f"Requested database not found with commit {selector.commit_id}."
                )
            raise NotFoundError(f"Requested database not found: '{db_name}'")
        raise RemoteError(
            f"Download failed with an error: HTTP status {resp.status} - '{resp.reason}'",
            status=resp.status,
            reason=resp.reason,
        )

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self, request: PushRequest) -> PushOutcome:
        """Upload the working copy as a new commit.

        Args:
            request: A push request, normally built by PolicyGuard.build_push.

        Returns:
            PushOutcome: Where it went and the commit id the server assigned.

        Raises:
            ValidationError: Missing author, email, message or file.
            ConflictError: Non-fast-forward push without force.
            RemoteError: Any other non-201 status.
            ProtocolError: Response body without a commit id.
            StorageError: Local disk failure.
        """
        self.guard.check_push(request)
        db_name = request.db_name

        local_branch, local_commit = self.store.read_pointers(db_name)
        branch = request.branch or local_branch or DEFAULT_PUSH_BRANCH
        base_commit = request.commit or local_commit

        try:
            data = request.path.read_bytes()
            last_modified = datetime.fromtimestamp(request.path.stat().st_mtime, tz=timezone.utc)
        except OSError as exc:
            raise StorageError(f"Could not read {request.path}: {exc}") from exc

        query = {
            "branch": branch,
            "commitmsg": request.message,
            "lastmodified": _rfc3339(last_modified),
            "commit": base_commit,
            "public": "true" if request.public else "false",
            "force": "true" if request.force else "false",
            "author": request.author,
            "email": request.email,
        }
        if request.licence:
            query["licence"] = request.licence

        resp = self.remote.upload(db_name, request.path.name, data, query)
        if resp.status != HTTP_CREATED:
            if resp.status == HTTP_CONFLICT and not request.force:
                raise ConflictError(
                    f"Push rejected: remote history of '{db_name}' on branch '{branch}' "
                    "has moved on. Pull first, or push again with --force to overwrite it.",
                    status=resp.status,
                    reason=resp.reason,
                )
            raise RemoteError(
                f"Upload failed with an error: HTTP status {resp.status} - '{resp.reason}'",
                status=resp.status,
                reason=resp.reason,
            )

        commit_id = self._parse_commit_id(resp)
        digest = self.cache.put(db_name, data)

        meta = self._refresh_after_push(request, branch, base_commit, commit_id, digest)
        try:
            self.store.save(db_name, meta)
        finally:
            # The commit exists remotely either way
            self.store.write_pointers(db_name, branch=branch, commit=commit_id)
        logger.info("Pushed %s to branch '%s' as commit %s", db_name, branch, commit_id)

        return PushOutcome(
            db_name=db_name,
            destination=self.remote.base_url,
            branch=branch,
            licence=request.licence,
            size=len(data),
            message=request.message,
            commit_id=commit_id,
            sha256=digest,
        )

    def _parse_commit_id(self, resp: RemoteResponse) -> str:
        try:
            parsed = json.loads(resp.body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ProtocolError(f"Error parsing server response: '{exc}'") from exc
        commit_id = parsed.get("commit_id") if isinstance(parsed, dict) else None
        if not isinstance(commit_id, str) or not commit_id:
            raise ProtocolError("Server response has no commit_id")
        return commit_id

    def _refresh_after_push(
        self,
        request: PushRequest,
        branch: str,
        base_commit: str,
        commit_id: str,
        digest: str,
    ) -> Metadata:
        """Metadata that includes the new commit.

        Re-fetched from the service when possible, otherwise the local
        record with the new commit appended.
        """
        try:
            meta = self.fetch_remote_metadata(request.db_name)
        except (NotFoundError, RemoteError, ProtocolError) as exc:
            logger.warning(
                "Could not refresh metadata for %s after push, recording commit locally: %s",
                request.db_name,
                exc,
            )
            meta = self.store.load(request.db_name)

        if commit_id not in meta.commits:
            meta.commits[commit_id] = CommitInfo(
                commit_id=commit_id,
                parent=base_commit,
                author_name=request.author,
                author_email=request.email,
                message=request.message,
                timestamp=datetime.now(timezone.utc),
                content_sha256=digest,
            )
            meta.branches[branch] = commit_id
        elif branch not in meta.branches:
            meta.branches[branch] = commit_id
        meta.active_branch = branch
        return meta

    # ------------------------------------------------------------------
    # Status and local history
    # ------------------------------------------------------------------

    def status(self, db_name: str, verify: bool = False) -> StatusReport:
        """Where the working copy of ``db_name`` stands.

        An untracked database is reported without contacting the
        service.

        Args:
            db_name: Database name.
            verify: Re-hash every cached blob.

        Returns:
            StatusReport: Local pointers, remote head and sync state.
        """
        check_db_name(db_name)
        local_branch, local_commit = self.store.read_pointers(db_name)
        local = self.store.load(db_name)
        cached = len(self.cache.digests(db_name))
        corrupt = self.cache.verify(db_name) if verify else []

        if not self.store.exists(db_name) and not local_commit:
            return StatusReport(
                db_name=db_name,
                state=SyncState.UNTRACKED,
                cached_blobs=cached,
                corrupt_blobs=corrupt,
            )

        remote = self.fetch_remote_metadata(db_name)
        branch = local_branch or local.active_branch or remote.default_branch
        return StatusReport(
            db_name=db_name,
            state=classify_state(local_commit, remote, branch),
            active_branch=local.active_branch,
            local_branch=local_branch,
            local_commit=local_commit,
            remote_head=remote.head(branch),
            cached_blobs=cached,
            corrupt_blobs=corrupt,
        )

    def log(self, db_name: str, branch: Optional[str] = None) -> list[CommitInfo]:
        """Commit history of a branch from the local record, newest first.

        Raises:
            NotFoundError: If ``branch`` is not in the local record.
        """
        check_db_name(db_name)
        meta = self.store.load(db_name)
        if branch and branch not in meta.branches:
            raise NotFoundError(f"Branch '{branch}' is not known locally for '{db_name}'")
        return meta.history(meta.head(branch))

    def branches(self, db_name: str) -> Metadata:
        """The local metadata record, for listing branches."""
        check_db_name(db_name)
        return self.store.load(db_name)
