"""
Pydantic models for the sync subsystem.

Metadata is what the remote history service says about a database:
its branches, its commits and which branch the working copy follows.
Selectors say which version of it a pull should fetch.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SyncState(str, Enum):
    """Where a working copy stands relative to the remote history."""

    UNTRACKED = "untracked"
    TRACKED = "tracked"
    SYNCED = "synced"
    DIVERGED = "diverged"


class ResolvedBy(str, Enum):
    """How a pull decided which version to download."""

    BRANCH = "branch"
    COMMIT = "commit"
    DEFAULT = "default"


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


class ByBranch(BaseModel):
    """Fetch the head of a named branch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["branch"] = "branch"
    name: str

    def query(self) -> dict[str, str]:
        return {"branch": self.name}

    def describe(self) -> str:
        return f"branch '{self.name}'"


class ByCommit(BaseModel):
    """Fetch one specific commit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["commit"] = "commit"
    commit_id: str

    def query(self) -> dict[str, str]:
        return {"commit": self.commit_id}

    def describe(self) -> str:
        return f"commit {self.commit_id}"


class Unspecified(BaseModel):
    """Let the server pick its default head."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["default"] = "default"

    def query(self) -> dict[str, str]:
        return {}

    def describe(self) -> str:
        return "default head"


Selector = Annotated[Union[ByBranch, ByCommit, Unspecified], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# History metadata
# ---------------------------------------------------------------------------


class CommitInfo(BaseModel):
    """One immutable version of a database and its lineage."""

    model_config = ConfigDict(frozen=True)

    commit_id: str
    parent: str = ""
    author_name: str = ""
    author_email: str = ""
    message: str = ""
    timestamp: Optional[datetime] = None
    content_sha256: str = ""


class Metadata(BaseModel):
    """Branches, commits and the active branch for one database.

    Invariants (checked by the store before every save):
        - every branch points at a commit present in ``commits``
        - ``active_branch``, when set, names a known branch
    """

    active_branch: str = ""
    default_branch: str = ""
    branches: dict[str, str] = Field(default_factory=dict)
    commits: dict[str, CommitInfo] = Field(default_factory=dict)

    def violations(self) -> list[str]:
        """List every broken invariant, empty when the record is sound."""
        problems = []
        for name, commit_id in sorted(self.branches.items()):
            if commit_id not in self.commits:
                problems.append(
                    f"branch '{name}' points at unknown commit '{commit_id}'"
                )
        if self.active_branch and self.active_branch not in self.branches:
            problems.append(f"active branch '{self.active_branch}' is not a known branch")
        return problems

    def head(self, branch: Optional[str] = None) -> str:
        """Commit id at the tip of ``branch``.

        Falls back to the active branch, then the default branch.
        Returns an empty string when nothing is known.
        """
        name = branch or self.active_branch or self.default_branch
        return self.branches.get(name, "")

    def history(self, commit_id: str) -> list[CommitInfo]:
        """Walk parent links from ``commit_id``, newest first."""
        chain: list[CommitInfo] = []
        seen: set[str] = set()
        current = commit_id
        while current and current in self.commits and current not in seen:
            seen.add(current)
            info = self.commits[current]
            chain.append(info)
            current = info.parent
        return chain

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether ``ancestor`` is on the history of ``descendant`` (inclusive)."""
        if not ancestor:
            return False
        return any(c.commit_id == ancestor for c in self.history(descendant))


# ---------------------------------------------------------------------------
# Requests and outcomes
# ---------------------------------------------------------------------------


class PushRequest(BaseModel):
    """Everything needed to upload the working copy as a new commit."""

    db_name: str
    path: Path
    message: str = ""
    author: str = ""
    email: str = ""
    branch: str = ""
    commit: str = ""
    licence: Optional[str] = None
    public: bool = False
    force: bool = False


class PullOutcome(BaseModel):
    """Result of a successful pull."""

    db_name: str
    path: Path
    size: int
    sha256: str
    resolved_by: ResolvedBy
    branch: str = ""
    commit_id: str = ""
    modified_at: Optional[datetime] = None


class PushOutcome(BaseModel):
    """Result of a successful push."""

    db_name: str
    destination: str
    branch: str
    size: int
    message: str
    commit_id: str
    sha256: str
    licence: Optional[str] = None


class StatusReport(BaseModel):
    """Local tracking state compared against the remote head."""

    db_name: str
    state: SyncState
    active_branch: str = ""
    local_branch: str = ""
    local_commit: str = ""
    remote_head: str = ""
    cached_blobs: int = 0
    corrupt_blobs: list[str] = Field(default_factory=list)
