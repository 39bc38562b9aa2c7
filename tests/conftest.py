"""Shared test fixtures for dio."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pytest

from dio.client import SyncClient
from dio.config import DioConfig
from dio.remote import RemoteResponse

SAMPLE_DB = b"SQLite format 3\x00x"  # 17 bytes


def metadata_document(
    branches: Optional[dict] = None,
    commits: Optional[dict] = None,
    default_branch: str = "master",
) -> dict:
    """A metadata document as the history service returns it.

    Default history::

        c1 -- c2   (master)
          \\
           d1      (dev)
    """
    if commits is None:
        commits = {
            "c1": {"parent": "", "author_name": "Alice", "author_email": "alice@example.org",
                   "message": "Initial import", "timestamp": "2017-01-01T09:00:00Z",
                   "sha256": "a" * 64},
            "c2": {"parent": "c1", "author_name": "Alice", "author_email": "alice@example.org",
                   "message": "Add Q2", "timestamp": "2017-02-01T09:00:00Z",
                   "sha256": "b" * 64},
            "d1": {"parent": "c1", "author_name": "Bob", "author_email": "bob@example.org",
                   "message": "Experiment", "timestamp": "2017-02-02T09:00:00Z"},
        }
    if branches is None:
        branches = {"master": "c2", "dev": "d1"}
    return {"default_branch": default_branch, "branches": branches, "commits": commits}


def json_response(payload, status: int = 200, reason: str = "OK") -> RemoteResponse:
    return RemoteResponse(status=status, reason=reason, body=json.dumps(payload).encode("utf-8"))


class FakeRemote:
    """RemoteService stand-in that records every call."""

    base_url = "https://dbhub.test"

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.metadata_response = json_response(metadata_document())
        self.download_response = RemoteResponse(
            status=200,
            reason="OK",
            headers={"Branch": "master", "Commit-Id": "c2"},
            body=SAMPLE_DB,
        )
        self.upload_response = json_response({"commit_id": "abc123"}, status=201, reason="Created")
        self.metadata_after_upload: Optional[RemoteResponse] = None
        self.uploaded: Optional[bytes] = None
        self.uploaded_name = ""

    def fetch_metadata(self, db_name: str) -> RemoteResponse:
        self.calls.append(("fetch_metadata", db_name))
        return self.metadata_response

    def download(self, db_name: str, query: dict[str, str]) -> RemoteResponse:
        self.calls.append(("download", db_name, dict(query)))
        return self.download_response

    def upload(self, db_name: str, filename: str, data: bytes, query: dict[str, str]) -> RemoteResponse:
        self.calls.append(("upload", db_name, dict(query)))
        self.uploaded = data
        self.uploaded_name = filename
        if self.upload_response.status == 201 and self.metadata_after_upload is not None:
            self.metadata_response = self.metadata_after_upload
        return self.upload_response

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Provide an empty working directory."""
    directory = tmp_path / "work"
    directory.mkdir()
    return directory


@pytest.fixture
def config(work_dir: Path) -> DioConfig:
    """A config pointing at the temporary working directory."""
    return DioConfig(
        cloud="https://dbhub.test",
        user="alice",
        author="Alice Example",
        email="alice@example.org",
        work_dir=work_dir,
    )


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def client(config: DioConfig, remote: FakeRemote) -> SyncClient:
    return SyncClient(config, remote)


@pytest.fixture
def sales_db(work_dir: Path) -> Path:
    """A working copy ready to push."""
    path = work_dir / "sales.db"
    path.write_bytes(SAMPLE_DB + b" edited")
    return path
