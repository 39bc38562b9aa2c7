"""Tests for SyncClient.pull."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from dio.client import SyncClient
from dio.errors import (
    InvalidSelectorError,
    NotFoundError,
    ProtocolError,
    RemoteError,
    StorageError,
)
from dio.fsutil import atomic_write_bytes as real_write
from dio.models import ResolvedBy
from dio.remote import RemoteResponse

from conftest import SAMPLE_DB, FakeRemote, json_response

MODIFIED = 'attachment; filename="sales.db"; modification-date="2017-03-01T10:20:30Z"; size=17'


def _cache_dir(work_dir: Path) -> Path:
    return work_dir / ".dio" / "sales.db" / "db"


class TestPullHappyPath:
    """Pull sales.db from branch master."""

    def test_creates_working_copy_cache_and_metadata(self, client: SyncClient, work_dir: Path):
        outcome = client.pull("sales.db", branch="master")

        digest = hashlib.sha256(SAMPLE_DB).hexdigest()
        assert (work_dir / "sales.db").read_bytes() == SAMPLE_DB
        assert outcome.size == 17
        assert outcome.sha256 == digest
        assert (_cache_dir(work_dir) / digest).read_bytes() == SAMPLE_DB
        assert client.store.load("sales.db").active_branch == "master"

    def test_cache_name_is_content_digest(self, client: SyncClient, work_dir: Path):
        client.pull("sales.db")
        for blob in _cache_dir(work_dir).iterdir():
            assert hashlib.sha256(blob.read_bytes()).hexdigest() == blob.name

    def test_metadata_checked_before_download(self, client: SyncClient, remote: FakeRemote):
        client.pull("sales.db", branch="master")
        assert remote.call_names() == ["fetch_metadata", "download"]
        assert remote.calls[1][2] == {"branch": "master"}

    def test_pull_twice_is_idempotent(self, client: SyncClient, work_dir: Path):
        client.pull("sales.db", commit="c2")
        client.pull("sales.db", commit="c2")

        assert len(list(_cache_dir(work_dir).iterdir())) == 1
        assert (work_dir / "sales.db").read_bytes() == SAMPLE_DB

    def test_records_pointers(self, client: SyncClient):
        client.pull("sales.db", branch="master")
        assert client.store.read_pointers("sales.db") == ("master", "c2")

    def test_sets_modification_time(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        remote.download_response.headers["Content-Disposition"] = MODIFIED
        outcome = client.pull("sales.db", branch="master")

        expected = datetime(2017, 3, 1, 10, 20, 30, tzinfo=timezone.utc)
        assert outcome.modified_at == expected
        assert (work_dir / "sales.db").stat().st_mtime == pytest.approx(expected.timestamp())


class TestPullResolution:
    """The outcome says how the version was chosen."""

    def test_by_branch(self, client: SyncClient):
        assert client.pull("sales.db", branch="master").resolved_by == ResolvedBy.BRANCH

    def test_by_commit(self, client: SyncClient, remote: FakeRemote):
        remote.download_response.headers = {"Commit-Id": "d1"}
        outcome = client.pull("sales.db", commit="d1")
        assert outcome.resolved_by == ResolvedBy.COMMIT
        assert outcome.commit_id == "d1"
        assert remote.calls[1][2] == {"commit": "d1"}

    def test_by_default_uses_server_commit(self, client: SyncClient, remote: FakeRemote):
        outcome = client.pull("sales.db")
        assert outcome.resolved_by == ResolvedBy.DEFAULT
        assert outcome.commit_id == "c2"
        assert remote.calls[1][2] == {}

    def test_commit_pull_without_headers(self, client: SyncClient, remote: FakeRemote):
        remote.download_response.headers = {}
        client.pull("sales.db", commit="d1")
        assert client.store.read_pointers("sales.db") == ("", "d1")

    def test_server_branch_unknown_to_metadata_is_ignored(self, client: SyncClient, remote: FakeRemote):
        remote.download_response.headers = {"Branch": "ghost", "Commit-Id": "c2"}
        client.pull("sales.db")
        assert client.store.load("sales.db").active_branch == ""


class TestPullFailures:
    """Nothing is written locally when the pull fails."""

    def _assert_untouched(self, work_dir: Path):
        assert not (work_dir / "sales.db").exists()
        assert not (work_dir / ".dio" / "sales.db" / "metadata.json").exists()
        assert not _cache_dir(work_dir).exists() or not any(_cache_dir(work_dir).iterdir())

    def test_both_selectors_make_no_calls(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        with pytest.raises(InvalidSelectorError):
            client.pull("sales.db", branch="master", commit="c2")
        assert remote.calls == []
        self._assert_untouched(work_dir)

    def test_unknown_database(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        remote.metadata_response = RemoteResponse(status=404, reason="Not Found")
        with pytest.raises(NotFoundError):
            client.pull("sales.db")
        assert remote.call_names() == ["fetch_metadata"]
        self._assert_untouched(work_dir)

    def test_unknown_branch_skips_download(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        with pytest.raises(NotFoundError, match="branch doesn't exist"):
            client.pull("sales.db", branch="ghost")
        assert "download" not in remote.call_names()
        self._assert_untouched(work_dir)

    def test_unknown_commit_skips_download(self, client: SyncClient, remote: FakeRemote):
        with pytest.raises(NotFoundError, match="commit doesn't exist"):
            client.pull("sales.db", commit="zz")
        assert "download" not in remote.call_names()

    @pytest.mark.parametrize(
        "kwargs,fragment",
        [({"branch": "master"}, "branch 'master'"), ({"commit": "c2"}, "commit c2"), ({}, "not found")],
    )
    def test_download_404_messages(self, client: SyncClient, remote: FakeRemote, work_dir: Path, kwargs, fragment):
        remote.download_response = RemoteResponse(status=404, reason="Not Found")
        with pytest.raises(NotFoundError, match=fragment):
            client.pull("sales.db", **kwargs)
        self._assert_untouched(work_dir)

    def test_download_server_error(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        remote.download_response = RemoteResponse(status=503, reason="Service Unavailable")
        with pytest.raises(RemoteError) as excinfo:
            client.pull("sales.db")
        assert excinfo.value.status == 503
        assert "Service Unavailable" in str(excinfo.value)
        self._assert_untouched(work_dir)

    def test_metadata_server_error(self, client: SyncClient, remote: FakeRemote):
        remote.metadata_response = RemoteResponse(status=500, reason="Internal Server Error")
        with pytest.raises(RemoteError):
            client.pull("sales.db")

    def test_metadata_not_json(self, client: SyncClient, remote: FakeRemote):
        remote.metadata_response = RemoteResponse(status=200, body=b"<html>")
        with pytest.raises(ProtocolError):
            client.pull("sales.db")

    def test_inconsistent_metadata_skips_download(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        client.pull("sales.db", branch="master")
        remote.metadata_response = json_response({
            "default_branch": "master",
            "branches": {"master": "c2", "stale": "missing-commit"},
            "commits": {"c2": {"parent": ""}},
        })
        remote.download_response = RemoteResponse(status=200, body=b"newer content")

        with pytest.raises(ProtocolError, match="missing-commit"):
            client.pull("sales.db", branch="master")

        assert remote.call_names()[-1] == "fetch_metadata"
        assert (work_dir / "sales.db").read_bytes() == SAMPLE_DB
        assert client.store.read_pointers("sales.db") == ("master", "c2")

    def test_working_copy_write_failure_keeps_old_metadata(
        self, client: SyncClient, remote: FakeRemote, work_dir: Path,
    ):
        client.pull("sales.db", branch="master")
        before = client.store.load("sales.db")

        remote.download_response = RemoteResponse(
            status=200, headers={"Branch": "dev", "Commit-Id": "d1"}, body=b"newer content",
        )
        def failing_for_working_copy(path, data):
            if Path(path) == work_dir / "sales.db":
                raise StorageError("disk full")
            return real_write(path, data)

        with patch("dio.client.atomic_write_bytes", side_effect=failing_for_working_copy):
            with pytest.raises(StorageError):
                client.pull("sales.db", branch="dev")

        assert (work_dir / "sales.db").read_bytes() == SAMPLE_DB
        assert client.store.load("sales.db") == before
        assert client.store.read_pointers("sales.db") == ("master", "c2")


class TestPullBadModificationDate:
    """A malformed date is reported but the download is kept."""

    def test_file_and_metadata_kept(self, client: SyncClient, remote: FakeRemote, work_dir: Path):
        remote.download_response.headers["Content-Disposition"] = (
            'attachment; filename="sales.db"; modification-date="not a date"'
        )
        with pytest.raises(ProtocolError) as excinfo:
            client.pull("sales.db", branch="master")

        assert excinfo.value.outcome is not None
        assert excinfo.value.outcome.size == 17
        assert (work_dir / "sales.db").read_bytes() == SAMPLE_DB
        assert client.store.load("sales.db").active_branch == "master"


class TestPullActiveBranch:
    def test_previous_active_branch_survives_default_pull(self, client: SyncClient, remote: FakeRemote):
        remote.download_response.headers = {"Branch": "dev", "Commit-Id": "d1"}
        client.pull("sales.db", branch="dev")

        remote.download_response.headers = {"Commit-Id": "c1"}
        client.pull("sales.db", commit="c1")
        assert client.store.load("sales.db").active_branch == "dev"

    def test_metadata_document_replaces_local_history(self, client: SyncClient, remote: FakeRemote):
        client.pull("sales.db", branch="master")
        remote.metadata_response = json_response({
            "default_branch": "master",
            "branches": {"master": "c9"},
            "commits": {"c9": {"parent": "", "message": "squashed"}},
        })
        remote.download_response.headers = {"Branch": "master", "Commit-Id": "c9"}
        client.pull("sales.db", branch="master")

        meta = client.store.load("sales.db")
        assert set(meta.commits) == {"c9"}
        assert json.loads(client.store.metadata_path("sales.db").read_text())["branches"] == {"master": "c9"}
