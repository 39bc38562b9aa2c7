"""
Content-addressed blob cache.

Every version of a database that passes through this client is kept
under .dio/<db>/db/<sha256>. The file name always equals the SHA-256
of the file's bytes, so writing the same content twice is a no-op.
Nothing here ever deletes a blob.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from . import STATE_DIR
from .errors import NotFoundError, StorageError
from .fsutil import atomic_write_bytes, sha256_bytes, sha256_file

logger = logging.getLogger("dio.cache")

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


class ContentCache:
    """Append-only, deduplicating blob store for one working directory."""

    def __init__(self, work_dir: Path):
        """Initialize the cache.

        Args:
            work_dir: Directory holding the working copies and .dio/.
        """
        self.root = Path(work_dir) / STATE_DIR

    def _blob_dir(self, db_name: str) -> Path:
        return self.root / db_name / "db"

    def _blob_path(self, db_name: str, digest: str) -> Path:
        if not _DIGEST_RE.match(digest):
            raise NotFoundError(f"Not a SHA-256 digest: '{digest}'")
        return self._blob_dir(db_name) / digest

    @contextmanager
    def ensure_directory(self, db_name: str) -> Iterator[Path]:
        """Yield the cache directory for ``db_name``, creating it on demand.

        The directory exists when the block exits, whether or not the
        block raised. An error from the block wins over a failure to
        re-create the directory, which is only logged.

        Raises:
            StorageError: If the directory cannot be created.
        """
        directory = self._blob_dir(db_name)
        self._make_directory(directory)
        try:
            yield directory
        except Exception:
            try:
                self._make_directory(directory)
            except StorageError as exc:
                logger.error("%s", exc)
            raise
        self._make_directory(directory)

    @staticmethod
    def _make_directory(directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not create cache directory {directory}: {exc}") from exc

    def put(self, db_name: str, data: bytes) -> str:
        """Store ``data`` and return its digest. Idempotent.

        Args:
            db_name: Database the blob belongs to.
            data: Raw database bytes.

        Returns:
            str: SHA-256 hex digest, which is also the blob's file name.
        """
        digest = sha256_bytes(data)
        with self.ensure_directory(db_name) as directory:
            target = directory / digest
            if target.exists():
                logger.debug("Blob %s already cached for %s", digest[:12], db_name)
                return digest
            atomic_write_bytes(target, data)
        logger.info("Cached %d bytes of %s as %s", len(data), db_name, digest[:12])
        return digest

    def get(self, db_name: str, digest: str) -> bytes:
        """Return the bytes stored under ``digest``.

        Raises:
            NotFoundError: If no such blob is cached.
        """
        path = self._blob_path(db_name, digest)
        if not path.is_file():
            raise NotFoundError(f"No cached copy of {db_name} with digest {digest}")
        return path.read_bytes()

    def contains(self, db_name: str, digest: str) -> bool:
        try:
            return self._blob_path(db_name, digest).is_file()
        except NotFoundError:
            return False

    def digests(self, db_name: str) -> list[str]:
        """Sorted digests of every blob cached for ``db_name``."""
        directory = self._blob_dir(db_name)
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_file() and _DIGEST_RE.match(p.name))

    def verify(self, db_name: str) -> list[str]:
        """Digests whose stored bytes no longer hash to their file name."""
        corrupt = []
        for digest in self.digests(db_name):
            if sha256_file(self._blob_dir(db_name) / digest) != digest:
                logger.warning("Cached blob %s for %s is corrupt", digest[:12], db_name)
                corrupt.append(digest)
        return corrupt
