"""
Per-database metadata record and tracking pointers.

Layout under the working directory:

    .dio/<db>/
    ├── metadata.json   # branches, commits, active branch
    ├── branch          # branch last pulled or pushed
    ├── commit          # commit last pulled or pushed
    └── db/             # content cache (see dio.cache)

Every file here is replaced atomically, never rewritten in place.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from . import STATE_DIR
from .errors import InvariantViolation, StorageError
from .fsutil import atomic_write_text
from .models import Metadata

logger = logging.getLogger("dio.metadata")

METADATA_FILE = "metadata.json"
BRANCH_POINTER = "branch"
COMMIT_POINTER = "commit"


class MetadataStore:
    """Loads and saves metadata records for databases in one directory."""

    def __init__(self, work_dir: Path):
        """Initialize the store.

        Args:
            work_dir: Directory holding the working copies and .dio/.
        """
        self.root = Path(work_dir) / STATE_DIR

    def _db_dir(self, db_name: str) -> Path:
        return self.root / db_name

    def metadata_path(self, db_name: str) -> Path:
        return self._db_dir(db_name) / METADATA_FILE

    def exists(self, db_name: str) -> bool:
        """Whether a metadata record has ever been saved for ``db_name``."""
        return self.metadata_path(db_name).is_file()

    def load(self, db_name: str) -> Metadata:
        """Load the metadata record for ``db_name``.

        A missing record gives an empty Metadata. So does a malformed
        one, with a warning, so a damaged file never blocks a pull that
        would rewrite it.

        Args:
            db_name: Database name.

        Returns:
            Metadata: The stored record, or an empty one.
        """
        path = self.metadata_path(db_name)
        if not path.exists():
            return Metadata()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Metadata(**data)
        except (OSError, json.JSONDecodeError, TypeError, PydanticValidationError) as exc:
            logger.warning(
                "Ignoring malformed metadata record %s, treating as no history: %s",
                path,
                exc,
            )
            return Metadata()

    def save(self, db_name: str, meta: Metadata) -> Path:
        """Validate and atomically persist ``meta``.

        Args:
            db_name: Database name.
            meta: Record to save.

        Returns:
            Path: The metadata file.

        Raises:
            InvariantViolation: If a branch or the active branch references an unknown key.
            StorageError: If the record cannot be written.
        """
        problems = meta.violations()
        if problems:
            raise InvariantViolation(problems)

        path = atomic_write_text(self.metadata_path(db_name), meta.model_dump_json(indent=2))
        logger.debug(
            "Saved metadata for %s: %d branch(es), %d commit(s)",
            db_name,
            len(meta.branches),
            len(meta.commits),
        )
        return path

    def read_pointers(self, db_name: str) -> tuple[str, str]:
        """Return the (branch, commit) last recorded for ``db_name``.

        Missing pointers come back as empty strings.
        """
        values = []
        for name in (BRANCH_POINTER, COMMIT_POINTER):
            path = self._db_dir(db_name) / name
            try:
                values.append(path.read_text(encoding="utf-8").strip() if path.is_file() else "")
            except OSError as exc:
                raise StorageError(f"Could not read {path}: {exc}") from exc
        return values[0], values[1]

    def write_pointers(
        self,
        db_name: str,
        branch: Optional[str] = None,
        commit: Optional[str] = None,
    ) -> None:
        """Record the branch and/or commit the working copy now matches.

        None leaves a pointer untouched.
        """
        if branch is not None:
            atomic_write_text(self._db_dir(db_name) / BRANCH_POINTER, branch)
        if commit is not None:
            atomic_write_text(self._db_dir(db_name) / COMMIT_POINTER, commit)
