"""
Pre-flight checks run before any network I/O.

A request that fails here never reaches the remote service.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from .config import DioConfig
from .errors import ValidationError
from .models import PushRequest
from .selector import resolve


def check_db_name(db_name: Optional[str]) -> None:
    """Reject empty names and names that would escape the working directory."""
    if not db_name or not db_name.strip():
        raise ValidationError("No database file specified")
    if "/" in db_name or "\\" in db_name or db_name in (".", "..") or db_name.startswith("."):
        raise ValidationError(f"Database name must be a plain file name: '{db_name}'")


class PolicyGuard:
    """Validates pull and push requests against local preconditions."""

    def __init__(self, config: DioConfig):
        self.config = config

    def check_pull(self, db_name: str, branch: Optional[str] = None, commit: Optional[str] = None):
        """Validate a pull request and return its selector.

        Raises:
            ValidationError: If no database name was given.
            InvalidSelectorError: If both branch and commit were given.
        """
        check_db_name(db_name)
        return resolve(branch, commit)

    def build_push(
        self,
        path: Path,
        message: str,
        author: Optional[str] = None,
        email: Optional[str] = None,
        branch: Optional[str] = None,
        commit: Optional[str] = None,
        db_name: Optional[str] = None,
        licence: Optional[str] = None,
        public: bool = False,
        force: bool = False,
    ) -> PushRequest:
        """Assemble a push request, explicit arguments overriding config.

        Args:
            path: Working-copy file to upload.
            message: Commit message.
            author: Author name override.
            email: Author email override.
            branch: Destination branch override.
            commit: Base commit override.
            db_name: Name to store the database as. Defaults to the file name.
            licence: Optional licence id.
            public: Whether the database should be public.
            force: Whether to overwrite remote history.

        Returns:
            PushRequest: A request that has passed ``check_push``.
        """
        path = Path(path)
        request = PushRequest(
            db_name=db_name or path.name,
            path=path,
            message=message or "",
            author=author or self.config.author or "",
            email=email or self.config.email or "",
            branch=branch or "",
            commit=commit or "",
            licence=licence or None,
            public=public,
            force=force,
        )
        self.check_push(request)
        return request

    def check_push(self, request: PushRequest) -> None:
        """Raise ValidationError unless the push can be attempted."""
        check_db_name(request.db_name)
        if not request.author.strip() or not request.email.strip():
            raise ValidationError("Both author name and email are required!")
        if not request.message.strip():
            raise ValidationError("Commit message is required!")
        path = request.path
        if not path.exists():
            raise ValidationError(f"Database file not found: {path}")
        if not path.is_file():
            raise ValidationError(f"Not a regular file: {path}")
        if not os.access(path, os.R_OK):
            raise ValidationError(f"Database file is not readable: {path}")
