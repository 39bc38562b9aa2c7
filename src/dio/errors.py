"""
Exception taxonomy for the sync subsystem.

Selector and validation errors are raised before any network access.
Everything the remote side produces is surfaced unmodified; there is
no automatic retry.
"""

from __future__ import annotations

from typing import Optional


class DioError(Exception):
    """Base class for every error the CLI reports to the user."""


class InvalidSelectorError(DioError):
    """Raised when both a branch and a commit are requested at once."""


class ValidationError(DioError):
    """Raised when a push request is missing author, email, message or file."""


class NotFoundError(DioError):
    """Raised for an unknown database, branch, commit or cached blob."""


class RemoteError(DioError):
    """Raised when the remote answers with an unexpected status.

    Attributes:
        status: HTTP status code, or None when no response was received.
        reason: Status text or transport error description.
    """

    def __init__(self, message: str, status: Optional[int] = None, reason: str = ""):
        super().__init__(message)
        self.status = status
        self.reason = reason


class ConflictError(RemoteError):
    """Raised when a push is rejected as a non-fast-forward.

    Pull first, or push again with force to overwrite remote history.
    """


class ProtocolError(DioError):
    """Raised when response headers or body have an unexpected shape.

    Attributes:
        outcome: Set when the operation itself completed and only a
            cosmetic field was malformed (e.g. a pull whose file was
            kept despite a bad modification date).
    """

    def __init__(self, message: str, outcome: Optional[object] = None):
        super().__init__(message)
        self.outcome = outcome


class InvariantViolation(DioError):
    """Raised when metadata about to be saved references unknown keys."""

    def __init__(self, violations: list[str]):
        super().__init__("; ".join(violations))
        self.violations = violations


class StorageError(DioError, OSError):
    """Raised when local state cannot be written."""
