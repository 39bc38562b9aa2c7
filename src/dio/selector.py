"""Turn the user's --branch / --commit flags into a single selector."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .errors import InvalidSelectorError
from .models import ByBranch, ByCommit, Unspecified

logger = logging.getLogger("dio.selector")


def resolve(
    branch: Optional[str] = None,
    commit: Optional[str] = None,
) -> Union[ByBranch, ByCommit, Unspecified]:
    """Normalize a branch/commit pair into exactly one selector.

    Empty strings and None both mean "not given". Any other value counts
    as given, so a blank name is an error rather than silently dropped.

    Args:
        branch: Requested branch name.
        commit: Requested commit id.

    Returns:
        ByBranch, ByCommit or Unspecified.

    Raises:
        InvalidSelectorError: If both a branch and a commit were given,
            or the one given is blank.
    """
    branch = branch or ""
    commit = commit or ""

    if branch and commit:
        raise InvalidSelectorError(
            "Either a branch name or commit ID can be given. Not both at the same time!"
        )
    if branch:
        if not branch.strip():
            raise InvalidSelectorError("Branch name cannot be blank")
        return ByBranch(name=branch.strip())
    if commit:
        if not commit.strip():
            raise InvalidSelectorError("Commit ID cannot be blank")
        return ByCommit(commit_id=commit.strip())
    logger.debug("No branch or commit given, using the server default")
    return Unspecified()
