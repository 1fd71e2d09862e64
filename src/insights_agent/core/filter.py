from __future__ import annotations

import os
from collections.abc import Sequence
from fnmatch import fnmatchcase
from pathlib import PurePosixPath

from insights_agent.ingest.base import Session
from insights_agent.storage.models import SHARE_LEVELS, SharingConfig

RECURSIVE_WILDCARD = "**"


class PrivacyFilter:
    """Apply the sharing policy to sessions before delivery."""

    def __init__(self, config: SharingConfig):
        if config.level not in SHARE_LEVELS:
            raise ValueError(
                f"Unknown sharing level {config.level!r}; expected one of {', '.join(SHARE_LEVELS)}"
            )
        self.config = config
        self._patterns = [os.path.expanduser(p) for p in config.exclude_projects if p]

    def apply(self, session: Session) -> Session | None:
        """Return a redacted copy of ``session``, or None when nothing may be sent."""
        if self.is_excluded(session.project_path):
            return None
        if self.config.level == "none":
            return None

        full = self.config.level == "full"
        if self.config.anonymize_paths:
            project_name = PurePosixPath(session.project_path).name
        else:
            project_name = session.project_path

        return session.model_copy(
            update={
                "project_name": project_name,
                "tools": {name: stats.model_copy() for name, stats in session.tools.items()},
                "tags": list(session.tags),
                "token_usage": list(session.token_usage),
                "messages": list(session.messages) if full else [],
                "tool_calls": list(session.tool_calls) if full else [],
            }
        )

    def is_excluded(self, project_path: str) -> bool:
        return any(match_path(pattern, project_path) for pattern in self._patterns)


def match_path(pattern: str, path: str) -> bool:
    """Glob-match ``path`` segment by segment; ``**`` spans any number of segments."""
    if _match_segments(pattern.split("/"), path.split("/")):
        return True

    # A slash-free pattern with ** also matches any single component of the path.
    if RECURSIVE_WILDCARD in pattern and "/" not in pattern:
        collapsed = pattern.replace(RECURSIVE_WILDCARD, "*")
        return any(fnmatchcase(part, collapsed) for part in path.split("/"))

    return False


def _match_segments(pattern: Sequence[str], parts: Sequence[str]) -> bool:
    if not pattern:
        return not parts

    head, rest = pattern[0], pattern[1:]
    if head == RECURSIVE_WILDCARD:
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))

    if not parts:
        return False
    return fnmatchcase(parts[0], head) and _match_segments(rest, parts[1:])
