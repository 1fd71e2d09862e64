from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from insights_agent.ingest.base import Plan
from insights_agent.ingest.discovery import ErrorStrategy, walk_files

logger = logging.getLogger(__name__)

TITLE_PREFIX = "# "


class PlanIngester:
    """Discover and parse markdown plan documents."""

    def __init__(self, claude_dir: Path | None = None):
        self.claude_dir = claude_dir or Path.home() / ".claude"

    @property
    def plans_dir(self) -> Path:
        return self.claude_dir / "plans"

    def discover_plans(self, on_error: ErrorStrategy | None = None) -> list[Path]:
        if not self.plans_dir.exists():
            return []
        return walk_files(self.plans_dir, ".md", on_error=on_error)

    def get_plan_name(self, path: Path) -> str:
        return path.name.removesuffix(".md")

    @staticmethod
    def modified_at(path: Path) -> datetime:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)

    def parse_plan(self, path: Path) -> Plan:
        content = path.read_text(encoding="utf-8")
        name = self.get_plan_name(path)
        return Plan(
            name=name,
            title=extract_title(content, fallback=name),
            content=content,
            created_at=self.modified_at(path),
        )


def extract_title(content: str, fallback: str) -> str:
    """Return the text of the first top-level heading, or ``fallback``."""
    for line in content.splitlines():
        if line.startswith(TITLE_PREFIX):
            return line.removeprefix(TITLE_PREFIX).strip()
    return fallback
