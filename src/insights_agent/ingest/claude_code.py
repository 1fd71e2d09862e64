from __future__ import annotations

import json
import logging
import math
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from insights_agent.ingest.base import (
    Message,
    Session,
    SessionIngester,
    TokenUsageItem,
    ToolCallItem,
    ToolStats,
)
from insights_agent.ingest.discovery import ErrorStrategy, walk_files

logger = logging.getLogger(__name__)

TURN_TYPES = frozenset({"user", "assistant"})

# Keyword table for topical tags, checked in order against the opening turns.
TAG_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("debugging", ("error", "bug", "fix", "debug")),
    ("refactoring", ("refactor", "cleanup", "restructure")),
    ("feature", ("implement", "add feature", "new feature")),
    ("testing", ("test", "spec", "coverage")),
    ("documentation", ("document", "readme", "comment")),
)
TAG_SCAN_MESSAGES = 5

PROJECT_DIR_MARKER = "-"


class ClaudeCodeIngester(SessionIngester):
    """Ingest Claude Code session transcripts from JSONL storage."""

    def __init__(self, claude_dir: Path | None = None):
        self.claude_dir = claude_dir or Path.home() / ".claude"

    @property
    def source_name(self) -> str:
        return "claude-code"

    @property
    def projects_dir(self) -> Path:
        return self.claude_dir / "projects"

    def discover_sessions(self, on_error: ErrorStrategy | None = None) -> list[Path]:
        if not self.projects_dir.exists():
            logger.info("No transcripts directory at %s", self.projects_dir)
            return []
        return walk_files(self.projects_dir, ".jsonl", on_error=on_error)

    def get_session_id(self, path: Path) -> str:
        return path.name.removesuffix(".jsonl")

    @staticmethod
    def project_from_dir(dir_name: str) -> tuple[str, str]:
        """Recover ``(project_path, project_name)`` from an encoded project directory."""
        if not dir_name.startswith(PROJECT_DIR_MARKER):
            return "", ""
        project_path = dir_name.replace("-", "/")
        return project_path, project_path.rsplit("/", 1)[-1]

    @staticmethod
    def _parse_timestamp(value: Any) -> datetime | None:
        if not isinstance(value, str) or not value:
            return None
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed.astimezone(UTC)

    def parse_session(self, path: Path) -> Session:
        project_path, project_name = self.project_from_dir(path.parent.name)

        tools: dict[str, ToolStats] = {}
        messages: list[Message] = []
        token_usage: list[TokenUsageItem] = []
        tool_calls: list[ToolCallItem] = []
        tokens_in = 0
        tokens_out = 0
        model: str | None = None
        started_at: datetime | None = None
        ended_at: datetime | None = None

        with path.open("rb") as file:
            for raw_line in file:
                line = raw_line.strip()
                if not line:
                    continue

                try:
                    entry = json.loads(line, parse_constant=_reject_constant)
                except ValueError:
                    continue

                if not isinstance(entry, dict):
                    continue

                timestamp = self._parse_timestamp(entry.get("timestamp"))
                if timestamp:
                    started_at = timestamp if started_at is None else min(started_at, timestamp)
                    ended_at = timestamp if ended_at is None else max(ended_at, timestamp)

                entry_type = entry.get("type")
                if not isinstance(entry_type, str) or entry_type not in TURN_TYPES:
                    continue

                seq = len(messages)
                payload = entry.get("message")
                if not isinstance(payload, dict):
                    payload = {}

                text_parts: list[str] = []
                for block in self._content_blocks(payload.get("content")):
                    block_type = block.get("type")
                    if block_type == "text":
                        text = block.get("text")
                        text_parts.append("" if text is None else str(text))
                    elif block_type == "tool_use":
                        name = block.get("name")
                        if not name:
                            continue
                        stats = tools.setdefault(str(name), ToolStats())
                        stats.count += 1
                        stats.success += 1
                        tool_calls.append(
                            ToolCallItem(
                                message_sequence=seq,
                                tool_name=str(name),
                                tool_input=self._serialize_input(block.get("input")),
                                success=True,
                            )
                        )

                message_model = payload.get("model")
                if not isinstance(message_model, str) or not message_model:
                    message_model = None
                usage = payload.get("usage")
                if isinstance(usage, dict):
                    item = TokenUsageItem(
                        message_sequence=seq,
                        timestamp=timestamp,
                        model=message_model,
                        input_tokens=self._as_int(usage.get("input_tokens")),
                        output_tokens=self._as_int(usage.get("output_tokens")),
                        cache_read_tokens=self._as_int(usage.get("cache_read_input_tokens")),
                        cache_creation_tokens=self._as_int(
                            usage.get("cache_creation_input_tokens")
                        ),
                    )
                    tokens_in += item.input_tokens
                    tokens_out += item.output_tokens
                    token_usage.append(item)
                if message_model:
                    model = message_model

                messages.append(
                    Message(
                        seq=seq,
                        timestamp=timestamp,
                        role=entry_type,
                        content="\n".join(text_parts),
                    )
                )

        return Session(
            session_id=self.get_session_id(path),
            project_name=project_name,
            project_path=project_path,
            started_at=started_at,
            ended_at=ended_at,
            total_messages=len(messages),
            total_tokens_in=tokens_in,
            total_tokens_out=tokens_out,
            model=model,
            tools=tools,
            tags=generate_tags(tools, messages),
            messages=messages,
            token_usage=token_usage,
            tool_calls=tool_calls,
        )

    @staticmethod
    def _content_blocks(content: Any) -> list[dict[str, Any]]:
        if isinstance(content, str):
            return [{"type": "text", "text": content}]
        if isinstance(content, list):
            return [block for block in content if isinstance(block, dict)]
        return []

    @staticmethod
    def _serialize_input(value: Any) -> str | None:
        if value is None:
            return None
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _as_int(value: Any) -> int:
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else 0
        return 0


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite JSON number {name}")


def generate_tags(tools: dict[str, ToolStats], messages: list[Message]) -> list[str]:
    """Derive tool tags and keyword-based topical tags for a session."""
    tags = [f"tool:{name}" for name in tools]

    opening = " ".join(message.content.lower() for message in messages[:TAG_SCAN_MESSAGES])
    for tag, keywords in TAG_KEYWORDS:
        if any(keyword in opening for keyword in keywords):
            tags.append(tag)

    return tags
