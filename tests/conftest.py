from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from insights_agent.ingest.base import Plan, PlanAck, Session, SessionAck
from insights_agent.storage.base import DeliveryError
from insights_agent.storage.memory import MemoryStateStore

PROJECT_DIR = "-home-dev-webshop"


class FakeCollector:
    """Records every batch it receives and acknowledges each item in order."""

    def __init__(self, fail_times: int = 0, error: DeliveryError | None = None):
        self.fail_times = fail_times
        self.error = error or DeliveryError("server error 503: unavailable", status_code=503)
        self.session_batches: list[list[Session]] = []
        self.plan_batches: list[list[Plan]] = []
        self.session_calls = 0
        self.plan_calls = 0
        self.ack_limit: int | None = None
        self.closed = False

    def _maybe_fail(self, calls: int) -> None:
        if calls <= self.fail_times:
            raise self.error

    def upload_sessions(self, sessions: Sequence[Session]) -> list[SessionAck]:
        self.session_calls += 1
        self._maybe_fail(self.session_calls)
        self.session_batches.append(list(sessions))
        acks = [SessionAck(status="created", session_id=s.session_id) for s in sessions]
        return acks if self.ack_limit is None else acks[: self.ack_limit]

    def upload_plans(self, plans: Sequence[Plan]) -> list[PlanAck]:
        self.plan_calls += 1
        self._maybe_fail(self.plan_calls)
        self.plan_batches.append(list(plans))
        return [PlanAck(status="created", name=p.name) for p in plans]

    def close(self) -> None:
        self.closed = True

    @property
    def sent_session_ids(self) -> list[str]:
        return [s.session_id for batch in self.session_batches for s in batch]

    @property
    def sent_plan_names(self) -> list[str]:
        return [p.name for batch in self.plan_batches for p in batch]


class SteppingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


def turn(
    role: str,
    text: str | None = None,
    *,
    timestamp: str | None = "2025-01-15T10:00:00Z",
    tools: Sequence[tuple[str, dict[str, Any]]] = (),
    usage: dict[str, int] | None = None,
    model: str | None = None,
) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text is not None:
        content.append({"type": "text", "text": text})
    for name, tool_input in tools:
        content.append(
            {"type": "tool_use", "id": f"toolu_{name}", "name": name, "input": tool_input}
        )

    message: dict[str, Any] = {"role": role, "content": content}
    if usage is not None:
        message["usage"] = usage
    if model is not None:
        message["model"] = model

    entry: dict[str, Any] = {"type": role, "message": message}
    if timestamp is not None:
        entry["timestamp"] = timestamp
    return entry


@pytest.fixture
def claude_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".claude"
    (path / "projects").mkdir(parents=True)
    return path


@pytest.fixture
def write_transcript(claude_dir: Path) -> Callable[..., Path]:
    def _write(
        session_id: str,
        entries: Sequence[dict[str, Any] | str] | None = None,
        project_dir: str = PROJECT_DIR,
    ) -> Path:
        directory = claude_dir / "projects" / project_dir
        directory.mkdir(parents=True, exist_ok=True)
        if entries is None:
            entries = [turn("user", "hello there"), turn("assistant", "hi")]
        lines = [entry if isinstance(entry, str) else json.dumps(entry) for entry in entries]
        path = directory / f"{session_id}.jsonl"
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write


@pytest.fixture
def write_plan(claude_dir: Path) -> Callable[..., Path]:
    def _write(name: str, content: str = "# A plan\n\n- step one\n") -> Path:
        directory = claude_dir / "plans"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}.md"
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def state_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()
