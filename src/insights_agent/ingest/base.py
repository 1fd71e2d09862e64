from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolStats(BaseModel):
    """Aggregate counters for one tool within a session."""

    count: int = 0
    success: int = 0
    errors: int = 0


class Message(BaseModel):
    """One conversational turn with its extracted text."""

    seq: int
    timestamp: datetime | None = None
    role: str  # "user" | "assistant"
    content: str = ""

    model_config = ConfigDict(frozen=True)


class TokenUsageItem(BaseModel):
    """Token usage reported for a single turn."""

    message_sequence: int
    timestamp: datetime | None = None
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    model_config = ConfigDict(frozen=True)


class ToolCallItem(BaseModel):
    """Detailed record of one tool invocation."""

    message_sequence: int
    tool_name: str
    tool_input: str | None = None
    tool_output: str | None = None
    duration_ms: int | None = None
    # Transcripts carry no per-call outcome at the point the call is read,
    # so every call is recorded as successful.
    success: bool = True

    model_config = ConfigDict(frozen=True)


class Session(BaseModel):
    """Normalized record of one Claude Code conversation transcript."""

    session_id: str
    project_name: str = ""
    project_path: str = Field(default="", exclude=True)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    total_messages: int = 0
    total_tokens_in: int = 0
    total_tokens_out: int = 0
    model: str | None = None
    tools: dict[str, ToolStats] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)
    token_usage: list[TokenUsageItem] = Field(default_factory=list)
    tool_calls: list[ToolCallItem] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Plan(BaseModel):
    """Normalized record of one markdown planning document."""

    name: str
    title: str | None = None
    content: str
    created_at: datetime | None = None

    model_config = ConfigDict(frozen=True)


class _Ack(BaseModel):
    status: str = ""
    warnings: list[str] = Field(default_factory=list)

    @field_validator("warnings", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value


class SessionAck(_Ack):
    """Collector acknowledgment for one submitted session."""

    session_id: str = ""


class PlanAck(_Ack):
    """Collector acknowledgment for one submitted plan."""

    name: str = ""


class SessionIngester(ABC):
    """Abstract base for discovering and parsing session transcripts."""

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Identifier for this ingester (e.g. "claude-code")."""

    @abstractmethod
    def discover_sessions(self) -> list[Path]:
        """Find every transcript file that could be delivered."""

    @abstractmethod
    def parse_session(self, path: Path) -> Session:
        """Parse a transcript file into a normalized Session."""

    @abstractmethod
    def get_session_id(self, path: Path) -> str:
        """Extract the stable identifier used for delivery tracking."""
