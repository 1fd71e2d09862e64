from __future__ import annotations

from insights_agent.ingest.base import (
    Message,
    Plan,
    PlanAck,
    Session,
    SessionAck,
    SessionIngester,
    TokenUsageItem,
    ToolCallItem,
    ToolStats,
)
from insights_agent.ingest.claude_code import ClaudeCodeIngester, generate_tags
from insights_agent.ingest.plans import PlanIngester

__all__ = [
    "SessionIngester",
    "Session",
    "Message",
    "TokenUsageItem",
    "ToolCallItem",
    "ToolStats",
    "Plan",
    "SessionAck",
    "PlanAck",
    "ClaudeCodeIngester",
    "PlanIngester",
    "generate_tags",
]
