"""Sync Claude Code session transcripts and plans to a team insights collector."""

__version__ = "0.2.0"
