from __future__ import annotations

from pathlib import Path

from insights_agent.storage.base import StateStore


def create_state_store(path: Path | None) -> StateStore:
    """
    Factory for the delivery ledger: a JSON file when a path is given, memory otherwise.
    """
    if path is not None:
        from insights_agent.storage.files import JsonStateStore

        return JsonStateStore(path)

    from insights_agent.storage.memory import MemoryStateStore

    return MemoryStateStore()
