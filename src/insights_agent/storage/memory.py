from __future__ import annotations

from insights_agent.storage.base import StateStore, StateStoreError
from insights_agent.storage.models import SyncState


class MemoryStateStore(StateStore):
    """In-process ledger; keeps the serialized form so each load is a fresh copy."""

    def __init__(self, state: SyncState | None = None):
        self._data: str | None = state.model_dump_json() if state is not None else None
        self.saves = 0
        self.fail_reads = False
        self.fail_writes = False

    def load(self) -> SyncState:
        if self.fail_reads:
            raise StateStoreError("state unavailable")
        if self._data is None:
            return SyncState()
        return SyncState.model_validate_json(self._data)

    def save(self, state: SyncState) -> None:
        if self.fail_writes:
            raise StateStoreError("state is read-only")
        self._data = state.model_dump_json()
        self.saves += 1

    @property
    def raw(self) -> str | None:
        return self._data
