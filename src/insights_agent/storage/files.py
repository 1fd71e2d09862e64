from __future__ import annotations

import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from insights_agent.storage.base import StateStore, StateStoreError
from insights_agent.storage.models import SyncState

STATE_FILE_MODE = 0o600
STATE_DIR_MODE = 0o755


class JsonStateStore(StateStore):
    """Delivery ledger kept in a single JSON document, rewritten on every save."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> SyncState:
        try:
            data = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SyncState()
        except (OSError, UnicodeDecodeError) as exc:
            raise StateStoreError(f"Cannot read state file {self.path}: {exc}") from exc

        try:
            return SyncState.model_validate_json(data)
        except ValidationError as exc:
            raise StateStoreError(f"Corrupt state file {self.path}: {exc}") from exc

    def save(self, state: SyncState) -> None:
        payload = state.model_dump_json(indent=2)
        try:
            self.path.parent.mkdir(mode=STATE_DIR_MODE, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.chmod(tmp_name, STATE_FILE_MODE)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StateStoreError(f"Cannot write state file {self.path}: {exc}") from exc
