from __future__ import annotations

from abc import ABC, abstractmethod

from insights_agent.storage.models import SyncState


class DeliveryError(Exception):
    """Raised when the collector does not accept a submission."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnauthorizedError(DeliveryError):
    """Raised when the collector rejects the API key."""

    def __init__(self, body: str | None = None):
        super().__init__("unauthorized: invalid API key", status_code=401, body=body)


class CollectorUnavailableError(DeliveryError):
    """Raised when the collector cannot be reached or reports itself unhealthy."""

    pass


class StateStoreError(Exception):
    """Raised when sync state cannot be read or written."""

    pass


class DiscoveryError(Exception):
    """Raised when the transcript root cannot be enumerated."""

    pass


class StateStore(ABC):
    """
    Port for persisting the delivery ledger.

    Implementations must return an empty state when nothing has been stored yet
    and raise ``StateStoreError`` for any other read or write failure.
    """

    @abstractmethod
    def load(self) -> SyncState:
        """Return the persisted state."""

    @abstractmethod
    def save(self, state: SyncState) -> None:
        """Replace the persisted state with ``state``."""
