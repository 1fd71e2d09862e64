from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from insights_agent.core.config import resolve_logs_dir, resolve_state_path
from insights_agent.core.filter import PrivacyFilter
from insights_agent.core.retry import RetryExhaustedError, RetryPolicy, attempt_with_retry
from insights_agent.ingest.base import Plan, Session
from insights_agent.ingest.claude_code import ClaudeCodeIngester
from insights_agent.ingest.plans import PlanIngester
from insights_agent.storage import create_state_store
from insights_agent.storage.base import DeliveryError, DiscoveryError, StateStore, StateStoreError
from insights_agent.storage.models import InsightsConfig, SyncState, SyncStats, utcnow
from insights_agent.storage.remote import CollectorClient

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

ItemT = TypeVar("ItemT", Session, Plan)


@dataclass
class SyncReport:
    """Outcome of one sync pass."""

    sessions_discovered: int = 0
    sessions_new: int = 0
    sessions_uploaded: int = 0
    sessions_excluded: int = 0
    sessions_failed: int = 0
    plans_discovered: int = 0
    plans_pending: int = 0
    plans_uploaded: int = 0
    plans_failed: int = 0
    parse_errors: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _DeliveryOutcome:
    delivered: int = 0
    failed: int = 0


class SyncEngine:
    """Discover new transcripts and plans, redact them, and deliver each identity once."""

    def __init__(
        self,
        client: CollectorClient,
        privacy_filter: PrivacyFilter,
        state_store: StateStore,
        *,
        session_ingester: ClaudeCodeIngester | None = None,
        plan_ingester: PlanIngester | None = None,
        retry_policy: RetryPolicy | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.privacy_filter = privacy_filter
        self.state_store = state_store
        self.session_ingester = session_ingester or ClaudeCodeIngester()
        self.plan_ingester = plan_ingester or PlanIngester(self.session_ingester.claude_dir)
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = max(1, batch_size)
        self.clock = clock
        self.stop_event = threading.Event()

    @classmethod
    def from_config(cls, config: InsightsConfig) -> SyncEngine:
        """Build the production wiring. The config must already pass ``validate_for_sync``."""
        logs_dir = resolve_logs_dir(config)
        return cls(
            client=CollectorClient.from_config(config.server),
            privacy_filter=PrivacyFilter(config.sharing),
            state_store=create_state_store(resolve_state_path(config)),
            session_ingester=ClaudeCodeIngester(logs_dir),
            plan_ingester=PlanIngester(logs_dir),
            retry_policy=RetryPolicy(max_attempts=config.sync.retry_attempts),
            batch_size=config.sync.batch_size,
        )

    @property
    def logs_dir(self) -> Path:
        return self.session_ingester.claude_dir

    def run_once(self) -> SyncReport:
        """Run one full pass and persist the resulting state.

        Raises:
            DiscoveryError: If the transcript root cannot be enumerated.
            StateStoreError: If the state cannot be written.
        """
        state = self._load_state()
        new_state, report = self.sync_pass(state)
        self.state_store.save(new_state)
        return report

    def sync_pass(self, state: SyncState) -> tuple[SyncState, SyncReport]:
        """Deliver everything not yet recorded in ``state``; return the updated copy."""
        state = state.model_copy(deep=True)
        report = SyncReport()

        self._sync_sessions(state, report)
        self._sync_plans(state, report)

        state.last_sync = self.clock()
        return state, report

    def run_forever(self, interval: float, stop_event: threading.Event | None = None) -> None:
        """Sync now, then every ``interval`` seconds until ``stop_event`` is set.

        The stop signal is only observed between passes; a running pass always
        finishes, including its state write.
        """
        stop = stop_event or self.stop_event
        logger.info("Watching %s (interval: %ss)", self.logs_dir, interval)

        self._run_guarded()
        next_tick = time.monotonic() + interval
        while not stop.wait(max(0.0, next_tick - time.monotonic())):
            self._run_guarded()
            next_tick += interval
            now = time.monotonic()
            if next_tick <= now:
                skipped = int((now - next_tick) // interval) + 1
                next_tick += skipped * interval

        logger.info("Watcher stopped")

    def stop(self) -> None:
        self.stop_event.set()

    def stats(self) -> SyncStats:
        """Summarize the persisted ledger without modifying it."""
        try:
            state = self.state_store.load()
        except StateStoreError:
            return SyncStats()
        return SyncStats(
            total_synced=len(state.synced_sessions),
            total_plans_synced=len(state.synced_plans),
            last_sync=state.last_sync,
        )

    def _run_guarded(self) -> None:
        try:
            report = self.run_once()
        except Exception:  # noqa: BLE001
            logger.exception("Sync error")
            return
        logger.info(
            "Sync pass complete: %d session(s) uploaded, %d plan(s) uploaded",
            report.sessions_uploaded,
            report.plans_uploaded,
        )

    def _load_state(self) -> SyncState:
        try:
            return self.state_store.load()
        except StateStoreError as exc:
            logger.warning("Could not load state, starting fresh: %s", exc)
            return SyncState()

    def _sync_sessions(self, state: SyncState, report: SyncReport) -> None:
        ingester = self.session_ingester
        paths = ingester.discover_sessions()
        report.sessions_discovered = len(paths)

        candidates = [
            path for path in paths if ingester.get_session_id(path) not in state.synced_sessions
        ]
        report.sessions_new = len(candidates)
        if not candidates:
            logger.info("No new sessions to sync")
            return
        logger.info("Found %d new sessions", len(candidates))

        to_upload: list[Session] = []
        for path in candidates:
            try:
                session = ingester.parse_session(path)
            except (OSError, ValueError) as exc:
                logger.warning("Error parsing %s: %s", path, exc)
                report.parse_errors += 1
                report.errors.append(f"parse {path}: {exc}")
                continue

            filtered = self.privacy_filter.apply(session)
            if filtered is None:
                logger.info("Session %s excluded by filter", session.session_id)
                state.synced_sessions[session.session_id] = self.clock()
                report.sessions_excluded += 1
                continue
            to_upload.append(filtered)

        outcome = self._deliver(
            to_upload,
            upload=self.client.upload_sessions,
            identity=lambda session: session.session_id,
            ledger=state.synced_sessions,
            kind="session",
            report=report,
        )
        report.sessions_uploaded = outcome.delivered
        report.sessions_failed = outcome.failed

    def _sync_plans(self, state: SyncState, report: SyncReport) -> None:
        ingester = self.plan_ingester
        try:
            paths = ingester.discover_plans()
        except DiscoveryError as exc:
            logger.warning("Plan sync error: %s", exc)
            report.errors.append(str(exc))
            return
        report.plans_discovered = len(paths)

        candidates: list[Path] = []
        for path in paths:
            try:
                modified = ingester.modified_at(path)
            except OSError:
                continue
            last_synced = state.synced_plans.get(ingester.get_plan_name(path))
            if last_synced is None or modified > last_synced:
                candidates.append(path)

        report.plans_pending = len(candidates)
        if not candidates:
            return
        logger.info("Found %d new/updated plans", len(candidates))

        to_upload: list[Plan] = []
        for path in candidates:
            try:
                to_upload.append(ingester.parse_plan(path))
            except (OSError, ValueError) as exc:
                logger.warning("Error parsing plan %s: %s", path, exc)
                report.parse_errors += 1
                report.errors.append(f"parse {path}: {exc}")

        outcome = self._deliver(
            to_upload,
            upload=self.client.upload_plans,
            identity=lambda plan: plan.name,
            ledger=state.synced_plans,
            kind="plan",
            report=report,
        )
        report.plans_uploaded = outcome.delivered
        report.plans_failed = outcome.failed

    def _deliver(
        self,
        items: Sequence[ItemT],
        *,
        upload: Callable[[Sequence[ItemT]], Sequence[Any]],
        identity: Callable[[ItemT], str],
        ledger: dict[str, datetime],
        kind: str,
        report: SyncReport,
    ) -> _DeliveryOutcome:
        delivered = 0
        failed = 0

        for start in range(0, len(items), self.batch_size):
            batch = items[start : start + self.batch_size]
            try:
                acks = attempt_with_retry(
                    partial(upload, batch),
                    self.retry_policy,
                    retry_on=(DeliveryError,),
                    describe=f"{kind.capitalize()} upload",
                )
            except RetryExhaustedError as exc:
                logger.error(
                    "Failed to upload %s batch of %d after %d attempts: %s",
                    kind,
                    len(batch),
                    exc.attempts,
                    exc.last_error,
                )
                report.errors.append(f"{kind} batch: {exc}")
                failed += len(batch)
                continue

            # Acknowledgments arrive in submission order; with none, the batch was accepted whole.
            accepted = batch[: len(acks)] if acks else batch
            now = self.clock()
            for item in accepted:
                ledger[identity(item)] = now
            for ack in acks:
                if ack.warnings:
                    logger.warning(
                        "%s %s: warnings: %s", kind.capitalize(), _ack_identity(ack), ack.warnings
                    )

            delivered += len(accepted)
            failed += len(batch) - len(accepted)
            logger.info("Uploaded %d %ss", len(accepted), kind)

        return _DeliveryOutcome(delivered=delivered, failed=failed)


def _ack_identity(ack: Any) -> str:
    return str(getattr(ack, "session_id", None) or getattr(ack, "name", ""))
