"""Aggregate sync status for the presentation layer.

This module provides:
- SyncStatusTracker: Caller-fed, thread-safe summary of sync outcomes
- StatusSummary: Snapshot of the aggregate state
- SyncEvent: One recorded outcome

The tracker is not wired into the orchestrator: the caller reports each
attempt it starts and each result it gets back, then refreshes its UI from
summary().

State precedence:
    SYNCING > OFFLINE > ERROR > CONFLICTS > SYNCED
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from docsync.core.types import SyncState
from docsync.sync.types import FailureReason, SyncOutcome, SyncResult

logger = logging.getLogger(__name__)

MAX_HISTORY = 100

# Failures that say nothing about the document itself
_TRANSIENT_REASONS = {
    FailureReason.ALREADY_SYNCING,
    FailureReason.NO_PENDING_RESOLUTION,
}


@dataclass
class SyncEvent:
    """A recorded sync outcome.

    Attributes:
        document_id: Document the attempt was for.
        outcome: What happened.
        reason: Failure reason (FAILED only).
        message: Detail from the result.
        timestamp: When it was recorded (local clock).
    """

    document_id: str
    outcome: SyncOutcome
    reason: FailureReason | None = None
    message: str = ""
    timestamp: float = 0.0


@dataclass
class StatusSummary:
    """Aggregate sync status.

    Attributes:
        state: Overall state.
        message: Short text for a status bar.
        in_flight: Documents with an attempt running.
        conflicts: Documents awaiting decisions.
        failures: Documents whose last attempt failed.
        last_success_at: When a sync last succeeded, if ever.
    """

    state: SyncState
    message: str
    in_flight: list[str]
    conflicts: list[str]
    failures: list[str]
    last_success_at: float | None = None


class SyncStatusTracker:
    """Tracks sync outcomes across documents.

    Usage:
        tracker = SyncStatusTracker()
        tracker.started("doc-1")
        tracker.record(orchestrator.start_sync("doc-1"))
        status_bar.show(tracker.summary().message)
    """

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        self._lock = threading.Lock()
        self._max_history = max_history
        self._history: list[SyncEvent] = []
        self._in_flight: set[str] = set()
        self._conflicts: dict[str, int] = {}  # document_id -> manual conflicts
        self._failures: dict[str, FailureReason] = {}  # most recent last
        self._last_success_at: float | None = None

    @property
    def history(self) -> list[SyncEvent]:
        """Recorded outcomes, oldest first."""
        with self._lock:
            return list(self._history)

    def started(self, document_id: str) -> None:
        """Report that an attempt for a document is running."""
        with self._lock:
            self._in_flight.add(document_id)

    def record(self, result: SyncResult) -> None:
        """Report the result of an attempt."""
        document_id = result.document_id
        now = time.time()

        with self._lock:
            self._in_flight.discard(document_id)
            self._append(
                SyncEvent(
                    document_id=document_id,
                    outcome=result.outcome,
                    reason=result.reason,
                    message=result.message,
                    timestamp=now,
                )
            )

            if result.succeeded:
                self._conflicts.pop(document_id, None)
                self._failures.pop(document_id, None)
                self._last_success_at = now
            elif result.outcome == SyncOutcome.AWAITING_RESOLUTION:
                self._conflicts[document_id] = len(result.conflicts)
                self._failures.pop(document_id, None)
            elif result.reason in _TRANSIENT_REASONS:
                pass
            elif result.reason == FailureReason.CANCELLED:
                self._conflicts.pop(document_id, None)
            else:
                self._conflicts.pop(document_id, None)
                self._failures.pop(document_id, None)
                self._failures[document_id] = result.reason or FailureReason.STORE_ERROR

        logger.debug(f"Recorded {result.outcome.name} for {document_id}")

    def clear(self, document_id: str) -> None:
        """Forget everything known about a document (e.g. it was deleted)."""
        with self._lock:
            self._in_flight.discard(document_id)
            self._conflicts.pop(document_id, None)
            self._failures.pop(document_id, None)

    def summary(self) -> StatusSummary:
        """Get the aggregate status."""
        with self._lock:
            in_flight = sorted(self._in_flight)
            conflicts = sorted(self._conflicts)
            failures = list(self._failures)
            last_reason = self._failures[failures[-1]] if failures else None

            if in_flight:
                state = SyncState.SYNCING
                message = f"Syncing {_documents(len(in_flight))}"
            elif last_reason == FailureReason.NETWORK_ERROR:
                state = SyncState.OFFLINE
                message = "Offline, changes are kept on this device"
            elif failures:
                state = SyncState.ERROR
                message = f"{_documents(len(failures))} failed to sync"
            elif conflicts:
                state = SyncState.CONFLICTS
                message = f"Conflicts to resolve in {_documents(len(conflicts))}"
            else:
                state = SyncState.SYNCED
                message = "All documents synced"

            return StatusSummary(
                state=state,
                message=message,
                in_flight=in_flight,
                conflicts=conflicts,
                failures=failures,
                last_success_at=self._last_success_at,
            )

    def _append(self, event: SyncEvent) -> None:
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]


def _documents(count: int) -> str:
    return f"{count} document" if count == 1 else f"{count} documents"
