"""Sync session state machine and in-flight registry.

States:
    CLEAN ─────────────────────────────────────────► APPLIED
    AWAITING_RESOLUTION ─► RESOLVING ──────────────► APPLIED
                               └─► AWAITING_RESOLUTION (race re-diff)
    any non-terminal ──────────────────────────────► FAILED

A session is created with its status already decided by the first diff:
CLEAN, AWAITING_RESOLUTION or RESOLVING. All state transitions are
validated.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from docsync.sync.domain.conflicts import Conflict, ResolvedConflict
    from docsync.sync.types import DocumentSnapshot, SyncResult


class SessionStatus(IntEnum):
    """Status of a sync session."""

    CLEAN = auto()
    AWAITING_RESOLUTION = auto()
    RESOLVING = auto()
    APPLIED = auto()
    FAILED = auto()


# Valid state transitions
VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.CLEAN: {SessionStatus.APPLIED, SessionStatus.FAILED},
    SessionStatus.AWAITING_RESOLUTION: {SessionStatus.RESOLVING, SessionStatus.FAILED},
    SessionStatus.RESOLVING: {
        SessionStatus.APPLIED,
        SessionStatus.FAILED,
        SessionStatus.AWAITING_RESOLUTION,
    },
    SessionStatus.APPLIED: set(),  # Terminal
    SessionStatus.FAILED: set(),  # Terminal
}


class InvalidTransitionError(Exception):
    """Raised when attempting invalid state transition."""

    pass


@dataclass
class SyncSession:
    """One synchronization attempt for one document.

    Attributes:
        document_id: Document being synced
        local: Local snapshot of the current round
        remote: Remote snapshot of the current round
        synced_revision: Revision the round's conflicts were classified against
        conflicts: All conflicts of the current round
        status: Current status
        restarts: Re-diffs caused by revision races
        started_at: When the attempt began
        result: Terminal result, once reached
    """

    document_id: str
    local: DocumentSnapshot
    remote: DocumentSnapshot
    synced_revision: int
    conflicts: list[Conflict]
    status: SessionStatus
    restarts: int = 0
    started_at: float = field(default_factory=time.time)
    result: SyncResult | None = None

    # Results handed to blocking sync() callers
    _outcomes: queue.Queue[SyncResult] = field(
        default_factory=queue.Queue, repr=False
    )

    def transition_to(self, new_status: SessionStatus) -> None:
        """Transition to a new status with validation."""
        if new_status not in VALID_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot transition from {self.status.name} to {new_status.name}"
            )
        self.status = new_status

    @property
    def is_terminal(self) -> bool:
        """Check if session is in a terminal state."""
        return self.status in (SessionStatus.APPLIED, SessionStatus.FAILED)

    @property
    def resolutions(self) -> list[ResolvedConflict]:
        """Decisions recorded so far."""
        return [c.resolution for c in self.conflicts if c.resolution is not None]

    @property
    def unresolved(self) -> list[Conflict]:
        """Conflicts still waiting for a decision."""
        return [c for c in self.conflicts if c.resolution is None]

    def record(self, resolutions: dict[str, ResolvedConflict]) -> None:
        """Record caller decisions, replacing any earlier ones for those fields."""
        for conflict in self.conflicts:
            resolution = resolutions.get(conflict.field)
            if resolution is not None:
                conflict.resolve(resolution)

    def restart(
        self,
        local: DocumentSnapshot,
        remote: DocumentSnapshot,
        synced_revision: int,
        conflicts: list[Conflict],
    ) -> None:
        """Start a new round after the remote moved under us."""
        self.local = local
        self.remote = remote
        self.synced_revision = synced_revision
        self.conflicts = conflicts
        self.restarts += 1

    def publish(self, result: SyncResult) -> None:
        """Hand a result to whoever waits on this session."""
        if result.is_terminal:
            self.result = result
        self._outcomes.put(result)

    def next_outcome(self, timeout: float | None = None) -> SyncResult:
        """Block until submit/cancel publishes a result.

        Raises:
            queue.Empty: If timeout elapses first
        """
        return self._outcomes.get(timeout=timeout)


class SessionRegistry:
    """Tracks which documents are mid-sync.

    Maps document id -> session (None while the session is still being
    set up). At most one entry per document.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, SyncSession | None] = {}

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the registry mutex."""
        with self._lock:
            yield

    def claim(self, document_id: str) -> bool:
        """Mark a document as mid-sync.

        Returns:
            False if the document is already mid-sync
        """
        with self._lock:
            if document_id in self._entries:
                return False
            self._entries[document_id] = None
            return True

    def attach(self, document_id: str, session: SyncSession) -> None:
        """Attach the session to a claimed document."""
        with self._lock:
            if document_id not in self._entries:
                raise KeyError(f"Document {document_id} is not claimed")
            self._entries[document_id] = session

    def get(self, document_id: str) -> SyncSession | None:
        """Get the session for a document, if any."""
        with self._lock:
            return self._entries.get(document_id)

    def transition(
        self,
        document_id: str,
        expected: SessionStatus,
        new_status: SessionStatus,
    ) -> SyncSession | None:
        """Atomically move a session from ``expected`` to ``new_status``.

        Returns:
            The session, or None if there is none in the expected status
        """
        with self._lock:
            session = self._entries.get(document_id)
            if session is None or session.status != expected:
                return None
            session.transition_to(new_status)
            return session

    def release(self, document_id: str) -> None:
        """Remove a document from tracking."""
        with self._lock:
            self._entries.pop(document_id, None)

    def in_flight(self) -> list[str]:
        """Get all documents currently mid-sync."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        """Get number of documents mid-sync."""
        with self._lock:
            return len(self._entries)

    def __contains__(self, document_id: str) -> bool:
        """Check if a document is mid-sync."""
        with self._lock:
            return document_id in self._entries
