"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, StoreError, NetworkError, RevisionConflictError, ...: Exception classes
- Origin, DocumentSnapshot: Versioned view of one document's mutable fields
- SyncOutcome, FailureReason, SyncResult: Result of a sync attempt

Timestamps:
    Field timestamps are logical clocks in the remote revision domain. The
    remote store stamps each field it changes with the revision of that
    write; a local edit stamps the field with ``revision + 1`` of the
    snapshot it was made on. Comparing a timestamp with a synced revision
    therefore never involves wall-clock time from another device.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from docsync.sync.domain.conflicts import Conflict


class SyncError(Exception):
    """Base exception for sync errors."""


class StoreError(SyncError):
    """A document store failed; fatal for the current attempt."""


class NetworkError(StoreError):
    """Store unreachable; transient and retried with backoff."""


class DocumentNotFoundError(StoreError):
    """Document does not exist in the store."""


class SchemaMismatchError(StoreError):
    """Snapshot fields differ from the document schema."""


class RevisionConflictError(StoreError):
    """Remote revision advanced since it was last read.

    Attributes:
        document_id: Document that was being written
        expected_revision: Revision the write was based on
        actual_revision: Current remote revision, if known
    """

    def __init__(
        self,
        document_id: str,
        expected_revision: int | None,
        actual_revision: int | None = None,
    ) -> None:
        self.document_id = document_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Revision conflict on {document_id}: expected {expected_revision}, "
            f"remote has {actual_revision}"
        )


class IncompleteResolutionError(SyncError):
    """Commit attempted while some conflicts have no decision.

    Attributes:
        missing: Field names without a ResolvedConflict
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Unresolved conflicts: {', '.join(missing)}")


class InvalidResolutionError(SyncError):
    """A decision does not fit the conflicts or the schema."""


class Origin(str, Enum):
    """Which side a snapshot was read from."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class DocumentSnapshot:
    """A versioned view of one document's mutable fields.

    Attributes:
        document_id: Document identifier
        fields: Field name -> value
        timestamps: Field name -> logical last-modified timestamp
        origin: Side the snapshot came from
        revision: Remote revision this snapshot is at (None = not assigned)
    """

    document_id: str
    fields: Mapping[str, Any]
    timestamps: Mapping[str, int] = field(default_factory=dict)
    origin: Origin = Origin.LOCAL
    revision: int | None = None

    def value(self, name: str) -> Any:
        """Get a field value (None if absent)."""
        return self.fields.get(name)

    def timestamp(self, name: str) -> int:
        """Get a field's logical timestamp (0 if never stamped)."""
        return self.timestamps.get(name, 0)

    def same_values(self, other: DocumentSnapshot) -> bool:
        """Check whether both snapshots hold identical field values."""
        return dict(self.fields) == dict(other.fields)

    def with_origin(self, origin: Origin) -> DocumentSnapshot:
        """Copy tagged with another origin."""
        return replace(self, origin=origin)

    def edit(
        self,
        changes: Mapping[str, Any],
        base_revision: int | None = None,
    ) -> DocumentSnapshot:
        """Apply a local edit, stamping changed fields as pending.

        Fields whose value actually changes get timestamp ``base + 1``,
        where base is the larger of the snapshot revision and
        ``base_revision`` (the last synced revision, when known).
        Unchanged assignments keep their stamp.

        Raises:
            KeyError: If a field is not part of the snapshot
        """
        pending = max(self.revision or 0, base_revision or 0) + 1
        fields = dict(self.fields)
        timestamps = dict(self.timestamps)
        for name, value in changes.items():
            if name not in fields:
                raise KeyError(name)
            if fields[name] != value:
                fields[name] = value
                timestamps[name] = pending
        return replace(self, fields=fields, timestamps=timestamps)

    def rebased(self, remote: DocumentSnapshot) -> DocumentSnapshot:
        """Restamp this snapshot relative to a remote snapshot.

        Fields equal to the remote take the remote's stamp; differing
        fields become pending edits at ``remote.revision + 1``. The
        result sits at the remote's revision.
        """
        pending = (remote.revision or 0) + 1
        timestamps = {
            name: remote.timestamp(name) if value == remote.value(name) else pending
            for name, value in self.fields.items()
        }
        return replace(
            self,
            timestamps=timestamps,
            origin=Origin.LOCAL,
            revision=remote.revision,
        )

    def committed(self, revision: int, previous: DocumentSnapshot) -> DocumentSnapshot:
        """Stamp this snapshot as written remotely at ``revision``.

        Fields that differ from ``previous`` (the remote state the write
        replaced) are stamped with the new revision; the rest keep the
        previous remote stamp.
        """
        timestamps = {
            name: previous.timestamp(name) if value == previous.value(name) else revision
            for name, value in self.fields.items()
        }
        return replace(self, timestamps=timestamps, revision=revision)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "document_id": self.document_id,
            "fields": dict(self.fields),
            "timestamps": dict(self.timestamps),
            "origin": self.origin.value,
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentSnapshot:
        """Create from a dictionary produced by to_dict()."""
        return cls(
            document_id=data["document_id"],
            fields=dict(data["fields"]),
            timestamps={k: int(v) for k, v in data.get("timestamps", {}).items()},
            origin=Origin(data.get("origin", Origin.LOCAL.value)),
            revision=data.get("revision"),
        )


class SyncOutcome(Enum):
    """Kind of result returned to the presentation layer."""

    CLEAN = auto()  # No divergence, nothing written
    APPLIED = auto()  # Merged snapshot committed to both sides
    AWAITING_RESOLUTION = auto()  # Manual conflicts need decisions
    FAILED = auto()  # Attempt ended without a commit


class FailureReason(Enum):
    """Why a sync attempt failed."""

    NETWORK_ERROR = auto()  # Store unreachable after retries
    TOO_MANY_RETRIES = auto()  # Revision races exhausted the restart budget
    INCOMPLETE_RESOLUTION = auto()  # Commit requested with undecided conflicts
    INVALID_RESOLUTION = auto()  # Decision not applicable to the conflicts
    ALREADY_SYNCING = auto()  # Another session is active for the document
    CANCELLED = auto()  # Caller abandoned the manual-resolution wait
    STORE_ERROR = auto()  # Any other store-level failure
    NO_PENDING_RESOLUTION = auto()  # Nothing is awaiting decisions


@dataclass
class SyncResult:
    """Result of a sync operation.

    Attributes:
        outcome: What happened
        document_id: Document the attempt was for
        snapshot: Final local snapshot (CLEAN / APPLIED)
        conflicts: Manual conflicts (AWAITING_RESOLUTION)
        reason: Failure reason (FAILED)
        message: Human-readable detail
    """

    outcome: SyncOutcome
    document_id: str
    snapshot: DocumentSnapshot | None = None
    conflicts: list[Conflict] = field(default_factory=list)
    reason: FailureReason | None = None
    message: str = ""

    @classmethod
    def clean(cls, document_id: str, snapshot: DocumentSnapshot) -> SyncResult:
        return cls(SyncOutcome.CLEAN, document_id, snapshot=snapshot)

    @classmethod
    def applied(cls, document_id: str, snapshot: DocumentSnapshot) -> SyncResult:
        return cls(SyncOutcome.APPLIED, document_id, snapshot=snapshot)

    @classmethod
    def awaiting(cls, document_id: str, conflicts: list[Conflict]) -> SyncResult:
        return cls(
            SyncOutcome.AWAITING_RESOLUTION,
            document_id,
            conflicts=list(conflicts),
        )

    @classmethod
    def failed(
        cls, document_id: str, reason: FailureReason, message: str = ""
    ) -> SyncResult:
        return cls(SyncOutcome.FAILED, document_id, reason=reason, message=message)

    @property
    def succeeded(self) -> bool:
        """Check if both sides now hold the same document."""
        return self.outcome in (SyncOutcome.CLEAN, SyncOutcome.APPLIED)

    @property
    def is_terminal(self) -> bool:
        """Check if the attempt is over (no decisions pending)."""
        return self.outcome != SyncOutcome.AWAITING_RESOLUTION

    @property
    def has_conflicts(self) -> bool:
        """Check if there are any conflicts awaiting decisions."""
        return len(self.conflicts) > 0
