"""Store protocols consumed by the sync orchestrator.

Stores report transient failures (store unreachable) with NetworkError
and anything fatal with another StoreError. Encodings and transport are
the stores' business; the engine only sees DocumentSnapshot values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from docsync.sync.types import DocumentSnapshot


class LocalDocumentStore(Protocol):
    """Document cache on this device."""

    def get_local(self, document_id: str) -> DocumentSnapshot:
        """Get the local snapshot of a document."""
        ...

    def put_local(self, document_id: str, snapshot: DocumentSnapshot) -> None:
        """Replace the local snapshot of a document (atomic)."""
        ...


class RemoteDocumentStore(Protocol):
    """Authoritative copy of documents."""

    def get_remote(self, document_id: str) -> DocumentSnapshot:
        """Get the remote snapshot, including its current revision."""
        ...

    def put_remote(
        self,
        document_id: str,
        snapshot: DocumentSnapshot,
        expected_revision: int | None,
    ) -> int:
        """Write a snapshot if the remote is still at expected_revision.

        Returns:
            The new revision.

        Raises:
            RevisionConflictError: If the remote revision has moved.
        """
        ...


class SyncBaselineStore(Protocol):
    """Per-document record of the last successful sync."""

    def get_synced_revision(self, document_id: str) -> int | None:
        """Get the remote revision of the last successful sync."""
        ...

    def set_synced_revision(self, document_id: str, revision: int) -> None:
        """Record the remote revision of a successful sync."""
        ...
