"""Local document state for the sync engine.

This module provides:
- LocalDocumentState: SQLite-based local document store and sync baseline
- StoredDocument: A cached document row

Architecture:
    The documents table holds the snapshot the user edits; the sync_state
    table records, per document, the remote revision of the last
    successful sync. Local edits are stamped against that revision so the
    classifier can tell which side changed since the last sync.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from docsync.sync.domain.schema import DEFAULT_SCHEMA, DocumentSchema
from docsync.sync.types import DocumentNotFoundError, DocumentSnapshot, Origin, StoreError

logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    """A cached document.

    Attributes:
        snapshot: Local snapshot of the document.
        updated_at: When the row was last written (local clock).
    """

    snapshot: DocumentSnapshot
    updated_at: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> StoredDocument:
        """Create StoredDocument from database row."""
        snapshot = DocumentSnapshot(
            document_id=row["document_id"],
            fields=json.loads(row["fields"]),
            timestamps={k: int(v) for k, v in json.loads(row["timestamps"]).items()},
            origin=Origin.LOCAL,
            revision=row["revision"],
        )
        return cls(snapshot=snapshot, updated_at=row["updated_at"])


class LocalDocumentState:
    """SQLite-based local document store.

    Implements both the LocalDocumentStore and the SyncBaselineStore
    protocols. Field values must be JSON-serializable.
    """

    def __init__(self, db_path: Path, schema: DocumentSchema = DEFAULT_SCHEMA) -> None:
        """Initialize local state database.

        Args:
            db_path: Path to SQLite database file.
            schema: Schema of the documents stored.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._schema = schema

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                document_id TEXT PRIMARY KEY,
                fields TEXT NOT NULL,
                timestamps TEXT NOT NULL,
                revision INTEGER,
                updated_at REAL NOT NULL
            );

            -- Remote revision of the last successful sync
            CREATE TABLE IF NOT EXISTS sync_state (
                document_id TEXT PRIMARY KEY,
                synced_revision INTEGER NOT NULL,
                synced_at REAL NOT NULL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalDocumentState:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    @contextmanager
    def _guard(self) -> Iterator[sqlite3.Connection]:
        """Serialize access and report database failures as StoreError."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"Local state error: {e}") from e

    # === LocalDocumentStore ===

    def get_local(self, document_id: str) -> DocumentSnapshot:
        """Get the local snapshot of a document.

        Raises:
            DocumentNotFoundError: If the document is not cached.
        """
        document = self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found locally")
        return document.snapshot

    def put_local(self, document_id: str, snapshot: DocumentSnapshot) -> None:
        """Replace the local snapshot of a document (upsert)."""
        with self._guard() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO documents (
                    document_id, fields, timestamps, revision, updated_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    document_id,
                    json.dumps(dict(snapshot.fields)),
                    json.dumps(dict(snapshot.timestamps)),
                    snapshot.revision,
                    time.time(),
                ),
            )
        logger.debug(f"Stored {document_id} at revision {snapshot.revision}")

    # === Document operations ===

    def get_document(self, document_id: str) -> StoredDocument | None:
        """Get a cached document.

        Returns:
            StoredDocument if found, None otherwise.
        """
        with self._guard() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        if row is None:
            return None
        return StoredDocument.from_row(row)

    def list_documents(self) -> list[StoredDocument]:
        """List all cached documents."""
        with self._guard() as conn:
            rows = conn.execute("SELECT * FROM documents ORDER BY document_id").fetchall()
        return [StoredDocument.from_row(row) for row in rows]

    def create_document(
        self,
        document_id: str,
        fields: dict[str, Any] | None = None,
    ) -> DocumentSnapshot:
        """Create a never-synced document from schema defaults.

        Args:
            document_id: New document id.
            fields: Initial values overriding the defaults.

        Returns:
            The stored snapshot.
        """
        values = self._schema.defaults()
        values.update(fields or {})
        snapshot = DocumentSnapshot(document_id=document_id, fields=values)
        self._schema.validate(snapshot)
        self.put_local(document_id, snapshot)
        return snapshot

    def record_edit(self, document_id: str, **changes: Any) -> DocumentSnapshot:
        """Apply an editor change to the cached document.

        Changed fields are stamped as pending against the last synced
        revision.

        Returns:
            The updated snapshot.
        """
        with self._lock:
            snapshot = self.get_local(document_id)
            unknown = [name for name in changes if name not in self._schema]
            if unknown:
                raise KeyError(f"Unknown fields: {', '.join(unknown)}")
            edited = snapshot.edit(changes, self.get_synced_revision(document_id))
            self.put_local(document_id, edited)
        return edited

    def delete_document(self, document_id: str) -> None:
        """Remove a document and its sync record."""
        with self._guard() as conn:
            conn.execute("DELETE FROM documents WHERE document_id = ?", (document_id,))
            conn.execute("DELETE FROM sync_state WHERE document_id = ?", (document_id,))

    # === SyncBaselineStore ===

    def get_synced_revision(self, document_id: str) -> int | None:
        """Get the remote revision of the last successful sync."""
        with self._guard() as conn:
            row = conn.execute(
                "SELECT synced_revision FROM sync_state WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        return row["synced_revision"] if row else None

    def set_synced_revision(self, document_id: str, revision: int) -> None:
        """Record the remote revision of a successful sync."""
        with self._guard() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sync_state (document_id, synced_revision, synced_at)
                VALUES (?, ?, ?)
                """,
                (document_id, revision, time.time()),
            )

    def get_synced_at(self, document_id: str) -> float | None:
        """Get when the document last synced successfully (local clock)."""
        with self._guard() as conn:
            row = conn.execute(
                "SELECT synced_at FROM sync_state WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        return row["synced_at"] if row else None
