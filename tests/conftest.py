"""Shared fixtures for docsync tests."""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from docsync.core.config import RetryPolicy, SyncConfig
from docsync.state import LocalDocumentState
from docsync.sync.domain.schema import DEFAULT_SCHEMA
from docsync.sync.orchestrator import SyncOrchestrator
from docsync.sync.types import (
    DocumentNotFoundError,
    DocumentSnapshot,
    NetworkError,
    Origin,
    RevisionConflictError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


class InMemoryRemoteStore:
    """Remote store fake with revision checks and scripted failures.

    Attributes:
        get_failures: Number of upcoming get_remote calls that raise NetworkError.
        put_failures: Number of upcoming put_remote calls that raise NetworkError.
        on_get: Called at the start of each get_remote.
        on_put: Called at the start of each put_remote, before the revision check.
        puts: Snapshots accepted by put_remote.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._documents: dict[str, DocumentSnapshot] = {}
        self.get_failures = 0
        self.put_failures = 0
        self.get_calls = 0
        self.put_calls = 0
        self.on_get: Callable[[str], None] | None = None
        self.on_put: Callable[[str], None] | None = None
        self.puts: list[DocumentSnapshot] = []

    def seed(self, snapshot: DocumentSnapshot) -> DocumentSnapshot:
        """Store a snapshot as-is, as the current remote state."""
        stored = snapshot.with_origin(Origin.REMOTE)
        with self._lock:
            self._documents[snapshot.document_id] = stored
        return stored

    def current(self, document_id: str) -> DocumentSnapshot:
        with self._lock:
            return self._documents[document_id]

    def write(self, document_id: str, **changes: Any) -> DocumentSnapshot:
        """Simulate another device committing changes."""
        with self._lock:
            current = self._documents[document_id]
            updated = replace(current, fields={**current.fields, **changes})
            committed = updated.committed((current.revision or 0) + 1, current)
            self._documents[document_id] = committed
            return committed

    def get_remote(self, document_id: str) -> DocumentSnapshot:
        self.get_calls += 1
        if self.on_get is not None:
            self.on_get(document_id)
        with self._lock:
            if self.get_failures > 0:
                self.get_failures -= 1
                raise NetworkError("Remote unreachable")
            if document_id not in self._documents:
                raise DocumentNotFoundError(f"Document {document_id} not found remotely")
            return self._documents[document_id]

    def put_remote(
        self,
        document_id: str,
        snapshot: DocumentSnapshot,
        expected_revision: int | None,
    ) -> int:
        self.put_calls += 1
        if self.on_put is not None:
            self.on_put(document_id)
        with self._lock:
            if self.put_failures > 0:
                self.put_failures -= 1
                raise NetworkError("Remote unreachable")
            current = self._documents.get(document_id)
            current_revision = current.revision if current else None
            if expected_revision != current_revision:
                raise RevisionConflictError(
                    document_id, expected_revision, current_revision
                )
            previous = current or DocumentSnapshot(document_id, {})
            revision = (current_revision or 0) + 1
            committed = snapshot.committed(revision, previous).with_origin(Origin.REMOTE)
            self._documents[document_id] = committed
            self.puts.append(committed)
            return revision


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    """Create an empty remote store."""
    return InMemoryRemoteStore()


@pytest.fixture
def local_state(tmp_path: Path) -> Iterator[LocalDocumentState]:
    """Create a LocalDocumentState instance."""
    state = LocalDocumentState(tmp_path / "documents.db")
    yield state
    state.close()


@pytest.fixture
def sleeps() -> list[float]:
    """Collect backoff delays instead of sleeping."""
    return []


@pytest.fixture
def config() -> SyncConfig:
    """Small retry budgets so failures surface quickly."""
    return SyncConfig(retry=RetryPolicy(max_retries=2), max_revision_restarts=2)


@pytest.fixture
def orchestrator(
    local_state: LocalDocumentState,
    remote: InMemoryRemoteStore,
    config: SyncConfig,
    sleeps: list[float],
) -> SyncOrchestrator:
    """Create an orchestrator over the local state and the remote fake."""
    return SyncOrchestrator(
        local_state,
        remote,
        baselines=local_state,
        config=config,
        sleep=sleeps.append,
    )


@pytest.fixture
def synced_document(
    local_state: LocalDocumentState,
    remote: InMemoryRemoteStore,
) -> Callable[..., DocumentSnapshot]:
    """Factory for a document that both sides hold at revision 1."""

    def make(document_id: str = "doc-1", **fields: Any) -> DocumentSnapshot:
        values = DEFAULT_SCHEMA.defaults()
        values.update(fields)
        snapshot = DocumentSnapshot(
            document_id,
            values,
            timestamps={name: 1 for name in values},
            revision=1,
        )
        remote.seed(snapshot)
        local_state.put_local(document_id, snapshot)
        local_state.set_synced_revision(document_id, 1)
        return snapshot

    return make


@pytest.fixture
def make_snapshot() -> Callable[..., DocumentSnapshot]:
    """Factory for full-schema snapshots, every field stamped at ``revision``."""

    def make(
        document_id: str = "doc-1",
        revision: int | None = 1,
        origin: Origin = Origin.LOCAL,
        timestamps: dict[str, int] | None = None,
        **fields: Any,
    ) -> DocumentSnapshot:
        values = DEFAULT_SCHEMA.defaults()
        values.update(fields)
        stamps = {name: revision or 0 for name in values}
        stamps.update(timestamps or {})
        return DocumentSnapshot(document_id, values, stamps, origin, revision)

    return make
