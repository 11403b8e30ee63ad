"""Document sync and conflict resolution.

Architecture:
    LocalDocumentStore ─┐
                        ├─► SyncOrchestrator ─► diff ─► classify ─► apply ─► commit
    RemoteDocumentStore ┘

Components:
- **SyncOrchestrator**: Runs one attempt per document, end to end
- **domain/**: Pure business rules (schema, tracker, classifier, resolution, sessions)
- **stores**: Protocols for the local cache, the remote store and the sync baseline
- **retry**: Bounded exponential backoff for transient store failures

All public symbols are re-exported here.
"""

from docsync.sync.domain import (
    DEFAULT_SCHEMA,
    Conflict,
    DocumentSchema,
    FieldSpec,
    FieldStrategy,
    ResolutionKind,
    ResolvedConflict,
    SessionStatus,
    describe_conflict,
)
from docsync.sync.orchestrator import SyncOrchestrator
from docsync.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
    retry_with_policy,
)
from docsync.sync.stores import (
    LocalDocumentStore,
    RemoteDocumentStore,
    SyncBaselineStore,
)
from docsync.sync.types import (
    DocumentNotFoundError,
    DocumentSnapshot,
    FailureReason,
    IncompleteResolutionError,
    InvalidResolutionError,
    NetworkError,
    Origin,
    RevisionConflictError,
    SchemaMismatchError,
    StoreError,
    SyncError,
    SyncOutcome,
    SyncResult,
)

__all__ = [
    # Orchestrator
    "SyncOrchestrator",
    # Domain
    "DEFAULT_SCHEMA",
    "Conflict",
    "DocumentSchema",
    "FieldSpec",
    "FieldStrategy",
    "ResolutionKind",
    "ResolvedConflict",
    "SessionStatus",
    "describe_conflict",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_BACKOFF",
    "DEFAULT_MAX_RETRIES",
    "retry_with_backoff",
    "retry_with_policy",
    # Stores
    "LocalDocumentStore",
    "RemoteDocumentStore",
    "SyncBaselineStore",
    # Types
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "FailureReason",
    "IncompleteResolutionError",
    "InvalidResolutionError",
    "NetworkError",
    "Origin",
    "RevisionConflictError",
    "SchemaMismatchError",
    "StoreError",
    "SyncError",
    "SyncOutcome",
    "SyncResult",
]
