"""Domain modules for sync business rules.

This package centralizes business logic for the sync system:
- schema: Synchronized fields, merge functions, best-effort strategies
- conflicts: Conflict and decision types
- tracker: Value diff between local and remote snapshots
- classifier: Auto-resolvable vs manual classification rules
- resolution: Applying decisions and checking completeness
- sessions: SyncSession state machine and in-flight registry

Architecture:
    domain/ contains pure business logic without I/O.
    Store access, retries and locking stay in orchestrator.py.
"""

from docsync.sync.domain.classifier import (
    BEST_EFFORT_RULES,
    CLASSIFICATION_RULES,
    Classification,
    ClassificationRule,
    ConflictClassifier,
    classify,
)
from docsync.sync.domain.conflicts import (
    Conflict,
    ResolutionKind,
    ResolvedConflict,
    describe_conflict,
    format_value,
)
from docsync.sync.domain.resolution import (
    apply,
    check_resolutions,
    ensure_complete,
    index_resolutions,
    validate_complete,
)
from docsync.sync.domain.schema import (
    DEFAULT_SCHEMA,
    DocumentSchema,
    FieldSpec,
    FieldStrategy,
    merge_any,
)
from docsync.sync.domain.sessions import (
    InvalidTransitionError,
    SessionRegistry,
    SessionStatus,
    SyncSession,
)
from docsync.sync.domain.tracker import diff

__all__ = [
    # schema
    "DEFAULT_SCHEMA",
    "DocumentSchema",
    "FieldSpec",
    "FieldStrategy",
    "merge_any",
    # conflicts
    "Conflict",
    "ResolutionKind",
    "ResolvedConflict",
    "describe_conflict",
    "format_value",
    # tracker
    "diff",
    # classifier
    "BEST_EFFORT_RULES",
    "CLASSIFICATION_RULES",
    "Classification",
    "ClassificationRule",
    "ConflictClassifier",
    "classify",
    # resolution
    "apply",
    "check_resolutions",
    "ensure_complete",
    "index_resolutions",
    "validate_complete",
    # sessions
    "InvalidTransitionError",
    "SessionRegistry",
    "SessionStatus",
    "SyncSession",
]
