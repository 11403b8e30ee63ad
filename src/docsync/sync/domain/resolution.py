"""Resolution engine: turn decisions into one reconciled snapshot.

The local snapshot is the baseline because it is the copy the user is
looking at. The merged snapshot has no revision; the remote store
assigns one when it is pushed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import TYPE_CHECKING

from docsync.sync.domain.conflicts import ResolutionKind, ResolvedConflict
from docsync.sync.domain.schema import DEFAULT_SCHEMA, DocumentSchema
from docsync.sync.types import IncompleteResolutionError, InvalidResolutionError

if TYPE_CHECKING:
    from docsync.sync.domain.conflicts import Conflict
    from docsync.sync.types import DocumentSnapshot


def index_resolutions(
    resolved: Iterable[ResolvedConflict],
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> dict[str, ResolvedConflict]:
    """Index decisions by field, checking them against the schema.

    Raises:
        InvalidResolutionError: On unknown fields, duplicate decisions,
            or MERGED for a field without a merge function
    """
    by_field: dict[str, ResolvedConflict] = {}
    for resolution in resolved:
        if resolution.field not in schema:
            raise InvalidResolutionError(f"Unknown field: {resolution.field}")
        if resolution.field in by_field:
            raise InvalidResolutionError(
                f"More than one decision for field {resolution.field}"
            )
        if resolution.kind == ResolutionKind.MERGED and not schema.is_mergeable(
            resolution.field
        ):
            raise InvalidResolutionError(
                f"Field {resolution.field} has no merge function"
            )
        by_field[resolution.field] = resolution
    return by_field


def check_resolutions(
    conflicts: Iterable[Conflict],
    resolved: Iterable[ResolvedConflict],
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> dict[str, ResolvedConflict]:
    """Check decisions against the schema and the conflicts they answer.

    Raises:
        InvalidResolutionError: If a decision is invalid or answers no conflict
    """
    by_field = index_resolutions(resolved, schema)
    conflict_fields = {c.field for c in conflicts}
    stray = sorted(set(by_field) - conflict_fields)
    if stray:
        raise InvalidResolutionError(f"No conflict for fields: {', '.join(stray)}")
    return by_field


def validate_complete(
    conflicts: Iterable[Conflict],
    resolved: Iterable[ResolvedConflict],
) -> bool:
    """Check that every conflict has a decision.

    Returns:
        False if at least one conflict lacks a ResolvedConflict
        (True when there are no conflicts)
    """
    decided = {r.field for r in resolved}
    return all(c.field in decided for c in conflicts)


def ensure_complete(
    conflicts: Iterable[Conflict],
    resolved: Iterable[ResolvedConflict],
) -> None:
    """Like validate_complete(), but raise when something is missing.

    Raises:
        IncompleteResolutionError: Listing the undecided fields
    """
    decided = {r.field for r in resolved}
    missing = [c.field for c in conflicts if c.field not in decided]
    if missing:
        raise IncompleteResolutionError(missing)


def apply(
    local: DocumentSnapshot,
    resolved: Iterable[ResolvedConflict],
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> DocumentSnapshot:
    """Build the reconciled snapshot.

    Args:
        local: Baseline snapshot
        resolved: One decision per field to overwrite
        schema: Document schema

    Returns:
        Copy of ``local`` with each decided field overwritten and
        ``revision`` unset
    """
    fields = dict(local.fields)
    timestamps = dict(local.timestamps)
    for name, resolution in index_resolutions(resolved, schema).items():
        fields[name] = resolution.value
        if resolution.timestamp is not None:
            timestamps[name] = resolution.timestamp
    return replace(local, fields=fields, timestamps=timestamps, revision=None)
