"""Conflict and decision types.

A Conflict is one field whose value differs between the local and the
remote snapshot of a sync attempt. A ResolvedConflict is the decision
taken for it:

| Kind        | Resolved value                    |
|-------------|-----------------------------------|
| LOCAL_WINS  | local value                       |
| REMOTE_WINS | remote value                      |
| MERGED      | field's merge function applied    |

MERGED is only valid for fields that declare a merge function; the
resolution engine enforces this.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from docsync.sync.domain.schema import DEFAULT_SCHEMA, DocumentSchema

# Longest value rendered in a conflict description
MAX_VALUE_LENGTH = 50


class ResolutionKind(str, Enum):
    """How a conflict was decided."""

    LOCAL_WINS = "local"
    REMOTE_WINS = "remote"
    MERGED = "merged"


@dataclass(frozen=True)
class ResolvedConflict:
    """The outcome chosen for one conflict.

    Attributes:
        field: Field name
        kind: Resolution kind
        value: Value written for the field
        timestamp: Logical timestamp carried with the value (None = keep local's)
    """

    field: str
    kind: ResolutionKind
    value: Any
    timestamp: int | None = None

    @classmethod
    def local(cls, conflict: Conflict) -> ResolvedConflict:
        """Keep the local value."""
        return cls(
            conflict.field,
            ResolutionKind.LOCAL_WINS,
            conflict.local_value,
            conflict.local_timestamp,
        )

    @classmethod
    def remote(cls, conflict: Conflict) -> ResolvedConflict:
        """Take the remote value."""
        return cls(
            conflict.field,
            ResolutionKind.REMOTE_WINS,
            conflict.remote_value,
            conflict.remote_timestamp,
        )

    @classmethod
    def merged(cls, conflict: Conflict, value: Any) -> ResolvedConflict:
        """Use a merged value."""
        return cls(
            conflict.field,
            ResolutionKind.MERGED,
            value,
            max(conflict.local_timestamp, conflict.remote_timestamp),
        )


@dataclass
class Conflict:
    """One divergent field between a local and a remote snapshot.

    Attributes:
        field: Field name
        local_value: Value on the local side
        remote_value: Value on the remote side
        local_timestamp: Logical timestamp of the local value
        remote_timestamp: Logical timestamp of the remote value
        resolution: Decision, once taken
    """

    field: str
    local_value: Any
    remote_value: Any
    local_timestamp: int
    remote_timestamp: int
    resolution: ResolvedConflict | None = None

    @property
    def is_resolved(self) -> bool:
        """Check if a decision has been recorded."""
        return self.resolution is not None

    def resolve(self, resolution: ResolvedConflict) -> ResolvedConflict:
        """Record a decision for this conflict."""
        if resolution.field != self.field:
            raise ValueError(
                f"Resolution for {resolution.field} given to conflict on {self.field}"
            )
        self.resolution = resolution
        return resolution

    def choose_local(self) -> ResolvedConflict:
        """Decide for the local value."""
        return self.resolve(ResolvedConflict.local(self))

    def choose_remote(self) -> ResolvedConflict:
        """Decide for the remote value."""
        return self.resolve(ResolvedConflict.remote(self))


def format_value(value: Any) -> str:
    """Format a field value for a one-line description."""
    if value is None:
        return "empty"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        text = value
    elif isinstance(value, (dict, list)):
        try:
            text = json.dumps(value, sort_keys=True)
        except (TypeError, ValueError):
            return "object"
    else:
        text = str(value)
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "..."
    return text


def describe_conflict(conflict: Conflict, schema: DocumentSchema = DEFAULT_SCHEMA) -> str:
    """Get a human-readable description of a conflict.

    Args:
        conflict: The conflict to describe
        schema: Schema providing display names and merge capability

    Returns:
        One line such as ``Title: local "Plan A", remote "Plan B"``
    """
    name = schema.display_name(conflict.field)
    if schema.is_mergeable(conflict.field):
        return f"{name}: different values locally and remotely (merged automatically)"
    return (
        f'{name}: local "{format_value(conflict.local_value)}", '
        f'remote "{format_value(conflict.remote_value)}"'
    )
