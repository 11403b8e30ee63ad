"""Change tracking between a local and a remote snapshot.

Only value differences count: a field whose values are equal is never a
conflict, even if the two sides stamped it at different times.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from docsync.sync.domain.conflicts import Conflict
from docsync.sync.domain.schema import DEFAULT_SCHEMA, DocumentSchema

if TYPE_CHECKING:
    from docsync.sync.types import DocumentSnapshot


def diff(
    local: DocumentSnapshot,
    remote: DocumentSnapshot,
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> list[Conflict]:
    """Find the fields whose values differ.

    Args:
        local: Local snapshot
        remote: Remote snapshot of the same document
        schema: Fields to compare, in order

    Returns:
        One unresolved Conflict per divergent field, in schema order
        (empty when the snapshots are value-identical)
    """
    conflicts: list[Conflict] = []
    for name in schema.names:
        local_value = local.value(name)
        remote_value = remote.value(name)
        if local_value == remote_value:
            continue
        conflicts.append(
            Conflict(
                field=name,
                local_value=local_value,
                remote_value=remote_value,
                local_timestamp=local.timestamp(name),
                remote_timestamp=remote.timestamp(name),
            )
        )
    return conflicts
