"""Document schema: which fields sync and how each one may be resolved.

Every snapshot of a document carries exactly the fields named here, on
both origins. A field either declares a merge function (always safe to
auto-resolve) or is resolved by picking one side.

Strategies (used only by the caller-triggered best-effort pass):
| Strategy | Meaning                                            |
|----------|----------------------------------------------------|
| LATEST   | Newer logical timestamp wins, ties go to remote    |
| MANUAL   | Never auto-resolved beyond the staleness rules     |
| MERGE    | Combined with the field's merge function           |
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from docsync.sync.types import SchemaMismatchError

if TYPE_CHECKING:
    from docsync.sync.types import DocumentSnapshot

MergeFunction = Callable[[Any, Any], Any]


class FieldStrategy(Enum):
    """Best-effort resolution policy of a field."""

    LATEST = auto()
    MANUAL = auto()
    MERGE = auto()


def merge_any(local_value: Any, remote_value: Any) -> bool:
    """Merge two flags: set if either side set it."""
    return bool(local_value) or bool(remote_value)


@dataclass(frozen=True)
class FieldSpec:
    """A synchronized field."""

    name: str
    display_name: str
    strategy: FieldStrategy = FieldStrategy.LATEST
    merge: MergeFunction | None = None
    default: Any = None


class DocumentSchema:
    """Ordered set of synchronized fields."""

    def __init__(self, fields: list[FieldSpec]) -> None:
        self._fields = {spec.name: spec for spec in fields}
        if len(self._fields) != len(fields):
            raise ValueError("Duplicate field names in schema")

    @property
    def names(self) -> list[str]:
        """Field names in declaration order."""
        return list(self._fields)

    def field(self, name: str) -> FieldSpec:
        """Get the spec for a field."""
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"Unknown field: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def is_mergeable(self, name: str) -> bool:
        """Check if a field declares a merge function."""
        return name in self._fields and self._fields[name].merge is not None

    def merge(self, name: str, local_value: Any, remote_value: Any) -> Any:
        """Merge two values with the field's merge function."""
        merge = self.field(name).merge
        if merge is None:
            raise ValueError(f"Field {name} has no merge function")
        return merge(local_value, remote_value)

    def defaults(self) -> dict[str, Any]:
        """Field values of a new document."""
        return {name: spec.default for name, spec in self._fields.items()}

    def display_name(self, name: str) -> str:
        """Human-readable field name (falls back to the raw name)."""
        spec = self._fields.get(name)
        return spec.display_name if spec else name

    def validate(self, snapshot: DocumentSnapshot) -> None:
        """Check that a snapshot carries exactly the schema fields.

        Raises:
            SchemaMismatchError: If fields are missing or unexpected
        """
        present = set(snapshot.fields)
        expected = set(self._fields)
        if present == expected:
            return
        missing = sorted(expected - present)
        extra = sorted(present - expected)
        raise SchemaMismatchError(
            f"{snapshot.origin.value} snapshot of {snapshot.document_id} "
            f"does not match schema (missing={missing}, unexpected={extra})"
        )


DEFAULT_SCHEMA = DocumentSchema(
    [
        FieldSpec("title", "Title", default="Untitled"),
        # Block content is opaque: one side is chosen, never diffed
        FieldSpec("content", "Content", FieldStrategy.MANUAL, default=""),
        FieldSpec("font", "Font", default="sans"),
        FieldSpec("icon", "Icon"),
        FieldSpec("cover_image", "Cover Image"),
        FieldSpec(
            "is_favorite", "Favorite Status", FieldStrategy.MERGE, merge_any, False
        ),
        FieldSpec("last_opened_at", "Last Opened"),
    ]
)
