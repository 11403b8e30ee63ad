"""Conflict classification.

Decides, per conflict, whether it can be resolved without a human.

Rules (first match wins):
| Rule             | Condition                              | Resolution  |
|------------------|----------------------------------------|-------------|
| merge-function   | Field declares a merge function        | MERGED      |
| remote-unchanged | remote timestamp <= last synced rev    | LOCAL_WINS  |
| local-unchanged  | local timestamp <= last synced rev     | REMOTE_WINS |
| (none)           | Both sides changed since last sync     | manual      |

The rules only auto-resolve when one side is provably stale; two
independent edits of the same field always go to a human. The
best-effort rules are only used when the caller explicitly asks to
auto-resolve what remains.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from docsync.sync.domain.conflicts import Conflict, ResolvedConflict
from docsync.sync.domain.schema import DEFAULT_SCHEMA, DocumentSchema, FieldStrategy

RuleFunction = Callable[[Conflict, int, DocumentSchema], "ResolvedConflict | None"]


@dataclass(frozen=True)
class ClassificationRule:
    """A rule that may auto-resolve a conflict."""

    name: str
    resolve: RuleFunction
    reason: str


def _merge_function(
    conflict: Conflict, last_synced_revision: int, schema: DocumentSchema
) -> ResolvedConflict | None:
    if not schema.is_mergeable(conflict.field):
        return None
    value = schema.merge(conflict.field, conflict.local_value, conflict.remote_value)
    return ResolvedConflict.merged(conflict, value)


def _remote_unchanged(
    conflict: Conflict, last_synced_revision: int, schema: DocumentSchema
) -> ResolvedConflict | None:
    if conflict.remote_timestamp <= last_synced_revision:
        return ResolvedConflict.local(conflict)
    return None


def _local_unchanged(
    conflict: Conflict, last_synced_revision: int, schema: DocumentSchema
) -> ResolvedConflict | None:
    if conflict.local_timestamp <= last_synced_revision:
        return ResolvedConflict.remote(conflict)
    return None


def _latest_wins(
    conflict: Conflict, last_synced_revision: int, schema: DocumentSchema
) -> ResolvedConflict | None:
    if conflict.field not in schema:
        return None
    if schema.field(conflict.field).strategy != FieldStrategy.LATEST:
        return None
    if conflict.local_timestamp > conflict.remote_timestamp:
        return ResolvedConflict.local(conflict)
    return ResolvedConflict.remote(conflict)


# Declarative classification rules
CLASSIFICATION_RULES: list[ClassificationRule] = [
    ClassificationRule(
        name="merge-function",
        resolve=_merge_function,
        reason="Merge functions are commutative and side-effect free",
    ),
    ClassificationRule(
        name="remote-unchanged",
        resolve=_remote_unchanged,
        reason="Remote has not changed since last sync, local edit is newer",
    ),
    ClassificationRule(
        name="local-unchanged",
        resolve=_local_unchanged,
        reason="Local has not changed since last sync, remote edit is newer",
    ),
]

BEST_EFFORT_RULES: list[ClassificationRule] = [
    ClassificationRule(
        name="latest-wins",
        resolve=_latest_wins,
        reason="Caller asked to keep the most recently stamped value",
    ),
]


@dataclass
class Classification:
    """Conflicts split by whether a human must decide."""

    auto_resolvable: list[Conflict] = field(default_factory=list)
    manual: list[Conflict] = field(default_factory=list)

    @property
    def resolutions(self) -> list[ResolvedConflict]:
        """Decisions taken for the auto-resolvable conflicts."""
        return [c.resolution for c in self.auto_resolvable if c.resolution is not None]


class ConflictClassifier:
    """Evaluates classification rules against conflicts."""

    def __init__(
        self,
        schema: DocumentSchema = DEFAULT_SCHEMA,
        rules: list[ClassificationRule] | None = None,
        best_effort_rules: list[ClassificationRule] | None = None,
    ) -> None:
        self._schema = schema
        self._rules = CLASSIFICATION_RULES if rules is None else rules
        self._best_effort_rules = (
            BEST_EFFORT_RULES if best_effort_rules is None else best_effort_rules
        )

    def evaluate(
        self,
        conflict: Conflict,
        last_synced_revision: int,
        best_effort: bool = False,
    ) -> tuple[ResolvedConflict | None, str]:
        """Evaluate rules for one conflict without modifying it.

        Args:
            conflict: The conflict to classify
            last_synced_revision: Remote revision of the last successful sync
            best_effort: Also apply the field strategies

        Returns:
            (resolution, reason) tuple; resolution is None for manual
        """
        rules = self._rules + self._best_effort_rules if best_effort else self._rules
        for rule in rules:
            resolution = rule.resolve(conflict, last_synced_revision, self._schema)
            if resolution is not None:
                return resolution, rule.reason

        return None, "Both sides changed since last sync"

    def classify(
        self,
        conflicts: Iterable[Conflict],
        last_synced_revision: int,
        best_effort: bool = False,
    ) -> Classification:
        """Split conflicts into auto-resolvable and manual.

        Auto-resolvable conflicts get their resolution slot filled;
        manual ones are left unresolved.
        """
        result = Classification()
        for conflict in conflicts:
            resolution, _ = self.evaluate(conflict, last_synced_revision, best_effort)
            if resolution is None:
                result.manual.append(conflict)
            else:
                conflict.resolve(resolution)
                result.auto_resolvable.append(conflict)
        return result


def classify(
    conflicts: Iterable[Conflict],
    last_synced_revision: int,
    schema: DocumentSchema = DEFAULT_SCHEMA,
) -> Classification:
    """Quick classification with the default rules.

    Args:
        conflicts: Conflicts from diff()
        last_synced_revision: Remote revision of the last successful sync
        schema: Document schema

    Returns:
        Classification of the conflicts
    """
    return ConflictClassifier(schema).classify(conflicts, last_synced_revision)
