"""Sync orchestrator: one document, one attempt, end to end.

The orchestrator is the only component the presentation layer talks to:

    start_sync ──► fetch local + remote ──► diff ──► classify
                                                      │
                     ┌────────── manual left ─────────┤
                     ▼                                ▼
            AWAITING_RESOLUTION                 RESOLVING
                     │ submit_resolutions             │
                     └──────────────► apply ──► push ─┴─► write local
                                                │
                                 RevisionConflict: re-fetch remote,
                                 re-diff against the merged snapshot

Failure handling:
    | Error                     | Handling                              |
    |---------------------------|---------------------------------------|
    | NetworkError              | Retried with backoff, then FAILED     |
    | RevisionConflictError     | Re-diff, capped restarts, then FAILED |
    | DocumentNotFoundError     | Upload if never synced, else FAILED   |
    | IncompleteResolutionError | FAILED immediately, never retried     |
    | other StoreError          | FAILED immediately                    |

At most one session per document is active at a time; a second attempt
is rejected with ALREADY_SYNCING instead of being queued. While waiting
for decisions only the registry entry is held, no store resources.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from docsync.core.config import SyncConfig
from docsync.sync.domain.classifier import ConflictClassifier
from docsync.sync.domain.resolution import apply, check_resolutions, ensure_complete
from docsync.sync.domain.schema import DEFAULT_SCHEMA, DocumentSchema
from docsync.sync.domain.sessions import SessionRegistry, SessionStatus, SyncSession
from docsync.sync.domain.tracker import diff
from docsync.sync.retry import retry_with_policy
from docsync.sync.types import (
    DocumentNotFoundError,
    DocumentSnapshot,
    FailureReason,
    IncompleteResolutionError,
    InvalidResolutionError,
    NetworkError,
    Origin,
    RevisionConflictError,
    StoreError,
    SyncResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from docsync.sync.domain.conflicts import Conflict, ResolvedConflict
    from docsync.sync.stores import (
        LocalDocumentStore,
        RemoteDocumentStore,
        SyncBaselineStore,
    )

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drives synchronization attempts for documents.

    Usage:
        orchestrator = SyncOrchestrator(local_state, remote_store, baselines=local_state)

        result = orchestrator.start_sync("doc-1")
        if result.outcome == SyncOutcome.AWAITING_RESOLUTION:
            # ... show result.conflicts to the user ...
            decisions = [conflict.choose_local() for conflict in result.conflicts]
            result = orchestrator.submit_resolutions("doc-1", decisions)

    Or, blocking until decisions arrive from another thread:
        orchestrator.set_on_conflicts(show_conflict_dialog)
        result = orchestrator.sync("doc-1")
    """

    def __init__(
        self,
        local_store: LocalDocumentStore,
        remote_store: RemoteDocumentStore,
        baselines: SyncBaselineStore | None = None,
        schema: DocumentSchema = DEFAULT_SCHEMA,
        config: SyncConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            local_store: Document cache on this device
            remote_store: Authoritative document store
            baselines: Where the last synced revision is recorded (if None,
                the local snapshot's revision is used)
            schema: Synchronized fields
            config: Retry and restart limits
            sleep: Function used to wait between network retries
        """
        self._local = local_store
        self._remote = remote_store
        self._baselines = baselines
        self._schema = schema
        self._config = config or SyncConfig()
        self._sleep = sleep

        self._classifier = ConflictClassifier(schema)
        self._registry = SessionRegistry()

        # Callbacks
        self._on_conflicts: Callable[[str, list[Conflict]], None] | None = None

    def set_on_conflicts(
        self,
        callback: Callable[[str, list[Conflict]], None],
    ) -> None:
        """Set callback used by sync() when decisions are needed.

        Args:
            callback: Function(document_id, manual_conflicts)
        """
        self._on_conflicts = callback

    # === Presentation-layer operations ===

    def start_sync(self, document_id: str) -> SyncResult:
        """Begin a sync attempt and run it as far as possible.

        Returns:
            CLEAN or APPLIED when done, AWAITING_RESOLUTION with the
            manual conflicts, or FAILED
        """
        result, _ = self._start(document_id)
        return result

    def submit_resolutions(
        self,
        document_id: str,
        resolutions: Iterable[ResolvedConflict],
    ) -> SyncResult:
        """Provide decisions for an attempt awaiting resolution and commit.

        Decisions replace any automatic ones for the same fields.

        Returns:
            APPLIED, FAILED, or AWAITING_RESOLUTION again if a concurrent
            remote write surfaced new manual conflicts
        """
        session = self._registry.transition(
            document_id,
            SessionStatus.AWAITING_RESOLUTION,
            SessionStatus.RESOLVING,
        )
        if session is None:
            return SyncResult.failed(
                document_id,
                FailureReason.NO_PENDING_RESOLUTION,
                "No sync is awaiting decisions for this document",
            )

        result: SyncResult | None = None
        try:
            try:
                decided = check_resolutions(session.conflicts, resolutions, self._schema)
            except InvalidResolutionError as e:
                result = self._fail(
                    document_id, FailureReason.INVALID_RESOLUTION, e, session
                )
            else:
                session.record(decided)
                result = self._commit(session)
            return result
        finally:
            self._settle(session, result)

    def auto_resolve_remaining(
        self,
        document_id: str,
    ) -> tuple[list[ResolvedConflict], list[Conflict]]:
        """Best-effort auto-resolution of the conflicts still undecided.

        Applies the classification rules plus each field's best-effort
        strategy. Content is never resolved this way.

        Returns:
            (resolved, still_manual) tuple; both empty if nothing is awaiting
        """
        with self._registry.locked():
            session = self._registry.get(document_id)
            if session is None or session.status != SessionStatus.AWAITING_RESOLUTION:
                return [], []

            classification = self._classifier.classify(
                session.unresolved,
                session.synced_revision,
                best_effort=True,
            )

        logger.info(
            "Best-effort resolution of %s: %d resolved, %d still manual",
            document_id,
            len(classification.auto_resolvable),
            len(classification.manual),
        )
        return classification.resolutions, classification.manual

    def cancel(self, document_id: str) -> bool:
        """Abandon an attempt that is awaiting decisions.

        Returns:
            True if an awaiting attempt was cancelled
        """
        session = self._registry.transition(
            document_id,
            SessionStatus.AWAITING_RESOLUTION,
            SessionStatus.FAILED,
        )
        if session is None:
            return False

        logger.info("Sync of %s cancelled while awaiting resolution", document_id)
        self._settle(
            session,
            SyncResult.failed(
                document_id,
                FailureReason.CANCELLED,
                "Sync cancelled while awaiting resolution",
            ),
        )
        return True

    def sync(self, document_id: str) -> SyncResult:
        """Run one attempt to completion, waiting for decisions if needed.

        Manual conflicts are handed to the on_conflicts callback; the call
        then blocks, without timeout, until submit_resolutions() or
        cancel() is called for the document.

        Returns:
            CLEAN, APPLIED or FAILED
        """
        result, session = self._start(document_id)

        while not result.is_terminal and session is not None:
            if self._on_conflicts:
                try:
                    self._on_conflicts(document_id, result.conflicts)
                except Exception:
                    self.cancel(document_id)
                    raise
            result = session.next_outcome()

        return result

    def sync_all(self, document_ids: Iterable[str]) -> dict[str, SyncResult]:
        """Start a sync attempt for each document, in parallel.

        Each document runs through start_sync() on a worker thread, so
        attempts needing decisions come back AWAITING_RESOLUTION and
        documents already mid-sync come back ALREADY_SYNCING.

        Args:
            document_ids: Documents to sync (duplicates are synced once)

        Returns:
            Dictionary mapping document id to its result
        """
        unique_ids = list(dict.fromkeys(document_ids))
        if not unique_ids:
            return {}

        logger.info("Syncing %d documents", len(unique_ids))
        workers = min(self._config.max_concurrent_syncs, len(unique_ids))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="docsync"
        ) as executor:
            results = executor.map(self.start_sync, unique_ids)
            return dict(zip(unique_ids, results))

    def pending_conflicts(self, document_id: str) -> list[Conflict]:
        """Get conflicts still waiting for a decision."""
        with self._registry.locked():
            session = self._registry.get(document_id)
            if session is None or session.status != SessionStatus.AWAITING_RESOLUTION:
                return []
            return session.unresolved

    def is_syncing(self, document_id: str) -> bool:
        """Check if a document has an active attempt."""
        return document_id in self._registry

    def in_flight(self) -> list[str]:
        """Get all documents with an active attempt."""
        return self._registry.in_flight()

    # === Attempt steps ===

    def _start(self, document_id: str) -> tuple[SyncResult, SyncSession | None]:
        """Claim the document and run the attempt up to its first stop."""
        if not self._registry.claim(document_id):
            logger.info("Sync of %s rejected: already syncing", document_id)
            return (
                SyncResult.failed(
                    document_id,
                    FailureReason.ALREADY_SYNCING,
                    "A sync is already in progress for this document",
                ),
                None,
            )

        result: SyncResult | None = None
        try:
            result, session = self._begin(document_id)
            return result, session
        finally:
            if result is None or result.is_terminal:
                self._registry.release(document_id)

    def _begin(self, document_id: str) -> tuple[SyncResult, SyncSession | None]:
        """Fetch, diff and classify, then commit unless decisions are needed.

        Returns:
            (result, session) tuple; session is None if the attempt failed
            before one was created
        """
        logger.info("Starting sync of %s", document_id)

        try:
            local = self._fetch(self._local.get_local, document_id)
            synced_revision = self._synced_revision(document_id, local)
            try:
                remote: DocumentSnapshot | None = self._fetch(
                    self._remote.get_remote, document_id
                )
            except DocumentNotFoundError:
                if synced_revision:
                    # Synced before, so the remote copy was deleted
                    raise
                remote = None
        except NetworkError as e:
            return self._fail(document_id, FailureReason.NETWORK_ERROR, e), None
        except StoreError as e:
            return self._fail(document_id, FailureReason.STORE_ERROR, e), None

        if remote is None:
            return self._upload(local)

        conflicts = diff(local, remote, self._schema)

        if not conflicts:
            session = SyncSession(
                document_id, local, remote, synced_revision, [], SessionStatus.CLEAN
            )
            self._registry.attach(document_id, session)
            session.transition_to(SessionStatus.APPLIED)
            logger.info("Sync of %s is clean", document_id)
            return SyncResult.clean(document_id, local), session

        classification = self._classifier.classify(conflicts, synced_revision)
        status = (
            SessionStatus.AWAITING_RESOLUTION
            if classification.manual
            else SessionStatus.RESOLVING
        )
        session = SyncSession(
            document_id, local, remote, synced_revision, conflicts, status
        )
        self._registry.attach(document_id, session)

        logger.info(
            "Sync of %s: %d conflicts (%d auto-resolved, %d manual)",
            document_id,
            len(conflicts),
            len(classification.auto_resolvable),
            len(classification.manual),
        )

        if status == SessionStatus.AWAITING_RESOLUTION:
            return SyncResult.awaiting(document_id, classification.manual), session
        return self._commit(session), session

    def _upload(self, local: DocumentSnapshot) -> tuple[SyncResult, SyncSession]:
        """Create the remote copy of a document that was never synced.

        The push expects no remote revision; if another device created the
        document meanwhile, the usual revision-race re-diff takes over.
        """
        document_id = local.document_id
        logger.info("Document %s is not on the remote yet, uploading", document_id)

        absent = DocumentSnapshot(document_id, {}, origin=Origin.REMOTE)
        session = SyncSession(
            document_id, local, absent, 0, [], SessionStatus.RESOLVING
        )
        self._registry.attach(document_id, session)
        return self._commit(session), session

    def _commit(self, session: SyncSession) -> SyncResult:
        """Apply decisions, push, and write back locally.

        Loops while pushes lose revision races, re-diffing each time
        against a freshly fetched remote.
        """
        document_id = session.document_id

        while True:
            try:
                ensure_complete(session.conflicts, session.resolutions)
                merged = apply(session.local, session.resolutions, self._schema)
            except IncompleteResolutionError as e:
                return self._fail(
                    document_id, FailureReason.INCOMPLETE_RESOLUTION, e, session
                )
            except InvalidResolutionError as e:
                return self._fail(
                    document_id, FailureReason.INVALID_RESOLUTION, e, session
                )

            try:
                if merged.same_values(session.remote):
                    # Nothing to publish, the remote already holds the result
                    committed = session.remote.with_origin(Origin.LOCAL)
                else:
                    new_revision = self._push(document_id, merged, session.remote)
                    committed = merged.committed(new_revision, session.remote)
            except RevisionConflictError as e:
                result = self._restart(session, merged, e)
                if result is not None:
                    return result
                continue
            except NetworkError as e:
                return self._fail(document_id, FailureReason.NETWORK_ERROR, e, session)
            except StoreError as e:
                return self._fail(document_id, FailureReason.STORE_ERROR, e, session)

            try:
                self._write_back(document_id, committed)
            except NetworkError as e:
                return self._fail(document_id, FailureReason.NETWORK_ERROR, e, session)
            except StoreError as e:
                return self._fail(document_id, FailureReason.STORE_ERROR, e, session)

            session.transition_to(SessionStatus.APPLIED)
            logger.info(
                "Sync of %s applied at revision %s", document_id, committed.revision
            )
            return SyncResult.applied(document_id, committed)

    def _restart(
        self,
        session: SyncSession,
        merged: DocumentSnapshot,
        error: RevisionConflictError,
    ) -> SyncResult | None:
        """Start a new round after a rejected push.

        Returns:
            A result to hand back (FAILED, or AWAITING_RESOLUTION with new
            manual conflicts), or None to push again
        """
        document_id = session.document_id

        if session.restarts >= self._config.max_revision_restarts:
            logger.error(
                "Sync of %s lost %d revision races, giving up",
                document_id,
                session.restarts + 1,
            )
            return self._fail(document_id, FailureReason.TOO_MANY_RETRIES, error, session)

        logger.warning(
            "Remote revision of %s moved (expected %s, now %s), re-diffing",
            document_id,
            error.expected_revision,
            error.actual_revision,
        )

        try:
            remote = self._fetch(self._remote.get_remote, document_id)
        except NetworkError as e:
            return self._fail(document_id, FailureReason.NETWORK_ERROR, e, session)
        except StoreError as e:
            return self._fail(document_id, FailureReason.STORE_ERROR, e, session)

        # The merged snapshot was built against the previously seen remote,
        # so that remote is the common point for the new round
        previous = session.remote
        synced_revision = previous.revision or 0
        local = merged.rebased(previous)
        conflicts = diff(local, remote, self._schema)
        classification = self._classifier.classify(conflicts, synced_revision)
        session.restart(local, remote, synced_revision, conflicts)

        if classification.manual:
            session.transition_to(SessionStatus.AWAITING_RESOLUTION)
            logger.info(
                "Sync of %s needs decisions again after re-diff (%d manual)",
                document_id,
                len(classification.manual),
            )
            return SyncResult.awaiting(document_id, classification.manual)
        return None

    # === Store access ===

    def _fetch(
        self,
        getter: Callable[[str], DocumentSnapshot],
        document_id: str,
    ) -> DocumentSnapshot:
        """Read a snapshot with network retry and check it against the schema."""
        snapshot = retry_with_policy(
            lambda: getter(document_id), self._config.retry, self._sleep
        )
        self._schema.validate(snapshot)
        return snapshot

    def _push(
        self,
        document_id: str,
        merged: DocumentSnapshot,
        remote: DocumentSnapshot,
    ) -> int:
        """Write the merged snapshot remotely, based on the revision read."""
        logger.debug(
            "Pushing %s against revision %s", document_id, remote.revision
        )
        return retry_with_policy(
            lambda: self._remote.put_remote(document_id, merged, remote.revision),
            self._config.retry,
            self._sleep,
        )

    def _write_back(self, document_id: str, committed: DocumentSnapshot) -> None:
        """Store the committed snapshot locally, then record the sync point.

        The sync point must never run ahead of the local snapshot, or stale
        local values would look unchanged and win over remote edits.
        """
        retry_with_policy(
            lambda: self._local.put_local(document_id, committed),
            self._config.retry,
            self._sleep,
        )
        if self._baselines is not None and committed.revision is not None:
            self._baselines.set_synced_revision(document_id, committed.revision)

    def _synced_revision(self, document_id: str, local: DocumentSnapshot) -> int:
        """Get the remote revision of the last successful sync."""
        revisions = [local.revision or 0]
        if self._baselines is not None:
            recorded = self._baselines.get_synced_revision(document_id)
            if recorded is not None:
                revisions.append(recorded)
        return max(revisions)

    # === Outcomes ===

    def _fail(
        self,
        document_id: str,
        reason: FailureReason,
        error: Exception,
        session: SyncSession | None = None,
    ) -> SyncResult:
        """Turn an error into a FAILED result."""
        if session is not None and not session.is_terminal:
            session.transition_to(SessionStatus.FAILED)
        logger.warning("Sync of %s failed (%s): %s", document_id, reason.name, error)
        return SyncResult.failed(document_id, reason, str(error))

    def _settle(self, session: SyncSession, result: SyncResult | None) -> None:
        """Release the document if the attempt is over and notify waiters."""
        if result is None:
            # An unexpected exception is propagating
            if not session.is_terminal:
                session.transition_to(SessionStatus.FAILED)
            result = SyncResult.failed(
                session.document_id,
                FailureReason.STORE_ERROR,
                "Sync aborted by an unexpected error",
            )

        if result.is_terminal:
            self._registry.release(session.document_id)
        session.publish(result)
