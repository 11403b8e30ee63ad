"""Shared types for docsync.

This module defines enums used across the engine and its status reporting.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Aggregate sync state shown to the user.

    Used by SyncStatusTracker to summarize recent sync outcomes.
    """

    SYNCED = "synced"
    SYNCING = "syncing"
    CONFLICTS = "conflicts"
    ERROR = "error"
    OFFLINE = "offline"
