"""Core module - Shared configuration and types."""

from docsync.core.config import (
    RetryPolicy,
    SyncConfig,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from docsync.core.types import SyncState

__all__ = [
    # Config
    "RetryPolicy",
    "SyncConfig",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
    # Types
    "SyncState",
]
