"""Configuration for docsync.

This module defines the retry and restart limits used by the sync engine,
and helpers to load/save them from the user's config directory.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for transient store failures.

    Attributes:
        max_retries: Retries after the first attempt (0 = no retry).
        initial_backoff: Delay before the first retry, in seconds.
        max_backoff: Upper bound for a single delay, in seconds.
        backoff_multiplier: Factor applied to the delay after each retry.
    """

    max_retries: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 8.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        """Reject limits that would never terminate or never wait."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


@dataclass
class SyncConfig:
    """Configuration for a SyncOrchestrator.

    Attributes:
        retry: Network retry policy for store calls.
        max_revision_restarts: Re-diff attempts after a rejected push,
            counted separately from network retries.
        max_concurrent_syncs: Worker threads used by sync_all.
    """

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    max_revision_restarts: int = 3
    max_concurrent_syncs: int = 4

    def __post_init__(self) -> None:
        if self.max_revision_restarts < 0:
            raise ValueError("max_revision_restarts must be >= 0")
        if self.max_concurrent_syncs < 1:
            raise ValueError("max_concurrent_syncs must be >= 1")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Create from a config dictionary, ignoring unknown keys."""
        retry_data = data.get("retry") or {}
        retry = RetryPolicy(
            **{k: v for k, v in retry_data.items() if k in RetryPolicy.__dataclass_fields__}
        )
        return cls(
            retry=retry,
            max_revision_restarts=int(data.get("max_revision_restarts", 3)),
            max_concurrent_syncs=int(data.get("max_concurrent_syncs", 4)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return asdict(self)


def get_config_dir() -> Path:
    """Get the configuration directory for docsync.

    Returns:
        Path to ~/.docsync.
    """
    return Path.home() / ".docsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config(path: Path | None = None) -> SyncConfig:
    """Load configuration from the config file.

    Args:
        path: Config file to read (defaults to ~/.docsync/config.json).

    Returns:
        The stored configuration, or defaults if the file doesn't exist.
    """
    config_file = path or get_config_file()
    if config_file.exists():
        return SyncConfig.from_dict(dict(json.loads(config_file.read_text())))
    return SyncConfig()


def save_config(config: SyncConfig, path: Path | None = None) -> None:
    """Save configuration to the config file."""
    config_file = path or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config.to_dict(), indent=2))
