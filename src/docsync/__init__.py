"""docsync - local-first document sync and conflict resolution."""

__version__ = "0.1.0"
