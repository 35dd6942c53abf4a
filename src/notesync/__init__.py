"""notesync: offline-first note synchronization."""

__version__ = "0.1.0"
