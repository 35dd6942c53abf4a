"""Core modules for notesync: local store, sync engine and remote protocol.

This package has no dependency on the CLI or web layers.
"""
