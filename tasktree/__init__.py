"""Hierarchical task list with a trash subtree, synced to a remote store."""

__version__ = "0.1.0"
