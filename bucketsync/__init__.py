"""Folder-based bucket synchronization for ActivityWatch-style event stores."""

__version__ = "0.1.0"
