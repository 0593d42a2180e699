"""Stores the sync engine can read from and write to.

Both kinds expose the same AccessMethod surface:
- ServerStore: the live store, reached over the local server's REST API
- FileStore: SQLite files used for the staging store and remote exports
"""

from .base import AccessMethod
from .file_store import FileStore
from .server_store import ServerStore

__all__ = ["AccessMethod", "FileStore", "ServerStore"]
