"""Folder-based sync between the live store and other devices' exports.

Each pass pulls the other devices' store files from the sync folder into the
live store, then pushes the live store into this device's staging store.
Replicating the folder between devices is left to an external tool.
"""

from .discovery import find_remotes, find_remotes_nonlocal, get_device_id, setup_local_remote
from .engine import (
    BucketSyncResult,
    SyncReport,
    get_or_create_sync_bucket,
    resolve_sync_bucket_id,
    sync_datastores,
    sync_one,
)
from .runner import PassResult, list_buckets, log_buckets, sync_run

__all__ = [
    "BucketSyncResult",
    "PassResult",
    "SyncReport",
    "find_remotes",
    "find_remotes_nonlocal",
    "get_device_id",
    "get_or_create_sync_bucket",
    "list_buckets",
    "log_buckets",
    "resolve_sync_bucket_id",
    "setup_local_remote",
    "sync_datastores",
    "sync_one",
    "sync_run",
]
