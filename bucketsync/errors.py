"""Exceptions raised by stores and the sync engine."""


class BucketSyncError(Exception):
    """Base class for all bucketsync errors."""


class ConnectivityError(BucketSyncError):
    """The live store server could not be reached."""


class FilesystemError(BucketSyncError):
    """The sync directory could not be created or listed."""


class StoreError(BucketSyncError):
    """A store call failed (I/O error, corrupt data, unexpected response)."""


class NoSuchBucket(StoreError):
    """The requested bucket does not exist in the store."""

    def __init__(self, bucket_id: str):
        super().__init__(f"No such bucket: {bucket_id}")
        self.bucket_id = bucket_id


class BucketAlreadyExists(StoreError):
    """A bucket with the same id already exists in the store."""

    def __init__(self, bucket_id: str):
        super().__init__(f"Bucket already exists: {bucket_id}")
        self.bucket_id = bucket_id


class SyncConsistencyError(BucketSyncError):
    """A bucket that was just created could not be read back."""
