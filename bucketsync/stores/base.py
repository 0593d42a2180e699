"""The capability surface shared by the live store and file-backed stores."""

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import Bucket, Event


class AccessMethod(ABC):
    """Abstract base for every store the sync engine reads from or writes to.

    Implementations raise the exceptions in ``bucketsync.errors``: NoSuchBucket
    and BucketAlreadyExists for the expected bucket lookups, StoreError for
    anything else.
    """

    @abstractmethod
    def get_buckets(self) -> dict[str, Bucket]:
        """Get all buckets in the store, keyed by bucket id."""
        pass

    @abstractmethod
    def get_bucket(self, bucket_id: str) -> Bucket:
        """Get a single bucket.

        Raises:
            NoSuchBucket: If no bucket has the given id.
        """
        pass

    @abstractmethod
    def create_bucket(self, bucket: Bucket) -> None:
        """Create a bucket.

        Raises:
            BucketAlreadyExists: If a bucket with the same id exists.
        """
        pass

    @abstractmethod
    def get_events(
        self,
        bucket_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Get events from a bucket, newest first.

        Args:
            bucket_id: Bucket to read from.
            start: Only events with timestamp >= start.
            end: Only events with timestamp < end.
            limit: Maximum number of events to return.

        Returns:
            List of events ordered by timestamp, newest first.
        """
        pass

    @abstractmethod
    def get_event_count(self, bucket_id: str) -> int:
        """Count the events in a bucket.

        Raises:
            NoSuchBucket: If no bucket has the given id.
        """
        pass

    @abstractmethod
    def heartbeat(self, bucket_id: str, event: Event, pulsetime: float) -> Event:
        """Insert an event, merging it into the latest one when they touch.

        The event is merged when its data equals the latest event's data and
        its timestamp falls between the latest event's start and its end plus
        ``pulsetime`` seconds. Otherwise it is inserted as a new event.

        With ``pulsetime`` 0 nothing is extended: an event identical to the
        latest one is absorbed, anything else is inserted.

        Returns:
            The stored (possibly merged) event.
        """
        pass

    @abstractmethod
    def insert_events(self, bucket_id: str, events: list[Event]) -> int:
        """Insert events as-is, without merging.

        Returns:
            Number of events inserted.
        """
        pass

    def describe(self) -> str:
        """Human-readable name of the store for logs and reports."""
        return type(self).__name__

    def close(self) -> None:
        """Release any resources held by the store."""

    def __repr__(self) -> str:
        return f"<{self.describe()}>"
