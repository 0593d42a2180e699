"""Fake remote stores for trying out a sync folder by hand."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..config import SyncConfig
from ..errors import BucketAlreadyExists
from ..models import Bucket, Event
from ..stores import FileStore

logger = logging.getLogger(__name__)


def setup_test_remotes(
    sync_dir: Path,
    count: int = 2,
    config: SyncConfig | None = None,
) -> list[Path]:
    """Create ``count`` remote stores, each with one bucket of three events.

    Every remote uses the same bucket id "bucket" with a different hostname,
    so pulling them checks that equal ids from different devices stay apart.
    Running it again appends three more events to each bucket.

    Returns:
        Paths of the store files written.
    """
    config = config or SyncConfig()
    paths = []

    for n in range(count):
        device_id = f"test-remote-{n}"
        path = sync_dir / device_id / config.store_filename
        store = FileStore(path)
        try:
            bucket = Bucket(
                id="bucket",
                type="test",
                client="test",
                hostname=f"device-{n}",
            )
            try:
                store.create_bucket(bucket)
            except BucketAlreadyExists:
                logger.debug(f"Bucket already exists in {path}, skipping")

            now = datetime.now(timezone.utc)
            events = [
                Event(
                    timestamp=now + timedelta(milliseconds=i * 10),
                    duration=timedelta(0),
                    data={"test": i},
                )
                for i in range(3)
            ]
            store.insert_events(bucket.id, events)
            logger.info(
                f"Seeded {path}: {store.get_event_count(bucket.id)} events in {bucket.id}"
            )
        finally:
            store.close()
        paths.append(path)

    return paths
