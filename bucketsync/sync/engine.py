"""Bucket selection, identity resolution and the resumable event merge.

A sync copies buckets from one store to another. Pulling copies a remote
device's buckets into the live store under "<bucket>-synced-from-<origin>";
pushing mirrors the live store's buckets 1:1 into the staging store. Events
are never matched by id across stores: the merge resumes after the newest
destination event, skips what the destination already holds at that point
and replays the rest with zero pulsetime heartbeats, so running it again
adds nothing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..errors import NoSuchBucket, SyncConsistencyError
from ..models import SYNC_ORIGIN_KEY, UNKNOWN_HOSTNAME, Bucket, Event
from ..stores.base import AccessMethod

logger = logging.getLogger(__name__)

SYNCED_FROM_SEPARATOR = "-synced-from-"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class BucketSyncResult:
    """Outcome of merging one source bucket into its destination bucket."""

    source_bucket_id: str
    bucket_id: str
    events_before: int
    events_after: int
    events_fetched: int = 0
    events_skipped: int = 0
    resumed_at: datetime | None = None

    @property
    def new_events(self) -> int:
        return self.events_after - self.events_before


@dataclass
class SyncReport:
    """Outcome of syncing one store into another."""

    source: str
    destination: str
    is_push: bool
    buckets: list[BucketSyncResult] = field(default_factory=list)

    @property
    def new_events(self) -> int:
        return sum(b.new_events for b in self.buckets)


def resolve_sync_bucket_id(bucket: Bucket, is_push: bool) -> str:
    """Compute the destination bucket id for a source bucket.

    Pushing keeps the id. Pulling strips any earlier "-synced-from-" suffix
    and appends one naming the bucket's origin, so repeated pulls land in the
    same bucket instead of chaining suffixes.
    """
    if is_push:
        return bucket.id

    base_id = bucket.id.split(SYNCED_FROM_SEPARATOR, 1)[0]
    origin = bucket.sync_origin or bucket.hostname
    return f"{base_id}{SYNCED_FROM_SEPARATOR}{origin}"


def get_or_create_sync_bucket(
    bucket_from: Bucket,
    ds_to: AccessMethod,
    is_push: bool,
    log: logging.Logger = logger,
) -> Bucket:
    """Return the destination bucket for ``bucket_from``, creating it if missing.

    Args:
        bucket_from: Source bucket (hostname already repaired).
        ds_to: Destination store.
        is_push: Whether we are pushing to the staging store.
        log: Logger for progress messages.

    Returns:
        The destination bucket as stored.

    Raises:
        SyncConsistencyError: If a freshly created bucket cannot be read back.
    """
    new_id = resolve_sync_bucket_id(bucket_from, is_push)

    try:
        return ds_to.get_bucket(new_id)
    except NoSuchBucket:
        pass

    bucket_new = bucket_from.copy()
    bucket_new.id = new_id
    bucket_new.data[SYNC_ORIGIN_KEY] = bucket_from.hostname
    ds_to.create_bucket(bucket_new)
    log.info(f"Created bucket {new_id} in {ds_to.describe()}")

    try:
        return ds_to.get_bucket(new_id)
    except NoSuchBucket as e:
        raise SyncConsistencyError(
            f"Bucket {new_id} was created in {ds_to.describe()} but cannot be read back"
        ) from e


def sync_one(
    ds_from: AccessMethod,
    ds_to: AccessMethod,
    bucket_from: Bucket,
    bucket_to: Bucket,
    resume_dedup: bool = False,
    log: logging.Logger = logger,
) -> BucketSyncResult:
    """Copy the events of one bucket that the destination does not have yet.

    Events at exactly the resume point are fetched again on the next run and
    skipped when the destination already holds them. With ``resume_dedup``
    any event already present at or after the resume point is skipped too.

    Args:
        ds_from: Source store.
        ds_to: Destination store.
        bucket_from: Source bucket.
        bucket_to: Destination bucket.
        resume_dedup: Skip any source event already present at or after the
            resume point, not only those at the resume point itself.
        log: Logger for progress messages.

    Returns:
        BucketSyncResult with before/after event counts.
    """
    eventcount_to_old = ds_to.get_event_count(bucket_to.id)
    log.info(f"Bucket: {bucket_to.id}")

    # Resume from the newest destination event rather than the bucket's
    # metadata, which has no end for empty buckets.
    most_recent = ds_to.get_events(bucket_to.id, limit=1)
    resume_sync_at = most_recent[0].end if most_recent else None
    log.info(f"Resumed at: {resume_sync_at}")

    events: list[Event] = [
        e.without_id() for e in ds_from.get_events(bucket_from.id, start=resume_sync_at)
    ]
    events.sort(key=lambda e: e.timestamp)
    fetched = len(events)

    if resume_sync_at is not None and events:
        existing = ds_to.get_events(bucket_to.id, start=resume_sync_at) + most_recent
        if not resume_dedup:
            existing = [x for x in existing if x.timestamp == resume_sync_at]
        events = [e for e in events if not any(e.same_as(x) for x in existing)]
    skipped = fetched - len(events)

    for event in events:
        log.debug(f"Inserting event at {event.timestamp}")
        ds_to.heartbeat(bucket_to.id, event, 0)

    eventcount_to_new = ds_to.get_event_count(bucket_to.id)
    log.info(
        f"Synced {eventcount_to_new - eventcount_to_old} new events",
        extra={"bucket_id": bucket_to.id, "store": ds_to.describe()},
    )

    return BucketSyncResult(
        source_bucket_id=bucket_from.id,
        bucket_id=bucket_to.id,
        events_before=eventcount_to_old,
        events_after=eventcount_to_new,
        events_fetched=fetched,
        events_skipped=skipped,
        resumed_at=resume_sync_at,
    )


def sync_datastores(
    ds_from: AccessMethod,
    ds_to: AccessMethod,
    is_push: bool,
    source_device_id: str | None,
    bucket_allow_list: list[str],
    resume_dedup: bool = False,
    log: logging.Logger = logger,
) -> SyncReport:
    """Sync the allowed buckets of ``ds_from`` into ``ds_to``.

    Args:
        ds_from: Source store.
        ds_to: Destination store.
        is_push: True when pushing live buckets to the staging store, False
            when pulling a remote into the live store.
        source_device_id: Device id of the source store, used for buckets
            whose hostname is "unknown".
        bucket_allow_list: Ids of the buckets to sync. Empty syncs nothing.
        resume_dedup: See ``sync_one``.
        log: Logger for progress messages.

    Returns:
        SyncReport with a result per synced bucket.

    Raises:
        ValueError: If a bucket needs a hostname and no source_device_id was given.
    """
    log.info(f"Syncing {ds_from.describe()} to {ds_to.describe()}")
    allowed = set(bucket_allow_list)

    buckets_from: list[Bucket] = []
    for bucket in ds_from.get_buckets().values():
        if bucket.id not in allowed:
            continue
        if bucket.hostname == UNKNOWN_HOSTNAME:
            if not source_device_id:
                raise ValueError(
                    f"Bucket {bucket.id} has no hostname and no source device id was given"
                )
            log.warning(
                f"Bucket {bucket.id} hostname/device ID was invalid, "
                f"setting to {source_device_id}"
            )
            bucket.hostname = source_device_id
        buckets_from.append(bucket)

    # Least recently updated first; buckets with no events first of all
    buckets_from.sort(key=lambda b: b.metadata.end or _OLDEST)

    report = SyncReport(
        source=ds_from.describe(),
        destination=ds_to.describe(),
        is_push=is_push,
    )
    for bucket_from in buckets_from:
        bucket_to = get_or_create_sync_bucket(bucket_from, ds_to, is_push, log=log)
        report.buckets.append(
            sync_one(ds_from, ds_to, bucket_from, bucket_to, resume_dedup=resume_dedup, log=log)
        )

    return report
