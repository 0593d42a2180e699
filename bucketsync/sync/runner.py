"""A single sync pass and the read-only bucket report."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..config import Config
from ..errors import StoreError
from ..stores import AccessMethod, FileStore, ServerStore
from .discovery import (
    find_remotes_nonlocal,
    get_device_id,
    remote_device_id,
    setup_local_remote,
)
from .engine import SyncReport, sync_datastores

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Outcome of one sync pass."""

    device_id: str
    pulls: list[SyncReport] = field(default_factory=list)
    push: SyncReport | None = None
    failed_remotes: dict[str, str] = field(default_factory=dict)

    @property
    def pulled_events(self) -> int:
        return sum(r.new_events for r in self.pulls)

    @property
    def pushed_events(self) -> int:
        return self.push.new_events if self.push else 0


def collect_bucket_ids(stores: list[AccessMethod]) -> list[str]:
    """Ids of every bucket in the given stores, for syncing "all" buckets."""
    ids: set[str] = set()
    for store in stores:
        ids.update(store.get_buckets().keys())
    return sorted(ids)


def count_buckets(store: AccessMethod) -> dict[str, int]:
    """Map every bucket id of a store to its event count."""
    return {
        bucket_id: store.get_event_count(bucket_id)
        for bucket_id in store.get_buckets()
    }


def log_buckets(
    store: AccessMethod,
    counts: dict[str, int] | None = None,
    log: logging.Logger = logger,
) -> dict[str, int]:
    """Log every bucket of a store with its event count.

    Args:
        store: Store to report on.
        counts: Counts collected earlier; fetched from the store if None.
        log: Logger to write the report to.

    Returns:
        Mapping of bucket id to event count.
    """
    if counts is None:
        counts = count_buckets(store)

    log.info(f"Buckets in {store.describe()}:")
    for bucket_id, count in counts.items():
        log.info(f" - {bucket_id}")
        log.info(f"   eventcount: {count}")
    return counts


def _open_remotes(config: Config, device_id: str) -> list[tuple[str, FileStore]]:
    remote_dbfiles = find_remotes_nonlocal(
        config.sync.sync_path, device_id, config.sync.store_extension
    )
    logger.info(f"Found remotes: {[str(p) for p in remote_dbfiles]}")
    return [
        (remote_device_id(p), FileStore(p, read_only=True)) for p in remote_dbfiles
    ]


def sync_run(
    server: ServerStore,
    config: Config,
    buckets: list[str] | None = None,
    start: datetime | None = None,
    log: logging.Logger = logger,
) -> PassResult:
    """Perform a single sync pass.

    Pulls every other device's store into the live store, then pushes the
    live store into this device's staging store.

    Args:
        server: The live store.
        config: Loaded configuration.
        buckets: Bucket allow-list. None falls back to the configured list,
            and to every bucket of the live store and remotes if that is
            empty too. An explicit empty list syncs nothing.
        start: Accepted for forward compatibility; the merge always resumes
            from the destination's newest event.
        log: Logger for progress messages.

    Returns:
        PassResult with the pull and push reports.
    """
    device_id = get_device_id(server)
    ds_localremote = setup_local_remote(config.sync.sync_path, device_id, config.sync)
    remotes: list[tuple[str, FileStore]] = []

    try:
        remotes = _open_remotes(config, device_id)
        if start is not None:
            log.info(f"Start time {start.isoformat()} given, merge resumes per bucket instead")

        if buckets is None:
            buckets = config.sync.buckets or collect_bucket_ids(
                [server] + [ds for _, ds in remotes]
            )
        log.debug(f"Bucket allow-list: {buckets}")

        result = PassResult(device_id=device_id)

        log.info("Pulling...")
        for remote_id, ds_from in remotes:
            try:
                report = sync_datastores(
                    ds_from,
                    server,
                    False,
                    remote_id,
                    buckets,
                    resume_dedup=config.sync.resume_dedup,
                    log=log,
                )
            except StoreError as e:
                if not config.sync.isolate_remote_failures:
                    raise
                log.error(
                    f"Pull from {ds_from.describe()} failed, skipping: {e}",
                    extra={"store": ds_from.describe()},
                )
                result.failed_remotes[str(ds_from.db_path)] = str(e)
                continue
            result.pulls.append(report)

        log.info("Pushing...")
        result.push = sync_datastores(
            server,
            ds_localremote,
            True,
            device_id,
            buckets,
            resume_dedup=config.sync.resume_dedup,
            log=log,
        )

        log.info(
            f"Pass complete: pulled={result.pulled_events}, pushed={result.pushed_events}"
        )
        return result
    finally:
        ds_localremote.close()
        for _, ds in remotes:
            ds.close()


def list_buckets(
    server: ServerStore,
    config: Config,
    log: logging.Logger = logger,
) -> dict[str, dict[str, int]]:
    """Report the buckets of the live store, the staging store and all remotes.

    Every count is collected before anything is logged, so a failing store
    call aborts the report without partial output.

    Returns:
        Mapping of store description to {bucket id: event count}.
    """
    device_id = get_device_id(server)
    ds_localremote = setup_local_remote(config.sync.sync_path, device_id, config.sync)
    remotes: list[tuple[str, FileStore]] = []

    try:
        remotes = _open_remotes(config, device_id)
        stores: list[AccessMethod] = [server, ds_localremote] + [ds for _, ds in remotes]
        collected = [(store, count_buckets(store)) for store in stores]
        return {
            store.describe(): log_buckets(store, counts, log=log)
            for store, counts in collected
        }
    finally:
        ds_localremote.close()
        for _, ds in remotes:
            ds.close()
