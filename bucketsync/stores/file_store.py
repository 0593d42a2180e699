"""SQLite-backed bucket store used for the staging store and remote exports."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from ..errors import BucketAlreadyExists, NoSuchBucket, StoreError
from ..models import Bucket, BucketMetadata, Event, parse_timestamp
from .base import AccessMethod

logger = logging.getLogger(__name__)

# Instants are stored as integer microseconds since the Unix epoch (UTC)
SCHEMA = """
CREATE TABLE IF NOT EXISTS buckets (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL DEFAULT '',
    client TEXT NOT NULL DEFAULT '',
    hostname TEXT NOT NULL,
    created TEXT,
    data TEXT NOT NULL DEFAULT '{}'
);

-- Events: append-only, one row per event
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bucket_id TEXT NOT NULL REFERENCES buckets(id),
    starttime INTEGER NOT NULL,
    duration INTEGER NOT NULL,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_bucket_start ON events(bucket_id, starttime);
"""

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def _to_micros(dt: datetime) -> int:
    return (parse_timestamp(dt) - _EPOCH) // _MICROSECOND


def _from_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


class FileStore(AccessMethod):
    """A bucket store kept in a single SQLite file."""

    def __init__(self, db_path: str | Path, read_only: bool = False):
        """Initialize the file store.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests).
            read_only: Open an existing file without creating or writing
                anything, as done for other devices' exports.
        """
        self.db_path = Path(db_path).expanduser()
        self.read_only = read_only
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open the database file, creating the schema if needed."""
        if self._conn is not None:
            return

        with self._translate_errors():
            if self.read_only:
                uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
                conn = sqlite3.connect(uri, uri=True)
                conn.row_factory = sqlite3.Row
                self._conn = conn
                logger.debug(f"FileStore opened {self.db_path} read-only")
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
            conn.row_factory = sqlite3.Row
            try:
                conn.executescript(SCHEMA)
                conn.commit()
            except sqlite3.Error:
                conn.close()
                raise
            self._conn = conn

        logger.debug(f"FileStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Re-raise database and file errors as StoreError."""
        try:
            yield
        except (sqlite3.Error, OSError, ValueError) as e:
            raise StoreError(f"{self.describe()}: {e}") from e

    def describe(self) -> str:
        return f"FileStore({self.db_path})"

    # ==================== Bucket Operations ====================

    def _bucket_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Bucket:
        bounds = conn.execute(
            """
            SELECT MIN(starttime), MAX(starttime + duration)
            FROM events WHERE bucket_id = ?
            """,
            (row["id"],),
        ).fetchone()

        return Bucket(
            id=row["id"],
            type=row["type"],
            client=row["client"],
            hostname=row["hostname"],
            created=parse_timestamp(row["created"]) if row["created"] else None,
            data=json.loads(row["data"]),
            metadata=BucketMetadata(
                start=_from_micros(bounds[0]) if bounds[0] is not None else None,
                end=_from_micros(bounds[1]) if bounds[1] is not None else None,
            ),
        )

    def get_buckets(self) -> dict[str, Bucket]:
        with self._translate_errors():
            conn = self._ensure_connected()
            rows = conn.execute("SELECT * FROM buckets ORDER BY id").fetchall()
            return {row["id"]: self._bucket_from_row(conn, row) for row in rows}

    def get_bucket(self, bucket_id: str) -> Bucket:
        with self._translate_errors():
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT * FROM buckets WHERE id = ?", (bucket_id,)
            ).fetchone()
            if row is None:
                raise NoSuchBucket(bucket_id)
            return self._bucket_from_row(conn, row)

    def create_bucket(self, bucket: Bucket) -> None:
        with self._translate_errors():
            conn = self._ensure_connected()
            try:
                conn.execute(
                    """
                    INSERT INTO buckets (id, type, client, hostname, created, data)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        bucket.id,
                        bucket.type,
                        bucket.client,
                        bucket.hostname,
                        (bucket.created or datetime.now(timezone.utc)).isoformat(),
                        json.dumps(bucket.data),
                    ),
                )
            except sqlite3.IntegrityError:
                raise BucketAlreadyExists(bucket.id) from None
            conn.commit()

        logger.debug(f"Created bucket {bucket.id} in {self.db_path}")

    def _require_bucket(self, conn: sqlite3.Connection, bucket_id: str) -> None:
        row = conn.execute(
            "SELECT 1 FROM buckets WHERE id = ?", (bucket_id,)
        ).fetchone()
        if row is None:
            raise NoSuchBucket(bucket_id)

    # ==================== Event Operations ====================

    @staticmethod
    def _event_from_row(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            timestamp=_from_micros(row["starttime"]),
            duration=timedelta(microseconds=row["duration"]),
            data=json.loads(row["data"]),
        )

    def get_events(
        self,
        bucket_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        with self._translate_errors():
            conn = self._ensure_connected()
            self._require_bucket(conn, bucket_id)

            query = "SELECT id, starttime, duration, data FROM events WHERE bucket_id = ?"
            params: list = [bucket_id]
            if start is not None:
                query += " AND starttime >= ?"
                params.append(_to_micros(start))
            if end is not None:
                query += " AND starttime < ?"
                params.append(_to_micros(end))
            query += " ORDER BY starttime DESC, id DESC"
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)

            return [self._event_from_row(row) for row in conn.execute(query, params)]

    def get_event_count(self, bucket_id: str) -> int:
        with self._translate_errors():
            conn = self._ensure_connected()
            self._require_bucket(conn, bucket_id)
            cursor = conn.execute(
                "SELECT COUNT(*) FROM events WHERE bucket_id = ?", (bucket_id,)
            )
            return cursor.fetchone()[0]

    def _insert(self, conn: sqlite3.Connection, bucket_id: str, event: Event) -> Event:
        cursor = conn.execute(
            """
            INSERT INTO events (bucket_id, starttime, duration, data)
            VALUES (?, ?, ?, ?)
            """,
            (
                bucket_id,
                _to_micros(event.timestamp),
                event.duration // _MICROSECOND,
                json.dumps(event.data),
            ),
        )
        return Event(
            id=cursor.lastrowid,
            timestamp=event.timestamp,
            duration=event.duration,
            data=event.data,
        )

    def insert_events(self, bucket_id: str, events: list[Event]) -> int:
        if not events:
            return 0

        with self._translate_errors():
            conn = self._ensure_connected()
            self._require_bucket(conn, bucket_id)
            for event in events:
                self._insert(conn, bucket_id, event)
            conn.commit()

        return len(events)

    def heartbeat(self, bucket_id: str, event: Event, pulsetime: float) -> Event:
        with self._translate_errors():
            conn = self._ensure_connected()
            self._require_bucket(conn, bucket_id)

            row = conn.execute(
                """
                SELECT id, starttime, duration, data FROM events
                WHERE bucket_id = ?
                ORDER BY starttime DESC, id DESC
                LIMIT 1
                """,
                (bucket_id,),
            ).fetchone()
            last = self._event_from_row(row) if row else None

            # A zero pulse window only absorbs a repeat of the latest event
            if pulsetime == 0:
                if last is not None and last.same_as(event):
                    return last
            elif last is not None and last.data == event.data:
                window_end = last.end + timedelta(seconds=pulsetime)
                if last.timestamp <= event.timestamp <= window_end:
                    new_end = max(last.end, event.end)
                    merged = Event(
                        id=last.id,
                        timestamp=last.timestamp,
                        duration=new_end - last.timestamp,
                        data=last.data,
                    )
                    conn.execute(
                        "UPDATE events SET duration = ? WHERE id = ?",
                        (merged.duration // _MICROSECOND, last.id),
                    )
                    conn.commit()
                    return merged

            stored = self._insert(conn, bucket_id, event)
            conn.commit()
            return stored
