"""Bucket and event records shared by every store kind."""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

# Reserved key in Bucket.data recording which device a synced bucket came from.
# All keys under the "sync." prefix are reserved for bucketsync.
SYNC_KEY_PREFIX = "sync."
SYNC_ORIGIN_KEY = "sync.origin"

# Placeholder hostname written by watchers that could not resolve their device
UNKNOWN_HOSTNAME = "unknown"


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO-8601 in UTC."""
    return parse_timestamp(dt).isoformat()


@dataclass
class Event:
    """A timestamped, duration-bearing record with arbitrary payload data."""

    timestamp: datetime
    duration: timedelta = field(default_factory=timedelta)
    data: dict[str, Any] = field(default_factory=dict)
    id: int | None = None  # store-local, never carried across stores

    def __post_init__(self) -> None:
        self.timestamp = parse_timestamp(self.timestamp)
        if not isinstance(self.duration, timedelta):
            self.duration = timedelta(seconds=float(self.duration))
        if self.duration < timedelta(0):
            raise ValueError(f"Event duration must be non-negative, got {self.duration}")

    @property
    def end(self) -> datetime:
        """Instant at which the event ends."""
        return self.timestamp + self.duration

    def same_as(self, other: "Event") -> bool:
        """Compare by content, ignoring store-local ids."""
        return (
            self.timestamp == other.timestamp
            and self.duration == other.duration
            and self.data == other.data
        )

    def without_id(self) -> "Event":
        """Return a copy of the event with its store-local id stripped."""
        return Event(
            timestamp=self.timestamp,
            duration=self.duration,
            data=copy.deepcopy(self.data),
            id=None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON record used by the live store API."""
        d: dict[str, Any] = {
            "timestamp": format_timestamp(self.timestamp),
            "duration": self.duration.total_seconds(),
            "data": self.data,
        }
        if self.id is not None:
            d["id"] = self.id
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        """Create from a JSON record."""
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            duration=timedelta(seconds=float(data.get("duration", 0))),
            data=data.get("data") or {},
            id=data.get("id"),
        )


@dataclass
class BucketMetadata:
    """Advisory bounds of the events held in a bucket."""

    start: datetime | None = None
    end: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": format_timestamp(self.start) if self.start else None,
            "end": format_timestamp(self.end) if self.end else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BucketMetadata":
        data = data or {}
        return cls(
            start=parse_timestamp(data["start"]) if data.get("start") else None,
            end=parse_timestamp(data["end"]) if data.get("end") else None,
        )


@dataclass
class Bucket:
    """A named, per-device ordered log of events."""

    id: str
    type: str = ""
    client: str = ""
    hostname: str = UNKNOWN_HOSTNAME
    created: datetime | None = None
    data: dict[str, Any] = field(default_factory=dict)
    metadata: BucketMetadata = field(default_factory=BucketMetadata)

    @property
    def sync_origin(self) -> str | None:
        """Device the bucket's events were synced from, if recorded."""
        origin = self.data.get(SYNC_ORIGIN_KEY)
        return str(origin) if origin is not None else None

    def copy(self) -> "Bucket":
        """Deep copy, so callers can modify data without touching the source."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON record used by the live store API."""
        return {
            "id": self.id,
            "type": self.type,
            "client": self.client,
            "hostname": self.hostname,
            "created": format_timestamp(self.created) if self.created else None,
            "data": self.data,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bucket":
        """Create from a JSON record."""
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            client=data.get("client", ""),
            hostname=data.get("hostname") or UNKNOWN_HOSTNAME,
            created=parse_timestamp(data["created"]) if data.get("created") else None,
            data=data.get("data") or {},
            metadata=BucketMetadata.from_dict(data.get("metadata")),
        )
