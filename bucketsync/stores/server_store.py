"""Client for the live store: the local ActivityWatch-compatible server."""

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from ..config import ServerConfig
from ..errors import BucketAlreadyExists, ConnectivityError, NoSuchBucket, StoreError
from ..models import Bucket, Event, format_timestamp
from .base import AccessMethod

logger = logging.getLogger(__name__)


class ServerStore(AccessMethod):
    """Access the live store through its REST API.

    Uses blocking HTTP calls: a sync pass is strictly sequential, so every
    store call completes before the next one starts.
    """

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the server client.

        Args:
            config: Server connection settings.
            transport: Optional httpx transport (used to stub the server in tests).
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=f"{self.base_url}/api/0",
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def describe(self) -> str:
        return f"ServerStore({self.base_url})"

    @staticmethod
    def _bucket_path(bucket_id: str, *parts: str) -> str:
        return "/".join(["/buckets", quote(bucket_id, safe=""), *parts])

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning transport failures into StoreError."""
        client = self._get_client()
        try:
            return client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _check(response: httpx.Response) -> None:
        if response.is_error:
            raise StoreError(
                f"{response.request.method} {response.request.url.path}: "
                f"HTTP {response.status_code}: {response.text}"
            )

    def _json(self, response: httpx.Response) -> Any:
        self._check(response)
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from {response.request.url.path}: {e}") from e

    # ==================== Server Info ====================

    def get_info(self) -> dict[str, Any]:
        """Get server info, including this device's id.

        Raises:
            ConnectivityError: If the server cannot be reached.
        """
        client = self._get_client()
        try:
            response = client.get("/info")
        except httpx.TransportError as e:
            raise ConnectivityError(
                f"Could not reach server at {self.base_url}: {e}"
            ) from e

        info = self._json(response)
        if not info.get("device_id"):
            raise StoreError(f"Server at {self.base_url} did not report a device_id")
        return info

    # ==================== Bucket Operations ====================

    def get_buckets(self) -> dict[str, Bucket]:
        data = self._json(self._request("GET", "/buckets/"))
        return {
            bucket_id: Bucket.from_dict({**bucket, "id": bucket.get("id", bucket_id)})
            for bucket_id, bucket in data.items()
        }

    def get_bucket(self, bucket_id: str) -> Bucket:
        response = self._request("GET", self._bucket_path(bucket_id))
        if response.status_code == 404:
            raise NoSuchBucket(bucket_id)
        return Bucket.from_dict(self._json(response))

    def create_bucket(self, bucket: Bucket) -> None:
        response = self._request(
            "POST", self._bucket_path(bucket.id), json=bucket.to_dict()
        )
        # The server answers 304 Not Modified when the bucket already exists
        if response.status_code == 304:
            raise BucketAlreadyExists(bucket.id)
        self._check(response)
        logger.debug(f"Created bucket {bucket.id} on {self.base_url}")

    # ==================== Event Operations ====================

    def get_events(
        self,
        bucket_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        params: dict[str, Any] = {}
        if start is not None:
            params["start"] = format_timestamp(start)
        if end is not None:
            params["end"] = format_timestamp(end)
        if limit is not None:
            params["limit"] = limit

        response = self._request(
            "GET", self._bucket_path(bucket_id, "events"), params=params
        )
        if response.status_code == 404:
            raise NoSuchBucket(bucket_id)
        events = [Event.from_dict(e) for e in self._json(response)]

        # The server selects by overlap with [start, end]; narrow to the
        # half-open window on event timestamps.
        if start is not None:
            events = [e for e in events if e.timestamp >= start]
        if end is not None:
            events = [e for e in events if e.timestamp < end]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        if limit is not None:
            events = events[:limit]
        return events

    def get_event_count(self, bucket_id: str) -> int:
        response = self._request("GET", self._bucket_path(bucket_id, "events", "count"))
        if response.status_code == 404:
            raise NoSuchBucket(bucket_id)
        return int(self._json(response))

    def insert_events(self, bucket_id: str, events: list[Event]) -> int:
        if not events:
            return 0
        response = self._request(
            "POST",
            self._bucket_path(bucket_id, "events"),
            json=[e.without_id().to_dict() for e in events],
        )
        if response.status_code == 404:
            raise NoSuchBucket(bucket_id)
        self._check(response)
        return len(events)

    def heartbeat(self, bucket_id: str, event: Event, pulsetime: float) -> Event:
        response = self._request(
            "POST",
            self._bucket_path(bucket_id, "heartbeat"),
            params={"pulsetime": pulsetime},
            json=event.without_id().to_dict(),
        )
        if response.status_code == 404:
            raise NoSuchBucket(bucket_id)
        body = self._json(response)
        return Event.from_dict(body) if isinstance(body, dict) and body else event
