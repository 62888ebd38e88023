"""Durable backing stores for the collection snapshot.

The Collection Store treats these as slow, fallible and not transactional with
its local cache. Both methods raise `UpstreamUnavailable` on any failure; a
store that has never been written to also raises it from `fetch_snapshot`.
"""
import logging
from pathlib import Path
from typing import Protocol

from store.errors import UpstreamUnavailable
from store.local_cache import write_atomic
from utils.cloudinary_client import CloudinaryClient

logger = logging.getLogger(__name__)


class BackingStore(Protocol):
    name: str

    def fetch_snapshot(self) -> bytes: ...

    def push_snapshot(self, data: bytes) -> None: ...


class LocalFileBacking:
    """Snapshot kept in a file on a (hopefully persistent) local volume."""

    name = "local"

    def __init__(self, path: Path) -> None:
        self.path = path

    def fetch_snapshot(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError as exc:
            raise UpstreamUnavailable(f"No snapshot at {self.path}") from exc
        except OSError as exc:
            raise UpstreamUnavailable(f"Cannot read snapshot {self.path}: {exc}") from exc

    def push_snapshot(self, data: bytes) -> None:
        try:
            write_atomic(self.path, data)
        except OSError as exc:
            raise UpstreamUnavailable(f"Cannot write snapshot {self.path}: {exc}") from exc


class CloudinaryBacking:
    """Snapshot stored as a raw JSON asset in Cloudinary."""

    name = "cloudinary"

    def __init__(self, client: CloudinaryClient, public_id: str) -> None:
        self.client = client
        # Raw assets keep their extension as part of the public id.
        self.public_id = public_id if public_id.endswith(".json") else f"{public_id}.json"

    def fetch_snapshot(self) -> bytes:
        return self.client.fetch_raw(self.public_id)

    def push_snapshot(self, data: bytes) -> None:
        self.client.upload_raw(self.public_id, data)
        logger.debug("Pushed %d-byte snapshot to Cloudinary %s", len(data), self.public_id)
