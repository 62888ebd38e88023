from datetime import datetime, timezone
from pathlib import Path

import pytest

from settings import Settings
from store.collection_store import CollectionStore
from store.errors import UpstreamUnavailable
from store.local_cache import LocalCache

FIXED_NOW = datetime(2026, 2, 9, 12, 0, 0, tzinfo=timezone.utc)


class MemoryBacking:
    """In-memory backing store. Set `fail = True` to simulate an outage."""

    name = "memory"

    def __init__(self, data: bytes | None = None) -> None:
        self.data = data
        self.fail = False
        self.pushes: list[bytes] = []

    def fetch_snapshot(self) -> bytes:
        if self.fail or self.data is None:
            raise UpstreamUnavailable("memory backing unavailable")
        return self.data

    def push_snapshot(self, data: bytes) -> None:
        if self.fail:
            raise UpstreamUnavailable("memory backing unavailable")
        self.data = data
        self.pushes.append(data)


class StubRenderer:
    def url(self, blob_ref: str) -> str:
        return f"https://cdn.test/{blob_ref}"

    def thumbnail_url(self, blob_ref: str) -> str:
        return f"https://cdn.test/thumb/{blob_ref}"


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temp directory, local storage mode, fixed token secret."""
    return Settings(
        admin_password="letmein",
        token_secret="test-secret",
        data_dir=tmp_path / "uploads",
        backing_dir=tmp_path / "durable",
    )


@pytest.fixture
def backing() -> MemoryBacking:
    return MemoryBacking()


@pytest.fixture
def cache(tmp_path: Path) -> LocalCache:
    return LocalCache(tmp_path / "cache" / "photos.json")


@pytest.fixture
def store(cache: LocalCache, backing: MemoryBacking) -> CollectionStore:
    return CollectionStore(
        cache=cache,
        backing=backing,
        renderer=StubRenderer(),
        clock=lambda: FIXED_NOW,
    )
