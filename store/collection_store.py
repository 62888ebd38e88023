"""Collection Store: the single owner of the photo collection.

Reads go through the local cache, falling back to the durable backing store and
finally to an empty collection. Every mutation is a full load -> mutate -> save
cycle under one in-process lock; saves write the whole snapshot to the local
cache and then push it to the backing store. Failures of either target are
logged, never raised: the local mutation governs the response, the remote write
is advisory. The one exception: a mutation will not save over a backing snapshot
that was fetched but could not be parsed.

Read projections never take the mutation lock. They may observe the snapshot
from just before or just after a concurrent mutation, but never a torn one.
"""
import json
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from models.photo import AdminPhoto, PhotoPatch, PhotoRecord, PublicPhoto
from store.backing import BackingStore
from store.errors import Internal, InvalidInput, NotFound, UpstreamUnavailable
from store.geometry import classify
from store.local_cache import LocalCache

logger = logging.getLogger(__name__)

_SNAPSHOT = TypeAdapter(list[PhotoRecord])

DimensionLookup = Callable[[str], tuple[int, int]]


class UrlRenderer(Protocol):
    def url(self, blob_ref: str) -> str: ...

    def thumbnail_url(self, blob_ref: str) -> str: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectionStore:
    def __init__(
        self,
        cache: LocalCache,
        backing: BackingStore,
        renderer: UrlRenderer,
        dimension_lookup: DimensionLookup | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.backing = backing
        self.renderer = renderer
        self._dimension_lookup = dimension_lookup
        self._clock = clock
        self._lock = threading.Lock()

    # ---------------------------------------------------------------------------
    # Load / save
    # ---------------------------------------------------------------------------

    def load(self) -> list[PhotoRecord]:
        """Current collection: local cache, else backing store, else empty."""
        return self._read(for_update=False)

    def _read(self, for_update: bool) -> list[PhotoRecord]:
        # for_update: a fetched backing snapshot that cannot be parsed raises
        # Internal instead of reading as empty, so it is never saved over.
        cached = self.cache.read()
        if cached is not None:
            records = _parse(cached, "local cache")
            if records is not None:
                return records

        try:
            remote = self.backing.fetch_snapshot()
        except UpstreamUnavailable as exc:
            logger.warning("Backing store fetch failed (%s): %s", self.backing.name, exc)
            return []

        records = _parse(remote, f"{self.backing.name} backing store")
        if records is None:
            if for_update:
                raise Internal(
                    f"Snapshot in {self.backing.name} backing store is unreadable; refusing to overwrite it"
                )
            return []
        self._refill_cache(remote)
        logger.info("Restored %d photos from %s backing store", len(records), self.backing.name)
        return records

    def save(self, records: list[PhotoRecord]) -> None:
        """Persist the whole collection to both targets; failures are logged only."""
        data = _SNAPSHOT.dump_json(records, indent=2)
        try:
            self.cache.write(data)
        except OSError as exc:
            logger.warning("Local cache write failed (%s): %s", self.cache.path, exc)
        try:
            self.backing.push_snapshot(data)
        except UpstreamUnavailable as exc:
            logger.warning("Backing store push failed (%s): %s", self.backing.name, exc)

    def _refill_cache(self, data: bytes) -> None:
        # A mutation in flight will write a newer snapshot itself; never wait for
        # it and never overwrite what it wrote.
        if not self._lock.acquire(blocking=False):
            return
        try:
            current = self.cache.read()
            if current is None or _parse(current, "local cache") is None:
                self.cache.write(data)
        except OSError as exc:
            logger.warning("Local cache refill failed (%s): %s", self.cache.path, exc)
        finally:
            self._lock.release()

    # ---------------------------------------------------------------------------
    # Mutations
    # ---------------------------------------------------------------------------

    def register(
        self,
        blob_ref: str,
        original_name: str | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> AdminPhoto:
        """Add a record for a completed upload and return its admin projection."""
        if not blob_ref:
            raise InvalidInput("blobRef is required")

        width, height = width or 0, height or 0
        if width <= 0 or height <= 0:
            width, height = self._lookup_dimensions(blob_ref)
        ratio, orientation = classify(width, height)

        with self._lock:
            records = self._read(for_update=True)
            taken = {r.id for r in records}
            photo_id = uuid.uuid4().hex
            while photo_id in taken:
                photo_id = uuid.uuid4().hex

            record = PhotoRecord(
                id=photo_id,
                blob_ref=blob_ref,
                display_name=_default_name(blob_ref, original_name),
                width=width,
                height=height,
                aspect_ratio=ratio,
                orientation=orientation,
                order=len(records),
                published=False,
                created_at=self._clock(),
            )
            records.append(record)
            self.save(records)

        logger.info("Registered photo %s (%s, %dx%d)", record.id, blob_ref, width, height)
        return self._admin_view(record)

    def update(self, photo_id: str, patch: PhotoPatch) -> AdminPhoto:
        """Apply only the fields present in `patch`. Other records are untouched."""
        with self._lock:
            records = self._read(for_update=True)
            record = _find(records, photo_id)
            for field, value in patch.changes().items():
                setattr(record, field, value)
            self.save(records)
        return self._admin_view(record)

    def rename(self, photo_id: str, display_name: str) -> AdminPhoto:
        return self.update(photo_id, PhotoPatch(display_name=display_name))

    def set_order(self, photo_id: str, order: int) -> AdminPhoto:
        # Caller-supplied order is trusted; no renumbering on this path.
        return self.update(photo_id, PhotoPatch(order=order))

    def delete(self, photo_id: str) -> str:
        """Remove a record and return its blob reference for external cleanup."""
        with self._lock:
            records = self._read(for_update=True)
            record = _find(records, photo_id)
            remaining = [r for r in records if r.id != photo_id]
            _renumber(remaining)
            self.save(remaining)
        logger.info("Deleted photo %s (%s)", photo_id, record.blob_ref)
        return record.blob_ref

    def bulk_publish(self, ids: list[str] | None = None) -> int:
        """Make `ids` (in that order) the published set, or publish everything.

        Unknown and repeated ids are skipped, so published orders stay dense.
        Returns the number of published records.
        """
        if ids is not None and not isinstance(ids, list):
            raise InvalidInput("ids must be a list")

        with self._lock:
            records = self._read(for_update=True)
            if ids is None:
                _renumber(records)
                for record in records:
                    record.published = True
                published = len(records)
            else:
                by_id = {r.id: r for r in records}
                for record in records:
                    record.published = False
                published = 0
                for photo_id in ids:
                    record = by_id.get(photo_id)
                    if record is None or record.published:
                        continue
                    record.published = True
                    record.order = published
                    published += 1
            self.save(records)

        logger.info("Published %d of %d photos", published, len(records))
        return published

    def reorder_all(self, ids: list[str]) -> None:
        """Set order = list position for each listed id, then sort the collection.

        Records not in the list keep their order value; the sort is stable.
        """
        if not isinstance(ids, list):
            raise InvalidInput("ids must be a list")

        positions = {photo_id: index for index, photo_id in enumerate(ids)}
        with self._lock:
            records = self._read(for_update=True)
            for record in records:
                if record.id in positions:
                    record.order = positions[record.id]
            records.sort(key=lambda r: r.order)
            self.save(records)

    def clear(self) -> list[PhotoRecord]:
        """Empty the collection; return the prior records for blob cleanup.

        Unlike the other mutations this goes ahead over an unreadable snapshot:
        an explicit reset is how an admin recovers from one.
        """
        with self._lock:
            records = self.load()
            self.save([])
        logger.info("Cleared collection (%d photos)", len(records))
        return records

    def repair_dimensions(self) -> int:
        """Look up sizes for records registered without them.

        Lookups happen outside the lock; records deleted or repaired meanwhile
        are skipped. Returns the number of records repaired.
        """
        pending = [(r.id, r.blob_ref) for r in self.load() if not r.dimensions_known]
        if not pending or self._dimension_lookup is None:
            return 0

        found: dict[str, tuple[int, int]] = {}
        for photo_id, blob_ref in pending:
            width, height = self._lookup_dimensions(blob_ref)
            if width > 0 and height > 0:
                found[photo_id] = (width, height)
        if not found:
            return 0

        repaired = 0
        with self._lock:
            records = self._read(for_update=True)
            for record in records:
                if record.id in found and not record.dimensions_known:
                    record.apply_dimensions(*found[record.id])
                    repaired += 1
            if repaired:
                self.save(records)

        logger.info("Repaired dimensions of %d photos", repaired)
        return repaired

    def _lookup_dimensions(self, blob_ref: str) -> tuple[int, int]:
        if self._dimension_lookup is None:
            return 0, 0
        try:
            return self._dimension_lookup(blob_ref)
        except Exception as exc:
            logger.warning("Dimension lookup failed for %s: %s", blob_ref, exc)
            return 0, 0

    # ---------------------------------------------------------------------------
    # Read projections
    # ---------------------------------------------------------------------------

    def public_photos(self) -> list[PublicPhoto]:
        published = sorted((r for r in self.load() if r.published), key=lambda r: r.order)
        return [self._public_view(r) for r in published]

    def admin_photos(self) -> list[AdminPhoto]:
        return [self._admin_view(r) for r in self.load()]

    def count(self) -> int:
        return len(self.load())

    def _public_view(self, record: PhotoRecord) -> PublicPhoto:
        return PublicPhoto(
            id=record.id,
            url=self.renderer.url(record.blob_ref),
            display_name=record.display_name,
            width=record.width,
            height=record.height,
            orientation=record.orientation,
            aspect_ratio=record.aspect_ratio,
            order=record.order,
        )

    def _admin_view(self, record: PhotoRecord) -> AdminPhoto:
        return AdminPhoto(
            **self._public_view(record).model_dump(),
            thumbnail_url=self.renderer.thumbnail_url(record.blob_ref),
            published=record.published,
            created_at=record.created_at,
            blob_ref=record.blob_ref,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse(data: bytes, source: str) -> list[PhotoRecord] | None:
    """Records of a snapshot, or None when it is not a JSON array at all.

    Records are validated one at a time so that one bad entry costs only
    itself. A record whose `order` is not an integer takes its array position.
    """
    try:
        items = json.loads(data)
    except ValueError as exc:
        logger.warning("Ignoring unreadable snapshot from %s: %s", source, exc)
        return None
    if not isinstance(items, list):
        logger.warning("Ignoring snapshot from %s: expected an array, got %s", source, type(items).__name__)
        return None

    records = []
    for position, item in enumerate(items):
        record = _parse_record(item, position)
        if record is None:
            logger.warning("Skipping unreadable record #%d from %s", position, source)
        else:
            records.append(record)
    return records


def _parse_record(item: object, position: int) -> PhotoRecord | None:
    try:
        return PhotoRecord.model_validate(item)
    except ValidationError as exc:
        bad_fields = {err["loc"][0] for err in exc.errors() if err["loc"]}
    if not isinstance(item, dict) or "order" not in bad_fields:
        return None
    try:
        return PhotoRecord.model_validate({**item, "order": position})
    except ValidationError:
        return None


def _find(records: list[PhotoRecord], photo_id: str) -> PhotoRecord:
    for record in records:
        if record.id == photo_id:
            return record
    raise NotFound(f"Photo {photo_id} not found")


def _renumber(records: list[PhotoRecord]) -> None:
    """Sort by current order (stable) and rewrite orders as 0..n-1."""
    records.sort(key=lambda r: r.order)
    for index, record in enumerate(records):
        record.order = index


def _default_name(blob_ref: str, original_name: str | None) -> str:
    if original_name and original_name.strip():
        return Path(original_name.strip()).stem
    return blob_ref.rsplit("/", 1)[-1]
