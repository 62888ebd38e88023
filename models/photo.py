"""Photo record and its read projections.

`PhotoRecord` is the persisted shape: the collection snapshot is a JSON array of
these, written in snake_case. The projections are what the HTTP layer returns
and use camelCase keys.
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from store.geometry import DEFAULT_RATIO, Orientation, classify

# Keys and orientation tags written by the first (Node) version of the service.
_LEGACY_KEYS = {
    "cloudinaryId": "blob_ref",
    "name": "display_name",
    "w": "width",
    "h": "height",
    "ratio": "aspect_ratio",
    "orient": "orientation",
    "createdAt": "created_at",
}
_LEGACY_ORIENTATIONS = {"land": "landscape", "port": "portrait", "sq": "square"}


class PhotoRecord(BaseModel):
    """One entry of the collection.

    `id`, `blob_ref` and `created_at` are frozen. Dimensions change only through
    `apply_dimensions`, which keeps `aspect_ratio` and `orientation` in step.
    `order` is scoped: over the whole collection for the admin view, over the
    published subset once a publish has run.
    """

    id: str = Field(frozen=True)
    blob_ref: str = Field(frozen=True)
    display_name: str
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    aspect_ratio: float = DEFAULT_RATIO
    orientation: Orientation = "square"
    order: int = 0
    published: bool = False
    created_at: datetime = Field(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if any(k in data for k in _LEGACY_KEYS):
            data = {_LEGACY_KEYS.get(k, k): v for k, v in data.items()}
            orientation = data.get("orientation")
            if orientation in _LEGACY_ORIENTATIONS:
                data["orientation"] = _LEGACY_ORIENTATIONS[orientation]
        # Older snapshots hold records saved without a name; fall back to the blob tail.
        blob_ref = data.get("blob_ref")
        if not isinstance(data.get("display_name"), str) and isinstance(blob_ref, str):
            data = {**data, "display_name": blob_ref.rsplit("/", 1)[-1]}
        return data

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: datetime | str) -> datetime | str:
        # Strings are parsed by Pydantic; only naive datetime objects need UTC attached.
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def dimensions_known(self) -> bool:
        return self.width > 0 and self.height > 0

    def apply_dimensions(self, width: int, height: int) -> None:
        """Set pixel dimensions and re-derive ratio and orientation."""
        self.width = max(width, 0)
        self.height = max(height, 0)
        self.aspect_ratio, self.orientation = classify(self.width, self.height)


class PhotoPatch(BaseModel):
    """Partial update: only fields present in the request are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("displayName", "name", "display_name"),
    )
    order: int | None = None

    def changes(self) -> dict[str, Any]:
        # Explicit nulls count as absent: neither field is nullable on the record.
        return self.model_dump(exclude_unset=True, exclude_none=True)


class PublicPhoto(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    url: str
    display_name: str
    width: int
    height: int
    orientation: Orientation
    aspect_ratio: float
    order: int


class AdminPhoto(PublicPhoto):
    thumbnail_url: str
    published: bool
    created_at: datetime
    blob_ref: str
