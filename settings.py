import secrets
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    admin_password: str

    # Random per process unless configured: tokens then die with a restart.
    token_secret: str = Field(default_factory=lambda: secrets.token_hex(32))
    token_ttl_days: int = 7

    data_dir: Path = Path("./uploads")
    backing_dir: Path | None = None

    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    photos_folder: str = "atelier-portfolio/photos"
    snapshot_public_id: str = "atelier-portfolio/db/photos"
    thumbnail_width: int = 400

    request_timeout: float = 10.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ATELIER_",
        env_file_encoding="utf-8",
    )

    @field_validator("token_ttl_days")
    @classmethod
    def ttl_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("token_ttl_days must be at least 1")
        return v

    @field_validator("request_timeout")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be greater than 0")
        return v

    @field_validator("thumbnail_width")
    @classmethod
    def thumbnail_width_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("thumbnail_width must be at least 1")
        return v

    @property
    def cache_path(self) -> Path:
        return self.data_dir / "photos.json"

    @property
    def backing_path(self) -> Path:
        """Snapshot file used when no Cloudinary account is configured."""
        return (self.backing_dir or self.data_dir / "backing") / "photos.json"

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )

    @property
    def storage_mode(self) -> Literal["cloudinary", "local"]:
        return "cloudinary" if self.cloudinary_configured else "local"
