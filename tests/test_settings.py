from pathlib import Path

import pytest
from pydantic import ValidationError

from settings import Settings


def test_settings_loads_with_required_fields():
    s = Settings(admin_password="secret")
    assert s.admin_password == "secret"
    assert s.data_dir == Path("./uploads")
    assert s.token_ttl_days == 7
    assert s.thumbnail_width == 400
    assert s.photos_folder == "atelier-portfolio/photos"
    assert s.snapshot_public_id == "atelier-portfolio/db/photos"


def test_settings_derived_paths():
    s = Settings(admin_password="secret", data_dir=Path("/srv/data"))
    assert s.cache_path == Path("/srv/data/photos.json")
    assert s.backing_path == Path("/srv/data/backing/photos.json")


def test_backing_dir_overrides_default():
    s = Settings(admin_password="secret", backing_dir=Path("/mnt/volume"))
    assert s.backing_path == Path("/mnt/volume/photos.json")


def test_settings_missing_password_raises():
    with pytest.raises(ValidationError) as exc_info:
        Settings()
    assert "admin_password" in str(exc_info.value)


def test_token_secret_is_random_when_unset():
    assert Settings(admin_password="a").token_secret != Settings(admin_password="a").token_secret


def test_ttl_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(admin_password="secret", token_ttl_days=0)


def test_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(admin_password="secret", request_timeout=0)


def test_storage_mode_requires_all_cloudinary_credentials():
    partial = Settings(admin_password="secret", cloudinary_cloud_name="demo")
    assert not partial.cloudinary_configured
    assert partial.storage_mode == "local"

    full = Settings(
        admin_password="secret",
        cloudinary_cloud_name="demo",
        cloudinary_api_key="key",
        cloudinary_api_secret="shh",
    )
    assert full.cloudinary_configured
    assert full.storage_mode == "cloudinary"


def test_settings_env_prefix(monkeypatch):
    monkeypatch.setenv("ATELIER_ADMIN_PASSWORD", "from-env")
    monkeypatch.setenv("ATELIER_TOKEN_TTL_DAYS", "1")
    s = Settings()
    assert s.admin_password == "from-env"
    assert s.token_ttl_days == 1
