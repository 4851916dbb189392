"""Tests for application configuration."""

import pytest
from pydantic import ValidationError

from imagestore.config import Environment, Settings, get_settings


def _make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {"IMAGESTORE_ENV": "test"}
    defaults.update(overrides)
    return Settings(**defaults)


class TestDefaults:
    """Defaults for a bare test environment."""

    def test_defaults(self):
        s = _make_settings()
        assert s.imagestore_env == Environment.TEST
        assert s.gcs_bucket is None
        assert s.gcs_api_url == "https://storage.googleapis.com"
        assert s.images_base_dir == "images/"
        assert s.unique_name_max_attempts is None
        assert s.max_image_bytes == 10 * 1024 * 1024
        assert s.storage_timeout_s == 30.0
        assert s.log_level == "INFO"

    def test_loaded_from_environment(self, monkeypatch):
        monkeypatch.setenv("GCS_BUCKET", "env-bucket")
        monkeypatch.setenv("UNIQUE_NAME_MAX_ATTEMPTS", "5")

        s = get_settings()

        assert s.gcs_bucket == "env-bucket"
        assert s.unique_name_max_attempts == 5


class TestValidation:
    """Validation rules for deployed environments and limits."""

    @pytest.mark.parametrize("env", ["staging", "prod"])
    def test_bucket_and_token_required_when_deployed(self, env):
        with pytest.raises(ValidationError, match="GCS_BUCKET, GCS_ACCESS_TOKEN"):
            _make_settings(IMAGESTORE_ENV=env)

    def test_token_alone_missing_reported(self):
        with pytest.raises(ValidationError, match="GCS_ACCESS_TOKEN"):
            _make_settings(IMAGESTORE_ENV="prod", GCS_BUCKET="b")

    def test_deployed_with_storage_settings_accepted(self):
        s = _make_settings(IMAGESTORE_ENV="prod", GCS_BUCKET="b", GCS_ACCESS_TOKEN="t")
        assert s.imagestore_env == Environment.PROD

    def test_zero_max_attempts_rejected(self):
        with pytest.raises(ValidationError, match="UNIQUE_NAME_MAX_ATTEMPTS"):
            _make_settings(UNIQUE_NAME_MAX_ATTEMPTS=0)

    def test_zero_max_image_bytes_rejected(self):
        with pytest.raises(ValidationError, match="MAX_IMAGE_BYTES"):
            _make_settings(MAX_IMAGE_BYTES=0)

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError, match="LOG_LEVEL"):
            _make_settings(LOG_LEVEL="chatty")

    def test_log_level_case_insensitive(self):
        assert _make_settings(LOG_LEVEL="debug").log_level == "debug"


class TestNormalizedImagesBaseDir:
    """Tests for base directory normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("images/", "images/"),
            ("images", "images/"),
            ("/content/images//", "content/images/"),
            ("", ""),
        ],
    )
    def test_normalized(self, raw, expected):
        assert _make_settings(IMAGES_BASE_DIR=raw).normalized_images_base_dir == expected
