"""Application settings loaded from environment variables.

Environment Configuration:
    IMAGESTORE_ENV: Deployment environment (local | test | staging | prod)
    LOG_JSON: Render logs as JSON (default true)
    LOG_LEVEL: Root log level (default INFO; DEBUG shows name collisions)

Google Cloud Storage Configuration:
    GCS_BUCKET: Target bucket name (required in staging/prod)
    GCS_ACCESS_TOKEN: Bearer token sent to the JSON API (required in staging/prod)
    GCS_API_URL: JSON API base URL
    GCS_PUBLIC_BASE_URL: Override for public object URLs

Image Configuration:
    IMAGES_BASE_DIR: Key prefix under which uploads are stored
    MAX_IMAGE_BYTES: Upload size limit
    UNIQUE_NAME_MAX_ATTEMPTS: Existence-check ceiling per resolution (unset = unbounded)
    STORAGE_TIMEOUT_S: Timeout applied to every storage request

Note: Without GCS_BUCKET, local/test environments fall back to the in-memory
storage client. Credentials are treated as opaque; minting them is external.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - GCS_BUCKET and GCS_ACCESS_TOKEN are required in staging and prod only
    - UNIQUE_NAME_MAX_ATTEMPTS, when set, must be >= 1
    """

    imagestore_env: Environment = Field(default=Environment.LOCAL, alias="IMAGESTORE_ENV")
    log_json: bool = Field(default=True, alias="LOG_JSON")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Google Cloud Storage settings
    gcs_bucket: str | None = Field(default=None, alias="GCS_BUCKET")
    gcs_access_token: str | None = Field(default=None, alias="GCS_ACCESS_TOKEN")
    gcs_api_url: str = Field(default="https://storage.googleapis.com", alias="GCS_API_URL")
    gcs_public_base_url: str | None = Field(default=None, alias="GCS_PUBLIC_BASE_URL")

    # Image settings
    images_base_dir: str = Field(default="images/", alias="IMAGES_BASE_DIR")
    max_image_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_IMAGE_BYTES")  # 10 MB
    unique_name_max_attempts: int | None = Field(default=None, alias="UNIQUE_NAME_MAX_ATTEMPTS")
    storage_timeout_s: float = Field(default=30.0, alias="STORAGE_TIMEOUT_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure storage settings are complete for deployed environments."""
        if self.imagestore_env in (Environment.STAGING, Environment.PROD):
            missing = []
            if not self.gcs_bucket:
                missing.append("GCS_BUCKET")
            if not self.gcs_access_token:
                missing.append("GCS_ACCESS_TOKEN")
            if missing:
                raise ValueError(
                    f"Missing required storage settings for IMAGESTORE_ENV="
                    f"{self.imagestore_env.value}: {', '.join(missing)}"
                )

        if self.unique_name_max_attempts is not None and self.unique_name_max_attempts < 1:
            raise ValueError("UNIQUE_NAME_MAX_ATTEMPTS must be >= 1")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a standard level name, got {self.log_level!r}")

        if self.max_image_bytes < 1:
            raise ValueError("MAX_IMAGE_BYTES must be >= 1")

        return self

    @property
    def normalized_images_base_dir(self) -> str:
        """Return the base dir with no leading slash and exactly one trailing slash."""
        base = self.images_base_dir.strip("/")
        return f"{base}/" if base else ""


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
