"""Configuration management for greenlens.

Values come from environment variables, optionally primed from a ``.env``
file. Services never read the environment themselves: ``ServiceSettings`` is
built once at startup and handed to the storage client and metadata store.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigurationError
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_FILE_SIZE = 15 * 1024 * 1024
DEFAULT_API_BASE_URL = "https://api.cloudinary.com/v1_1"
DEFAULT_DELIVERY_BASE_URL = "https://res.cloudinary.com"


class Config:
    """Environment-backed configuration lookup with typed casting."""

    def __init__(self, env_file: str | Path | None = None):
        """
        Initialize configuration.

        Args:
            env_file: Optional .env file loaded into the environment (existing variables win)
        """
        self._cache: dict[str, Any] = {}
        if env_file is not None and Path(env_file).exists():
            load_dotenv(dotenv_path=env_file, override=False)
            logger.info("env_file_loaded", env_file=str(env_file))

    def get(self, key: str, default: Any = None, cast_type: type = str) -> Any:
        """Get configuration value from environment variables.

        Args:
            key: Configuration key
            default: Default value if not found or empty
            cast_type: Type to cast the value to (str, int, bool, float)

        Returns:
            Configuration value cast to the specified type
        """
        cache_key = f"{key}:{cast_type.__name__}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        value: Any = os.getenv(key)
        if value is None or value == "":
            value = default

        if value is not None:
            try:
                if cast_type is bool:
                    if isinstance(value, str):
                        value = value.lower() in ("true", "1", "yes", "on")
                    else:
                        value = bool(value)
                elif cast_type is not str:
                    value = cast_type(value)
            except (ValueError, TypeError) as e:
                logger.warning("config_cast_failed", key=key, cast_type=cast_type.__name__, error=str(e))
                value = default

        self._cache[cache_key] = value
        return value

    def get_required(self, key: str, cast_type: type = str) -> Any:
        """Get required configuration value.

        Raises:
            ConfigurationError: If the required configuration is not found
        """
        value = self.get(key, cast_type=cast_type)
        if value is None:
            raise ConfigurationError(f"Required configuration '{key}' not found", missing=[key])
        return value

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return str(self.get("ENVIRONMENT", "development")).lower() in ["development", "dev", "local"]

    def clear_cache(self) -> None:
        """Clear configuration cache."""
        self._cache.clear()


@dataclass(frozen=True)
class ServiceSettings:
    """Settings for the image CDN and the metadata database, built once at startup."""

    cloud_name: str | None
    upload_preset: str | None
    api_key: str | None = None
    api_secret: str | None = None
    database_path: str = "data/greenlens.duckdb"
    upload_folder: str = "greenlens"
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    api_base_url: str = DEFAULT_API_BASE_URL
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL
    request_timeout: float | None = None
    display_width: int = 1200

    @classmethod
    def from_config(cls, config: Config) -> "ServiceSettings":
        """Build settings from a Config. Missing upload credentials are reported later, on first use."""
        return cls(
            cloud_name=config.get("GREENLENS_CLOUD_NAME"),
            upload_preset=config.get("GREENLENS_UPLOAD_PRESET"),
            api_key=config.get("GREENLENS_API_KEY"),
            api_secret=config.get("GREENLENS_API_SECRET"),
            database_path=config.get("GREENLENS_DATABASE_PATH", "data/greenlens.duckdb"),
            upload_folder=config.get("GREENLENS_UPLOAD_FOLDER", "greenlens"),
            max_file_size=config.get("GREENLENS_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE, int),
            api_base_url=config.get("GREENLENS_API_BASE_URL", DEFAULT_API_BASE_URL),
            delivery_base_url=config.get("GREENLENS_DELIVERY_BASE_URL", DEFAULT_DELIVERY_BASE_URL),
            request_timeout=config.get("GREENLENS_REQUEST_TIMEOUT", None, float),
            display_width=config.get("GREENLENS_DISPLAY_WIDTH", 1200, int),
        )

    @property
    def upload_configured(self) -> bool:
        return bool(self.cloud_name and self.upload_preset)

    @property
    def deletion_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def require_upload_credentials(self) -> None:
        """
        Check that both CDN identifiers are present.

        Raises:
            ConfigurationError: Listing every missing key
        """
        missing = []
        if not self.cloud_name:
            missing.append("GREENLENS_CLOUD_NAME")
        if not self.upload_preset:
            missing.append("GREENLENS_UPLOAD_PRESET")
        if missing:
            raise ConfigurationError(
                f"Image CDN configuration missing: {', '.join(missing)}. Please check your environment variables.",
                missing=missing,
            )

    def require_deletion_credentials(self) -> None:
        """
        Check that the signed-API credentials are present.

        Raises:
            ConfigurationError: Listing every missing key
        """
        missing = [
            key
            for key, value in (
                ("GREENLENS_CLOUD_NAME", self.cloud_name),
                ("GREENLENS_API_KEY", self.api_key),
                ("GREENLENS_API_SECRET", self.api_secret),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Image deletion requires {', '.join(missing)}",
                missing=missing,
                code="deletion_credentials_missing",
            )


def load_settings(env_file: str | Path | None = ".env") -> ServiceSettings:
    """Load ServiceSettings from the environment (and an optional .env file)."""
    settings = ServiceSettings.from_config(Config(env_file))
    logger.info(
        "settings_loaded",
        cloud_name=settings.cloud_name,
        upload_configured=settings.upload_configured,
        deletion_configured=settings.deletion_configured,
        database_path=settings.database_path,
    )
    return settings
