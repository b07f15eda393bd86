"""Tests for configuration loading."""

import os

import pytest

from greenlens.config import DEFAULT_MAX_FILE_SIZE, Config, ServiceSettings, load_settings
from greenlens.errors import ConfigurationError

GREENLENS_KEYS = [
    "GREENLENS_CLOUD_NAME",
    "GREENLENS_UPLOAD_PRESET",
    "GREENLENS_API_KEY",
    "GREENLENS_API_SECRET",
    "GREENLENS_DATABASE_PATH",
    "GREENLENS_UPLOAD_FOLDER",
    "GREENLENS_MAX_FILE_SIZE",
    "GREENLENS_REQUEST_TIMEOUT",
    "GREENLENS_API_BASE_URL",
    "GREENLENS_DELIVERY_BASE_URL",
    "GREENLENS_DISPLAY_WIDTH",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Isolated copy of the environment without any GREENLENS_ variable."""
    environ = {key: value for key, value in os.environ.items() if key not in GREENLENS_KEYS}
    monkeypatch.setattr(os, "environ", environ)
    return environ


class TestConfig:
    """Test cases for Config."""

    def test_get_default(self, clean_env):
        """Test that missing and empty values fall back to the default."""
        clean_env["GREENLENS_UPLOAD_FOLDER"] = ""
        config = Config()

        assert config.get("GREENLENS_CLOUD_NAME") is None
        assert config.get("GREENLENS_UPLOAD_FOLDER", "greenlens") == "greenlens"

    @pytest.mark.parametrize(
        ("raw", "cast_type", "expected"),
        [("42", int, 42), ("2.5", float, 2.5), ("yes", bool, True), ("off", bool, False), ("abc", str, "abc")],
    )
    def test_get_cast(self, clean_env, raw, cast_type, expected):
        """Test typed casting."""
        clean_env["SOME_VALUE"] = raw
        assert Config().get("SOME_VALUE", cast_type=cast_type) == expected

    def test_get_cast_failure_uses_default(self, clean_env):
        """Test that an uncastable value falls back to the default."""
        clean_env["GREENLENS_MAX_FILE_SIZE"] = "lots"
        assert Config().get("GREENLENS_MAX_FILE_SIZE", 10, int) == 10

    def test_cache_and_clear(self, clean_env):
        """Test that values are cached until the cache is cleared."""
        config = Config()
        clean_env["GREENLENS_CLOUD_NAME"] = "first"
        assert config.get("GREENLENS_CLOUD_NAME") == "first"

        clean_env["GREENLENS_CLOUD_NAME"] = "second"
        assert config.get("GREENLENS_CLOUD_NAME") == "first"

        config.clear_cache()
        assert config.get("GREENLENS_CLOUD_NAME") == "second"

    def test_get_required(self, clean_env):
        """Test that a missing required key raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config().get_required("GREENLENS_CLOUD_NAME")

        assert exc_info.value.missing == ["GREENLENS_CLOUD_NAME"]

    def test_env_file_does_not_override(self, clean_env, tmp_path):
        """Test that a .env file fills gaps without overriding the environment."""
        env_file = tmp_path / ".env"
        env_file.write_text("GREENLENS_CLOUD_NAME=from-file\nGREENLENS_UPLOAD_PRESET=preset-file\n")
        clean_env["GREENLENS_CLOUD_NAME"] = "from-env"

        config = Config(env_file)

        assert config.get("GREENLENS_CLOUD_NAME") == "from-env"
        assert config.get("GREENLENS_UPLOAD_PRESET") == "preset-file"

    @pytest.mark.parametrize(
        ("environment", "expected"), [("development", True), ("local", True), ("production", False)]
    )
    def test_is_development(self, clean_env, environment, expected):
        """Test development detection."""
        clean_env["ENVIRONMENT"] = environment
        assert Config().is_development() is expected


class TestServiceSettings:
    """Test cases for ServiceSettings."""

    def test_from_environment(self, clean_env, tmp_path):
        """Test building settings from the environment."""
        clean_env.update(
            {
                "GREENLENS_CLOUD_NAME": "demo-cloud",
                "GREENLENS_UPLOAD_PRESET": "preset",
                "GREENLENS_DATABASE_PATH": str(tmp_path / "db.duckdb"),
                "GREENLENS_MAX_FILE_SIZE": "1048576",
                "GREENLENS_REQUEST_TIMEOUT": "30",
            }
        )

        settings = load_settings(env_file=None)

        assert settings.cloud_name == "demo-cloud"
        assert settings.upload_preset == "preset"
        assert settings.database_path == str(tmp_path / "db.duckdb")
        assert settings.max_file_size == 1048576
        assert settings.request_timeout == 30.0
        assert settings.upload_configured
        assert not settings.deletion_configured

    def test_defaults(self, clean_env):
        """Test defaults when nothing is configured."""
        settings = ServiceSettings.from_config(Config())

        assert settings.max_file_size == DEFAULT_MAX_FILE_SIZE == 15 * 1024 * 1024
        assert settings.upload_folder == "greenlens"
        assert settings.request_timeout is None
        assert not settings.upload_configured

    @pytest.mark.parametrize(
        ("cloud_name", "upload_preset", "missing"),
        [
            (None, None, ["GREENLENS_CLOUD_NAME", "GREENLENS_UPLOAD_PRESET"]),
            ("demo", "", ["GREENLENS_UPLOAD_PRESET"]),
            ("", "preset", ["GREENLENS_CLOUD_NAME"]),
        ],
    )
    def test_require_upload_credentials(self, cloud_name, upload_preset, missing):
        """Test that every missing upload identifier is reported."""
        settings = ServiceSettings(cloud_name=cloud_name, upload_preset=upload_preset)

        with pytest.raises(ConfigurationError, match="Image CDN configuration missing") as exc_info:
            settings.require_upload_credentials()

        assert exc_info.value.missing == missing
        assert exc_info.value.recoverable is False

    def test_require_upload_credentials_present(self):
        """Test that complete settings pass."""
        ServiceSettings(cloud_name="demo", upload_preset="preset").require_upload_credentials()

    def test_require_deletion_credentials(self):
        """Test the signed-API credential check."""
        settings = ServiceSettings(cloud_name="demo", upload_preset="preset", api_key="k")

        with pytest.raises(ConfigurationError) as exc_info:
            settings.require_deletion_credentials()

        assert exc_info.value.code == "deletion_credentials_missing"
        assert exc_info.value.missing == ["GREENLENS_API_SECRET"]
