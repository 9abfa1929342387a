"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from otabuild.config import (
    DEFAULT_RUNTIME_VERSION,
    Settings,
    get_settings,
    print_settings_json,
)


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings()

        assert settings.storage_dir == (
            Path.home() / ".local" / "share" / "otabuild" / "storage"
        )
        assert "sqlite" in settings.db_url
        assert settings.port == 3000
        assert settings.executor == "process"
        assert settings.build_timeout == 900
        assert settings.max_archive_bytes == 100 * 1024 * 1024
        assert settings.default_runtime_version == DEFAULT_RUNTIME_VERSION
        assert settings.api_keys == []
        assert settings.verify_asset_hashes is False

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "OTABUILD_LOG_LEVEL": "DEBUG",
                "OTABUILD_EXECUTOR": "http",
                "OTABUILD_EXECUTOR_URL": "http://builder.internal/jobs",
                "OTABUILD_BUILD_TIMEOUT": "60",
                "OTABUILD_API_KEYS": '["key-one", "key-two"]',
            },
        ):
            settings = Settings()
            assert settings.log_level == "DEBUG"
            assert settings.executor == "http"
            assert settings.executor_url == "http://builder.internal/jobs"
            assert settings.build_timeout == 60
            assert settings.api_keys == ["key-one", "key-two"]

    def test_storage_dir_from_env(self) -> None:
        """Storage dir should be configurable via env."""
        with patch.dict(os.environ, {"OTABUILD_STORAGE_DIR": "/tmp/ota-storage"}):
            settings = Settings()
            assert settings.storage_dir == Path("/tmp/ota-storage")

    def test_rejects_non_positive_timeout(self) -> None:
        """Build timeout must be positive."""
        with pytest.raises(ValidationError):
            Settings(build_timeout=0)

    def test_rejects_unknown_executor(self) -> None:
        """Only known executor variants are accepted."""
        with pytest.raises(ValidationError):
            Settings(executor="kubernetes")


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        settings = get_settings()
        assert isinstance(settings, Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings()))

        assert "storage_dir" in parsed
        assert "db_url" in parsed
        assert "executor" in parsed
        assert "build_timeout" in parsed

    def test_api_keys_are_masked(self) -> None:
        """API keys should never be printed in full."""
        settings = Settings(api_keys=["supersecretkey123"])
        parsed = json.loads(print_settings_json(settings))

        assert parsed["api_keys"] == ["supersec..."]
        assert "supersecretkey123" not in print_settings_json(settings)

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        parsed = json.loads(print_settings_json())
        assert "storage_dir" in parsed
