"""
Tests for the core configuration module.
"""
import pytest
import os
from unittest.mock import patch
from core.config import Settings, settings


class TestSettings:
    """Test the Settings class."""

    def test_default_values(self):
        """Test that default values are set correctly."""
        with patch.dict(os.environ, {}, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.debug is False
            assert test_settings.log_level == "INFO"
            assert test_settings.api_host == "0.0.0.0"
            assert test_settings.api_port == 8000
            assert test_settings.default_timezone == "Etc/UTC"
            assert test_settings.runtime_version == "1"
            assert test_settings.sealing_shared_key is None
            assert test_settings.sealing_default_ttl_seconds == 900
            assert test_settings.sealing_min_ttl_seconds == 60
            assert test_settings.dry_run_fixtures_dir == "tests/fixtures/dry_run"
            assert test_settings.update_snapshots is False

    def test_environment_variable_override(self):
        """Test that environment variables override defaults."""
        test_env = {
            "DEBUG": "true",
            "LOG_LEVEL": "DEBUG",
            "DEFAULT_TIMEZONE": "Europe/Berlin",
            "SEALING_DEFAULT_TTL_SECONDS": "120",
            "UPDATE_SNAPSHOTS": "1",
        }

        with patch.dict(os.environ, test_env, clear=True):
            test_settings = Settings(_env_file=None)

            assert test_settings.debug is True
            assert test_settings.log_level == "DEBUG"
            assert test_settings.default_timezone == "Europe/Berlin"
            assert test_settings.sealing_default_ttl_seconds == 120
            assert test_settings.update_snapshots is True

    def test_settings_instance(self):
        """Test that the global settings instance exists."""
        assert isinstance(settings, Settings)
        assert hasattr(settings, 'default_timezone')
        assert hasattr(settings, 'sealing_shared_key')

    def test_field_descriptions(self):
        """Test that field descriptions are set."""
        for name, field in Settings.model_fields.items():
            assert field.description, name

    @pytest.mark.parametrize("value", ["not-a-number", ""])
    def test_invalid_port(self, value):
        with patch.dict(os.environ, {"API_PORT": value}, clear=True):
            with pytest.raises(ValueError):
                Settings(_env_file=None)
