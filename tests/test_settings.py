"""Tests for config/settings.py."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from config.settings import Settings
from core.errors import ConfigurationError


class TestSettings:
    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "abc", "STORE_BACKEND": "SQLite",
                             "DATA_DIR": "/tmp/shelf", "REQUEST_TIMEOUT": "12"})
    def test_reads_environment(self):
        settings = Settings()
        assert settings.anthropic_api_key == "abc"
        assert settings.store_backend == "sqlite"
        assert settings.data_dir == Path("/tmp/shelf")
        assert settings.request_timeout == 12.0

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        settings = Settings()
        assert settings.store_backend == "json"
        assert settings.request_timeout == 30.0
        assert settings.temperature == 0.7
        assert settings.port == 5001

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": ""})
    def test_missing_key_fails_validation(self):
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            Settings().validate()

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "abc", "STORE_BACKEND": "redis"})
    def test_unknown_backend_fails_validation(self):
        with pytest.raises(ConfigurationError, match="STORE_BACKEND"):
            Settings().validate()

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "abc", "REQUEST_TIMEOUT": "0"})
    def test_non_positive_timeout_fails_validation(self):
        with pytest.raises(ConfigurationError):
            Settings().validate()

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "abc"})
    def test_valid_settings_pass(self):
        Settings().validate()

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)
