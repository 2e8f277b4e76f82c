"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for relay configs.
"""

import os
import tempfile
from unittest.mock import patch

import pytest
import yaml

from prompt_relay.config.loader import (
    load_relay_config,
    QuotaLimits,
    RelayConfig,
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data: dict, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_data = {
            "openai": {
                "api_key": "sk-test",
                "model": "gpt-4",
                "max_tokens": 800,
                "temperature": 0.2,
                "timeout_seconds": 10
            },
            "cache": {"duration_seconds": 600},
            "throttle": {"request_delay_seconds": 2},
            "limits": {
                "window_seconds": 1800,
                "session": {"requests_per_hour": 20, "tokens_per_hour": 5000},
                "ip": {"requests_per_hour": 100, "tokens_per_hour": 20000}
            },
            "sessions": {"expiry_seconds": 3600, "cleanup_interval_seconds": 300},
            "input": {"max_question_length": 300}
        }

        config = load_relay_config(self._write_config(config_data))

        assert config.api_key == "sk-test"
        assert config.model == "gpt-4"
        assert config.max_tokens == 800
        assert config.temperature == 0.2
        assert config.request_timeout_seconds == 10.0
        assert config.cache_duration_seconds == 600.0
        assert config.request_delay_seconds == 2.0
        assert config.window_seconds == 1800.0
        assert config.session_limits == QuotaLimits(requests_per_hour=20, tokens_per_hour=5000)
        assert config.ip_limits == QuotaLimits(requests_per_hour=100, tokens_per_hour=20000)
        assert config.session_expiry_seconds == 3600.0
        assert config.cleanup_interval_seconds == 300.0
        assert config.max_question_length == 300

    def test_minimal_config_uses_defaults(self):
        """Test that only an API key is required."""
        config = load_relay_config(self._write_config({"openai": {"api_key": "sk-test"}}))

        assert config.model == "gpt-3.5-turbo"
        assert config.max_tokens == 600
        assert config.temperature == 0.7
        assert config.cache_duration_seconds == 3600.0
        assert config.request_delay_seconds == 1.0
        assert config.session_limits.requests_per_hour == 50
        assert config.session_limits.tokens_per_hour == 100000
        assert config.session_expiry_seconds == 7200.0
        assert config.cleanup_interval_seconds == 3600.0
        assert config.max_question_length == 500

    def test_api_key_from_environment(self):
        """Test API key falls back to OPENAI_API_KEY."""
        config_path = self._write_config({"openai": {"model": "gpt-4"}})

        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-env"}):
            config = load_relay_config(config_path)

        assert config.api_key == "sk-env"

    def test_explicit_api_key_wins(self):
        """Test explicit argument overrides file and environment."""
        config_path = self._write_config({"openai": {"api_key": "sk-file"}})

        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-env"}):
            config = load_relay_config(config_path, api_key="sk-arg")

        assert config.api_key == "sk-arg"

    def test_missing_api_key_raises_error(self):
        """Test that a missing API key is rejected."""
        config_path = self._write_config({"cache": {"duration_seconds": 60}})

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="Missing required OpenAI API key"):
                load_relay_config(config_path)

    def test_empty_file_needs_env_key(self):
        """Test that an empty file is valid when the key comes from the environment."""
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w').close()

        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-env"}):
            config = load_relay_config(config_path)

        assert config.model == "gpt-3.5-turbo"

    def test_missing_file_raises_error(self):
        """Test that missing config file raises error."""
        with pytest.raises(FileNotFoundError, match="Relay config file not found"):
            load_relay_config("nonexistent.yaml")

    def test_invalid_yaml_raises_error(self):
        """Test that invalid YAML raises error."""
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w') as f:
            f.write("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            load_relay_config(config_path)

    def test_unknown_top_level_key_raises_error(self):
        """Test that unknown sections are rejected."""
        config_path = self._write_config({"openai": {"api_key": "sk-test"}, "metrics": {}})

        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_relay_config(config_path)

    def test_unknown_section_key_raises_error(self):
        """Test that unknown keys inside a section are rejected."""
        config_path = self._write_config({"openai": {"api_key": "sk-test", "retries": 3}})

        with pytest.raises(ValueError, match="Unknown openai keys"):
            load_relay_config(config_path)

    def test_section_must_be_dictionary(self):
        """Test that a scalar section is rejected."""
        config_path = self._write_config({"openai": {"api_key": "sk-test"}, "cache": 60})

        with pytest.raises(ValueError, match="'cache' must be a dictionary"):
            load_relay_config(config_path)

    def test_non_numeric_value_raises_error(self):
        """Test that numbers are type-checked."""
        config_path = self._write_config({
            "openai": {"api_key": "sk-test"},
            "throttle": {"request_delay_seconds": "fast"}
        })

        with pytest.raises(ValueError, match="throttle.request_delay_seconds' must be a number"):
            load_relay_config(config_path)

    def test_fractional_max_tokens_raises_error(self):
        """Test that integer fields reject fractions."""
        config_path = self._write_config({"openai": {"api_key": "sk-test", "max_tokens": 10.5}})

        with pytest.raises(ValueError, match="must be an integer"):
            load_relay_config(config_path)

    def test_missing_limit_key_raises_error(self):
        """Test that a partial limits block is rejected."""
        config_path = self._write_config({
            "openai": {"api_key": "sk-test"},
            "limits": {"session": {"requests_per_hour": 10}}
        })

        with pytest.raises(ValueError, match="Missing required 'tokens_per_hour' in limits.session"):
            load_relay_config(config_path)

    def test_zero_limit_raises_error(self):
        """Test that non-positive limits are rejected."""
        config_path = self._write_config({
            "openai": {"api_key": "sk-test"},
            "limits": {"ip": {"requests_per_hour": 0, "tokens_per_hour": 10}}
        })

        with pytest.raises(ValueError, match="'requests_per_hour' in limits.ip must be a positive integer"):
            load_relay_config(config_path)

    def test_unknown_limits_key_raises_error(self):
        """Test that unknown keys in limits are rejected."""
        config_path = self._write_config({
            "openai": {"api_key": "sk-test"},
            "limits": {"global": {"requests_per_hour": 1, "tokens_per_hour": 1}}
        })

        with pytest.raises(ValueError, match="Unknown limits keys"):
            load_relay_config(config_path)


class TestConfigDataclasses:
    """Test validation on the config dataclasses themselves."""

    def test_quota_limits_must_be_positive(self):
        """Test QuotaLimits rejects non-positive ceilings."""
        with pytest.raises(ValueError, match="requests_per_hour must be > 0"):
            QuotaLimits(requests_per_hour=0, tokens_per_hour=10)
        with pytest.raises(ValueError, match="tokens_per_hour must be > 0"):
            QuotaLimits(requests_per_hour=10, tokens_per_hour=-1)

    def test_relay_config_requires_api_key(self):
        """Test RelayConfig rejects an empty key."""
        with pytest.raises(ValueError, match="api_key is required"):
            RelayConfig(api_key="  ")

    def test_relay_config_rejects_negative_delay(self):
        """Test negative request delay is rejected but zero is allowed."""
        with pytest.raises(ValueError, match="request_delay_seconds must be >= 0"):
            RelayConfig(api_key="sk-test", request_delay_seconds=-1)

        assert RelayConfig(api_key="sk-test", request_delay_seconds=0).request_delay_seconds == 0

    def test_relay_config_rejects_out_of_range_temperature(self):
        """Test temperature bounds."""
        with pytest.raises(ValueError, match="temperature must be between 0 and 2"):
            RelayConfig(api_key="sk-test", temperature=3)

    def test_relay_config_is_frozen(self):
        """Test configs are immutable."""
        config = RelayConfig(api_key="sk-test")
        with pytest.raises(Exception):
            config.model = "gpt-4"
