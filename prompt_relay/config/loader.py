"""
Configuration management and loading.

Handles relay settings from a YAML file and the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

API_KEY_ENV_VAR = "OPENAI_API_KEY"


@dataclass(frozen=True)
class QuotaLimits:
    """Hourly request and token ceilings for one quota dimension."""
    requests_per_hour: int
    tokens_per_hour: int

    def __post_init__(self):
        """Validate limits are positive."""
        if self.requests_per_hour <= 0:
            raise ValueError("requests_per_hour must be > 0")
        if self.tokens_per_hour <= 0:
            raise ValueError("tokens_per_hour must be > 0")


@dataclass(frozen=True)
class RelayConfig:
    """Complete relay configuration.

    All durations are in seconds.
    """
    api_key: str
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 600
    temperature: float = 0.7
    presence_penalty: float = 0.6
    frequency_penalty: float = 0.5
    request_timeout_seconds: float = 30.0
    cache_duration_seconds: float = 3600.0
    request_delay_seconds: float = 1.0
    window_seconds: float = 3600.0
    session_limits: QuotaLimits = field(
        default_factory=lambda: QuotaLimits(requests_per_hour=50, tokens_per_hour=100000)
    )
    ip_limits: QuotaLimits = field(
        default_factory=lambda: QuotaLimits(requests_per_hour=200, tokens_per_hour=400000)
    )
    session_expiry_seconds: float = 7200.0
    cleanup_interval_seconds: float = 3600.0
    max_question_length: int = 500

    def __post_init__(self):
        """Validate relay settings."""
        if not self.api_key or not self.api_key.strip():
            raise ValueError("api_key is required and cannot be empty")
        if not self.model or not self.model.strip():
            raise ValueError("model is required and cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")
        if self.cache_duration_seconds <= 0:
            raise ValueError("cache_duration_seconds must be > 0")
        if self.request_delay_seconds < 0:
            raise ValueError("request_delay_seconds must be >= 0")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.session_expiry_seconds <= 0:
            raise ValueError("session_expiry_seconds must be > 0")
        if self.cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be > 0")
        if self.max_question_length <= 0:
            raise ValueError("max_question_length must be > 0")


# Allowed keys per section, mapped to RelayConfig field names
_SECTION_FIELDS: Dict[str, Dict[str, str]] = {
    "openai": {
        "api_key": "api_key",
        "model": "model",
        "max_tokens": "max_tokens",
        "temperature": "temperature",
        "presence_penalty": "presence_penalty",
        "frequency_penalty": "frequency_penalty",
        "timeout_seconds": "request_timeout_seconds",
    },
    "cache": {
        "duration_seconds": "cache_duration_seconds",
    },
    "throttle": {
        "request_delay_seconds": "request_delay_seconds",
    },
    "sessions": {
        "expiry_seconds": "session_expiry_seconds",
        "cleanup_interval_seconds": "cleanup_interval_seconds",
    },
    "input": {
        "max_question_length": "max_question_length",
    },
}

_INT_FIELDS = {"max_tokens", "max_question_length"}
_STR_FIELDS = {"api_key", "model"}


def load_relay_config(path: str, api_key: Optional[str] = None) -> RelayConfig:
    """Load and validate relay configuration from a YAML file.

    Strict validation ensures no silent misconfigurations that could
    leave quotas looser than intended.

    The API key is resolved in order: the ``api_key`` argument, the
    ``openai.api_key`` entry in the file, then the ``OPENAI_API_KEY``
    environment variable.

    Args:
        path: Path to YAML configuration file
        api_key: Optional explicit API key

    Returns:
        Validated RelayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Relay config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = set(_SECTION_FIELDS) | {"limits"}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {}
    for section, fields in _SECTION_FIELDS.items():
        section_data = _get_section(raw_config, section)
        unknown_section_keys = set(section_data.keys()) - set(fields)
        if unknown_section_keys:
            raise ValueError(f"Unknown {section} keys: {unknown_section_keys}")
        for key, field_name in fields.items():
            if key in section_data:
                values[field_name] = _coerce(section_data[key], field_name, f"{section}.{key}")

    limits_data = _get_section(raw_config, "limits")
    unknown_limit_keys = set(limits_data.keys()) - {"session", "ip", "window_seconds"}
    if unknown_limit_keys:
        raise ValueError(f"Unknown limits keys: {unknown_limit_keys}")
    if "session" in limits_data:
        values["session_limits"] = _parse_quota_limits(limits_data["session"], "limits.session")
    if "ip" in limits_data:
        values["ip_limits"] = _parse_quota_limits(limits_data["ip"], "limits.ip")
    if "window_seconds" in limits_data:
        values["window_seconds"] = _coerce(
            limits_data["window_seconds"], "window_seconds", "limits.window_seconds"
        )

    resolved_key = api_key or values.get("api_key") or os.environ.get(API_KEY_ENV_VAR)
    if not resolved_key:
        raise ValueError(
            f"Missing required OpenAI API key: set openai.api_key or {API_KEY_ENV_VAR}"
        )
    values["api_key"] = resolved_key

    return RelayConfig(**values)


def _get_section(raw_config: Dict, section: str) -> Dict:
    data = raw_config.get(section) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{section}' must be a dictionary")
    return data


def _coerce(value: Any, field_name: str, path: str) -> Any:
    """Convert a raw YAML value to the type RelayConfig expects."""
    if field_name in _STR_FIELDS:
        if not isinstance(value, str):
            raise ValueError(f"'{path}' must be a string")
        return value
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    if field_name in _INT_FIELDS:
        if int(value) != value:
            raise ValueError(f"'{path}' must be an integer")
        return int(value)
    return float(value)


def _parse_quota_limits(data: Any, path: str) -> QuotaLimits:
    """Parse and validate one quota limits block.

    Args:
        data: Raw limits data
        path: Path for error messages

    Returns:
        Validated QuotaLimits

    Raises:
        ValueError: If limits are invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {'requests_per_hour', 'tokens_per_hour'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in sorted(allowed_keys):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"'{key}' in {path} must be a positive integer")

    return QuotaLimits(
        requests_per_hour=data['requests_per_hour'],
        tokens_per_hour=data['tokens_per_hour']
    )
