"""
Startup configuration loading

A missing, empty or malformed configuration never stops the server from
booting: every field falls back to its default and the problem is logged.
``strict=True`` turns those fallbacks into ``ConfigError``.
"""

import json
import logging
import math
from dataclasses import dataclass, fields
from typing import Any, Dict, Union

from arena_server.shared.constants import (
    DEFAULT_EXPECTED_PLAYER_NUM, DEFAULT_LOG_LEVEL, DEFAULT_SERVER_PORT, DEFAULT_WAITING_TIME
)

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised by a strict ConfigLoader for unusable configuration"""


@dataclass(frozen=True)
class StartupConfig:
    log_level: str = DEFAULT_LOG_LEVEL
    server_port: int = DEFAULT_SERVER_PORT
    waiting_time: float = DEFAULT_WAITING_TIME
    expected_player_num: int = DEFAULT_EXPECTED_PLAYER_NUM


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


# field name -> (validator, converter)
_FIELD_RULES: Dict[str, tuple] = {
    'log_level': (lambda v: isinstance(v, str), str),
    'server_port': (lambda v: _is_int(v) and 1 <= v <= 65535, int),
    'waiting_time': (lambda v: _is_number(v) and v >= 0, float),
    'expected_player_num': (lambda v: _is_int(v) and v >= 1, int),
}


class ConfigLoader:
    """Parses the JSON startup configuration into a StartupConfig"""

    def __init__(self, strict: bool = False):
        self.strict = strict

    def load(self, raw: Union[bytes, str, None]) -> StartupConfig:
        if not raw:
            return self._fallback("configuration is empty")

        try:
            text = raw.decode('utf-8') if isinstance(raw, bytes) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return self._fallback(f"configuration is not valid JSON: {e}")

        if not isinstance(data, dict):
            return self._fallback("configuration must be a JSON object")

        values: Dict[str, Any] = {}
        for name in data:
            if name not in _FIELD_RULES:
                logger.debug(f"Ignoring unknown configuration field '{name}'")

        for config_field in fields(StartupConfig):
            if config_field.name not in data:
                continue
            value = data[config_field.name]
            is_valid, convert = _FIELD_RULES[config_field.name]
            if is_valid(value):
                values[config_field.name] = convert(value)
            else:
                self._reject_field(config_field.name, value, config_field.default)

        return StartupConfig(**values)

    def _fallback(self, reason: str) -> StartupConfig:
        if self.strict:
            raise ConfigError(reason)
        logger.warning(f"Using default configuration: {reason}")
        return StartupConfig()

    def _reject_field(self, name: str, value: Any, default: Any):
        message = f"Invalid value {value!r} for '{name}'"
        if self.strict:
            raise ConfigError(message)
        logger.warning(f"{message}, using default {default!r}")
