"""
Configuration for the span streaming client.
Each setting is taken from the constructor argument if given, then from a SPANSTREAM_* environment
variable, then from the default. Invalid values are logged and replaced with the default.
"""

import os
import logging
from typing import Optional, Union

from .constants import (
    LOG_TAG,
    DEFAULT_PORT,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_MAX_BATCH_SIZE,
    DEFAULT_COMPRESSION_LEVEL,
    COMPRESSION_LEVEL_NONE,
    COMPRESSION_LEVELS,
)

logger = logging.getLogger(LOG_TAG)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def toNumber(value: Union[str, int, None]) -> int:
    """Convert string to number, handling the units k and m (e.g. "10k" = 10000)."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    value = str(value).strip().lower()
    if value.endswith("k"):
        return int(value[:-1]) * 1000
    elif value.endswith("m"):
        return int(value[:-1]) * 1000 * 1000
    return int(value)


def _to_bool(value: Union[str, bool]) -> bool:
    if isinstance(value, bool):
        return value
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _setting(name: str, value, env_var: str, default, convert):
    """Resolve one setting: explicit value, then env var, then default."""
    if value is None:
        value = os.getenv(env_var)
        if value is None or value == "":
            return default
    try:
        return convert(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} value '{value}' ({env_var}), using default {default!r}")
        return default


def _compression_level(value) -> str:
    level = str(value).strip().lower().lstrip(":")
    if level not in COMPRESSION_LEVELS:
        raise ValueError(level)
    return level


class StreamingConfig:
    """
    Settings for streaming spans to a trace observer.

    Args:
        host: trace observer host (SPANSTREAM_TRACE_OBSERVER_HOST). Streaming is disabled if empty.
        port: trace observer port (SPANSTREAM_TRACE_OBSERVER_PORT, default 443)
        insecure: use a plaintext channel instead of TLS (SPANSTREAM_INSECURE, default false)
        batching: send span batches rather than single spans (SPANSTREAM_BATCHING, default true)
        compression_level: one of none, low, medium, high (SPANSTREAM_COMPRESSION_LEVEL, default high)
        queue_size: capacity of the span buffer (SPANSTREAM_QUEUE_SIZE, default 10000)
        max_batch_size: most spans sent in one batch (SPANSTREAM_MAX_BATCH_SIZE, default 100)
        license_key: license key sent with every stream (SPANSTREAM_LICENSE_KEY)
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        insecure: Optional[bool] = None,
        batching: Optional[bool] = None,
        compression_level: Optional[str] = None,
        queue_size: Optional[int] = None,
        max_batch_size: Optional[int] = None,
        license_key: Optional[str] = None,
    ):
        self.host: str = _setting("host", host, "SPANSTREAM_TRACE_OBSERVER_HOST", "", str).strip()
        self.port: int = _setting("port", port, "SPANSTREAM_TRACE_OBSERVER_PORT", DEFAULT_PORT, int)
        self.insecure: bool = _setting("insecure", insecure, "SPANSTREAM_INSECURE", False, _to_bool)
        self.batching: bool = _setting("batching", batching, "SPANSTREAM_BATCHING", True, _to_bool)
        self.compression_level: str = _setting(
            "compression_level", compression_level, "SPANSTREAM_COMPRESSION_LEVEL",
            DEFAULT_COMPRESSION_LEVEL, _compression_level,
        )
        self.queue_size: int = _setting("queue_size", queue_size, "SPANSTREAM_QUEUE_SIZE", DEFAULT_QUEUE_SIZE, toNumber)
        self.max_batch_size: int = _setting(
            "max_batch_size", max_batch_size, "SPANSTREAM_MAX_BATCH_SIZE", DEFAULT_MAX_BATCH_SIZE, toNumber
        )
        self.license_key: str = _setting("license_key", license_key, "SPANSTREAM_LICENSE_KEY", "", str)

        if self.queue_size < 1:
            logger.warning(f"queue_size must be positive, got {self.queue_size}; using {DEFAULT_QUEUE_SIZE}")
            self.queue_size = DEFAULT_QUEUE_SIZE
        if self.max_batch_size < 1:
            logger.warning(f"max_batch_size must be positive, got {self.max_batch_size}; using {DEFAULT_MAX_BATCH_SIZE}")
            self.max_batch_size = DEFAULT_MAX_BATCH_SIZE

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    @property
    def compression_enabled(self) -> bool:
        return self.compression_level != COMPRESSION_LEVEL_NONE

    @property
    def host_and_port(self) -> str:
        return f"{self.host}:{self.port}"

    def __repr__(self) -> str:
        return (
            f"StreamingConfig(host={self.host!r}, port={self.port}, insecure={self.insecure}, "
            f"batching={self.batching}, compression_level={self.compression_level!r}, "
            f"queue_size={self.queue_size}, max_batch_size={self.max_batch_size})"
        )
