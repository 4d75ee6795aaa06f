"""
Tests for StreamingConfig: explicit values, environment variables and defaults.
"""

import os
import pytest
from unittest.mock import patch

from spanstream.config import StreamingConfig, toNumber


_CLEAN_ENV = {key: value for key, value in os.environ.items() if not key.startswith("SPANSTREAM_")}


class TestStreamingConfig:
    """Tests for resolving settings."""

    def test_defaults(self):
        """Test the defaults when nothing is configured."""
        with patch.dict(os.environ, _CLEAN_ENV, clear=True):
            config = StreamingConfig()
        assert config.host == ""
        assert not config.enabled
        assert config.port == 443
        assert not config.insecure
        assert config.batching
        assert config.compression_level == "high"
        assert config.compression_enabled
        assert config.queue_size == 10000
        assert config.max_batch_size == 100
        assert config.license_key == ""

    def test_environment(self):
        """Test that SPANSTREAM_* environment variables are read."""
        env = dict(
            _CLEAN_ENV,
            SPANSTREAM_TRACE_OBSERVER_HOST="observer.example.com",
            SPANSTREAM_TRACE_OBSERVER_PORT="8443",
            SPANSTREAM_INSECURE="true",
            SPANSTREAM_BATCHING="false",
            SPANSTREAM_COMPRESSION_LEVEL="none",
            SPANSTREAM_QUEUE_SIZE="5k",
            SPANSTREAM_MAX_BATCH_SIZE="50",
            SPANSTREAM_LICENSE_KEY="license-123",
        )
        with patch.dict(os.environ, env, clear=True):
            config = StreamingConfig()
        assert config.enabled
        assert config.host_and_port == "observer.example.com:8443"
        assert config.insecure
        assert not config.batching
        assert config.compression_level == "none"
        assert not config.compression_enabled
        assert config.queue_size == 5000
        assert config.max_batch_size == 50
        assert config.license_key == "license-123"

    def test_arguments_override_environment(self):
        """Test that constructor arguments win over the environment."""
        env = dict(_CLEAN_ENV, SPANSTREAM_TRACE_OBSERVER_HOST="env-host", SPANSTREAM_BATCHING="true")
        with patch.dict(os.environ, env, clear=True):
            config = StreamingConfig(host="arg-host", batching=False)
        assert config.host == "arg-host"
        assert not config.batching

    def test_invalid_values_fall_back_to_defaults(self):
        """Test that bad values are replaced with defaults rather than raising."""
        env = dict(
            _CLEAN_ENV,
            SPANSTREAM_TRACE_OBSERVER_PORT="not-a-port",
            SPANSTREAM_BATCHING="maybe",
            SPANSTREAM_COMPRESSION_LEVEL="extreme",
            SPANSTREAM_QUEUE_SIZE="-3",
        )
        with patch.dict(os.environ, env, clear=True):
            config = StreamingConfig()
        assert config.port == 443
        assert config.batching
        assert config.compression_level == "high"
        assert config.queue_size == 10000


class TestToNumber:
    """Tests for toNumber."""

    def test_units(self):
        assert toNumber("10k") == 10000
        assert toNumber("2m") == 2000000
        assert toNumber("42") == 42
        assert toNumber(7) == 7
        assert toNumber(None) == 0

    def test_invalid(self):
        with pytest.raises(ValueError):
            toNumber("lots")
