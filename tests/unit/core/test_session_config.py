r"""Unit tests for the SessionConfig dataclass."""

from __future__ import annotations

import httpx
import pytest
from coola.equality import objects_are_equal

from arestream.core import (
    DEFAULT_INPUT_STREAM_BUFFER_SIZE,
    DEFAULT_TIMEOUT,
    SessionConfig,
)

###################################
#     Tests for SessionConfig     #
###################################


def test_session_config_defaults() -> None:
    """Test that SessionConfig uses correct default values."""
    config = SessionConfig()
    assert config.timeout == DEFAULT_TIMEOUT
    assert config.chunk_size is None
    assert config.start_requests_immediately
    assert config.follow_redirects
    assert config.max_workers is None
    assert config.input_stream_buffer_size == DEFAULT_INPUT_STREAM_BUFFER_SIZE


@pytest.mark.parametrize("chunk_size", [1, 512, 65536])
def test_session_config_chunk_size(chunk_size: int) -> None:
    """Test that SessionConfig accepts custom chunk_size values."""
    assert SessionConfig(chunk_size=chunk_size).chunk_size == chunk_size


def test_session_config_timeout_httpx_timeout() -> None:
    """Test that SessionConfig accepts an httpx.Timeout."""
    timeout = httpx.Timeout(5.0, connect=2.0)
    assert SessionConfig(timeout=timeout).timeout is timeout


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"timeout": 0}, "timeout must be > 0"),
        ({"timeout": -1.0}, "timeout must be > 0"),
        ({"chunk_size": 0}, "chunk_size must be > 0"),
        ({"max_workers": 0}, "max_workers must be > 0"),
        ({"input_stream_buffer_size": 0}, "input_stream_buffer_size must be > 0"),
    ],
)
def test_session_config_invalid(kwargs: dict, message: str) -> None:
    """Test that SessionConfig validates its parameters."""
    with pytest.raises(ValueError, match=message):
        SessionConfig(**kwargs)


def test_session_config_merge() -> None:
    """Test that merge overrides parameters without mutating the config."""
    config = SessionConfig(chunk_size=16)
    merged = config.merge(chunk_size=32, max_workers=2)
    assert merged.chunk_size == 32
    assert merged.max_workers == 2
    assert config.chunk_size == 16
    assert config.max_workers is None


def test_session_config_merge_ignores_none() -> None:
    """Test that merge ignores None overrides."""
    config = SessionConfig(chunk_size=16)
    assert config.merge(chunk_size=None).chunk_size == 16


def test_session_config_merge_validates() -> None:
    """Test that merged configs are validated."""
    with pytest.raises(ValueError, match="chunk_size must be > 0"):
        SessionConfig().merge(chunk_size=-1)


def test_session_config_to_dict() -> None:
    """Test converting SessionConfig to a dictionary."""
    assert objects_are_equal(
        SessionConfig(chunk_size=8, start_requests_immediately=False).to_dict(),
        {
            "timeout": DEFAULT_TIMEOUT,
            "chunk_size": 8,
            "start_requests_immediately": False,
            "follow_redirects": True,
            "max_workers": None,
            "input_stream_buffer_size": DEFAULT_INPUT_STREAM_BUFFER_SIZE,
        },
    )
