r"""Unit tests for the session parameter validation functions."""

from __future__ import annotations

import httpx
import pytest

from arestream.core import validate_session_params, validate_timeout

######################################
#     Tests for validate_timeout     #
######################################


@pytest.mark.parametrize("timeout", [0.1, 1, 10.0, httpx.Timeout(1.0)])
def test_validate_timeout_valid(timeout: float | httpx.Timeout) -> None:
    """Test that positive timeouts are accepted."""
    validate_timeout(timeout)


@pytest.mark.parametrize("timeout", [0, 0.0, -1, -0.5])
def test_validate_timeout_invalid(timeout: float) -> None:
    """Test that non-positive timeouts are rejected."""
    with pytest.raises(ValueError, match=f"timeout must be > 0, got {timeout}"):
        validate_timeout(timeout)


#############################################
#     Tests for validate_session_params     #
#############################################


def test_validate_session_params_defaults() -> None:
    """Test that the default parameters are valid."""
    validate_session_params()


def test_validate_session_params_valid() -> None:
    """Test that positive parameters are accepted."""
    validate_session_params(chunk_size=1, max_workers=8, input_stream_buffer_size=2)


@pytest.mark.parametrize("chunk_size", [0, -1])
def test_validate_session_params_invalid_chunk_size(chunk_size: int) -> None:
    """Test that non-positive chunk sizes are rejected."""
    with pytest.raises(ValueError, match=f"chunk_size must be > 0, got {chunk_size}"):
        validate_session_params(chunk_size=chunk_size)


def test_validate_session_params_invalid_max_workers() -> None:
    """Test that non-positive worker counts are rejected."""
    with pytest.raises(ValueError, match="max_workers must be > 0, got 0"):
        validate_session_params(max_workers=0)


def test_validate_session_params_invalid_buffer_size() -> None:
    """Test that non-positive input stream buffer sizes are rejected."""
    with pytest.raises(ValueError, match="input_stream_buffer_size must be > 0, got -2"):
        validate_session_params(input_stream_buffer_size=-2)
