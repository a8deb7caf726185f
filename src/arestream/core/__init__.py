r"""Core configuration shared by sessions and requests."""

from __future__ import annotations

__all__ = [
    "DEFAULT_INPUT_STREAM_BUFFER_SIZE",
    "DEFAULT_TIMEOUT",
    "SessionConfig",
    "validate_session_params",
    "validate_timeout",
]

from arestream.core.config import (
    DEFAULT_INPUT_STREAM_BUFFER_SIZE,
    DEFAULT_TIMEOUT,
    SessionConfig,
)
from arestream.core.validation import validate_session_params, validate_timeout
