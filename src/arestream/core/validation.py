r"""Parameter validation utilities for session configuration.

This module provides validation functions for the numeric parameters of a
``SessionConfig`` so that misconfiguration is reported when the config is
built rather than when the first request runs.
"""

from __future__ import annotations

__all__ = ["validate_session_params", "validate_timeout"]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx


def validate_timeout(timeout: float | httpx.Timeout) -> None:
    """Validate timeout parameter.

    Args:
        timeout: Maximum seconds to wait for server responses.
            Must be > 0 if provided as a numeric value.

    Raises:
        ValueError: If timeout is a numeric value <= 0.

    Example:
        ```pycon
        >>> from arestream.core.validation import validate_timeout
        >>> validate_timeout(10.0)
        >>> validate_timeout(0)
        Traceback (most recent call last):
        ...
        ValueError: timeout must be > 0, got 0

        ```
    """
    if isinstance(timeout, (int, float)) and timeout <= 0:
        msg = f"timeout must be > 0, got {timeout}"
        raise ValueError(msg)


def validate_session_params(
    chunk_size: int | None = None,
    max_workers: int | None = None,
    input_stream_buffer_size: int = 1,
) -> None:
    """Validate the streaming parameters of a session.

    Args:
        chunk_size: Size in bytes of the chunks read from the transport.
            Must be > 0 if provided. ``None`` delivers chunks as received.
        max_workers: Maximum number of transport worker threads.
            Must be > 0 if provided.
        input_stream_buffer_size: Number of chunks an input stream buffers
            before blocking the transport. Must be > 0.

    Raises:
        ValueError: If any parameter is out of range.

    Example:
        ```pycon
        >>> from arestream.core.validation import validate_session_params
        >>> validate_session_params(chunk_size=1024, max_workers=4)
        >>> validate_session_params(chunk_size=0)
        Traceback (most recent call last):
        ...
        ValueError: chunk_size must be > 0, got 0

        ```
    """
    if chunk_size is not None and chunk_size <= 0:
        msg = f"chunk_size must be > 0, got {chunk_size}"
        raise ValueError(msg)
    if max_workers is not None and max_workers <= 0:
        msg = f"max_workers must be > 0, got {max_workers}"
        raise ValueError(msg)
    if input_stream_buffer_size <= 0:
        msg = f"input_stream_buffer_size must be > 0, got {input_stream_buffer_size}"
        raise ValueError(msg)
