r"""Configuration dataclass and defaults for ``Session``.

This module provides configuration constants and a dataclass-based
configuration object shared by every request a ``Session`` creates.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_INPUT_STREAM_BUFFER_SIZE",
    "DEFAULT_TIMEOUT",
    "SessionConfig",
]

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from arestream.core.validation import validate_session_params, validate_timeout

if TYPE_CHECKING:
    import httpx


# Default timeout in seconds for HTTP requests
DEFAULT_TIMEOUT = 10.0

# Default number of chunks buffered by an input stream before the transport
# thread blocks
DEFAULT_INPUT_STREAM_BUFFER_SIZE = 64


@dataclass
class SessionConfig:
    """Configuration for a streaming ``Session``.

    Args:
        timeout: Timeout used when the session creates its own ``httpx.Client``.
            Must be > 0 if numeric.
        chunk_size: Size in bytes of the chunks read from the response body.
            ``None`` delivers chunks as the transport produces them.
        start_requests_immediately: Whether registering the first consumer
            on a request resumes it. If ``False``, ``resume()`` must be called.
        follow_redirects: Whether the transport follows redirects.
        max_workers: Maximum number of transport worker threads.
            ``None`` uses the ``ThreadPoolExecutor`` default.
        input_stream_buffer_size: Number of chunks buffered by
            ``as_input_stream()`` before the transport blocks.

    Example:
        ```pycon
        >>> from arestream.core.config import SessionConfig
        >>> config = SessionConfig()
        >>> config.start_requests_immediately
        True
        >>> merged = config.merge(chunk_size=512)
        >>> merged.chunk_size
        512
        >>> config.chunk_size is None
        True

        ```
    """

    timeout: float | httpx.Timeout = DEFAULT_TIMEOUT
    chunk_size: int | None = None
    start_requests_immediately: bool = True
    follow_redirects: bool = True
    max_workers: int | None = None
    input_stream_buffer_size: int = DEFAULT_INPUT_STREAM_BUFFER_SIZE

    def __post_init__(self) -> None:
        """Validate configuration parameters after initialization.

        Raises:
            ValueError: If any parameter fails validation.
        """
        validate_timeout(self.timeout)
        validate_session_params(
            chunk_size=self.chunk_size,
            max_workers=self.max_workers,
            input_stream_buffer_size=self.input_stream_buffer_size,
        )

    def merge(self, **overrides: Any) -> SessionConfig:
        """Create a new config with specified parameters overridden.

        Only non-None override values are applied.

        Args:
            **overrides: Keyword arguments for parameters to override.

        Returns:
            A new SessionConfig instance with overrides applied.
        """
        filtered_overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **filtered_overrides)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary format.

        Returns:
            Dictionary with the session configuration parameters.

        Example:
            ```pycon
            >>> from arestream.core.config import SessionConfig
            >>> SessionConfig(chunk_size=16).to_dict()["chunk_size"]
            16

            ```
        """
        return {
            "timeout": self.timeout,
            "chunk_size": self.chunk_size,
            "start_requests_immediately": self.start_requests_immediately,
            "follow_redirects": self.follow_redirects,
            "max_workers": self.max_workers,
            "input_stream_buffer_size": self.input_stream_buffer_size,
        }
