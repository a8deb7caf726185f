r"""arestream - Streaming HTTP requests built on httpx.

This package streams HTTP response bodies to any number of consumers while
the body is still arriving. Each consumer decodes the chunks with its own
serializer and receives its events on the executor of its choice.

Key Features:
    - Multiple independent consumers per request (raw bytes, text,
      delimiter-framed JSON, blocking file-like reader)
    - Response validation before any body data is delivered
    - Interceptors adapting requests before each attempt and deciding on
      retries, with backoff and ``Retry-After`` support
    - Cancellation with a single, well-defined completion event
    - Event monitors observing every step of the request lifecycle

Example:
    ```pycon
    >>> from arestream import Session
    >>> from arestream.events import Complete, Stream
    >>> received = []
    >>> def handler(event):
    ...     if isinstance(event, Stream):
    ...         received.append(event.result.value)
    ...
    >>> with Session() as session:  # doctest: +SKIP
    ...     request = session.stream_request("GET", "https://httpbin.org/bytes/1000")
    ...     request.validate().on_stream(handler).wait(10)
    ...

    ```
"""

from __future__ import annotations

__all__ = [
    "Complete",
    "Completion",
    "DataStreamRequest",
    "DecodingError",
    "ExplicitlyCancelledError",
    "Interceptor",
    "RequestAdaptationError",
    "RequestRetryError",
    "RequestState",
    "ResponseValidationError",
    "RetryPolicy",
    "RetryResult",
    "Session",
    "SessionConfig",
    "Stream",
    "StreamRequestError",
    "StreamResult",
    "TransportError",
    "__version__",
]

from importlib.metadata import PackageNotFoundError, version

from arestream.core.config import SessionConfig
from arestream.events import Complete, Completion, Stream, StreamResult
from arestream.exceptions import (
    DecodingError,
    ExplicitlyCancelledError,
    RequestAdaptationError,
    RequestRetryError,
    ResponseValidationError,
    StreamRequestError,
    TransportError,
)
from arestream.interceptor import Interceptor, RetryPolicy, RetryResult
from arestream.request import DataStreamRequest, RequestState
from arestream.session import Session

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"
