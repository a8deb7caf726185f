r"""Event types delivered to stream consumers.

A consumer registered on a ``DataStreamRequest`` receives a sequence of
``StreamEvent`` values: zero or more ``Stream`` events, each wrapping a
``StreamResult``, followed by exactly one ``Complete`` event carrying the
terminal ``Completion``.

Example:
    ```pycon
    >>> from arestream.events import Complete, Stream
    >>> def handler(event):
    ...     if isinstance(event, Stream):
    ...         print(event.result.value)
    ...     elif isinstance(event, Complete):
    ...         print(event.completion.error)
    ...

    ```
"""

from __future__ import annotations

__all__ = [
    "Complete",
    "Completion",
    "Stream",
    "StreamEvent",
    "StreamResult",
    "TaskMetrics",
]

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar, Union

if TYPE_CHECKING:
    import httpx

T = TypeVar("T")


@dataclass(frozen=True)
class StreamResult(Generic[T]):
    """The outcome of decoding one unit of a stream.

    Exactly one of ``value`` and ``error`` is meaningful: ``error`` is
    ``None`` for a successful unit.

    Attributes:
        value: The decoded value.
        error: The decoding error, if the unit could not be decoded.

    Example:
        ```pycon
        >>> from arestream.events import StreamResult
        >>> StreamResult.success(b"abc").is_success
        True
        >>> StreamResult.failure(ValueError("bad")).value is None
        True

        ```
    """

    value: T | None = None
    error: Exception | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value or raise the error."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T) -> StreamResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> StreamResult[T]:
        return cls(error=error)


@dataclass
class TaskMetrics:
    """Metrics gathered for a single transport task.

    Attributes:
        attempt: The attempt number of the task (1-indexed).
        url: The URL that was requested.
        start_time: Timestamp when the task was resumed.
        end_time: Timestamp when the task completed, or None while running.
        status_code: The response status code, if headers were received.
        bytes_received: Number of body bytes received.
        chunks_received: Number of body chunks received.
        redirect_count: Number of redirects followed by the transport.
    """

    attempt: int
    url: str
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    status_code: int | None = None
    bytes_received: int = 0
    chunks_received: int = 0
    redirect_count: int = 0

    @property
    def duration(self) -> float | None:
        """Elapsed seconds between resume and completion."""
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass(frozen=True)
class Completion:
    """Terminal outcome of a streaming request.

    Attributes:
        request: The last ``httpx.Request`` sent, if any was created.
        response: The terminal ``httpx.Response``, if headers were received.
        metrics: The metrics of the last transport task, if any.
        error: The terminal error, or None on success.
    """

    request: httpx.Request | None
    response: httpx.Response | None
    metrics: TaskMetrics | None
    error: Exception | None


@dataclass(frozen=True)
class Stream(Generic[T]):
    """A single decoded unit (or decoding failure) of the stream."""

    result: StreamResult[T]


@dataclass(frozen=True)
class Complete:
    """The final event delivered to every consumer."""

    completion: Completion


StreamEvent = Union[Stream[T], Complete]
