r"""Delivery executors and the blocking input stream adapter.

Stream consumers receive their events through a
``concurrent.futures.Executor``. Sessions default to a single-thread
executor playing the role of a main thread; ``ImmediateExecutor`` runs
deliveries inline on the transport thread instead.

``DataStreamReader`` bridges the push-based event delivery to a pull-based
file-like object. Events are buffered without blocking; once the buffer
holds ``buffer_size`` chunks, ``wait_for_capacity`` blocks the transport
thread until the reader catches up.
"""

from __future__ import annotations

__all__ = ["DataStreamReader", "ImmediateExecutor"]

import io
import logging
import threading
from collections import deque
from concurrent.futures import Executor, Future
from typing import TYPE_CHECKING, Any

from arestream.events import Complete, Stream

if TYPE_CHECKING:
    from collections.abc import Callable

    from arestream.events import Completion, StreamEvent

logger: logging.Logger = logging.getLogger(__name__)


class ImmediateExecutor(Executor):
    """Executor running every submitted callable in the submitting thread.

    Example:
        ```pycon
        >>> from arestream.streams import ImmediateExecutor
        >>> ImmediateExecutor().submit(sum, [1, 2]).result()
        3

        ```
    """

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            result = fn(*args, **kwargs)
        except BaseException as exc:  # noqa: BLE001
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future


class DataStreamReader(io.RawIOBase):
    r"""Read-only binary stream fed by a streaming request.

    Reads block until data is available. Once the request completes and the
    buffered data is drained, reads return ``b""``; if the request failed,
    the terminal error is raised instead. Closing the reader discards any
    buffered data and unblocks the transport.

    ``handle_event`` never blocks, so a reader can be caught up with data
    received before it was registered. Backpressure is applied separately
    through ``wait_for_capacity``.

    Args:
        buffer_size: Maximum number of buffered chunks. Must be > 0.

    Example:
        ```pycon
        >>> from arestream.events import Complete, Completion, Stream, StreamResult
        >>> from arestream.streams import DataStreamReader
        >>> reader = DataStreamReader(buffer_size=4)
        >>> reader.handle_event(Stream(StreamResult.success(b"<a/>")))
        >>> reader.handle_event(Complete(Completion(None, None, None, None)))
        >>> reader.read()
        b'<a/>'

        ```
    """

    def __init__(self, buffer_size: int) -> None:
        super().__init__()
        if buffer_size <= 0:
            msg = f"buffer_size must be > 0, got {buffer_size}"
            raise ValueError(msg)
        self.buffer_size = buffer_size
        self.completion: Completion | None = None
        self._chunks: deque[bytes] = deque()
        self._pending = b""
        self._done = False
        self._condition = threading.Condition()

    def readable(self) -> bool:
        return True

    @property
    def error(self) -> Exception | None:
        """The terminal error of the request, once completed."""
        if self.completion is None:
            return None
        return self.completion.error

    def handle_event(self, event: StreamEvent[bytes]) -> None:
        """Consume one event of the request."""
        if isinstance(event, Stream):
            if event.result.is_success and event.result.value:
                self._put(event.result.value)
        elif isinstance(event, Complete):
            with self._condition:
                self.completion = event.completion
                self._done = True
                self._condition.notify_all()

    def wait_for_capacity(self) -> None:
        """Block while the buffer holds ``buffer_size`` chunks or more.

        Returns as soon as the reader drains the buffer, is closed, or the
        request completes.
        """
        with self._condition:
            while len(self._chunks) >= self.buffer_size and not (self._done or self.closed):
                self._condition.wait()

    def _put(self, data: bytes) -> None:
        with self._condition:
            if self._done or self.closed:
                logger.debug(f"Dropping {len(data)} bytes delivered to a finished reader")
                return
            self._chunks.append(data)
            self._condition.notify_all()

    def readinto(self, buffer: Any) -> int:
        if not self._pending:
            with self._condition:
                while not self._chunks and not self._done and not self.closed:
                    self._condition.wait()
                if self._chunks:
                    self._pending = self._chunks.popleft()
                    self._condition.notify_all()
                elif self.closed:
                    msg = "I/O operation on closed reader"
                    raise ValueError(msg)
                elif self.error is not None:
                    raise self.error
                else:
                    return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        with self._condition:
            super().close()
            self._chunks.clear()
            self._pending = b""
            self._condition.notify_all()
