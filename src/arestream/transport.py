r"""Transport adapter executing a single HTTP attempt with ``httpx``.

A ``TransportTask`` sends one ``httpx.Request`` in streaming mode and
reports the exchange to its delegate as it happens: the response head,
every body chunk in arrival order, and finally completion with an optional
error. A task is never reused; a retried request gets a fresh task.
"""

from __future__ import annotations

__all__ = ["TaskState", "TransportDelegate", "TransportTask"]

import itertools
import logging
import threading
import time
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import httpx

from arestream.events import TaskMetrics
from arestream.exceptions import ExplicitlyCancelledError, TransportError

if TYPE_CHECKING:
    from arestream.exceptions import StreamRequestError

logger: logging.Logger = logging.getLogger(__name__)

_task_ids = itertools.count(1)


class TaskState(Enum):
    """Lifecycle states of a transport task."""

    SUSPENDED = "suspended"
    RUNNING = "running"
    CANCELING = "canceling"
    COMPLETED = "completed"


class TransportDelegate(Protocol):
    """Receiver of the signals produced by a ``TransportTask``."""

    def task_did_receive_response(self, task: TransportTask, response: httpx.Response) -> bool:
        """Handle the response head; return False to skip reading the body."""

    def task_did_receive_data(self, task: TransportTask, data: bytes) -> None:
        """Handle one body chunk."""

    def task_did_complete(self, task: TransportTask, error: StreamRequestError | None) -> None:
        """Handle the end of the exchange."""


class TransportTask:
    r"""One streaming HTTP exchange.

    ``run()`` blocks the calling thread until the exchange is over and must
    be called at most once. ``cancel()`` may be called from any thread: it
    stops body delivery at the next chunk boundary and closes the response.

    Args:
        client: The ``httpx.Client`` used to send the request.
        request: The request to send.
        delegate: The receiver of the task signals.
        attempt: The attempt number of the task (1-indexed).
        chunk_size: Optional body chunk size in bytes.
    """

    def __init__(
        self,
        client: httpx.Client,
        request: httpx.Request,
        delegate: TransportDelegate,
        *,
        attempt: int = 1,
        chunk_size: int | None = None,
    ) -> None:
        self.id = next(_task_ids)
        self.client = client
        self.request = request
        self.delegate = delegate
        self.attempt = attempt
        self.chunk_size = chunk_size
        self.metrics = TaskMetrics(attempt=attempt, url=str(request.url))
        self.response: httpx.Response | None = None
        self.error: StreamRequestError | None = None
        self._state = TaskState.SUSPENDED
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"TransportTask(id={self.id}, attempt={self.attempt}, state={self.state.value})"

    @property
    def state(self) -> TaskState:
        with self._lock:
            return self._state

    @property
    def is_cancelled(self) -> bool:
        with self._lock:
            return self._state is TaskState.CANCELING

    def cancel(self) -> None:
        """Stop the exchange; the task still completes with a cancellation
        error once ``run()`` observes it.

        Before the response head arrives there is nothing to close: a
        pending ``client.send`` runs until it returns or hits the client
        timeout. The response is then closed without reaching the delegate.
        """
        with self._lock:
            if self._state is TaskState.COMPLETED:
                return
            self._state = TaskState.CANCELING
            response = self.response
        if response is not None:
            try:
                response.close()
            except Exception:  # noqa: BLE001
                logger.debug(f"{self!r}: closing the response while cancelling failed")

    def run(self) -> None:
        """Send the request and stream the response to the delegate."""
        with self._lock:
            if self._state is TaskState.SUSPENDED:
                self._state = TaskState.RUNNING
        self.metrics.start_time = time.time()
        error: StreamRequestError | None = None
        if not self.is_cancelled:
            error = self._exchange()
        if self.is_cancelled:
            error = ExplicitlyCancelledError(request=self.request, response=self.response)
        self.metrics.end_time = time.time()
        with self._lock:
            self._state = TaskState.COMPLETED
        self.error = error
        self.delegate.task_did_complete(self, error)

    def _exchange(self) -> StreamRequestError | None:
        try:
            response = self.client.send(self.request, stream=True)
        except httpx.HTTPError as exc:
            return self._wrap(exc)
        with self._lock:
            self.response = response
        if self.is_cancelled:
            response.close()
            return None
        try:
            self.metrics.status_code = response.status_code
            self.metrics.redirect_count = len(response.history)
            if not self.delegate.task_did_receive_response(self, response):
                return None
            for chunk in response.iter_bytes(self.chunk_size):
                if self.is_cancelled:
                    break
                self.metrics.bytes_received += len(chunk)
                self.metrics.chunks_received += 1
                self.delegate.task_did_receive_data(self, chunk)
        except (httpx.HTTPError, httpx.StreamError) as exc:
            if not self.is_cancelled:
                return self._wrap(exc, response)
        finally:
            response.close()
        return None

    def _wrap(self, exc: Exception, response: httpx.Response | None = None) -> TransportError:
        logger.debug(f"{self!r}: {self.request.method} {self.request.url} failed: {exc!r}")
        return TransportError(
            f"{self.request.method} request to {self.request.url} failed: {exc}",
            request=self.request,
            response=response,
            cause=exc,
        )
