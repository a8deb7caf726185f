r"""Lifecycle event monitoring for streaming requests.

A session dispatches every lifecycle signal of its requests to a
``CompositeEventMonitor``, which forwards it to each registered monitor in
registration order. Monitors only implement the handlers they care about:
a missing handler, or one set to ``None``, is skipped.

Example:
    ```pycon
    >>> from arestream.monitor import ClosureEventMonitor
    >>> finished = []
    >>> monitor = ClosureEventMonitor(request_did_finish=finished.append)
    >>> monitor.request_did_resume is None
    True

    ```
"""

from __future__ import annotations

__all__ = [
    "EVENT_NAMES",
    "ClosureEventMonitor",
    "CompositeEventMonitor",
    "EventMonitor",
    "LoggingEventMonitor",
]

import logging
from typing import TYPE_CHECKING, Any

from arestream.utils.structured_logging import (
    clear_request_id,
    log_structured,
    set_request_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    import httpx

    from arestream.events import TaskMetrics
    from arestream.request import DataStreamRequest
    from arestream.transport import TransportTask

logger: logging.Logger = logging.getLogger(__name__)

EVENT_NAMES = (
    "request_did_create_initial_url_request",
    "request_did_adapt_url_request",
    "request_did_fail_to_adapt_url_request",
    "request_did_create_url_request",
    "request_did_create_task",
    "request_did_resume",
    "request_did_resume_task",
    "request_did_cancel",
    "request_did_cancel_task",
    "task_did_receive_challenge",
    "data_task_did_receive_data",
    "data_task_will_cache_response",
    "task_did_finish_collecting_metrics",
    "request_did_gather_metrics",
    "task_did_complete",
    "request_did_complete_task",
    "request_did_validate_request",
    "request_is_retrying",
    "request_did_finish",
)


class EventMonitor:
    """Base class for event monitors; every handler is a no-op.

    Subclasses override the handlers they need. The signatures are::

        request_did_create_initial_url_request(request, url_request)
        request_did_adapt_url_request(request, initial, adapted)
        request_did_fail_to_adapt_url_request(request, initial, error)
        request_did_create_url_request(request, url_request)
        request_did_create_task(request, task)
        request_did_resume(request)
        request_did_resume_task(request, task)
        request_did_cancel(request)
        request_did_cancel_task(request, task)
        task_did_receive_challenge(request, task, response)
        data_task_did_receive_data(request, task, data)
        data_task_will_cache_response(request, task, response)
        task_did_finish_collecting_metrics(request, task, metrics)
        request_did_gather_metrics(request, metrics)
        task_did_complete(request, task, error)
        request_did_complete_task(request, task, error)
        request_did_validate_request(request, url_request, response, error)
        request_is_retrying(request)
        request_did_finish(request)
    """

    def request_did_create_initial_url_request(
        self, request: DataStreamRequest, url_request: httpx.Request
    ) -> None:
        pass

    def request_did_adapt_url_request(
        self, request: DataStreamRequest, initial: httpx.Request, adapted: httpx.Request
    ) -> None:
        pass

    def request_did_fail_to_adapt_url_request(
        self, request: DataStreamRequest, initial: httpx.Request, error: Exception
    ) -> None:
        pass

    def request_did_create_url_request(
        self, request: DataStreamRequest, url_request: httpx.Request
    ) -> None:
        pass

    def request_did_create_task(self, request: DataStreamRequest, task: TransportTask) -> None:
        pass

    def request_did_resume(self, request: DataStreamRequest) -> None:
        pass

    def request_did_resume_task(self, request: DataStreamRequest, task: TransportTask) -> None:
        pass

    def request_did_cancel(self, request: DataStreamRequest) -> None:
        pass

    def request_did_cancel_task(self, request: DataStreamRequest, task: TransportTask) -> None:
        pass

    def task_did_receive_challenge(
        self, request: DataStreamRequest, task: TransportTask, response: httpx.Response
    ) -> None:
        pass

    def data_task_did_receive_data(
        self, request: DataStreamRequest, task: TransportTask, data: bytes
    ) -> None:
        pass

    def data_task_will_cache_response(
        self, request: DataStreamRequest, task: TransportTask, response: httpx.Response
    ) -> None:
        pass

    def task_did_finish_collecting_metrics(
        self, request: DataStreamRequest, task: TransportTask, metrics: TaskMetrics
    ) -> None:
        pass

    def request_did_gather_metrics(self, request: DataStreamRequest, metrics: TaskMetrics) -> None:
        pass

    def task_did_complete(
        self, request: DataStreamRequest, task: TransportTask, error: Exception | None
    ) -> None:
        pass

    def request_did_complete_task(
        self, request: DataStreamRequest, task: TransportTask, error: Exception | None
    ) -> None:
        pass

    def request_did_validate_request(
        self,
        request: DataStreamRequest,
        url_request: httpx.Request | None,
        response: httpx.Response,
        error: Exception | None,
    ) -> None:
        pass

    def request_is_retrying(self, request: DataStreamRequest) -> None:
        pass

    def request_did_finish(self, request: DataStreamRequest) -> None:
        pass


class ClosureEventMonitor:
    """Event monitor whose handlers are assignable callables.

    Every handler named in ``EVENT_NAMES`` is an attribute that defaults to
    ``None`` and can be set at construction or later.

    Args:
        **handlers: Initial handlers, keyed by event name.

    Raises:
        TypeError: If a keyword is not a known event name.
    """

    def __init__(self, **handlers: Callable[..., Any]) -> None:
        for name in EVENT_NAMES:
            setattr(self, name, None)
        for name, handler in handlers.items():
            if name not in EVENT_NAMES:
                msg = f"unknown event {name!r}"
                raise TypeError(msg)
            setattr(self, name, handler)


class CompositeEventMonitor:
    """Fan-out of lifecycle events to an ordered list of monitors.

    Every event is delivered to each monitor in registration order. A
    monitor raising an exception is logged and does not prevent delivery to
    the remaining monitors.

    Args:
        monitors: The monitors to dispatch to.
    """

    def __init__(self, monitors: Iterable[Any] = ()) -> None:
        self.monitors: tuple[Any, ...] = tuple(monitors)

    def dispatch(self, event: str, *args: Any) -> None:
        """Invoke handler ``event`` with ``args`` on every monitor."""
        for monitor in self.monitors:
            handler = getattr(monitor, event, None)
            if handler is None:
                continue
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Event monitor {monitor!r} failed while handling {event}")

    def __getattr__(self, name: str) -> Callable[..., None]:
        if name not in EVENT_NAMES:
            raise AttributeError(name)
        return lambda *args: self.dispatch(name, *args)


class LoggingEventMonitor(EventMonitor):
    """Event monitor writing structured log records.

    Records are written with ``log_structured`` so that, combined with
    ``StructuredFormatter``, each lifecycle step becomes a JSON line tagged
    with the request id.

    Args:
        logger: Logger to write to. Defaults to this module's logger.
        level: Level of the lifecycle records.
        log_data: Whether to log every received chunk.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.DEBUG,
        log_data: bool = False,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self.log_data = log_data

    def _log(self, request: DataStreamRequest, message: str, **extra: Any) -> None:
        set_request_id(str(request.id))
        try:
            log_structured(self.logger, self.level, message, **extra)
        finally:
            clear_request_id()

    def request_did_create_url_request(
        self, request: DataStreamRequest, url_request: httpx.Request
    ) -> None:
        self._log(
            request,
            "request created",
            method=url_request.method,
            url=str(url_request.url),
        )

    def request_did_resume(self, request: DataStreamRequest) -> None:
        self._log(request, "request resumed")

    def request_did_cancel(self, request: DataStreamRequest) -> None:
        self._log(request, "request cancelled")

    def data_task_did_receive_data(
        self, request: DataStreamRequest, task: TransportTask, data: bytes
    ) -> None:
        if self.log_data:
            self._log(request, "data received", attempt=task.attempt, size=len(data))

    def request_did_validate_request(
        self,
        request: DataStreamRequest,
        url_request: httpx.Request | None,  # noqa: ARG002
        response: httpx.Response,
        error: Exception | None,
    ) -> None:
        self._log(
            request,
            "response validated",
            status_code=response.status_code,
            valid=error is None,
        )

    def request_did_gather_metrics(self, request: DataStreamRequest, metrics: TaskMetrics) -> None:
        self._log(
            request,
            "metrics gathered",
            attempt=metrics.attempt,
            status_code=metrics.status_code,
            bytes_received=metrics.bytes_received,
            duration=metrics.duration,
        )

    def request_is_retrying(self, request: DataStreamRequest) -> None:
        self._log(request, "request retrying", retry_count=request.retry_count)

    def request_did_finish(self, request: DataStreamRequest) -> None:
        error = request.error
        self._log(
            request,
            "request finished",
            status_code=request.response.status_code if request.response is not None else None,
            error=type(error).__name__ if error is not None else None,
        )
