r"""Streaming request state machine.

A ``DataStreamRequest`` coordinates one logical HTTP exchange, which may
span several transport tasks when it is retried. Consumers registered with
``on_stream`` and its variants each get their own serializer and their own
sequence of events: zero or more ``Stream`` events followed by exactly one
``Complete`` event. The chunks of the current attempt are kept until the
request finishes, and a consumer registered while the request is running
is first caught up with them, so every consumer registered before the
request finishes sees the whole body.

All state transitions and consumer dispatch of a request are serialized by
a per-request lock. The transport and the interceptor hooks run on a
session worker thread; consumer callbacks run on each consumer's executor.

Example:
    ```pycon
    >>> from arestream import Session
    >>> from arestream.events import Complete, Stream
    >>> def handler(event):
    ...     if isinstance(event, Stream):
    ...         print(len(event.result.value))
    ...     elif isinstance(event, Complete):
    ...         print(event.completion.response.status_code)
    ...
    >>> with Session() as session:  # doctest: +SKIP
    ...     request = session.stream_request("GET", "https://httpbin.org/bytes/1000")
    ...     request.validate().on_stream(handler).wait(10)
    ...

    ```
"""

from __future__ import annotations

__all__ = ["DataStreamRequest", "RequestState"]

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from arestream.events import Complete, Completion, Stream, StreamResult
from arestream.exceptions import (
    ExplicitlyCancelledError,
    RequestAdaptationError,
    RequestRetryError,
    ResponseValidationError,
    StreamRequestError,
)
from arestream.interceptor import RetryResult, resolve
from arestream.serializers import (
    DecodableStreamSerializer,
    PassthroughStreamSerializer,
    StringStreamSerializer,
)
from arestream.streams import DataStreamReader, ImmediateExecutor
from arestream.transport import TransportTask
from arestream.validation import (
    acceptable_content_types,
    acceptable_status_codes,
    default_validators,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from concurrent.futures import Executor

    from arestream.events import StreamEvent, TaskMetrics
    from arestream.interceptor import RequestInterceptor
    from arestream.serializers import BaseStreamSerializer
    from arestream.session import Session
    from arestream.validation import Validator

logger: logging.Logger = logging.getLogger(__name__)

# Status codes a shared cache may store by default (RFC 9111)
CACHEABLE_STATUS_CODES = frozenset({200, 203, 204, 300, 301, 404, 405, 410, 414, 501})


class RequestState(Enum):
    """States of a ``DataStreamRequest``."""

    INITIALIZED = "initialized"
    RESUMED = "resumed"
    VALIDATING = "validating"
    RETRYING = "retrying"
    FINISHED = "finished"


@dataclass
class _StreamConsumer:
    serializer: BaseStreamSerializer
    handler: Callable[[StreamEvent], None]
    executor: Executor
    throttle: Callable[[], None] | None = field(default=None)
    completed: bool = field(default=False)


def _copy_request(request: httpx.Request) -> httpx.Request:
    request.read()
    return httpx.Request(
        request.method,
        request.url,
        headers=request.headers.copy(),
        content=request.content or None,
        extensions=dict(request.extensions),
    )


def _is_cacheable(request: httpx.Request, response: httpx.Response) -> bool:
    if request.method != "GET" or response.status_code not in CACHEABLE_STATUS_CODES:
        return False
    directives = response.headers.get("Cache-Control", "").lower()
    return "no-store" not in directives


class DataStreamRequest:
    r"""A streaming HTTP request owned by a ``Session``.

    Instances are created by ``Session.stream_request``; they are not meant
    to be constructed directly.

    Args:
        session: The owning session.
        request: The original request, before adaptation.
        interceptor: The interceptor consulted before sending and on failure.
    """

    def __init__(
        self,
        session: Session,
        request: httpx.Request,
        interceptor: RequestInterceptor | None = None,
    ) -> None:
        self.id = uuid.uuid4()
        self.session = session
        self.original_request = request
        self.interceptor = interceptor
        self._monitor = session.event_monitor
        self._lock = threading.RLock()
        self._state = RequestState.INITIALIZED
        self._cancelled = False
        self._consumers: list[_StreamConsumer] = []
        self._validators: list[Validator] = []
        self._requests: list[httpx.Request] = []
        self._tasks: list[TransportTask] = []
        self._response: httpx.Response | None = None
        self._error: Exception | None = None
        self._attempt_error: Exception | None = None
        self._validation_error: Exception | None = None
        self._chunks: list[bytes] = []
        self._body_complete = False
        self._retry_count = 0
        self._completion: Completion | None = None
        self._finished = threading.Event()
        self._cancel_event = threading.Event()

    def __repr__(self) -> str:
        return (
            f"DataStreamRequest(id={self.id}, method={self.original_request.method}, "
            f"url={self.original_request.url}, state={self.state.value})"
        )

    ##############################
    #     Read-only accessors    #
    ##############################

    @property
    def state(self) -> RequestState:
        with self._lock:
            return self._state

    @property
    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    @property
    def is_finished(self) -> bool:
        with self._lock:
            return self._state is RequestState.FINISHED

    @property
    def response(self) -> httpx.Response | None:
        """The most recent response received."""
        with self._lock:
            return self._response

    @property
    def error(self) -> Exception | None:
        """The terminal error, once finished with a failure."""
        with self._lock:
            return self._error

    @property
    def retry_count(self) -> int:
        with self._lock:
            return self._retry_count

    @property
    def request(self) -> httpx.Request | None:
        """The last adapted request sent, or None before the first attempt."""
        with self._lock:
            return self._requests[-1] if self._requests else None

    @property
    def requests(self) -> list[httpx.Request]:
        with self._lock:
            return list(self._requests)

    @property
    def task(self) -> TransportTask | None:
        with self._lock:
            return self._tasks[-1] if self._tasks else None

    @property
    def tasks(self) -> list[TransportTask]:
        with self._lock:
            return list(self._tasks)

    @property
    def metrics(self) -> list[TaskMetrics]:
        """The metrics of every transport task, in attempt order."""
        with self._lock:
            return [task.metrics for task in self._tasks]

    ##############################
    #     Consumer registration  #
    ##############################

    def validate(
        self,
        validator: Validator | None = None,
        *,
        status_codes: Iterable[int] | None = None,
        content_types: Iterable[str] | None = None,
    ) -> DataStreamRequest:
        """Attach response validation.

        Without arguments, two validators are attached: one accepting
        ``2xx`` status codes, then one accepting content types matching the
        request's ``Accept`` header. Validators must be attached before the
        request is resumed to affect its first attempt.

        Args:
            validator: Custom validator ``(request, response) -> Exception | None``.
            status_codes: Acceptable status codes.
            content_types: Acceptable MIME types.

        Returns:
            This request.
        """
        validators: list[Validator] = []
        if validator is not None:
            validators.append(validator)
        if status_codes is not None:
            validators.append(acceptable_status_codes(status_codes))
        if content_types is not None:
            validators.append(acceptable_content_types(content_types))
        if not validators:
            validators.extend(default_validators())
        with self._lock:
            self._validators.extend(validators)
        return self

    def on_stream(
        self,
        handler: Callable[[StreamEvent[Any]], None],
        *,
        serializer: BaseStreamSerializer | None = None,
        executor: Executor | None = None,
    ) -> DataStreamRequest:
        """Register a consumer of the stream.

        Args:
            handler: Called with each ``Stream`` event, then one ``Complete``.
            serializer: The serializer decoding chunks for this consumer.
                Defaults to raw bytes. A private copy is used.
            executor: Executor running ``handler``. Defaults to the session's
                delivery executor.

        Returns:
            This request.
        """
        serializer = serializer.copy() if serializer is not None else PassthroughStreamSerializer()
        return self._add_consumer(
            _StreamConsumer(
                serializer=serializer,
                handler=handler,
                executor=executor or self.session.delivery_executor,
            )
        )

    def on_stream_string(
        self,
        handler: Callable[[StreamEvent[str]], None],
        *,
        encoding: str = "utf-8",
        executor: Executor | None = None,
    ) -> DataStreamRequest:
        """Register a consumer receiving decoded text."""
        return self.on_stream(
            handler, serializer=StringStreamSerializer(encoding), executor=executor
        )

    def on_stream_decodable(
        self,
        handler: Callable[[StreamEvent[Any]], None],
        type_: type | None = None,
        *,
        executor: Executor | None = None,
        **kwargs: Any,
    ) -> DataStreamRequest:
        """Register a consumer receiving delimiter-framed decoded values.

        ``kwargs`` are forwarded to ``DecodableStreamSerializer``.
        """
        return self.on_stream(
            handler, serializer=DecodableStreamSerializer(type_, **kwargs), executor=executor
        )

    def as_input_stream(self, buffer_size: int | None = None) -> DataStreamReader:
        """Return a blocking file-like reader over the raw body.

        Args:
            buffer_size: Maximum number of buffered chunks. Defaults to the
                session's ``input_stream_buffer_size``.
        """
        reader = DataStreamReader(buffer_size or self.session.config.input_stream_buffer_size)
        self._add_consumer(
            _StreamConsumer(
                serializer=PassthroughStreamSerializer(),
                handler=reader.handle_event,
                executor=ImmediateExecutor(),
                throttle=reader.wait_for_capacity,
            )
        )
        return reader

    def _add_consumer(self, consumer: _StreamConsumer) -> DataStreamRequest:
        with self._lock:
            completion = self._completion
            if completion is None:
                self._replay(consumer)
            else:
                consumer.completed = True
            self._consumers.append(consumer)
            start = (
                self._state is RequestState.INITIALIZED
                and self.session.config.start_requests_immediately
            )
        if completion is not None:
            self._submit(consumer, Complete(completion))
        elif start:
            self.resume()
        return self

    def _replay(self, consumer: _StreamConsumer) -> None:
        """Catch a new consumer up with the data of the current attempt.

        Must be called with the lock held, before the consumer is added.
        """
        response = self._response
        results: list[StreamResult[Any]] = []
        for chunk in self._chunks:
            results.extend(consumer.serializer.consume(chunk, response))
        if self._body_complete:
            results.extend(consumer.serializer.finish(response))
        self._deliver_results(consumer, results)

    ##############################
    #     Lifecycle control      #
    ##############################

    def resume(self) -> DataStreamRequest:
        """Start the request if it has not started yet."""
        with self._lock:
            if self._state is not RequestState.INITIALIZED:
                return self
            self._state = RequestState.RESUMED
        logger.debug(f"{self!r} resumed")
        self._monitor.request_did_resume(self)
        self.session._perform(self)
        return self

    def cancel(self) -> DataStreamRequest:
        """Cancel the request.

        The live transport task is stopped, no further ``Stream`` events are
        delivered, and every consumer receives one ``Complete`` event carrying
        an ``ExplicitlyCancelledError``.
        """
        with self._lock:
            if self._state is RequestState.FINISHED:
                return self
            self._cancelled = True
            self._cancel_event.set()
            task = self._tasks[-1] if self._tasks else None
            error = ExplicitlyCancelledError(request=self.request, response=self._response)
        logger.debug(f"{self!r} cancelled")
        self._monitor.request_did_cancel(self)
        if task is not None:
            task.cancel()
            self._monitor.request_did_cancel_task(self, task)
        self._finish(error)
        return self

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the request is finished.

        Returns:
            True if the request finished within ``timeout``.
        """
        return self._finished.wait(timeout)

    ##############################
    #     Attempt execution      #
    ##############################

    def _run(self) -> None:
        try:
            self._monitor.request_did_create_initial_url_request(self, self.original_request)
            while self._run_attempt():
                pass
        except Exception as exc:
            logger.exception(f"{self!r} failed unexpectedly")
            self._finish(StreamRequestError(f"unexpected failure: {exc}", cause=exc))

    def _run_attempt(self) -> bool:
        """Run one attempt; return True if another attempt should follow."""
        if self.is_finished:
            return False
        try:
            url_request = self._adapt()
        except ExplicitlyCancelledError as error:
            self._finish(error)
            return False
        except RequestAdaptationError as error:
            return self._retry_or_finish(error)

        with self._lock:
            if self._state is RequestState.FINISHED:
                return False
            task = TransportTask(
                self.session.client,
                url_request,
                self,
                attempt=len(self._tasks) + 1,
                chunk_size=self.session.config.chunk_size,
            )
            self._tasks.append(task)
            self._chunks = []
            self._body_complete = False
            self._attempt_error = None
            self._validation_error = None
        self._monitor.request_did_create_task(self, task)
        self._monitor.request_did_resume_task(self, task)
        task.run()

        with self._lock:
            error = self._attempt_error
            cancelled = self._cancelled
        if cancelled or isinstance(error, ExplicitlyCancelledError):
            self._finish(error or ExplicitlyCancelledError(request=url_request))
            return False
        if error is not None:
            return self._retry_or_finish(error)
        self._flush_serializers()
        self._finish(None)
        return False

    def _adapt(self) -> httpx.Request:
        initial = _copy_request(self.original_request)
        adapted = initial
        if self.interceptor is not None:
            try:
                adapted = resolve(
                    self.interceptor.adapt(initial, self.session), self._cancel_event
                )
            except ExplicitlyCancelledError:
                raise
            except RequestAdaptationError as exc:
                self._monitor.request_did_fail_to_adapt_url_request(self, initial, exc)
                raise
            except Exception as exc:
                error = RequestAdaptationError(
                    f"failed to adapt request: {exc}", request=initial, cause=exc
                )
                self._monitor.request_did_fail_to_adapt_url_request(self, initial, error)
                raise error from exc
            self._monitor.request_did_adapt_url_request(self, initial, adapted)
        with self._lock:
            self._requests.append(adapted)
        self._monitor.request_did_create_url_request(self, adapted)
        return adapted

    def _retry_or_finish(self, error: Exception) -> bool:
        with self._lock:
            if self._state is RequestState.FINISHED:
                return False
            self._state = RequestState.RETRYING
        result = RetryResult.DO_NOT_RETRY
        if self.interceptor is not None:
            try:
                result = resolve(
                    self.interceptor.retry(self, self.session, error), self._cancel_event
                )
            except ExplicitlyCancelledError as exc:
                self._finish(exc)
                return False
            except Exception as exc:
                logger.debug(f"{self!r}: retrier failed: {exc!r}")
                self._finish(
                    RequestRetryError(
                        f"retrier failed: {exc}", underlying_error=error, cause=exc
                    )
                )
                return False
        if not result.should_retry:
            self._finish(result.error or error)
            return False
        if result.delay:
            logger.debug(f"{self!r}: retrying in {result.delay:.2f}s after {error!r}")
            if self._cancel_event.wait(result.delay):
                return False
        with self._lock:
            if self._state is RequestState.FINISHED:
                return False
            self._retry_count += 1
            self._state = RequestState.RESUMED
            self._response = None
            self._chunks = []
            self._body_complete = False
            for consumer in self._consumers:
                consumer.serializer.reset()
        logger.debug(f"{self!r}: retry {self._retry_count} after {error!r}")
        self._monitor.request_is_retrying(self)
        return True

    ##############################
    #     Transport delegate     #
    ##############################

    def task_did_receive_response(self, task: TransportTask, response: httpx.Response) -> bool:
        with self._lock:
            if self._state is RequestState.FINISHED or task is not self.task:
                return False
            self._response = response
            validators = list(self._validators)
            if validators:
                self._state = RequestState.VALIDATING
        if response.status_code in (401, 407) and (
            "WWW-Authenticate" in response.headers or "Proxy-Authenticate" in response.headers
        ):
            self._monitor.task_did_receive_challenge(self, task, response)
        error = self._run_validators(task.request, response, validators)
        with self._lock:
            if self._state is RequestState.VALIDATING:
                self._state = RequestState.RESUMED
            self._validation_error = error
        return error is None

    def _run_validators(
        self, request: httpx.Request, response: httpx.Response, validators: list[Validator]
    ) -> Exception | None:
        for validator in validators:
            try:
                error = validator(request, response)
            except Exception as exc:  # noqa: BLE001
                error = exc
            if error is not None and not isinstance(error, ResponseValidationError):
                error = ResponseValidationError(
                    f"response validation failed: {error}",
                    request=request,
                    response=response,
                    cause=error,
                )
            self._monitor.request_did_validate_request(self, request, response, error)
            if error is not None:
                logger.debug(f"{self!r}: {error.message}")
                return error
        return None

    def task_did_receive_data(self, task: TransportTask, data: bytes) -> None:
        with self._lock:
            if self._state is RequestState.FINISHED or task is not self.task:
                logger.debug(f"{self!r}: dropping {len(data)} bytes received after finishing")
                return
            self._chunks.append(data)
            response = self._response
            consumers = list(self._consumers)
            for consumer in consumers:
                self._deliver_results(consumer, consumer.serializer.consume(data, response))
        self._monitor.data_task_did_receive_data(self, task, data)
        for consumer in consumers:
            if consumer.throttle is not None:
                consumer.throttle()

    def task_did_complete(self, task: TransportTask, error: Exception | None) -> None:
        with self._lock:
            if task is not self.task:
                return
            if error is None:
                error = self._validation_error
            self._attempt_error = error
            response = self._response
        if error is None and response is not None and _is_cacheable(task.request, response):
            self._monitor.data_task_will_cache_response(self, task, response)
        self._monitor.task_did_finish_collecting_metrics(self, task, task.metrics)
        self._monitor.request_did_gather_metrics(self, task.metrics)
        self._monitor.task_did_complete(self, task, error)
        self._monitor.request_did_complete_task(self, task, error)

    ##############################
    #     Consumer dispatch      #
    ##############################

    def _flush_serializers(self) -> None:
        with self._lock:
            if self._state is RequestState.FINISHED:
                return
            self._body_complete = True
            for consumer in self._consumers:
                self._deliver_results(consumer, consumer.serializer.finish(self._response))

    def _deliver_results(
        self, consumer: _StreamConsumer, results: list[StreamResult[Any]]
    ) -> None:
        for result in results:
            self._submit(consumer, Stream(result))

    def _submit(self, consumer: _StreamConsumer, event: StreamEvent[Any]) -> None:
        def deliver() -> None:
            if isinstance(event, Stream) and self.is_cancelled:
                return
            try:
                consumer.handler(event)
            except Exception:
                logger.exception(f"{self!r}: stream handler {consumer.handler!r} failed")

        try:
            consumer.executor.submit(deliver)
        except RuntimeError:
            if isinstance(event, Complete):
                deliver()
            else:
                logger.debug(f"{self!r}: executor is shut down, dropping stream event")

    def _finish(self, error: Exception | None) -> None:
        with self._lock:
            if self._state is RequestState.FINISHED:
                return
            self._state = RequestState.FINISHED
            self._error = error
            self._chunks = []
            task = self._tasks[-1] if self._tasks else None
            self._completion = Completion(
                request=self._requests[-1] if self._requests else None,
                response=self._response,
                metrics=task.metrics if task is not None else None,
                error=error,
            )
            consumers = [c for c in self._consumers if not c.completed]
            for consumer in consumers:
                consumer.completed = True
            completion = self._completion
        logger.debug(f"{self!r} finished with error={error!r}")
        self._monitor.request_did_finish(self)
        for consumer in consumers:
            self._submit(consumer, Complete(completion))
        self.session._request_did_finish(self)
        self._finished.set()
