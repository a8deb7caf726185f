r"""Request adaptation and retry policies.

An adapter rewrites the outgoing ``httpx.Request`` before every attempt
(including retries) and always receives the original request, so repeated
retries never compound adaptations. A retrier is consulted once per failed
attempt and returns a ``RetryResult``.

Both hooks may return a ``concurrent.futures.Future`` instead of a plain
value. The request's timeline is then suspended until the future resolves;
no other work of that request runs in the meantime. Cancelling the request
abandons the wait.

Example:
    ```pycon
    >>> from arestream.interceptor import Interceptor, RetryPolicy
    >>> from arestream.backoff import ConstantBackoff
    >>> interceptor = Interceptor(
    ...     adapter=lambda request, session: request,
    ...     retrier=RetryPolicy(retry_limit=3, backoff=ConstantBackoff(0.1)),
    ... )

    ```
"""

from __future__ import annotations

__all__ = [
    "Adapter",
    "Interceptor",
    "RequestAdapter",
    "RequestInterceptor",
    "RequestRetrier",
    "RetryPolicy",
    "RetryResult",
    "Retrier",
    "resolve",
]

import logging
import random
import threading
from concurrent.futures import Future, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

import httpx

from arestream.backoff import BackoffStrategy, ExponentialBackoff
from arestream.exceptions import ExplicitlyCancelledError, StreamRequestError, TransportError
from arestream.utils.retry_after import retry_after_delay

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from arestream.request import DataStreamRequest
    from arestream.session import Session

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


# Seconds between two cancellation checks while waiting on a pending future
RESOLVE_POLL_INTERVAL = 0.05


def resolve(value: T | Future[T], cancel_event: threading.Event | None = None) -> T:
    """Return ``value``, waiting for it first if it is a future.

    Args:
        value: A plain value or a future.
        cancel_event: Optional event abandoning the wait once set.

    Returns:
        The value, or the result of the future.

    Raises:
        ExplicitlyCancelledError: if ``cancel_event`` is set before the
            future resolves.
    """
    if not isinstance(value, Future):
        return value
    timeout = None if cancel_event is None else RESOLVE_POLL_INTERVAL
    while cancel_event is None or not cancel_event.is_set():
        done, _ = wait([value], timeout=timeout)
        if not done:
            continue
        if value.cancelled():
            msg = "pending future was cancelled"
            raise ExplicitlyCancelledError(msg)
        return value.result()
    msg = "request was cancelled while waiting on a pending future"
    raise ExplicitlyCancelledError(msg)


def _forward(source: Future, target: Future) -> None:
    if source.cancelled():
        target.cancel()
        return
    error = source.exception()
    if error is not None:
        target.set_exception(error)
        return
    result = source.result()
    if isinstance(result, Future):
        result.add_done_callback(lambda future: _forward(future, target))
    else:
        target.set_result(result)


def _then(value: T | Future[T], func: Callable[[T], Any]) -> Any:
    """Apply ``func`` to ``value`` once it is available.

    Completed futures are unwrapped immediately; pending ones yield a new
    future resolved with the outcome of ``func``, without blocking.
    """
    if not isinstance(value, Future):
        return func(value)
    if value.done():
        return func(value.result())
    chained: Future = Future()

    def done(future: Future) -> None:
        if future.cancelled():
            chained.cancel()
            return
        try:
            result = func(future.result())
        except Exception as exc:  # noqa: BLE001
            chained.set_exception(exc)
            return
        if isinstance(result, Future):
            result.add_done_callback(lambda inner: _forward(inner, chained))
        else:
            chained.set_result(result)

    value.add_done_callback(done)
    return chained


@dataclass(frozen=True)
class RetryResult:
    """Outcome of a retry decision.

    Use the ``RETRY`` and ``DO_NOT_RETRY`` constants or the
    ``retry_with_delay`` and ``do_not_retry_with_error`` constructors.

    Attributes:
        should_retry: Whether the request should be sent again.
        delay: Seconds to wait before retrying, if any.
        error: Replacement terminal error when not retrying, if any.

    Example:
        ```pycon
        >>> from arestream.interceptor import RetryResult
        >>> RetryResult.retry_with_delay(1.5).delay
        1.5
        >>> RetryResult.DO_NOT_RETRY.should_retry
        False

        ```
    """

    should_retry: bool
    delay: float | None = None
    error: Exception | None = None

    RETRY: ClassVar[RetryResult]
    DO_NOT_RETRY: ClassVar[RetryResult]

    @property
    def is_decisive(self) -> bool:
        """Whether this result ends the retrier chain."""
        return self.should_retry or self.error is not None

    @classmethod
    def retry_with_delay(cls, delay: float) -> RetryResult:
        if delay < 0:
            msg = f"delay must be >= 0, got {delay}"
            raise ValueError(msg)
        return cls(should_retry=True, delay=delay)

    @classmethod
    def do_not_retry_with_error(cls, error: Exception) -> RetryResult:
        return cls(should_retry=False, error=error)


RetryResult.RETRY = RetryResult(should_retry=True)
RetryResult.DO_NOT_RETRY = RetryResult(should_retry=False)


class RequestAdapter:
    """Base class for objects adapting outgoing requests."""

    def adapt(
        self, request: httpx.Request, session: Session  # noqa: ARG002
    ) -> httpx.Request | Future[httpx.Request]:
        """Return the request to send in place of ``request``."""
        return request


class RequestRetrier:
    """Base class for objects deciding whether to retry failed requests."""

    def retry(
        self,
        request: DataStreamRequest,  # noqa: ARG002
        session: Session,  # noqa: ARG002
        error: Exception,  # noqa: ARG002
    ) -> RetryResult | Future[RetryResult]:
        """Decide whether ``request``, which failed with ``error``, is retried."""
        return RetryResult.DO_NOT_RETRY


class RequestInterceptor(RequestAdapter, RequestRetrier):
    """Base class for objects that both adapt and retry requests.

    The default implementation sends requests unchanged and never retries.
    """


class Adapter(RequestInterceptor):
    """Adapter built from a plain callable ``(request, session) -> request``."""

    def __init__(
        self, func: Callable[[httpx.Request, Session], httpx.Request | Future[httpx.Request]]
    ) -> None:
        self.func = func

    def adapt(
        self, request: httpx.Request, session: Session
    ) -> httpx.Request | Future[httpx.Request]:
        return self.func(request, session)


class Retrier(RequestInterceptor):
    """Retrier built from a plain callable ``(request, session, error) -> RetryResult``."""

    def __init__(
        self,
        func: Callable[
            [DataStreamRequest, Session, Exception], RetryResult | Future[RetryResult]
        ],
    ) -> None:
        self.func = func

    def retry(
        self, request: DataStreamRequest, session: Session, error: Exception
    ) -> RetryResult | Future[RetryResult]:
        return self.func(request, session, error)


def _as_adapter(obj: Any) -> RequestAdapter:
    if hasattr(obj, "adapt"):
        return obj
    if callable(obj):
        return Adapter(obj)
    msg = f"expected an adapter or a callable, got {obj!r}"
    raise TypeError(msg)


def _as_retrier(obj: Any) -> RequestRetrier:
    if hasattr(obj, "retry"):
        return obj
    if callable(obj):
        return Retrier(obj)
    msg = f"expected a retrier or a callable, got {obj!r}"
    raise TypeError(msg)


class Interceptor(RequestInterceptor):
    """Ordered composition of adapters and retriers.

    Adapters run in order, each receiving the output of the previous one.
    Retriers run in order until one returns a decisive result (a retry, or a
    refusal carrying a replacement error); ``DO_NOT_RETRY`` passes the
    decision on to the next retrier.

    When a hook returns a pending future, the composition returns a future
    as well and the remaining hooks run once it resolves, on the thread
    resolving it.

    Args:
        adapter: Optional single adapter (object or callable).
        retrier: Optional single retrier (object or callable).
        adapters: Additional adapters.
        retriers: Additional retriers.
        interceptors: Interceptors contributing both an adapter and a retrier.
    """

    def __init__(
        self,
        adapter: RequestAdapter | Callable | None = None,
        retrier: RequestRetrier | Callable | None = None,
        *,
        adapters: Iterable[RequestAdapter | Callable] = (),
        retriers: Iterable[RequestRetrier | Callable] = (),
        interceptors: Iterable[RequestInterceptor] = (),
    ) -> None:
        interceptors = list(interceptors)
        self.adapters: list[RequestAdapter] = [
            _as_adapter(a) for a in ([adapter] if adapter is not None else []) + list(adapters)
        ]
        self.adapters.extend(i for i in interceptors if hasattr(i, "adapt"))
        self.retriers: list[RequestRetrier] = [
            _as_retrier(r) for r in ([retrier] if retrier is not None else []) + list(retriers)
        ]
        self.retriers.extend(i for i in interceptors if hasattr(i, "retry"))

    def adapt(
        self, request: httpx.Request, session: Session
    ) -> httpx.Request | Future[httpx.Request]:
        return self._adapt_from(0, request, session)

    def _adapt_from(
        self, start: int, request: httpx.Request, session: Session
    ) -> httpx.Request | Future[httpx.Request]:
        for index in range(start, len(self.adapters)):
            adapted = self.adapters[index].adapt(request, session)
            if isinstance(adapted, Future) and not adapted.done():
                return _then(
                    adapted, lambda value, index=index: self._adapt_from(index + 1, value, session)
                )
            request = resolve(adapted)
        return request

    def retry(
        self, request: DataStreamRequest, session: Session, error: Exception
    ) -> RetryResult | Future[RetryResult]:
        return self._retry_from(0, request, session, error)

    def _retry_from(
        self, start: int, request: DataStreamRequest, session: Session, error: Exception
    ) -> RetryResult | Future[RetryResult]:
        for index in range(start, len(self.retriers)):
            result = self.retriers[index].retry(request, session, error)
            if isinstance(result, Future) and not result.done():
                return _then(
                    result,
                    lambda value, index=index: value
                    if value.is_decisive
                    else self._retry_from(index + 1, request, session, error),
                )
            result = resolve(result)
            if result.is_decisive:
                return result
        return RetryResult.DO_NOT_RETRY


# Methods that may be re-sent without changing server state
IDEMPOTENT_METHODS = frozenset({"DELETE", "GET", "HEAD", "OPTIONS", "PUT", "TRACE"})

# 408: Request Timeout, 429: Too Many Requests, 5xx: transient server errors
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# httpx transport failures that are not worth retrying
NON_RETRYABLE_TRANSPORT_ERRORS = (httpx.UnsupportedProtocol, httpx.LocalProtocolError)


class RetryPolicy(RequestInterceptor):
    r"""Retrier with backoff for transient failures.

    A failed request is retried when all of the following hold:

    - fewer than ``retry_limit`` retries were already performed,
    - its method is in ``retryable_methods``,
    - the failure is retryable: a response error whose status code is in
      ``retryable_status_codes``, or a transport error other than
      ``httpx.UnsupportedProtocol`` and ``httpx.LocalProtocolError``.

    ``retry_if``, when given, replaces the last check. It receives
    ``(response, error)`` and returns whether to retry.

    The delay comes from the response's ``Retry-After`` header when present,
    otherwise from ``backoff``; it is capped at ``max_wait_time`` and then
    increased by up to ``jitter_factor`` of itself.

    Args:
        retry_limit: Maximum number of retries. Must be >= 0.
        backoff: Backoff strategy. Defaults to ``ExponentialBackoff()``.
        jitter_factor: Random jitter fraction added to delays. Must be >= 0.
        max_wait_time: Optional cap on a single delay, in seconds.
        retryable_methods: HTTP methods that may be retried.
        retryable_status_codes: Response status codes that may be retried.
        retry_if: Optional custom predicate.

    Example:
        ```pycon
        >>> from arestream.interceptor import RetryPolicy
        >>> policy = RetryPolicy(retry_limit=3)
        >>> policy.retry_limit
        3
        >>> "POST" in policy.retryable_methods
        False

        ```
    """

    def __init__(
        self,
        retry_limit: int = 2,
        backoff: BackoffStrategy | None = None,
        *,
        jitter_factor: float = 0.0,
        max_wait_time: float | None = None,
        retryable_methods: Iterable[str] = IDEMPOTENT_METHODS,
        retryable_status_codes: Iterable[int] = RETRYABLE_STATUS_CODES,
        retry_if: Callable[[httpx.Response | None, Exception], bool] | None = None,
    ) -> None:
        if retry_limit < 0:
            msg = f"retry_limit must be >= 0, got {retry_limit}"
            raise ValueError(msg)
        if jitter_factor < 0:
            msg = f"jitter_factor must be >= 0, got {jitter_factor}"
            raise ValueError(msg)
        if max_wait_time is not None and max_wait_time <= 0:
            msg = f"max_wait_time must be > 0, got {max_wait_time}"
            raise ValueError(msg)
        self.retry_limit = retry_limit
        self.backoff = backoff if backoff is not None else ExponentialBackoff()
        self.jitter_factor = jitter_factor
        self.max_wait_time = max_wait_time
        self.retryable_methods = frozenset(m.upper() for m in retryable_methods)
        self.retryable_status_codes = frozenset(retryable_status_codes)
        self.retry_if = retry_if

    def should_retry(self, method: str, error: Exception) -> bool:
        """Return whether a request using ``method`` that failed with
        ``error`` is eligible for a retry, ignoring the retry limit."""
        if method.upper() not in self.retryable_methods:
            return False
        response = error.response if isinstance(error, StreamRequestError) else None
        if self.retry_if is not None:
            return self.retry_if(response, error)
        if isinstance(error, TransportError):
            return not isinstance(error.cause, NON_RETRYABLE_TRANSPORT_ERRORS)
        return response is not None and response.status_code in self.retryable_status_codes

    def calculate_delay(self, retry_count: int, response: httpx.Response | None) -> float:
        delay = retry_after_delay(response)
        if delay is None:
            delay = self.backoff.calculate(retry_count)
        else:
            logger.debug(f"Using Retry-After header value: {delay:.2f}s")
        if self.max_wait_time is not None:
            delay = min(delay, self.max_wait_time)
        if self.jitter_factor > 0:
            delay += random.uniform(0, self.jitter_factor) * delay  # noqa: S311
        return delay

    def retry(self, request: DataStreamRequest, session: Session, error: Exception) -> RetryResult:  # noqa: ARG002
        if request.retry_count >= self.retry_limit:
            logger.debug(f"Request {request.id}: retry limit {self.retry_limit} reached")
            return RetryResult.DO_NOT_RETRY
        method = request.request.method if request.request is not None else "GET"
        if not self.should_retry(method, error):
            return RetryResult.DO_NOT_RETRY
        response = error.response if isinstance(error, StreamRequestError) else None
        return RetryResult.retry_with_delay(self.calculate_delay(request.retry_count, response))
