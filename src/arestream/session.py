r"""Session creating and executing streaming requests.

A ``Session`` owns the ``httpx.Client`` used by the transport, the worker
threads executing requests, the default delivery executor on which stream
handlers run, and the event monitors notified of every lifecycle step.
"""

from __future__ import annotations

__all__ = ["MAIN_THREAD_NAME_PREFIX", "Session"]

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

import httpx

from arestream.core.config import SessionConfig
from arestream.interceptor import Interceptor
from arestream.monitor import CompositeEventMonitor
from arestream.request import DataStreamRequest

if TYPE_CHECKING:
    from collections.abc import Iterable
    from concurrent.futures import Executor
    from types import TracebackType
    from typing import Self

    from arestream.interceptor import RequestInterceptor

logger: logging.Logger = logging.getLogger(__name__)

# Thread name prefix of the default delivery executor
MAIN_THREAD_NAME_PREFIX = "arestream-main"

TRANSPORT_THREAD_NAME_PREFIX = "arestream-transport"


class Session:
    r"""Factory and owner of streaming requests.

    The ``httpx.Client`` is created from ``config`` when not given, in which
    case the session closes it on ``close()``. A client passed in is left
    open for the caller to manage.

    Stream handlers run on ``delivery_executor`` unless a consumer chooses
    its own executor. The default is a single-thread executor, so all
    handlers using it are invoked one at a time in submission order.

    Args:
        config: Optional session configuration. Defaults to ``SessionConfig()``.
        client: Optional ``httpx.Client`` used by the transport.
        interceptor: Optional interceptor applied to every request.
        event_monitors: Monitors notified of every lifecycle event.
        delivery_executor: Optional default executor for stream handlers.

    Example:
        ```pycon
        >>> from arestream import Session, SessionConfig
        >>> with Session(config=SessionConfig(chunk_size=1024)) as session:  # doctest: +SKIP
        ...     request = session.stream_request("GET", "https://httpbin.org/stream/5")
        ...     request.on_stream_decodable(print).wait(10)
        ...

        ```
    """

    def __init__(
        self,
        *,
        config: SessionConfig | None = None,
        client: httpx.Client | None = None,
        interceptor: RequestInterceptor | None = None,
        event_monitors: Iterable[Any] = (),
        delivery_executor: Executor | None = None,
    ) -> None:
        self.config: SessionConfig = config or SessionConfig()
        self._close_client = client is None
        self.client: httpx.Client = client or httpx.Client(
            timeout=self.config.timeout, follow_redirects=self.config.follow_redirects
        )
        self.interceptor = interceptor
        self.event_monitor = CompositeEventMonitor(event_monitors)
        self._shutdown_delivery_executor = delivery_executor is None
        self.delivery_executor: Executor = delivery_executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=MAIN_THREAD_NAME_PREFIX
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=TRANSPORT_THREAD_NAME_PREFIX,
        )
        self._lock = threading.Lock()
        self._requests: dict[Any, DataStreamRequest] = {}
        self._closed = False

    def __repr__(self) -> str:
        return f"Session(config={self.config}, active_requests={len(self.requests)})"

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def is_closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def requests(self) -> list[DataStreamRequest]:
        """Snapshot of the requests that have not finished yet."""
        with self._lock:
            return list(self._requests.values())

    def stream_request(
        self,
        method_or_request: str | httpx.Request,
        url: httpx.URL | str | None = None,
        *,
        interceptor: RequestInterceptor | None = None,
        **kwargs: Any,
    ) -> DataStreamRequest:
        r"""Create a streaming request.

        The request starts when its first consumer is registered, unless
        ``config.start_requests_immediately`` is ``False``, in which case
        ``resume()`` must be called.

        Args:
            method_or_request: An HTTP method, or a prepared ``httpx.Request``.
            url: The URL to request. Required when a method is given.
            interceptor: Optional interceptor for this request. It runs after
                the session interceptor.
            **kwargs: Keyword arguments forwarded to
                ``httpx.Client.build_request()`` (``params``, ``headers``,
                ``json``, ...).

        Returns:
            The new request, in the ``INITIALIZED`` state.

        Raises:
            RuntimeError: If the session is closed.
            ValueError: If a method is given without a URL.
        """
        if isinstance(method_or_request, httpx.Request):
            if url is not None or kwargs:
                msg = "url and request arguments cannot be combined with an httpx.Request"
                raise ValueError(msg)
            url_request = method_or_request
        else:
            if url is None:
                msg = f"a URL is required for a {method_or_request} request"
                raise ValueError(msg)
            url_request = self.client.build_request(method_or_request, url, **kwargs)

        request = DataStreamRequest(self, url_request, self._combine(interceptor))
        with self._lock:
            if self._closed:
                msg = "cannot create a request on a closed session"
                raise RuntimeError(msg)
            self._requests[request.id] = request
        logger.debug(f"Created {request!r}")
        return request

    def _combine(self, interceptor: RequestInterceptor | None) -> RequestInterceptor | None:
        if self.interceptor is None:
            return interceptor
        if interceptor is None:
            return self.interceptor
        return Interceptor(interceptors=[self.interceptor, interceptor])

    def _perform(self, request: DataStreamRequest) -> None:
        try:
            self._executor.submit(request._run)
        except RuntimeError:
            logger.debug(f"Cannot start {request!r}: the session is closed")
            request.cancel()

    def _request_did_finish(self, request: DataStreamRequest) -> None:
        with self._lock:
            self._requests.pop(request.id, None)

    def cancel_all(self) -> None:
        """Cancel every request that has not finished yet."""
        for request in self.requests:
            request.cancel()

    def close(self) -> None:
        """Cancel in-flight requests and release the session resources.

        Handlers already scheduled on the default delivery executor still
        run before this method returns.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.cancel_all()
        self._executor.shutdown(wait=True)
        if self._shutdown_delivery_executor:
            self.delivery_executor.shutdown(wait=True)
        if self._close_client:
            self.client.close()
        logger.debug("Session closed")
