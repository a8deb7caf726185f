r"""Unit tests for Session."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING
from unittest.mock import Mock

import httpx
import pytest

from arestream import (
    DataStreamRequest,
    ExplicitlyCancelledError,
    RequestState,
    Session,
    SessionConfig,
)
from arestream.interceptor import Interceptor
from tests.helpers import BASE_URL, EventCollector, make_bytes, route_handler

if TYPE_CHECKING:
    from collections.abc import Callable


def header_adapter(name: str, value: str) -> Interceptor:
    def adapt(request: httpx.Request, session: Session) -> httpx.Request:  # noqa: ARG001
        request.headers[name] = value
        return request

    return Interceptor(adapter=adapt)


#############################
#     Tests for Session     #
#############################


def test_session_defaults() -> None:
    """Test that a session creates and owns its client."""
    session = Session()
    try:
        assert isinstance(session.config, SessionConfig)
        assert isinstance(session.client, httpx.Client)
        assert session.client.follow_redirects
        assert session.interceptor is None
        assert session.event_monitor.monitors == ()
    finally:
        session.close()
    assert session.is_closed
    assert session.client.is_closed


def test_session_does_not_close_external_client() -> None:
    """Test that a client passed in is left open."""
    with httpx.Client(transport=httpx.MockTransport(route_handler)) as client:
        with Session(client=client) as session:
            assert session.client is client
        assert not client.is_closed


def test_session_does_not_shut_down_external_executor() -> None:
    """Test that a delivery executor passed in is left running."""
    with ThreadPoolExecutor(max_workers=1) as executor:
        Session(delivery_executor=executor).close()
        assert executor.submit(lambda: 42).result() == 42


def test_session_stream_request(session: Session) -> None:
    """Test creating a request from a method and a URL."""
    request = session.stream_request("GET", "/bytes/10", params={"seed": 1})
    assert isinstance(request, DataStreamRequest)
    assert request.state == RequestState.INITIALIZED
    assert request.original_request.url == f"{BASE_URL}/bytes/10?seed=1"
    assert request.session is session
    assert session.requests == [request]


def test_session_stream_request_httpx_request(session: Session) -> None:
    """Test creating a request from a prepared httpx.Request."""
    url_request = httpx.Request("GET", f"{BASE_URL}/bytes/64")
    collector = EventCollector()
    request = session.stream_request(url_request).on_stream(collector)
    assert request.original_request is url_request
    assert collector.wait()
    assert b"".join(collector.values) == make_bytes(64)


def test_session_stream_request_missing_url(session: Session) -> None:
    """Test that a method without URL is rejected."""
    with pytest.raises(ValueError, match="a URL is required for a GET request"):
        session.stream_request("GET")


def test_session_stream_request_httpx_request_with_kwargs(session: Session) -> None:
    """Test that request arguments cannot be combined with an httpx.Request."""
    with pytest.raises(ValueError, match="cannot be combined"):
        session.stream_request(httpx.Request("GET", BASE_URL), params={"a": 1})


def test_session_stream_request_closed(session: Session) -> None:
    """Test that closed sessions refuse new requests."""
    session.close()
    with pytest.raises(RuntimeError, match="closed session"):
        session.stream_request("GET", "/bytes/10")


def test_session_requests_registry(session: Session) -> None:
    """Test that finished requests leave the registry."""
    collector = EventCollector()
    request = session.stream_request("GET", "/bytes/10").on_stream(collector)
    assert request.wait(5)
    assert session.requests == []


def test_session_start_requests_immediately(manual_session: Session) -> None:
    """Test that requests wait for resume when configured so."""
    collector = EventCollector()
    request = manual_session.stream_request("GET", "/bytes/10").on_stream(collector)
    assert not collector.wait(0.1)
    assert request.state == RequestState.INITIALIZED
    request.resume()
    assert collector.wait()


def test_session_combines_interceptors(make_session: Callable[..., Session]) -> None:
    """Test that the session interceptor runs before the request interceptor."""
    session = make_session(interceptor=header_adapter("X-Order", "session"))
    collector = EventCollector()
    session.stream_request(
        "GET", "/headers", interceptor=header_adapter("X-Request", "request")
    ).on_stream_decodable(collector)
    assert collector.wait()
    headers = collector.values[0]["headers"]
    assert headers["x-order"] == "session"
    assert headers["x-request"] == "request"


def test_session_event_monitors(make_session: Callable[..., Session]) -> None:
    """Test that every monitor is notified."""
    monitors = [Mock(), Mock()]
    session = make_session(event_monitors=monitors)
    collector = EventCollector()
    request = session.stream_request("GET", "/bytes/10").on_stream(collector)
    assert collector.wait()
    for monitor in monitors:
        monitor.request_did_resume.assert_called_once_with(request)
        monitor.request_did_finish.assert_called_once_with(request)


def test_session_cancel_all(manual_session: Session) -> None:
    """Test cancelling every pending request."""
    collectors = [EventCollector() for _ in range(3)]
    for collector in collectors:
        manual_session.stream_request("GET", "/bytes/10").on_stream(collector)
    manual_session.cancel_all()
    for collector in collectors:
        assert collector.wait()
        assert isinstance(collector.completion.error, ExplicitlyCancelledError)
    assert manual_session.requests == []


def test_session_close_cancels_requests(manual_session: Session) -> None:
    """Test that closing the session completes pending requests."""
    collector = EventCollector()
    manual_session.stream_request("GET", "/bytes/10").on_stream(collector)
    manual_session.close()
    assert collector.wait(0)
    assert isinstance(collector.completion.error, ExplicitlyCancelledError)


def test_session_context_manager(make_session: Callable[..., Session]) -> None:
    """Test that leaving the context closes the session."""
    with make_session() as session:
        assert not session.is_closed
    assert session.is_closed
