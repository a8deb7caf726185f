r"""Shared test helpers for streaming request tests.

This module contains the mock HTTP routes served through
``httpx.MockTransport`` and an event collector used as a stream handler.
"""

from __future__ import annotations

__all__ = [
    "BASE_URL",
    "JSON_BODY",
    "TEXT_BODY",
    "XML_BODY",
    "EventCollector",
    "chunked",
    "make_bytes",
    "route_handler",
]

import json
import threading
from typing import TYPE_CHECKING, Any

import httpx

from arestream.events import Complete, Stream

if TYPE_CHECKING:
    from collections.abc import Iterator

    from arestream.events import Completion, StreamEvent, StreamResult

BASE_URL = "https://example.test"

JSON_BODY = b'{"one": "one", "two": 2, "three": true}'

TEXT_BODY = "streaming café über 日本語"

XML_BODY = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b'<slideshow title="Sample Slide Show" author="Yours Truly">'
    b'<slide type="all"><title>Wake up to WonderWidgets!</title></slide>'
    b'<slide type="all"><title>Overview</title></slide>'
    b"</slideshow>"
)


def make_bytes(count: int) -> bytes:
    """Return ``count`` deterministic bytes."""
    return bytes(i % 256 for i in range(count))


def chunked(data: bytes, size: int) -> Iterator[bytes]:
    """Yield ``data`` in chunks of at most ``size`` bytes."""
    for start in range(0, len(data), size):
        yield data[start : start + size]


def route_handler(request: httpx.Request) -> httpx.Response:
    r"""Serve a small httpbin-like set of routes.

    - ``/bytes/<n>``: ``n`` bytes streamed in chunks of 100 bytes
    - ``/status/<code>``: an empty response with the given status
    - ``/json``: a single JSON object without a trailing newline
    - ``/stream/<n>``: ``n`` newline-delimited JSON objects, split mid-line
    - ``/text``: UTF-8 text with multi-byte characters split across chunks
    - ``/xml``: a small XML document
    - ``/headers``: the request headers as a JSON object
    """
    parts = request.url.path.strip("/").split("/")
    if parts[0] == "bytes":
        return httpx.Response(
            200,
            headers={"Content-Type": "application/octet-stream"},
            content=chunked(make_bytes(int(parts[1])), 100),
        )
    if parts[0] == "status":
        status_code = int(parts[1])
        headers = {}
        if status_code == 401:
            headers["WWW-Authenticate"] = 'Basic realm="example"'
        return httpx.Response(status_code, headers=headers)
    if parts[0] == "json":
        return httpx.Response(
            200, headers={"Content-Type": "application/json"}, content=JSON_BODY
        )
    if parts[0] == "stream":
        body = b"".join(
            json.dumps({"id": i, "url": str(request.url)}).encode() + b"\n"
            for i in range(int(parts[1]))
        )
        return httpx.Response(
            200, headers={"Content-Type": "application/json"}, content=chunked(body, 7)
        )
    if parts[0] == "text":
        return httpx.Response(
            200,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            content=chunked(TEXT_BODY.encode("utf-8"), 3),
        )
    if parts[0] == "xml":
        return httpx.Response(
            200, headers={"Content-Type": "application/xml"}, content=chunked(XML_BODY, 16)
        )
    if parts[0] == "headers":
        return httpx.Response(200, json={"headers": dict(request.headers)})
    return httpx.Response(404)


class EventCollector:
    """Stream handler recording every event it receives.

    Example:
        >>> collector = EventCollector()
        >>> request.on_stream(collector)  # doctest: +SKIP
        >>> collector.wait()  # doctest: +SKIP
    """

    def __init__(self) -> None:
        self.events: list[StreamEvent[Any]] = []
        self.threads: list[str] = []
        self.first_stream = threading.Event()
        self._done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, event: StreamEvent[Any]) -> None:
        with self._lock:
            self.events.append(event)
            self.threads.append(threading.current_thread().name)
        if isinstance(event, Stream):
            self.first_stream.set()
        elif isinstance(event, Complete):
            self._done.set()

    def wait(self, timeout: float = 5.0) -> bool:
        """Wait until the ``Complete`` event is received."""
        return self._done.wait(timeout)

    @property
    def results(self) -> list[StreamResult[Any]]:
        with self._lock:
            return [e.result for e in self.events if isinstance(e, Stream)]

    @property
    def values(self) -> list[Any]:
        return [r.value for r in self.results if r.is_success]

    @property
    def completions(self) -> list[Completion]:
        with self._lock:
            return [e.completion for e in self.events if isinstance(e, Complete)]

    @property
    def completion(self) -> Completion:
        return self.completions[-1]
