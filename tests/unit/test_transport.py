r"""Unit tests for the httpx transport task."""

from __future__ import annotations

import httpx
import pytest

from arestream.exceptions import ExplicitlyCancelledError, TransportError
from arestream.transport import TaskState, TransportTask
from tests.helpers import BASE_URL, make_bytes, route_handler


class RecordingDelegate:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.responses: list[httpx.Response] = []
        self.chunks: list[bytes] = []
        self.errors: list[Exception | None] = []

    def task_did_receive_response(self, task: TransportTask, response: httpx.Response) -> bool:  # noqa: ARG002
        self.responses.append(response)
        return self.accept

    def task_did_receive_data(self, task: TransportTask, data: bytes) -> None:  # noqa: ARG002
        self.chunks.append(data)

    def task_did_complete(self, task: TransportTask, error: Exception | None) -> None:  # noqa: ARG002
        self.errors.append(error)


@pytest.fixture
def client() -> httpx.Client:
    with httpx.Client(transport=httpx.MockTransport(route_handler)) as client:
        yield client


###################################
#     Tests for TransportTask     #
###################################


def test_transport_task_run(client: httpx.Client) -> None:
    """Test streaming a response to the delegate."""
    delegate = RecordingDelegate()
    task = TransportTask(client, httpx.Request("GET", f"{BASE_URL}/bytes/250"), delegate)
    assert task.state == TaskState.SUSPENDED
    task.run()
    assert task.state == TaskState.COMPLETED
    assert [response.status_code for response in delegate.responses] == [200]
    assert b"".join(delegate.chunks) == make_bytes(250)
    assert delegate.errors == [None]
    assert task.error is None
    assert task.metrics.status_code == 200
    assert task.metrics.bytes_received == 250
    assert task.metrics.chunks_received == len(delegate.chunks)
    assert task.metrics.duration is not None


def test_transport_task_chunk_size(client: httpx.Client) -> None:
    """Test that chunk_size re-chunks the body."""
    delegate = RecordingDelegate()
    TransportTask(
        client, httpx.Request("GET", f"{BASE_URL}/bytes/250"), delegate, chunk_size=64
    ).run()
    assert [len(chunk) for chunk in delegate.chunks] == [64, 64, 64, 58]


def test_transport_task_skip_body(client: httpx.Client) -> None:
    """Test that the body is not read when the delegate refuses it."""
    delegate = RecordingDelegate(accept=False)
    TransportTask(client, httpx.Request("GET", f"{BASE_URL}/bytes/250"), delegate).run()
    assert delegate.chunks == []
    assert delegate.errors == [None]


def test_transport_task_connection_error() -> None:
    """Test that httpx errors are wrapped in TransportError."""

    def handler(request: httpx.Request) -> httpx.Response:
        msg = "connection refused"
        raise httpx.ConnectError(msg, request=request)

    delegate = RecordingDelegate()
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        task = TransportTask(client, httpx.Request("GET", f"{BASE_URL}/"), delegate)
        task.run()
    assert delegate.responses == []
    error = delegate.errors[0]
    assert isinstance(error, TransportError)
    assert isinstance(error.cause, httpx.ConnectError)
    assert error.request is task.request
    assert task.error is error


def test_transport_task_stream_error() -> None:
    """Test that errors raised while reading the body are wrapped."""

    def body():
        yield b"abc"
        msg = "connection reset"
        raise httpx.ReadError(msg)

    delegate = RecordingDelegate()
    with httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=body()))
    ) as client:
        TransportTask(client, httpx.Request("GET", f"{BASE_URL}/"), delegate).run()
    assert delegate.chunks == [b"abc"]
    assert isinstance(delegate.errors[0], TransportError)
    assert delegate.errors[0].response.status_code == 200


def test_transport_task_cancel_before_run(client: httpx.Client) -> None:
    """Test that a task cancelled before running sends nothing."""
    delegate = RecordingDelegate()
    task = TransportTask(client, httpx.Request("GET", f"{BASE_URL}/bytes/10"), delegate)
    task.cancel()
    assert task.is_cancelled
    task.run()
    assert delegate.responses == []
    assert isinstance(delegate.errors[0], ExplicitlyCancelledError)


def test_transport_task_cancel_while_streaming(client: httpx.Client) -> None:
    """Test that cancelling stops the delivery of further chunks."""

    class CancellingDelegate(RecordingDelegate):
        def task_did_receive_data(self, task: TransportTask, data: bytes) -> None:
            super().task_did_receive_data(task, data)
            task.cancel()

    delegate = CancellingDelegate()
    TransportTask(client, httpx.Request("GET", f"{BASE_URL}/bytes/1000"), delegate).run()
    assert len(delegate.chunks) == 1
    assert isinstance(delegate.errors[0], ExplicitlyCancelledError)


def test_transport_task_cancel_while_sending() -> None:
    """Test that a response arriving after cancellation is closed without
    reaching the delegate."""
    tasks = []

    def handler(request: httpx.Request) -> httpx.Response:
        tasks[0].cancel()
        return route_handler(request)

    delegate = RecordingDelegate()
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        task = TransportTask(client, httpx.Request("GET", f"{BASE_URL}/bytes/10"), delegate)
        tasks.append(task)
        task.run()
    assert delegate.responses == []
    assert delegate.chunks == []
    assert isinstance(delegate.errors[0], ExplicitlyCancelledError)
    assert task.response.is_closed


def test_transport_task_ids_are_unique(client: httpx.Client) -> None:
    """Test that every task gets its own id."""
    request = httpx.Request("GET", f"{BASE_URL}/bytes/10")
    first = TransportTask(client, request, RecordingDelegate())
    second = TransportTask(client, request, RecordingDelegate(), attempt=2)
    assert first.id != second.id
    assert second.metrics.attempt == 2
