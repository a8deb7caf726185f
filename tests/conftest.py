from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from arestream import Session, SessionConfig
from tests.helpers import route_handler

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


@pytest.fixture
def make_session() -> Generator[Callable[..., Session], None, None]:
    """Create sessions backed by ``httpx.MockTransport`` and close them
    at teardown.

    The factory takes the mock handler (defaults to ``route_handler``) and
    keyword arguments forwarded to ``Session``.

    Example:
        >>> def test_stream(make_session):
        ...     session = make_session(start_requests_immediately=False)
    """
    sessions = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response] = route_handler,
        *,
        config: SessionConfig | None = None,
        **kwargs,
    ) -> Session:
        client = httpx.Client(
            transport=httpx.MockTransport(handler), base_url="https://example.test"
        )
        session = Session(config=config, client=client, **kwargs)
        sessions.append((session, client))
        return session

    yield factory

    for session, client in sessions:
        session.close()
        client.close()


@pytest.fixture
def session(make_session: Callable[..., Session]) -> Session:
    """Create a session serving ``route_handler`` routes."""
    return make_session()


@pytest.fixture
def manual_session(make_session: Callable[..., Session]) -> Session:
    """Create a session whose requests must be resumed explicitly."""
    return make_session(config=SessionConfig(start_requests_immediately=False))
