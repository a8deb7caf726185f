r"""Unit tests for Retry-After header parsing utilities."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import Mock, patch

import httpx
import pytest

from arestream.utils import parse_retry_after, retry_after_delay

#######################################
#     Tests for parse_retry_after     #
#######################################


@pytest.mark.parametrize(
    ("header", "seconds"), [("1", 1.0), ("0", 0.0), ("120", 120.0), (" 3600 ", 3600.0)]
)
def test_parse_retry_after_seconds(header: str, seconds: float) -> None:
    """Test parsing Retry-After header with delay-seconds."""
    assert parse_retry_after(header) == seconds


@pytest.mark.parametrize("header", [None, "invalid", "not a number", "1.2.3", "-5"])
def test_parse_retry_after_none(header: str | None) -> None:
    """Test that missing, negative or invalid values give None."""
    assert parse_retry_after(header) is None


def test_parse_retry_after_http_date() -> None:
    """Test parsing Retry-After header with HTTP-date format."""
    mock_datetime = Mock(
        spec=datetime,
        now=Mock(
            return_value=datetime(
                year=2015, month=10, day=21, hour=7, minute=28, second=0, tzinfo=timezone.utc
            )
        ),
    )
    with patch("arestream.utils.retry_after.datetime", mock_datetime):
        result = parse_retry_after("Wed, 21 Oct 2015 07:29:00 GMT")
    assert result is not None
    assert 59.0 <= result <= 61.0


def test_parse_retry_after_http_date_in_past() -> None:
    """Test that HTTP-dates in the past give 0."""
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


#######################################
#     Tests for retry_after_delay     #
#######################################


def test_retry_after_delay() -> None:
    """Test reading the delay from a response header."""
    response = httpx.Response(503, headers={"Retry-After": "7"})
    assert retry_after_delay(response) == 7.0


def test_retry_after_delay_missing_header() -> None:
    """Test that responses without the header give None."""
    assert retry_after_delay(httpx.Response(503)) is None


def test_retry_after_delay_no_response() -> None:
    """Test that a missing response gives None."""
    assert retry_after_delay(None) is None
