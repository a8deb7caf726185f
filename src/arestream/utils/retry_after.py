r"""Parsing of the ``Retry-After`` response header (RFC 9110)."""

from __future__ import annotations

__all__ = ["parse_retry_after", "retry_after_delay"]

import logging
from contextlib import suppress
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

logger: logging.Logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header value into seconds.

    Both delay-seconds (``"120"``) and HTTP-date forms are accepted. Dates
    in the past give ``0.0``; negative or unparsable values give ``None``.

    Args:
        value: The raw header value, or None if absent.

    Returns:
        The number of seconds to wait, or None.

    Example:
        ```pycon
        >>> from arestream.utils.retry_after import parse_retry_after
        >>> parse_retry_after("120")
        120.0
        >>> parse_retry_after("soon") is None
        True
        >>> parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT")
        0.0

        ```
    """
    if value is None:
        return None
    value = value.strip()

    with suppress(ValueError):
        seconds = float(value)
        return seconds if seconds >= 0 else None

    try:
        retry_date = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError, OverflowError):
        logger.debug(f"Ignoring unparsable Retry-After header: {value!r}")
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_date - datetime.now(timezone.utc)).total_seconds())


def retry_after_delay(response: httpx.Response | None) -> float | None:
    """Return the ``Retry-After`` delay advertised by ``response``, if any."""
    if response is None:
        return None
    return parse_retry_after(response.headers.get("Retry-After"))
