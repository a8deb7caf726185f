r"""Utility helpers: ``Retry-After`` parsing and structured logging."""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_request_id",
    "get_request_id",
    "log_structured",
    "parse_retry_after",
    "retry_after_delay",
    "set_request_id",
]

from arestream.utils.retry_after import parse_retry_after, retry_after_delay
from arestream.utils.structured_logging import (
    StructuredFormatter,
    clear_request_id,
    get_request_id,
    log_structured,
    set_request_id,
)
