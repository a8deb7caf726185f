r"""Structured (JSON) logging for request lifecycle records.

Records emitted by ``LoggingEventMonitor`` carry their fields through the
``extra`` mapping. ``StructuredFormatter`` renders every record as one JSON
object per line and attaches the request id bound to the current context,
which lets log aggregators group all records of one streaming request.

Example:
    ```python
    import logging
    from arestream.utils.structured_logging import StructuredFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.getLogger("arestream").addHandler(handler)
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_request_id",
    "get_request_id",
    "log_structured",
    "set_request_id",
]

import contextvars
import json
import logging
import time
from typing import Any

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "arestream_request_id", default=None
)

# Attributes every LogRecord has; anything else came from ``extra``.
_RESERVED_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def get_request_id() -> str | None:
    """Get the request id bound to the current context.

    Example:
        ```pycon
        >>> from arestream.utils.structured_logging import (
        ...     clear_request_id,
        ...     get_request_id,
        ...     set_request_id,
        ... )
        >>> set_request_id("req-1")
        >>> get_request_id()
        'req-1'
        >>> clear_request_id()
        >>> get_request_id() is None
        True

        ```
    """
    return _request_id.get()


def set_request_id(request_id: str) -> None:
    """Bind ``request_id`` to the current context."""
    _request_id.set(request_id)


def clear_request_id() -> None:
    """Unbind the request id of the current context."""
    _request_id.set(None)


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    The output always contains ``timestamp`` (ISO 8601, UTC, milliseconds),
    ``level``, ``logger``, ``message``, ``module``, ``function``, ``line``
    and ``thread``. ``request_id`` is added when one is bound to the context
    and not already supplied through ``extra``. Extra fields are copied
    verbatim; values JSON cannot encode are rendered with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }
        request_id = get_request_id()
        if request_id is not None:
            log_data["request_id"] = request_id
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRIBUTES:
                log_data[key] = value
        return json.dumps(log_data, default=str)

    def formatTime(  # noqa: N802
        self, record: logging.LogRecord, datefmt: str | None = None  # noqa: ARG002
    ) -> str:
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_structured(logger: logging.Logger, level: int, message: str, **extra: Any) -> None:
    """Log ``message`` with ``extra`` as structured fields.

    Example:
        ```pycon
        >>> import logging
        >>> from io import StringIO
        >>> from arestream.utils.structured_logging import StructuredFormatter, log_structured
        >>> stream = StringIO()
        >>> handler = logging.StreamHandler(stream)
        >>> handler.setFormatter(StructuredFormatter())
        >>> logger = logging.getLogger("doctest_structured")
        >>> logger.addHandler(handler)
        >>> logger.setLevel(logging.DEBUG)
        >>> log_structured(logger, logging.INFO, "request finished", status_code=200)
        >>> '"status_code": 200' in stream.getvalue()
        True

        ```
    """
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=extra)
