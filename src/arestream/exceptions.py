r"""Exception hierarchy for streaming HTTP requests.

Every error surfaced through a ``Completion`` or a failed ``StreamResult``
is a ``StreamRequestError``. The subclasses identify where in the request
lifecycle the failure happened, which in turn decides how it is handled:

- ``TransportError``, ``ResponseValidationError`` and
  ``RequestAdaptationError`` are terminal for the current attempt and are
  offered to the retry policy.
- ``DecodingError`` only affects a single decoded unit and is delivered to
  the consumer as a failed stream result.
- ``ExplicitlyCancelledError`` is terminal and never retried.
"""

from __future__ import annotations

__all__ = [
    "DecodingError",
    "ExplicitlyCancelledError",
    "RequestAdaptationError",
    "RequestRetryError",
    "ResponseValidationError",
    "StreamRequestError",
    "TransportError",
]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx


class StreamRequestError(Exception):
    r"""Base class for all errors raised by a streaming request.

    Args:
        message: A descriptive error message.
        request: The ``httpx.Request`` that was being executed, if any.
        response: The ``httpx.Response`` received, if any.
        cause: The underlying exception, if any.

    Example:
        ```pycon
        >>> from arestream.exceptions import StreamRequestError
        >>> err = StreamRequestError("stream failed")
        >>> err.message
        'stream failed'
        >>> err.response is None
        True

        ```
    """

    def __init__(
        self,
        message: str,
        *,
        request: httpx.Request | None = None,
        response: httpx.Response | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.request = request
        self.response = response
        self.cause = cause

    @property
    def status_code(self) -> int | None:
        """The status code of the attached response, if any."""
        if self.response is None:
            return None
        return self.response.status_code


class TransportError(StreamRequestError):
    r"""Raised when the underlying transport fails.

    This wraps ``httpx`` connection, timeout, protocol and stream errors.
    """


class ResponseValidationError(StreamRequestError):
    r"""Raised when a validator rejects a response.

    Example:
        ```pycon
        >>> import httpx
        >>> from arestream.exceptions import ResponseValidationError
        >>> err = ResponseValidationError(
        ...     "unacceptable status code 401", response=httpx.Response(401)
        ... )
        >>> err.status_code
        401

        ```
    """


class DecodingError(StreamRequestError):
    r"""Raised when a stream serializer fails to decode a single unit.

    Args:
        message: A descriptive error message.
        data: The raw bytes that could not be decoded.
        **kwargs: See ``StreamRequestError``.
    """

    def __init__(self, message: str, *, data: bytes = b"", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.data = data


class ExplicitlyCancelledError(StreamRequestError):
    r"""Raised when a request is cancelled by its owner."""

    def __init__(self, message: str = "request was explicitly cancelled", **kwargs) -> None:
        super().__init__(message, **kwargs)


class RequestAdaptationError(StreamRequestError):
    r"""Raised when an adapter fails to produce a request to send."""


class RequestRetryError(StreamRequestError):
    r"""Raised when a retrier itself fails while deciding on a retry.

    Args:
        message: A descriptive error message.
        underlying_error: The error that was being evaluated for retry.
        **kwargs: See ``StreamRequestError``.
    """

    def __init__(
        self, message: str, *, underlying_error: BaseException | None = None, **kwargs
    ) -> None:
        super().__init__(message, **kwargs)
        self.underlying_error = underlying_error
