r"""Response validators.

A validator is a callable ``(request, response) -> Exception | None``
invoked once the response head is received, before any body data is
delivered. Returning ``None`` accepts the response; returning (or raising)
an exception rejects it, which fails the attempt with a
``ResponseValidationError``.

Example:
    ```pycon
    >>> import httpx
    >>> from arestream.validation import acceptable_status_codes
    >>> validator = acceptable_status_codes(range(200, 300))
    >>> validator(None, httpx.Response(200)) is None
    True
    >>> validator(None, httpx.Response(401))
    ResponseValidationError('unacceptable status code 401')

    ```
"""

from __future__ import annotations

__all__ = [
    "Validator",
    "accept_header_validator",
    "acceptable_content_types",
    "acceptable_status_codes",
    "default_validators",
]

from typing import TYPE_CHECKING, Callable, Optional

import httpx

from arestream.exceptions import ResponseValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

Validator = Callable[[Optional[httpx.Request], httpx.Response], Optional[Exception]]

SUCCESS_STATUS_CODES = range(200, 300)


def acceptable_status_codes(status_codes: Iterable[int]) -> Validator:
    """Return a validator accepting only the given status codes."""
    accepted = status_codes if isinstance(status_codes, range) else frozenset(status_codes)

    def validate_status_code(
        request: httpx.Request | None, response: httpx.Response
    ) -> Exception | None:
        if response.status_code in accepted:
            return None
        return ResponseValidationError(
            f"unacceptable status code {response.status_code}",
            request=request,
            response=response,
        )

    return validate_status_code


def _mime_type(value: str) -> tuple[str, str] | None:
    media = value.split(";", 1)[0].strip().lower()
    if "/" not in media:
        return None
    type_, subtype = media.split("/", 1)
    return type_.strip(), subtype.strip()


def _matches(accepted: tuple[str, str], actual: tuple[str, str]) -> bool:
    if accepted == ("*", "*"):
        return True
    if accepted[0] != actual[0]:
        return False
    return accepted[1] in ("*", actual[1])


def acceptable_content_types(content_types: Iterable[str]) -> Validator:
    """Return a validator accepting responses whose ``Content-Type`` matches
    one of ``content_types``.

    Wildcards (``*/*``, ``text/*``) are supported. A response without a
    ``Content-Type`` is accepted when it declares an empty body or when
    ``*/*`` is acceptable.
    """
    accepted = [m for m in (_mime_type(t) for t in content_types) if m is not None]

    def validate_content_type(
        request: httpx.Request | None, response: httpx.Response
    ) -> Exception | None:
        if ("*", "*") in accepted:
            return None
        header = response.headers.get("Content-Type")
        if header is None:
            if response.headers.get("Content-Length") == "0":
                return None
            return ResponseValidationError(
                "response is missing a Content-Type", request=request, response=response
            )
        actual = _mime_type(header)
        if actual is not None and any(_matches(a, actual) for a in accepted):
            return None
        return ResponseValidationError(
            f"unacceptable content type {header!r}", request=request, response=response
        )

    return validate_content_type


def _accepted_types(request: httpx.Request | None) -> list[str]:
    if request is None:
        return []
    header = request.headers.get("Accept")
    if not header:
        return []
    return [part.strip() for part in header.split(",") if part.strip()]


def accept_header_validator(
    request: httpx.Request | None, response: httpx.Response
) -> Exception | None:
    """Accept responses whose content type matches the request's ``Accept``
    header; requests without one accept any content type."""
    accepted = _accepted_types(request)
    if not accepted:
        return None
    return acceptable_content_types(accepted)(request, response)


def default_validators() -> list[Validator]:
    """Return the validators installed by a bare ``validate()``: ``2xx``
    status codes, then the request's ``Accept`` header."""
    return [acceptable_status_codes(SUCCESS_STATUS_CODES), accept_header_validator]
