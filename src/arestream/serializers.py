r"""Incremental serializers turning raw byte chunks into typed values.

A serializer is fed every body chunk in arrival order through
``consume()`` and returns the values that became available. ``finish()``
flushes whatever is left once the body is complete. Each consumer gets its
own copy of a serializer, so buffered state is never shared, and the state
is reset whenever the request is retried.

Decoding failures are reported per unit as a failed ``StreamResult``; they
never abort the stream.

Example:
    ```pycon
    >>> import httpx
    >>> from arestream.serializers import DecodableStreamSerializer
    >>> serializer = DecodableStreamSerializer()
    >>> response = httpx.Response(200)
    >>> serializer.consume(b'{"a": 1}\n{"b"', response)
    [StreamResult(value={'a': 1}, error=None)]
    >>> serializer.consume(b': 2}\n', response)
    [StreamResult(value={'b': 2}, error=None)]

    ```
"""

from __future__ import annotations

__all__ = [
    "BaseStreamSerializer",
    "DecodableStreamSerializer",
    "PassthroughStreamSerializer",
    "StringStreamSerializer",
]

import codecs
import copy
import dataclasses
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from arestream.events import StreamResult
from arestream.exceptions import DecodingError

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ENCODING = "utf-8"


class BaseStreamSerializer(ABC, Generic[T]):
    """Abstract base class for stream serializers."""

    @abstractmethod
    def consume(self, chunk: bytes, response: httpx.Response | None) -> list[StreamResult[T]]:
        """Feed one chunk and return the units it completed.

        Args:
            chunk: The raw bytes received.
            response: The response the chunk belongs to.

        Returns:
            The decoded units, possibly empty.
        """

    def finish(self, response: httpx.Response | None) -> list[StreamResult[T]]:  # noqa: ARG002
        """Flush buffered data once the body is complete."""
        return []

    def reset(self) -> None:
        """Drop any buffered state."""

    def copy(self) -> BaseStreamSerializer[T]:
        """Return an independent serializer with a clean state."""
        clone = copy.copy(self)
        clone.reset()
        return clone


class PassthroughStreamSerializer(BaseStreamSerializer[bytes]):
    """Emit each chunk unchanged.

    Example:
        ```pycon
        >>> from arestream.serializers import PassthroughStreamSerializer
        >>> PassthroughStreamSerializer().consume(b"abc", None)
        [StreamResult(value=b'abc', error=None)]

        ```
    """

    def consume(self, chunk: bytes, response: httpx.Response | None) -> list[StreamResult[bytes]]:  # noqa: ARG002
        if not chunk:
            return []
        return [StreamResult.success(chunk)]


class StringStreamSerializer(BaseStreamSerializer[str]):
    """Decode chunks to text using the response's declared charset.

    Incomplete multi-byte sequences are buffered until the next chunk
    completes them. An undecodable sequence yields a failed result and the
    decoder restarts on the following chunk.

    Args:
        encoding: Encoding used when the response does not declare one.
            If ``force_encoding`` is set, it is always used.
        force_encoding: Whether to ignore the response charset.

    Example:
        ```pycon
        >>> from arestream.serializers import StringStreamSerializer
        >>> serializer = StringStreamSerializer()
        >>> serializer.consume("é".encode()[:1], None)
        []
        >>> serializer.consume("é".encode()[1:], None)
        [StreamResult(value='é', error=None)]

        ```
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING, force_encoding: bool = False) -> None:
        codecs.lookup(encoding)
        self.encoding = encoding
        self.force_encoding = force_encoding
        self._decoder: codecs.IncrementalDecoder | None = None

    def _resolve_encoding(self, response: httpx.Response | None) -> str:
        if self.force_encoding or response is None:
            return self.encoding
        charset = response.charset_encoding
        if charset is None:
            return self.encoding
        try:
            codecs.lookup(charset)
        except LookupError:
            logger.debug(f"Unknown response charset {charset!r}, using {self.encoding}")
            return self.encoding
        return charset

    def _get_decoder(self, response: httpx.Response | None) -> codecs.IncrementalDecoder:
        if self._decoder is None:
            self._decoder = codecs.getincrementaldecoder(self._resolve_encoding(response))(
                errors="strict"
            )
        return self._decoder

    def consume(self, chunk: bytes, response: httpx.Response | None) -> list[StreamResult[str]]:
        decoder = self._get_decoder(response)
        try:
            text = decoder.decode(chunk)
        except UnicodeDecodeError as exc:
            self._decoder = None
            return [
                StreamResult.failure(
                    DecodingError(f"failed to decode text chunk: {exc}", data=chunk, cause=exc)
                )
            ]
        if not text:
            return []
        return [StreamResult.success(text)]

    def finish(self, response: httpx.Response | None) -> list[StreamResult[str]]:
        if self._decoder is None:
            return []
        decoder, self._decoder = self._decoder, None
        try:
            text = decoder.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            return [
                StreamResult.failure(
                    DecodingError(f"stream ended inside a character: {exc}", cause=exc)
                )
            ]
        if not text:
            return []
        return [StreamResult.success(text)]

    def reset(self) -> None:
        self._decoder = None


def _construct(type_: type[T], obj: Any) -> T:
    if isinstance(obj, type_):
        return obj
    if isinstance(obj, dict):
        if dataclasses.is_dataclass(type_):
            names = {f.name for f in dataclasses.fields(type_)}
            return type_(**{k: v for k, v in obj.items() if k in names})
        return type_(**obj)
    return type_(obj)


class DecodableStreamSerializer(BaseStreamSerializer[T]):
    """Frame the stream on a delimiter and decode each frame.

    Each complete frame is passed through ``preprocessor`` (if any) and then
    ``decoder``. When ``type_`` is given, the decoded object is converted to
    it: mappings are expanded as keyword arguments (unknown keys are dropped
    for dataclasses), other values are passed positionally.

    Args:
        type_: Optional target type of each decoded unit.
        decoder: Callable turning a frame into an object. Defaults to
            ``json.loads``.
        delimiter: Frame delimiter. Defaults to newline.
        preprocessor: Optional callable applied to each frame before decoding.

    Example:
        ```pycon
        >>> from dataclasses import dataclass
        >>> from arestream.serializers import DecodableStreamSerializer
        >>> @dataclass
        ... class Item:
        ...     id: int
        ...
        >>> serializer = DecodableStreamSerializer(Item)
        >>> serializer.consume(b'{"id": 1, "extra": true}\n', None)
        [StreamResult(value=Item(id=1), error=None)]

        ```
    """

    def __init__(
        self,
        type_: type[T] | None = None,
        *,
        decoder: Callable[[bytes], Any] = json.loads,
        delimiter: bytes = b"\n",
        preprocessor: Callable[[bytes], bytes] | None = None,
    ) -> None:
        if not delimiter:
            msg = "delimiter must not be empty"
            raise ValueError(msg)
        self.type_ = type_
        self.decoder = decoder
        self.delimiter = delimiter
        self.preprocessor = preprocessor
        self._buffer = bytearray()

    def _decode_frame(self, frame: bytes) -> StreamResult[T]:
        try:
            if self.preprocessor is not None:
                frame = self.preprocessor(frame)
            obj = self.decoder(frame)
            if self.type_ is not None:
                obj = _construct(self.type_, obj)
        except Exception as exc:  # noqa: BLE001
            return StreamResult.failure(
                DecodingError(
                    f"failed to decode frame of {len(frame)} bytes: {exc}", data=frame, cause=exc
                )
            )
        return StreamResult.success(obj)

    def consume(self, chunk: bytes, response: httpx.Response | None) -> list[StreamResult[T]]:  # noqa: ARG002
        self._buffer.extend(chunk)
        results = []
        while True:
            index = self._buffer.find(self.delimiter)
            if index < 0:
                break
            frame = bytes(self._buffer[:index])
            del self._buffer[: index + len(self.delimiter)]
            if frame.strip():
                results.append(self._decode_frame(frame))
        return results

    def finish(self, response: httpx.Response | None) -> list[StreamResult[T]]:  # noqa: ARG002
        frame = bytes(self._buffer)
        self._buffer.clear()
        if not frame.strip():
            return []
        return [self._decode_frame(frame)]

    def reset(self) -> None:
        self._buffer = bytearray()
