from __future__ import annotations

import logging
import mimetypes
import os
import random
import string
from typing import TYPE_CHECKING, Union

from .encoders import TransferEncoding, get_transfer_encoder
from .exceptions import FormDataError, HeaderError
from .sources import AsyncReaderSource, BytesSource, FileSource, SyncReaderSource

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncIterator, Callable, Iterator, Sequence
    from typing import Any, Protocol, TypedDict

    from .sources import AsyncReader, ByteSource, SupportsRead

    class RequestProtocol(Protocol):
        """The part of an HTTP client's request object that we need."""

        def set_header(self, name: str, value: str) -> None: ...
        def set_body(self, body: MultipartEncoder) -> None: ...

    class SupportsChoice(Protocol):
        def choice(self, __seq: str) -> str: ...

    class EncoderConfig(TypedDict, total=False):
        CHUNK_SIZE: int
        BOUNDARY_LENGTH: int
        DEFAULT_CONTENT_TYPE: str

    ContentTypeLookup = Callable[[str], Union[str, None]]


# Generated boundaries only use alphanumerics, so they can never contain the
# "--" delimiter prefix and never need quoting in the header.
BOUNDARY_CHARS = string.ascii_letters + string.digits

# The full set of characters a boundary may contain, from RFC 2046 5.1.1.
# fmt: off
BOUNDARY_CHARS_SET = frozenset(
    string.ascii_letters
    + string.digits
    + "'()+_,-./:=? ")
# fmt: on

DEFAULT_BOUNDARY_LENGTH = 30
MAX_BOUNDARY_LENGTH = 70
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CRLF = b"\r\n"


def generate_boundary(rng: SupportsChoice | None = None, length: int = DEFAULT_BOUNDARY_LENGTH) -> str:
    """Generate a random multipart boundary.

    Args:
        rng: Where randomness comes from.  Any object with a ``choice()``
            method, such as a seeded :class:`random.Random` in tests.  A fresh
            :class:`random.SystemRandom` is used if not given.
        length: Number of characters in the boundary, at most 70.

    Returns:
        A string of ASCII letters and digits.
    """
    if not 1 <= length <= MAX_BOUNDARY_LENGTH:
        raise ValueError("length must be between 1 and %d, not %r" % (MAX_BOUNDARY_LENGTH, length))

    if rng is None:
        rng = random.SystemRandom()
    return "".join(rng.choice(BOUNDARY_CHARS) for _ in range(length))


def validate_boundary(boundary: str) -> str:
    """Check a caller-supplied boundary against RFC 2046 and return it."""
    if not 1 <= len(boundary) <= MAX_BOUNDARY_LENGTH:
        raise ValueError("Boundary must be between 1 and %d characters long" % MAX_BOUNDARY_LENGTH)

    bad = set(boundary) - BOUNDARY_CHARS_SET
    if bad:
        raise ValueError(f"Invalid characters in boundary: {''.join(sorted(bad))!r}")

    if boundary.endswith(" "):
        raise ValueError("Boundary must not end with a space")
    return boundary


def guess_content_type(path: str) -> str | None:
    """Look up a MIME type from the extension of ``path``."""
    content_type, _ = mimetypes.guess_type(path)
    return content_type


class TextField:
    """A plain form field.  The value is sent encoded as UTF-8."""

    def __init__(self, name: str, value: str) -> None:
        self.name = name
        self.value = value

    def headers(self) -> bytes:
        return f'Content-Disposition: form-data; name="{self.name}"\r\n\r\n'.encode("utf-8")

    def payload(self) -> bytes:
        return self.value.encode("utf-8")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TextField):
            return self.name == other.name and self.value == other.value
        else:
            return NotImplemented

    def __repr__(self) -> str:
        if len(self.value) > 97:
            v = repr(self.value[:97])[:-1] + "...'"
        else:
            v = repr(self.value)
        return f"{self.__class__.__name__}(name={self.name!r}, value={v})"


class FileField:
    """A file upload.

    The payload is pulled from ``source`` while the body is being encoded, so
    the file is never held in memory as a whole.  ``content_type`` is sent as
    given.  If ``transfer_encoding`` is set, a ``Content-Transfer-Encoding``
    header is added and, for base64 and quoted-printable, the payload is
    encoded on the fly.
    """

    def __init__(
        self,
        name: str,
        filename: str,
        content_type: str,
        source: ByteSource,
        transfer_encoding: TransferEncoding | str | None = None,
    ) -> None:
        check_file_names(name, filename)
        self.name = name
        self.filename = filename
        self.content_type = content_type
        self.source = source
        self.transfer_encoding = None if transfer_encoding is None else TransferEncoding(transfer_encoding)

    def headers(self) -> bytes:
        lines = [
            f'Content-Disposition: form-data; name="{self.name}"; filename="{self.filename}"\r\n',
            f"Content-Type: {self.content_type}\r\n",
        ]
        if self.transfer_encoding is not None:
            lines.append(f"Content-Transfer-Encoding: {self.transfer_encoding.value}\r\n")
        lines.append("\r\n")
        return "".join(lines).encode("utf-8")

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={self.name!r}, filename={self.filename!r}, "
            f"content_type={self.content_type!r}, source={self.source!r})"
        )


Part = Union[TextField, FileField]


def check_file_names(name: str, filename: str) -> None:
    if not name:
        raise ValueError("File fields need a non-empty name")
    if not filename:
        raise ValueError("File fields need a non-empty filename")


class Multipart:
    """An ordered collection of form fields, and the boundary used to
    separate them.

    Fields are only ever appended, and appear in the body in the order they
    were added.  A form is sent once: after :meth:`encode` (or binding it to a
    request) hands the fields over to a :class:`MultipartEncoder`, nothing can
    be added and it cannot be encoded again.

    Args:
        boundary: Use this boundary instead of generating one.
        rng: Random source passed to :func:`generate_boundary`.
        config: Overrides for :attr:`DEFAULT_CONFIG`.
        content_type_lookup: Called with a file path and returns its MIME
            type, or ``None`` if it is not known.
    """

    #: This is the default configuration for our form encoder.
    DEFAULT_CONFIG: EncoderConfig = {
        "CHUNK_SIZE": DEFAULT_CHUNK_SIZE,
        "BOUNDARY_LENGTH": DEFAULT_BOUNDARY_LENGTH,
        "DEFAULT_CONTENT_TYPE": DEFAULT_CONTENT_TYPE,
    }

    def __init__(
        self,
        boundary: str | None = None,
        rng: SupportsChoice | None = None,
        config: dict[Any, Any] = {},
        content_type_lookup: ContentTypeLookup | None = None,
    ) -> None:
        self.logger = logging.getLogger(__name__)

        self.config: EncoderConfig = self.DEFAULT_CONFIG.copy()
        self.config.update(config)  # type: ignore[typeddict-item]

        chunk_size = self.config["CHUNK_SIZE"]
        if not isinstance(chunk_size, int) or chunk_size < 1:
            raise ValueError("CHUNK_SIZE must be a positive integer, not %r" % chunk_size)

        if boundary is None:
            boundary = generate_boundary(rng, self.config["BOUNDARY_LENGTH"])
        else:
            validate_boundary(boundary)

        self._boundary = boundary
        self._parts: list[Part] = []
        self._encoded = False
        self.content_type_lookup = content_type_lookup or guess_content_type

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        """The value for the request's ``Content-Type`` header."""
        return f"multipart/form-data; boundary={self._boundary}"

    @property
    def parts(self) -> tuple[Part, ...]:
        return tuple(self._parts)

    def _check_open(self) -> None:
        if self._encoded:
            raise FormDataError("This form has already been encoded")

    def add_part(self, part: Part) -> None:
        """Append an already built field."""
        self._check_open()
        self.logger.debug("Adding part %r", part)
        self._parts.append(part)

    def add_text(self, name: str, value: str) -> None:
        self.add_part(TextField(name, value))

    def add_bytes(
        self,
        name: str,
        filename: str,
        content_type: str,
        data: bytes,
        transfer_encoding: TransferEncoding | str | None = None,
    ) -> None:
        """Add a file whose contents are already in memory."""
        self.add_part(FileField(name, filename, content_type, BytesSource(data), transfer_encoding))

    def add_sync_read(
        self,
        name: str,
        filename: str,
        content_type: str,
        reader: SupportsRead,
        transfer_encoding: TransferEncoding | str | None = None,
    ) -> None:
        """Add a file read from a blocking, file-like reader.

        The reader is read while the body is being sent, which blocks the
        thread doing the sending; it is closed once it has been read.

        Raises:
            FileError: If the reader is closed or not readable.
        """
        self._check_open()
        self.add_part(FileField(name, filename, content_type, SyncReaderSource(reader), transfer_encoding))

    def add_file_from_sync_handle(
        self,
        name: str,
        filename: str,
        content_type: str,
        file_handle: SupportsRead,
        transfer_encoding: TransferEncoding | str | None = None,
    ) -> None:
        """Add a file from an already opened binary file object."""
        self.add_sync_read(name, filename, content_type, file_handle, transfer_encoding)

    async def add_async_read(
        self,
        name: str,
        filename: str,
        content_type: str,
        reader: AsyncReader,
        transfer_encoding: TransferEncoding | str | None = None,
        chunk_size: int | None = None,
    ) -> None:
        """Add a file read from an asynchronous reader.

        ``reader`` is either an object with a coroutine ``read(n)`` method or
        an async iterable of byte chunks.  Read errors are reported while the
        body is being sent.

        Raises:
            FileError: If ``reader`` is closed, or is neither kind of reader.
        """
        self._check_open()
        source = AsyncReaderSource(reader, chunk_size=chunk_size)
        self.add_part(FileField(name, filename, content_type, source, transfer_encoding))

    async def add_file_from_path(
        self,
        name: str,
        path: str | os.PathLike[str],
        transfer_encoding: TransferEncoding | str | None = None,
    ) -> None:
        """Add a file from disk.

        The filename sent is the last component of ``path``, and the content
        type is guessed from its extension.  The file is opened right away.

        Raises:
            FileError: If the file can't be opened.
        """
        self._check_open()
        path = os.fspath(path)
        filename = os.path.basename(path) or "file"
        check_file_names(name, filename)
        if transfer_encoding is not None:
            transfer_encoding = TransferEncoding(transfer_encoding)

        content_type = self.content_type_lookup(path) or self.config["DEFAULT_CONTENT_TYPE"]
        source = await FileSource.open(path)
        self.add_part(FileField(name, filename, content_type, source, transfer_encoding))

    def encode(self) -> MultipartEncoder:
        """Hand the fields over to a new :class:`MultipartEncoder`."""
        self._check_open()
        self._encoded = True
        self.logger.debug("Encoding %d parts with boundary %r", len(self._parts), self._boundary)
        return MultipartEncoder(self._boundary, self._parts, chunk_size=self.config["CHUNK_SIZE"])

    def set_request(self, request: RequestProtocol) -> MultipartEncoder:
        """Make this form the body of ``request``.  See :func:`bind`."""
        return bind(self, request)

    def __len__(self) -> int:
        return len(self._parts)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(boundary={self._boundary!r}, parts={self._parts!r})"


class MultipartEncoder:
    """This object produces a multipart/form-data body, chunk by chunk.

    The body can be consumed in one of these ways:

    - ``for chunk in encoder`` (blocking),
    - ``async for chunk in encoder``,
    - :meth:`read` for clients that want a file-like body,
    - :meth:`to_bytes` / :meth:`ato_bytes` to get everything at once.

    Like a network body it can only be consumed once.  File payloads are
    forwarded as they are read from their sources, at most ``chunk_size``
    bytes at a time.  If a source fails, the error is raised to the consumer
    and no more data is produced.

    Sources are closed when they are exhausted, when the body ends or fails,
    and when the encoder (or the iterator over it) is closed.  Use the
    encoder as a context manager to make sure this happens if the body is not
    sent completely.

    Blocking iteration is not possible when a field reads from an
    asynchronous source.
    """

    def __init__(self, boundary: str, parts: Sequence[Part], chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.logger = logging.getLogger(__name__)
        self.boundary = boundary
        self.parts = tuple(parts)
        self.chunk_size = chunk_size

        self._started = False
        self._closed = False
        self._reader: Iterator[bytes] | None = None
        self._buffer = bytearray()
        self._error: FormDataError | None = None

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def is_async(self) -> bool:
        """Whether any field can only be read from a coroutine."""
        return any(isinstance(p, FileField) and p.source.is_async for p in self.parts)

    def _start(self) -> None:
        if self._started:
            raise FormDataError("A multipart body can only be consumed once")
        if self._closed:
            raise FormDataError("This multipart body has been closed")
        self._started = True

    def _frames(self) -> Iterator[bytes | FileField]:
        # File fields are yielded as-is; the caller streams their source.
        delimiter = b"--" + self.boundary.encode("ascii")
        for part in self.parts:
            self.logger.debug("Writing part %r", part)
            yield delimiter + CRLF + part.headers()
            if isinstance(part, TextField):
                yield part.payload()
            else:
                yield part
            yield CRLF

        yield delimiter + b"--" + CRLF

    def __iter__(self) -> Iterator[bytes]:
        if self.is_async:
            raise FormDataError("This body reads from an asynchronous source, use 'async for' instead")
        self._start()
        return self._iter_sync()

    def _iter_sync(self) -> Iterator[bytes]:
        try:
            for frame in self._frames():
                if isinstance(frame, FileField):
                    yield from self._stream_part(frame)
                elif frame:
                    yield frame
        finally:
            self.close()

    def _stream_part(self, part: FileField) -> Iterator[bytes]:
        encoder = get_transfer_encoder(part.transfer_encoding)
        while True:
            chunk = part.source.read(self.chunk_size)
            if not chunk:
                break

            self.logger.debug("Read %d bytes for part %r", len(chunk), part.name)
            if encoder is not None:
                chunk = encoder.write(chunk)
            if chunk:
                yield chunk

        if encoder is not None:
            tail = encoder.finalize()
            if tail:
                yield tail

    def __aiter__(self) -> AsyncIterator[bytes]:
        self._start()
        return self._iter_async()

    async def _iter_async(self) -> AsyncIterator[bytes]:
        try:
            for frame in self._frames():
                if not isinstance(frame, FileField):
                    if frame:
                        yield frame
                    continue

                encoder = get_transfer_encoder(frame.transfer_encoding)
                while True:
                    chunk = await frame.source.aread(self.chunk_size)
                    if not chunk:
                        break

                    self.logger.debug("Read %d bytes for part %r", len(chunk), frame.name)
                    if encoder is not None:
                        chunk = encoder.write(chunk)
                    if chunk:
                        yield chunk

                if encoder is not None:
                    tail = encoder.finalize()
                    if tail:
                        yield tail
        finally:
            await self.aclose()

    def read(self, size: int | None = -1) -> bytes:
        """Read up to ``size`` bytes of the body, or all of what is left if
        ``size`` is negative or ``None``.  Returns ``b""`` at the end.

        Once a read has failed, every later call raises the same error; the
        bytes buffered before the failure are dropped.
        """
        if self._error is not None:
            raise self._error
        if self._reader is None:
            self._reader = iter(self)

        try:
            if size is None or size < 0:
                self._buffer.extend(b"".join(self._reader))
                size = len(self._buffer)
            else:
                while len(self._buffer) < size:
                    chunk = next(self._reader, None)
                    if chunk is None:
                        break
                    self._buffer.extend(chunk)
        except FormDataError as e:
            self._buffer.clear()
            self._error = e
            raise

        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def to_bytes(self) -> bytes:
        return b"".join(self)

    async def ato_bytes(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    def close(self) -> None:
        """Release all sources.  Sources that need an event loop to be closed
        are only marked as closed; use :meth:`aclose` for those.
        """
        self._closed = True
        for part in self.parts:
            if isinstance(part, FileField) and not part.source.closed:
                part.source.close()

    async def aclose(self) -> None:
        self._closed = True
        for part in self.parts:
            if isinstance(part, FileField) and not part.source.closed:
                await part.source.aclose()

    def __enter__(self) -> MultipartEncoder:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> MultipartEncoder:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(boundary={self.boundary!r}, parts={len(self.parts)})"


def bind(multipart: Multipart, request: RequestProtocol) -> MultipartEncoder:
    """Make ``multipart`` the body of ``request``.

    This sets the request's ``Content-Type`` header to
    ``multipart/form-data; boundary=<boundary>``, replacing any earlier
    value, then encodes the form and installs the encoder as the request
    body.  The installed encoder is returned.

    Raises:
        FormDataError: If the form was already encoded.
        HeaderError: If the request refused the header.  The form is left
            untouched in that case.
    """
    # Checked first so a consumed form leaves the request unchanged.
    multipart._check_open()

    content_type = multipart.content_type
    try:
        request.set_header("Content-Type", content_type)
    except Exception as e:
        logging.getLogger(__name__).warning("Could not set Content-Type %r: %s", content_type, e)
        raise HeaderError(f"Could not set Content-Type header: {e}") from e

    body = multipart.encode()
    try:
        request.set_body(body)
    except BaseException:
        body.close()
        raise
    return body


def set_multipart_body(request: RequestProtocol, multipart: Multipart) -> MultipartEncoder:
    """Same as :func:`bind`, with the request first."""
    return bind(multipart, request)
