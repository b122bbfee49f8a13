from __future__ import annotations

import asyncio
import inspect
import logging
import os
from typing import TYPE_CHECKING

from .exceptions import FileError, FormDataError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncIterable, AsyncIterator
    from typing import Any, Protocol, Union

    class SupportsRead(Protocol):
        def read(self, __n: int) -> bytes: ...

    class SupportsAsyncRead(Protocol):
        async def read(self, __n: int) -> bytes: ...

    AsyncReader = Union[SupportsAsyncRead, AsyncIterable[bytes]]


class ByteSource:
    """Base class for the data behind a file part.

    A source produces the part's payload one chunk at a time: every call to
    :meth:`read` (blocking) or :meth:`aread` (in a coroutine) returns the
    next chunk of at most ``size`` bytes, and ``b""`` once the data is
    exhausted.  A source releases whatever it holds as soon as it reaches
    the end of its data, when a read fails, or when it is closed explicitly;
    closing is idempotent.
    """

    #: Whether this source can only be read from a coroutine.
    is_async = False

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int) -> bytes:
        raise NotImplementedError()

    async def aread(self, size: int) -> bytes:
        return self.read(size)

    def close(self) -> None:
        self._closed = True

    async def aclose(self) -> None:
        self.close()

    def _read_error(self, target: object, err: BaseException) -> FileError:
        self.logger.warning("Error reading from %r: %s", target, err)
        return FileError(f"Error reading from {target!r}: {err}")


class BytesSource(ByteSource):
    """A source over data that is already in memory."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        super().__init__()
        self._data = bytes(data)
        self._pos = 0

    @property
    def size(self) -> int:
        return len(self._data)

    def read(self, size: int) -> bytes:
        if self._closed:
            return b""

        chunk = self._data[self._pos : self._pos + size]
        self._pos += len(chunk)
        if not chunk:
            self.close()
        return chunk

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={len(self._data)}, pos={self._pos})"


class SyncReaderSource(ByteSource):
    """A source wrapping a blocking, file-like reader.

    The reader is checked up front: a reader that is already closed, or that
    reports it is not readable, raises :class:`FileError` immediately.  The
    source takes ownership of the reader and closes it once its data has been
    consumed.

    Reads block the calling thread, even when the source is pulled with
    :meth:`aread` from an event loop.
    """

    def __init__(self, reader: SupportsRead) -> None:
        super().__init__()
        if not callable(getattr(reader, "read", None)):
            raise FileError(f"Object {reader!r} has no read() method")

        if getattr(reader, "closed", False) is True:
            self.logger.warning("Reader %r is already closed", reader)
            raise FileError(f"Reader {reader!r} is already closed")

        readable = getattr(reader, "readable", None)
        if readable is not None:
            try:
                ok = readable()
            except Exception as e:
                raise self._read_error(reader, e) from e
            if not ok:
                self.logger.warning("Reader %r is not readable", reader)
                raise FileError(f"Reader {reader!r} is not readable")

        self._reader = reader

    def read(self, size: int) -> bytes:
        if self._closed:
            return b""

        try:
            data = self._reader.read(size)
        except Exception as e:
            self.close()
            raise self._read_error(self._reader, e) from e

        if isinstance(data, str):
            self.close()
            raise FormDataError(f"Reader {self._reader!r} returned text, open it in binary mode")

        if not data:
            self.close()
            return b""
        return bytes(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        close = getattr(self._reader, "close", None)
        if close is not None:
            self.logger.debug("Closing reader %r", self._reader)
            close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(reader={self._reader!r}, closed={self._closed})"


class FileSource(SyncReaderSource):
    """A source that opens and owns a file on disk.

    When pulled from a coroutine, reads run in a worker thread so the event
    loop is not blocked.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)
        logger = logging.getLogger(__name__)
        logger.info("Opening file: %r", self.path)
        try:
            fileobj = open(self.path, "rb")
        except OSError as e:
            logger.warning("Error opening file %r: %s", self.path, e)
            raise FileError(f"Error opening file {self.path!r}: {e}") from e

        try:
            super().__init__(fileobj)
        except FileError:
            fileobj.close()
            raise

    @classmethod
    async def open(cls, path: str | os.PathLike[str]) -> FileSource:
        """Open ``path`` without blocking the running event loop."""
        return await asyncio.to_thread(cls, path)

    async def aread(self, size: int) -> bytes:
        if self._closed:
            return b""
        return await asyncio.to_thread(self.read, size)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={self.path!r}, closed={self._closed})"


class AsyncReaderSource(ByteSource):
    """A source wrapping an asynchronous reader.

    Two kinds of reader are supported: objects with a coroutine ``read(n)``
    method (``asyncio.StreamReader`` and friends), and async iterables that
    yield chunks of bytes.  For async iterables the chunks are forwarded as
    they are yielded and the requested size is ignored.

    If ``chunk_size`` is given it replaces the size the encoder asks for.
    """

    is_async = True

    def __init__(self, reader: AsyncReader, chunk_size: int | None = None) -> None:
        super().__init__()
        if chunk_size is not None and chunk_size < 1:
            raise ValueError("chunk_size must be a positive number, not %r" % chunk_size)

        if getattr(reader, "closed", False) is True:
            self.logger.warning("Reader %r is already closed", reader)
            raise FileError(f"Reader {reader!r} is already closed")

        if callable(getattr(reader, "read", None)):
            self._iterator: AsyncIterator[bytes] | None = None
        elif hasattr(reader, "__aiter__"):
            self._iterator = reader.__aiter__()  # type: ignore[union-attr]
        else:
            raise FileError(f"Object {reader!r} is neither an async reader nor an async iterable")

        self._reader = reader
        self.chunk_size = chunk_size

    def read(self, size: int) -> bytes:
        raise FormDataError(f"{self!r} can only be read asynchronously")

    async def aread(self, size: int) -> bytes:
        if self._closed:
            return b""

        try:
            if self._iterator is None:
                data = await self._read(self.chunk_size or size)
            else:
                data = await self._next_chunk()
        except Exception as e:
            await self.aclose()
            raise self._read_error(self._reader, e) from e

        if not data:
            await self.aclose()
            return b""
        return bytes(data)

    async def _read(self, size: int) -> Any:
        data = self._reader.read(size)  # type: ignore[union-attr]
        if inspect.isawaitable(data):
            data = await data
        return data

    async def _next_chunk(self) -> bytes:
        assert self._iterator is not None
        # Empty chunks from an iterator don't mean the end of the data.
        while True:
            try:
                chunk = await self._iterator.__anext__()
            except StopAsyncIteration:
                return b""
            if chunk:
                return chunk

    def close(self) -> None:
        # Without an event loop we can only release readers with a plain
        # close() method; coroutine based ones are dropped.
        if self._closed:
            return
        self._closed = True

        close = getattr(self._reader, "close", None)
        if close is not None and not inspect.iscoroutinefunction(close):
            close()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        target = self._iterator if self._iterator is not None else self._reader
        close = getattr(target, "aclose", None) or getattr(self._reader, "close", None)
        if close is not None:
            self.logger.debug("Closing reader %r", self._reader)
            result = close()
            if inspect.isawaitable(result):
                await result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(reader={self._reader!r}, closed={self._closed})"
