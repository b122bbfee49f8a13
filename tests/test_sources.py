import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from formdata.exceptions import FileError, FormDataError
from formdata.sources import AsyncReaderSource, BytesSource, FileSource, SyncReaderSource


def drain(source, size):
    chunks = []
    while True:
        chunk = source.read(size)
        if not chunk:
            return chunks
        chunks.append(chunk)


def test_bytes_source() -> None:
    source = BytesSource(bytearray(b"abcdefg"))
    assert source.size == 7
    assert drain(source, 3) == [b"abc", b"def", b"g"]
    assert source.closed
    assert source.read(3) == b""


def test_sync_reader_closes_at_end() -> None:
    reader = Mock()
    reader.closed = False
    reader.readable.return_value = True
    reader.read.side_effect = [b"12", b"3", b""]

    source = SyncReaderSource(reader)
    assert drain(source, 2) == [b"12", b"3"]
    assert source.closed
    reader.close.assert_called_once_with()

    # Closing again does nothing.
    source.close()
    reader.close.assert_called_once_with()


def test_sync_reader_not_readable() -> None:
    reader = Mock()
    reader.closed = False
    reader.readable.return_value = False
    with pytest.raises(FileError):
        SyncReaderSource(reader)


def test_sync_reader_without_read() -> None:
    with pytest.raises(FileError):
        SyncReaderSource(object())  # type: ignore[arg-type]


def test_sync_reader_text_mode(tmp_path: Path) -> None:
    path = tmp_path / "foo.txt"
    path.write_text("text")
    with path.open("r") as f:
        source = SyncReaderSource(f)
        with pytest.raises(FormDataError):
            source.read(10)
        assert source.closed


def test_sync_reader_error() -> None:
    reader = Mock(spec=["read", "close"])
    reader.read.side_effect = PermissionError("denied")

    source = SyncReaderSource(reader)
    with pytest.raises(FileError) as exc_info:
        source.read(10)

    assert isinstance(exc_info.value.__cause__, PermissionError)
    assert source.closed
    reader.close.assert_called_once_with()


def test_file_source(tmp_path: Path) -> None:
    path = tmp_path / "foo.bin"
    path.write_bytes(b"123456789012")

    source = FileSource(path)
    assert source.path == str(path)
    assert drain(source, 5) == [b"12345", b"67890", b"12"]
    assert source._reader.closed


def test_file_source_missing(tmp_path: Path) -> None:
    with pytest.raises(FileError) as exc_info:
        FileSource(tmp_path / "missing.bin")
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


def test_file_source_directory(tmp_path: Path) -> None:
    with pytest.raises(FileError):
        FileSource(tmp_path)


def test_async_source_rejects_blocking_read() -> None:
    source = AsyncReaderSource(Mock(spec=["read"]))
    with pytest.raises(FormDataError):
        source.read(10)


def test_async_source_bad_chunk_size() -> None:
    with pytest.raises(ValueError):
        AsyncReaderSource(Mock(spec=["read"]), chunk_size=0)


def test_async_source_closed_reader() -> None:
    reader = Mock(spec=["read", "closed"])
    reader.closed = True
    with pytest.raises(FileError):
        AsyncReaderSource(reader)


def test_file_source_async(tmp_path: Path) -> None:
    path = tmp_path / "foo.bin"
    path.write_bytes(b"1234567")

    async def read_all():
        source = await FileSource.open(path)
        chunks = []
        while chunk := await source.aread(4):
            chunks.append(chunk)
        return source, chunks

    source, chunks = asyncio.run(read_all())
    assert chunks == [b"1234", b"567"]
    assert source.closed


def test_async_source_aclose_coroutine_reader() -> None:
    reader = Mock(spec=["read", "close"])
    reader.read = AsyncMock(side_effect=[b"data", b""])
    reader.close = AsyncMock()

    async def read_all():
        source = AsyncReaderSource(reader)
        return [await source.aread(10), await source.aread(10)], source

    chunks, source = asyncio.run(read_all())
    assert chunks == [b"data", b""]
    assert source.closed
    reader.close.assert_awaited_once_with()


@pytest.mark.parametrize("error", [EOFError("short read"), RuntimeError("stream broke")])
def test_sync_reader_any_error(error: Exception) -> None:
    reader = Mock(spec=["read", "close"])
    reader.read.side_effect = [b"abc", error]

    source = SyncReaderSource(reader)
    assert source.read(10) == b"abc"
    with pytest.raises(FileError) as exc_info:
        source.read(10)

    assert exc_info.value.__cause__ is error
    assert source.closed
    reader.close.assert_called_once_with()


@pytest.mark.parametrize(
    "error", [asyncio.IncompleteReadError(b"ab", 10), RuntimeError("stream broke")]
)
def test_async_reader_any_error(error: Exception) -> None:
    reader = Mock(spec=["read", "close"])
    reader.read = AsyncMock(side_effect=[b"abc", error])

    async def read_twice():
        source = AsyncReaderSource(reader)
        first = await source.aread(10)
        with pytest.raises(FileError) as exc_info:
            await source.aread(10)
        return first, exc_info.value, source

    first, exc, source = asyncio.run(read_twice())
    assert first == b"abc"
    assert exc.__cause__ is error
    assert source.closed
    reader.close.assert_called_once_with()


def test_async_iterable_any_error() -> None:
    async def body():
        yield b"abc"
        raise EOFError("connection closed early")

    async def read_twice():
        source = AsyncReaderSource(body())
        first = await source.aread(10)
        with pytest.raises(FileError) as exc_info:
            await source.aread(10)
        return first, exc_info.value, source

    first, exc, source = asyncio.run(read_twice())
    assert first == b"abc"
    assert isinstance(exc.__cause__, EOFError)
    assert source.closed
