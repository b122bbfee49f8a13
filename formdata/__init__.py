__version__ = "0.1.0"

from .encoders import TransferEncoding
from .exceptions import FileError, FormDataError, HeaderError
from .multipart import (
    FileField,
    Multipart,
    MultipartEncoder,
    TextField,
    bind,
    generate_boundary,
    set_multipart_body,
)
from .sources import AsyncReaderSource, ByteSource, BytesSource, FileSource, SyncReaderSource

__all__ = (
    "AsyncReaderSource",
    "ByteSource",
    "BytesSource",
    "FileError",
    "FileField",
    "FileSource",
    "FormDataError",
    "HeaderError",
    "Multipart",
    "MultipartEncoder",
    "SyncReaderSource",
    "TextField",
    "TransferEncoding",
    "bind",
    "generate_boundary",
    "set_multipart_body",
)
