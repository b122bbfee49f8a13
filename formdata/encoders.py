from __future__ import annotations

import base64
import binascii
from enum import Enum

# Number of input bytes that base64-encode to one 76 character MIME line.
BASE64_LINE_INPUT = 57


class TransferEncoding(str, Enum):
    """Values accepted for a part's ``Content-Transfer-Encoding`` header."""

    SEVEN_BIT = "7bit"
    EIGHT_BIT = "8bit"
    BINARY = "binary"
    BASE64 = "base64"
    QUOTED_PRINTABLE = "quoted-printable"


class Base64Encoder:
    """This object encodes a stream of bytes as base64, split into MIME lines
    of 76 characters separated by CRLF.

    Input that doesn't fill a whole output line is kept in a cache between
    calls to :meth:`write`, and flushed with padding by :meth:`finalize`.
    The output never ends in a line break; the multipart framing supplies
    the CRLF that terminates the part body.
    """

    def __init__(self) -> None:
        self.cache = b""
        self.lines = 0

    def write(self, data: bytes) -> bytes:
        # Prepend any cache info to our data.
        if len(self.cache) > 0:
            data = self.cache + data

        # Slice off a string that fills whole output lines.
        encode_len = (len(data) // BASE64_LINE_INPUT) * BASE64_LINE_INPUT
        val, self.cache = data[:encode_len], data[encode_len:]
        return self._encode_lines(val)

    def finalize(self) -> bytes:
        rest, self.cache = self.cache, b""
        return self._encode_lines(rest)

    def _encode_lines(self, val: bytes) -> bytes:
        out = bytearray()
        for i in range(0, len(val), BASE64_LINE_INPUT):
            if self.lines > 0:
                out += b"\r\n"
            out += base64.b64encode(val[i : i + BASE64_LINE_INPUT])
            self.lines += 1
        return bytes(out)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(lines={self.lines})"


class QuotedPrintableEncoder:
    """This object encodes a stream of bytes as quoted-printable.

    Quoted-printable is line oriented (trailing whitespace and soft line
    breaks depend on where a line ends), so only complete lines are encoded
    by :meth:`write`.  The unfinished last line is cached until more data
    arrives or :meth:`finalize` is called, so a long run of data without a
    newline is held in memory whole.

    Each block is encoded by :func:`binascii.b2a_qp` in text mode, which
    writes soft line breaks (and hard ones) with CRLF if the first line
    ending in that block is CRLF, and with LF otherwise.  Input that mixes
    line endings across writes can therefore get a different style per
    block.
    """

    def __init__(self) -> None:
        self.cache = b""

    def write(self, data: bytes) -> bytes:
        if len(self.cache) > 0:
            data = self.cache + data

        end = data.rfind(b"\n") + 1
        enc, self.cache = data[:end], data[end:]

        if len(enc) > 0:
            return binascii.b2a_qp(enc)
        return b""

    def finalize(self) -> bytes:
        rest, self.cache = self.cache, b""
        if len(rest) > 0:
            return binascii.b2a_qp(rest)
        return b""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(cached={len(self.cache)})"


def get_transfer_encoder(
    encoding: TransferEncoding | str | None,
) -> Base64Encoder | QuotedPrintableEncoder | None:
    """Return a fresh payload encoder for the given transfer encoding, or
    ``None`` if the payload is sent unchanged.

    Raises:
        ValueError: If the encoding is not one of :class:`TransferEncoding`.
    """
    if encoding is None:
        return None

    encoding = TransferEncoding(encoding)
    if encoding is TransferEncoding.BASE64:
        return Base64Encoder()
    elif encoding is TransferEncoding.QUOTED_PRINTABLE:
        return QuotedPrintableEncoder()
    return None
