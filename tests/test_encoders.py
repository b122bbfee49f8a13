from __future__ import annotations

import base64
import binascii
import unittest

from formdata.encoders import (
    Base64Encoder,
    QuotedPrintableEncoder,
    TransferEncoding,
    get_transfer_encoder,
)

from .compat import parametrize, parametrize_class


def feed(encoder: Base64Encoder | QuotedPrintableEncoder, data: bytes, size: int) -> bytes:
    out = b""
    for i in range(0, len(data), size):
        out += encoder.write(data[i : i + size])
    return out + encoder.finalize()


@parametrize_class
class TestBase64Encoder(unittest.TestCase):
    def setUp(self) -> None:
        self.e = Base64Encoder()

    def test_simple(self) -> None:
        self.assertEqual(self.e.write(b"hello world"), b"")
        self.assertEqual(self.e.finalize(), b"aGVsbG8gd29ybGQ=")

    def test_empty(self) -> None:
        self.assertEqual(self.e.write(b""), b"")
        self.assertEqual(self.e.finalize(), b"")

    def test_line_length(self) -> None:
        out = feed(self.e, b"\xff" * 200, 200)
        lines = out.split(b"\r\n")
        self.assertEqual([len(line) for line in lines], [76, 76, 76, 40])
        self.assertFalse(out.endswith(b"\r\n"))

    @parametrize("size", [1, 2, 3, 56, 57, 58, 1000])
    def test_split_writes(self, size: int) -> None:
        data = bytes(range(256)) * 3
        expected = base64.encodebytes(data).replace(b"\n", b"\r\n")[:-2]
        self.assertEqual(feed(self.e, data, size), expected)


@parametrize_class
class TestQuotedPrintableEncoder(unittest.TestCase):
    def setUp(self) -> None:
        self.e = QuotedPrintableEncoder()

    def test_simple(self) -> None:
        self.assertEqual(self.e.write(b"x=y\r\n"), b"x=3Dy\r\n")
        self.assertEqual(self.e.finalize(), b"")

    def test_caches_partial_line(self) -> None:
        self.assertEqual(self.e.write(b"foo bar"), b"")
        self.assertEqual(self.e.cache, b"foo bar")
        self.assertEqual(self.e.finalize(), b"foo bar")

    def test_trailing_whitespace(self) -> None:
        self.assertEqual(feed(self.e, b"end \r\n", 100), b"end=20\r\n")

    @parametrize("size", [1, 2, 5, 80, 1000])
    def test_split_writes(self, size: int) -> None:
        data = b"hello world \r\nsecond=line\r\n" + b"a" * 100 + b"\r\n\xe9t\xe9\r\nend \t"
        self.assertEqual(feed(self.e, data, size), binascii.b2a_qp(data))

    def test_long_run_without_newline(self) -> None:
        data = b"a" * 10000
        for i in range(0, len(data), 1000):
            self.assertEqual(self.e.write(data[i : i + 1000]), b"")
        self.assertEqual(len(self.e.cache), 10000)
        self.assertEqual(self.e.finalize(), binascii.b2a_qp(data))

    def test_soft_breaks_follow_block_line_ending(self) -> None:
        crlf = self.e.write(b"a" * 100 + b"\r\n")
        self.assertIn(b"=\r\n", crlf)
        self.assertTrue(crlf.endswith(b"\r\n"))

        lf = self.e.write(b"b" * 100 + b"\n")
        self.assertIn(b"=\n", lf)
        self.assertNotIn(b"\r\n", lf)


class TestGetTransferEncoder(unittest.TestCase):
    def test_none(self) -> None:
        self.assertIsNone(get_transfer_encoder(None))

    def test_labels_only(self) -> None:
        for enc in ("7bit", "8bit", "binary", TransferEncoding.BINARY):
            self.assertIsNone(get_transfer_encoder(enc))

    def test_encoders(self) -> None:
        self.assertIsInstance(get_transfer_encoder("base64"), Base64Encoder)
        self.assertIsInstance(get_transfer_encoder(TransferEncoding.QUOTED_PRINTABLE), QuotedPrintableEncoder)

    def test_unknown(self) -> None:
        with self.assertRaises(ValueError):
            get_transfer_encoder("uuencode")

    def test_fresh_instances(self) -> None:
        self.assertIsNot(get_transfer_encoder("base64"), get_transfer_encoder("base64"))
