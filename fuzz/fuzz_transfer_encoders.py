import base64
import binascii
import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from formdata.encoders import Base64Encoder, QuotedPrintableEncoder


def feed(encoder, data: bytes, size: int) -> bytes:
    out = b""
    for i in range(0, len(data), size):
        out += encoder.write(data[i : i + size])
    return out + encoder.finalize()


def fuzz_base64_encoder(fdp: EnhancedDataProvider) -> None:
    size = fdp.ConsumeChunkSize()
    data = fdp.ConsumeRandomBytes()
    encoded = feed(Base64Encoder(), data, size)
    assert base64.b64decode(encoded.replace(b"\r\n", b"")) == data


def fuzz_quoted_encoder(fdp: EnhancedDataProvider) -> None:
    size = fdp.ConsumeChunkSize()
    data = fdp.ConsumeRandomBytes()
    encoded = feed(QuotedPrintableEncoder(), data, size)
    binascii.a2b_qp(encoded)


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    targets = [fuzz_base64_encoder, fuzz_quoted_encoder]
    target = fdp.PickValueInList(targets)
    target(fdp)


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
