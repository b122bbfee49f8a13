import asyncio
import io
import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from formdata.multipart import Multipart


def build_form(fdp: EnhancedDataProvider) -> tuple[Multipart, list[bytes]]:
    form = Multipart(config={"CHUNK_SIZE": fdp.ConsumeChunkSize()})
    payloads = []
    for _ in range(fdp.ConsumeIntInRange(0, 5)):
        payload = fdp.ConsumeShortBytes()
        if fdp.ConsumeBool():
            form.add_text(fdp.ConsumeName(), payload.decode("latin-1"))
            payloads.append(payload.decode("latin-1").encode("utf-8"))
        else:
            form.add_sync_read(fdp.ConsumeName(), "file.bin", "application/octet-stream", io.BytesIO(payload))
            payloads.append(payload)
    return form, payloads


def check_body(form: Multipart, body: bytes, payloads: list[bytes]) -> None:
    delimiter = b"--" + form.boundary.encode("ascii")
    assert body.endswith(delimiter + b"--\r\n")
    if not payloads:
        assert body == delimiter + b"--\r\n"
        return
    assert body.startswith(delimiter + b"\r\n")
    for payload in payloads:
        assert b"\r\n\r\n" + payload + b"\r\n" + delimiter in body


def fuzz_sync(fdp: EnhancedDataProvider) -> None:
    form, payloads = build_form(fdp)
    check_body(form, form.encode().to_bytes(), payloads)


def fuzz_async(fdp: EnhancedDataProvider) -> None:
    form, payloads = build_form(fdp)
    check_body(form, asyncio.run(form.encode().ato_bytes()), payloads)


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    targets = [fuzz_sync, fuzz_async]
    target = fdp.PickValueInList(targets)
    target(fdp)


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
