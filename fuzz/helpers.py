import atheris


class EnhancedDataProvider(atheris.FuzzedDataProvider):
    def ConsumeRandomBytes(self) -> bytes:
        return self.ConsumeBytes(self.ConsumeIntInRange(0, self.remaining_bytes()))

    def ConsumeShortBytes(self, limit: int = 4096) -> bytes:
        return self.ConsumeBytes(self.ConsumeIntInRange(0, min(limit, self.remaining_bytes())))

    def ConsumeName(self) -> str:
        # Field names are never empty for file parts.
        return self.ConsumeUnicodeNoSurrogates(self.ConsumeIntInRange(0, 32)) or "name"

    def ConsumeChunkSize(self) -> int:
        return self.ConsumeIntInRange(1, 1024)
