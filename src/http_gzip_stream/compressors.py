from __future__ import annotations

import functools
import zlib
from abc import ABC, abstractmethod
from typing import IO

DEFAULT_LEVEL = 9


@functools.lru_cache(maxsize=None)
def supports_flushable_gzip() -> bool:
    """
    Tells whether zlib can emit a sync flush from a compression object,
    which is what lets a gzip stream push out partial output on demand.

    Computed once per process. A missing capability is not an error: writes
    are then not flushed one by one, and chunked bodies are not compressed.
    """
    compressobj = getattr(zlib, "compressobj", None)
    if compressobj is None or not hasattr(zlib, "Z_SYNC_FLUSH"):
        return False
    return callable(getattr(compressobj(), "flush", None))


class BaseCompressor(ABC):
    @abstractmethod
    def compress(self, data: bytes) -> bytes: ...

    @abstractmethod
    def flush(self) -> bytes: ...


class GzipCompressor(BaseCompressor):
    def __init__(self, level: int = DEFAULT_LEVEL) -> None:
        # wbits=31 (16+15): zlib generates gzip header & trailer
        self._compressobj = zlib.compressobj(level=level, wbits=15 + 16)

    def compress(self, data: bytes) -> bytes:
        return self._compressobj.compress(data)

    def sync_flush(self) -> bytes:
        return self._compressobj.flush(zlib.Z_SYNC_FLUSH)

    def flush(self) -> bytes:
        return self._compressobj.flush()


class GzipWriter:
    """
    Writable gzip encoder over a byte sink.

    :param sink: Binary stream the compressed bytes are written to. It is
                 closed together with the writer.
    :param flush_on_write: Sync-flush after every write, so every write
                           reaches the sink immediately.
    :param encoding: Used to encode text written to the encoder.
    """

    def __init__(
        self,
        sink: IO[bytes],
        level: int = DEFAULT_LEVEL,
        flush_on_write: bool = False,
        encoding: str = "utf-8",
    ) -> None:
        self.sink = sink
        self.flush_on_write = flush_on_write
        self.encoding = encoding
        self.closed = False
        self._compressor = GzipCompressor(level=level)

    def write(self, data: bytes | str) -> int:
        if isinstance(data, str):
            data = data.encode(self.encoding)
        compressed = self._compressor.compress(data)
        if self.flush_on_write:
            compressed += self._compressor.sync_flush()
        if compressed:
            self.sink.write(compressed)
        return len(data)

    def flush(self) -> None:
        compressed = self._compressor.sync_flush()
        if compressed:
            self.sink.write(compressed)
        self.sink.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.sink.write(self._compressor.flush())
        finally:
            self.sink.close()

    def abort(self, error: BaseException | None = None) -> None:
        """Closes the sink without the gzip trailer, leaving a truncated member."""
        if self.closed:
            return
        self.closed = True
        abort = getattr(self.sink, "abort", None)
        if abort is not None:
            abort(error)
        else:
            self.sink.close()

    def __enter__(self) -> GzipWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            self.close()
        else:
            self.abort(exc)
