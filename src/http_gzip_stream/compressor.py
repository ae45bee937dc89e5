from __future__ import annotations

import io
import logging
import threading
from typing import IO, Any

from http_gzip_stream.compressors import DEFAULT_LEVEL, GzipWriter, supports_flushable_gzip
from http_gzip_stream.pipe import DEFAULT_PIPE_SIZE, Pipe, PipeReader, PipeWriter
from http_gzip_stream.transfer import DEFAULT_CHUNK_SIZE, copy_stream
from http_gzip_stream.types import BodyKind, classify_body

logger = logging.getLogger(__name__)


class CompressionError(RuntimeError):
    """The background compression of a body failed."""


class CompressedStream(PipeReader):
    """
    Read end of the pipe a compression worker writes into.

    The stream must be read to the end or closed: a worker facing a full pipe
    stays parked until one of the two happens.
    """

    worker: threading.Thread | None = None

    @property
    def error(self) -> BaseException | None:
        return self.pipe.error


class StreamingCompressor:
    def __init__(
        self,
        level: int = DEFAULT_LEVEL,
        flushable: bool | None = None,
        pipe_size: int = DEFAULT_PIPE_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        encoding: str = "utf-8",
    ) -> None:
        self.level = level
        self.flushable = supports_flushable_gzip() if flushable is None else flushable
        self.pipe_size = pipe_size
        self.chunk_size = chunk_size
        self.encoding = encoding

    def compress(self, source: Any) -> CompressedStream:
        """
        Starts compressing ``source`` on a worker thread and returns the
        stream of gzip bytes right away.
        """
        pipe = Pipe(self.pipe_size)
        stream = CompressedStream(pipe)
        # The worker must not share the caller's thread: it blocks as soon
        # as the pipe is full, and nothing reads before compress() returns.
        stream.worker = threading.Thread(
            target=self._run,
            args=(source, PipeWriter(pipe)),
            name="gzip-stream",
            daemon=True,
        )
        stream.worker.start()
        return stream

    def _run(self, source: Any, sink: PipeWriter) -> None:
        writer = GzipWriter(
            sink,
            level=self.level,
            flush_on_write=self.flushable,
            encoding=self.encoding,
        )
        opened: IO[Any] | None = None
        try:
            with writer:
                kind = classify_body(source)
                if kind is BodyKind.CHUNKS:
                    for chunk in source:
                        writer.write(self._to_text(chunk))
                        writer.flush()
                else:
                    opened = self._open(source, kind)
                    copy_stream(opened, writer, chunk_size=self.chunk_size)
        except BrokenPipeError:
            logger.debug("compressed stream closed by its reader before the end of input")
        except Exception:
            logger.exception("gzip compression of response body failed")
        finally:
            self._close_source(source, opened)

    @staticmethod
    def _close_source(source: Any, opened: IO[Any] | None) -> None:
        try:
            if opened is not None and opened is not source:
                opened.close()
            close = getattr(source, "close", None)
            if callable(close):
                close()
        except Exception:
            logger.exception("closing the response body after compression failed")

    def _open(self, source: Any, kind: BodyKind) -> IO[Any]:
        if kind is BodyKind.TEXT:
            if isinstance(source, str):
                source = source.encode(self.encoding)
            return io.BytesIO(source)
        if kind is BodyKind.FILE:
            return open(source, "rb")
        if kind is BodyKind.STREAM:
            return source
        if kind is BodyKind.EMPTY:
            return io.BytesIO()
        raise TypeError(f"cannot compress body of type {type(source).__name__}")

    @staticmethod
    def _to_text(chunk: Any) -> bytes | str:
        if isinstance(chunk, (bytes, bytearray, memoryview)):
            return bytes(chunk)
        return str(chunk)


def compress(source: Any, **options: Any) -> CompressedStream:
    return StreamingCompressor(**options).compress(source)
