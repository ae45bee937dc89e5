"""
In-process byte pipe connecting a producer thread to a consumer.

The buffer is bounded: a writer blocks while it is full and a reader blocks
while it is empty and the write end is still open. Closing the read end wakes
a blocked writer with ``BrokenPipeError``, so an abandoned reader never keeps
the producer parked.
"""
from __future__ import annotations

import io
import queue
import threading
from collections.abc import Iterator
from typing import Any

DEFAULT_PIPE_SIZE = 64 * 1024


class Pipe:
    def __init__(self, capacity: int = DEFAULT_PIPE_SIZE) -> None:
        if capacity <= 0:
            raise ValueError(f"pipe capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.error: BaseException | None = None
        self._buffer = bytearray()
        self._condition = threading.Condition()
        self._writer_closed = False
        self._reader_closed = False

    def write(self, data: bytes) -> int:
        view = memoryview(data).cast("B")
        written = 0
        while written < len(view):
            with self._condition:
                while len(self._buffer) >= self.capacity and not self._reader_closed:
                    self._condition.wait()
                if self._reader_closed:
                    raise BrokenPipeError("read end of pipe is closed")
                if self._writer_closed:
                    raise ValueError("write to closed pipe")
                size = min(self.capacity - len(self._buffer), len(view) - written)
                self._buffer += view[written : written + size]
                written += size
                self._condition.notify_all()
        return written

    def readinto(self, target: Any) -> int:
        with self._condition:
            while not self._buffer and not self._writer_closed and not self._reader_closed:
                self._condition.wait()
            if self._reader_closed:
                raise ValueError("read from closed pipe")
            size = min(len(target), len(self._buffer))
            target[:size] = self._buffer[:size]
            del self._buffer[:size]
            self._condition.notify_all()
            return size

    def close_writer(self, error: BaseException | None = None) -> None:
        with self._condition:
            if error is not None and self.error is None:
                self.error = error
            self._writer_closed = True
            self._condition.notify_all()

    def close_reader(self) -> None:
        with self._condition:
            self._reader_closed = True
            self._buffer.clear()
            self._condition.notify_all()


class PipeReader(io.RawIOBase):
    def __init__(self, pipe: Pipe) -> None:
        super().__init__()
        self.pipe = pipe

    def readable(self) -> bool:
        return True

    def readinto(self, b: Any) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed pipe")
        return self.pipe.readinto(memoryview(b).cast("B"))

    def close(self) -> None:
        if not self.closed:
            self.pipe.close_reader()
        super().close()


class PipeWriter(io.RawIOBase):
    def __init__(self, pipe: Pipe) -> None:
        super().__init__()
        self.pipe = pipe

    def writable(self) -> bool:
        return True

    def write(self, b: Any) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed pipe")
        return self.pipe.write(b)

    def abort(self, error: BaseException | None = None) -> None:
        """Closes the write end, recording ``error`` for the reader."""
        if not self.closed:
            self.pipe.close_writer(error)
        super().close()

    def close(self) -> None:
        if not self.closed:
            self.pipe.close_writer()
        super().close()


_END = object()


class ChunkQueue:
    """
    Unbounded, thread-safe iterable of chunks.

    Fed from one thread with ``put`` and consumed from another by iterating.
    ``end`` stops the iteration; when given an error the consumer re-raises
    it instead of ending normally.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self.ended = False
        self.error: BaseException | None = None

    def put(self, chunk: Any) -> None:
        if self.ended:
            raise ValueError("put to ended chunk queue")
        self._queue.put(chunk)

    def end(self, error: BaseException | None = None) -> None:
        if self.ended:
            return
        self.ended = True
        self.error = error
        self._queue.put(_END)

    def __iter__(self) -> Iterator[Any]:
        while True:
            chunk = self._queue.get()
            if chunk is _END:
                if self.error is not None:
                    raise self.error
                return
            yield chunk
