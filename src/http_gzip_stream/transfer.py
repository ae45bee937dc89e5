from __future__ import annotations

from typing import IO, Any

DEFAULT_CHUNK_SIZE = 1024


def copy_stream(
    src: IO[Any],
    dst: IO[Any],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    flush_every_chunk: bool = False,
) -> int:
    """
    Copies ``src`` into ``dst`` ``chunk_size`` bytes at a time until ``src``
    returns an empty read. Returns the number of bytes (or characters) copied.

    With ``flush_every_chunk`` the destination is flushed after each chunk,
    before the next read, so partial output is handed on right away.
    """
    copied = 0
    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            return copied
        dst.write(chunk)
        if flush_every_chunk:
            dst.flush()
        copied += len(chunk)


def copy_flushing(src: IO[Any], dst: IO[Any], chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    return copy_stream(src, dst, chunk_size=chunk_size, flush_every_chunk=True)
