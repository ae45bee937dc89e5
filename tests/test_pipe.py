import threading

import pytest

from http_gzip_stream.pipe import ChunkQueue, Pipe, PipeReader, PipeWriter


def test_pipe_passes_bytes_in_order():
    pipe = Pipe(capacity=16)
    reader, writer = PipeReader(pipe), PipeWriter(pipe)

    writer.write(b"hello ")
    writer.write(b"world")
    writer.close()

    assert reader.read() == b"hello world"
    assert reader.read(10) == b""


def test_pipe_blocks_writer_until_read():
    pipe = Pipe(capacity=4)
    reader, writer = PipeReader(pipe), PipeWriter(pipe)
    data = bytes(range(256)) * 40

    def produce():
        writer.write(data)
        writer.close()

    producer = threading.Thread(target=produce)
    producer.start()
    received = reader.read()
    producer.join(timeout=5)

    assert not producer.is_alive()
    assert received == data


def test_closing_reader_unblocks_writer():
    pipe = Pipe(capacity=4)
    reader, writer = PipeReader(pipe), PipeWriter(pipe)
    errors = []

    def produce():
        try:
            writer.write(b"x" * 100)
        except BrokenPipeError as exc:
            errors.append(exc)

    producer = threading.Thread(target=produce)
    producer.start()
    reader.close()
    producer.join(timeout=5)

    assert not producer.is_alive()
    assert len(errors) == 1


def test_abort_records_error_for_reader():
    pipe = Pipe()
    reader, writer = PipeReader(pipe), PipeWriter(pipe)
    error = OSError("read failed")

    writer.write(b"partial")
    writer.abort(error)

    assert reader.read() == b"partial"
    assert pipe.error is error


def test_read_after_close_fails():
    pipe = Pipe()
    reader = PipeReader(pipe)
    reader.close()

    with pytest.raises(ValueError):
        reader.read(1)


def test_pipe_rejects_empty_capacity():
    with pytest.raises(ValueError):
        Pipe(capacity=0)


def test_chunk_queue_iterates_until_end():
    chunks = ChunkQueue()
    chunks.put(b"a")
    chunks.put("b")
    chunks.end()

    assert list(chunks) == [b"a", "b"]
    with pytest.raises(ValueError):
        chunks.put(b"c")


def test_chunk_queue_reraises_error():
    chunks = ChunkQueue()
    chunks.put(b"a")
    chunks.end(RuntimeError("app failed"))

    iterator = iter(chunks)
    assert next(iterator) == b"a"
    with pytest.raises(RuntimeError):
        next(iterator)
