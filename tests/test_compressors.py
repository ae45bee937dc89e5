import gzip
import io
import zlib

import pytest

from http_gzip_stream.compressors import GzipCompressor, GzipWriter, supports_flushable_gzip


class RecordingSink(io.BytesIO):
    def __init__(self):
        super().__init__()
        self.flushes = 0
        self.aborted = None
        self.value = None

    def flush(self):
        self.flushes += 1
        super().flush()

    def close(self):
        if not self.closed:
            self.value = self.getvalue()
        super().close()

    def abort(self, error=None):
        self.aborted = error
        self.close()


@pytest.fixture
def compressor():
    return GzipCompressor()


def test_compressor_simple_compression(compressor):
    original_data = b"Hello, World!" * 10
    compressed = compressor.compress(original_data)
    flushed = compressor.flush()

    full_compressed_data = compressed + flushed

    # 15 + 16 tells zlib to use the gzip header and trailer format.
    decompressed = zlib.decompress(full_compressed_data, 15 + 16)

    assert decompressed == original_data
    assert original_data != full_compressed_data


def test_compressor_incremental_compression(compressor):
    data_part1 = b"This is the first part."
    data_part2 = b"This is the second part."

    compressed1 = compressor.compress(data_part1)
    compressed2 = compressor.compress(data_part2)
    flushed = compressor.flush()

    decompressed = zlib.decompress(compressed1 + compressed2 + flushed, 15 + 16)
    assert decompressed == data_part1 + data_part2


def test_compressor_sync_flush_is_decodable(compressor):
    partial = compressor.compress(b"partial data") + compressor.sync_flush()

    decompressor = zlib.decompressobj(15 + 16)
    assert decompressor.decompress(partial) == b"partial data"


def test_compressor_empty_data(compressor):
    full_compressed_data = compressor.compress(b"") + compressor.flush()

    assert zlib.decompress(full_compressed_data, 15 + 16) == b""
    assert full_compressed_data != b""


def test_supports_flushable_gzip_is_memoized():
    assert supports_flushable_gzip() is True
    assert supports_flushable_gzip.cache_info().currsize == 1


def test_writer_close_finishes_member():
    sink = RecordingSink()
    with GzipWriter(sink, level=6) as writer:
        writer.write("héllo ")
        writer.write(b"world")

    assert writer.closed
    assert sink.closed
    assert gzip.decompress(sink.value) == "héllo world".encode("utf-8")


def test_writer_flush_on_write_emits_every_write():
    sink = io.BytesIO()
    writer = GzipWriter(sink, flush_on_write=True)
    writer.write(b"first")
    after_first = sink.getvalue()

    assert zlib.decompressobj(15 + 16).decompress(after_first) == b"first"


def test_writer_flush_pushes_pending_output():
    sink = RecordingSink()
    writer = GzipWriter(sink)
    writer.write(b"pending")
    writer.flush()

    assert sink.flushes == 1
    assert zlib.decompressobj(15 + 16).decompress(sink.getvalue()) == b"pending"


def test_writer_aborts_on_error():
    sink = RecordingSink()
    error = RuntimeError("boom")
    with pytest.raises(RuntimeError):
        with GzipWriter(sink) as writer:
            writer.write(b"data")
            raise error

    assert sink.aborted is error
    assert sink.closed
