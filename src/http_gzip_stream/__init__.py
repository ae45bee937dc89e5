from http_gzip_stream.compressor import CompressedStream, CompressionError, StreamingCompressor, compress
from http_gzip_stream.compressors import supports_flushable_gzip
from http_gzip_stream.middleware import (
    GzipHandler,
    GzipMiddleware,
    GzipPolicy,
    accepts_gzip,
    gzip_response,
    should_compress,
    wrap_gzip,
)
from http_gzip_stream.responder import GzipResponder, gzipped_response
from http_gzip_stream.transfer import copy_flushing, copy_stream
from http_gzip_stream.types import Request, Response

__all__ = [
    "CompressedStream",
    "CompressionError",
    "GzipHandler",
    "GzipMiddleware",
    "GzipPolicy",
    "GzipResponder",
    "Request",
    "Response",
    "StreamingCompressor",
    "accepts_gzip",
    "compress",
    "copy_flushing",
    "copy_stream",
    "gzip_response",
    "gzipped_response",
    "should_compress",
    "supports_flushable_gzip",
    "wrap_gzip",
]
