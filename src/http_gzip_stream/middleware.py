from __future__ import annotations

import functools
import logging
import re
from collections.abc import Callable
from typing import Any

from http_gzip_stream.compressor import StreamingCompressor
from http_gzip_stream.compressors import DEFAULT_LEVEL, supports_flushable_gzip
from http_gzip_stream.pipe import DEFAULT_PIPE_SIZE
from http_gzip_stream.responder import MATERIALIZE_THRESHOLD, CompressionResponder, GzipResponder
from http_gzip_stream.transfer import DEFAULT_CHUNK_SIZE
from http_gzip_stream.types import (
    ASGIApp,
    BodyKind,
    Receive,
    Request,
    Response,
    Scope,
    Send,
    classify_body,
)

logger = logging.getLogger(__name__)

MINIMUM_TEXT_LENGTH = 200

# Looser than a literal "gzip;q=" match: codings are case-insensitive and
# whitespace is allowed around ";"
ACCEPT_GZIP = re.compile(r"(gzip|\*)(\s*;\s*q=(\d+(\.\d+)?))?", re.IGNORECASE)
REFUSED_QUALITIES = frozenset({"0", "0.0", "0.00", "0.000"})


@functools.lru_cache(maxsize=1024)
def accepts_gzip(accept_encoding: str) -> bool:
    """
    Tells whether an Accept-Encoding value admits gzip.

    Only the first ``gzip`` or ``*`` entry counts. An explicit zero q-value
    on it refuses gzip, any other (or none) accepts it.
    Cached to minimize parsing overhead on repetitive headers.
    """
    match = ACCEPT_GZIP.search(accept_encoding)
    if match is None:
        return False
    return match.group(3) not in REFUSED_QUALITIES


def is_compressible(
    response: Response,
    flushable: bool,
    minimum_text_length: int = MINIMUM_TEXT_LENGTH,
) -> bool:
    if response.status != 200 or response.header("content-encoding") is not None:
        return False
    kind = classify_body(response.body)
    if kind is BodyKind.TEXT:
        return len(response.body) > minimum_text_length
    if kind is BodyKind.CHUNKS:
        return flushable
    return kind in (BodyKind.STREAM, BodyKind.FILE)


class GzipPolicy:
    """
    Decides per response whether to gzip it, and does so when it applies.

    Responses that are not compressed are returned unchanged, as the very
    same object.
    """

    def __init__(
        self,
        level: int = DEFAULT_LEVEL,
        materialize_threshold: int = MATERIALIZE_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        pipe_size: int = DEFAULT_PIPE_SIZE,
        minimum_text_length: int = MINIMUM_TEXT_LENGTH,
        flushable: bool | None = None,
    ) -> None:
        self.flushable = supports_flushable_gzip() if flushable is None else flushable
        self.minimum_text_length = minimum_text_length
        self.chunk_size = chunk_size
        self.compressor = StreamingCompressor(
            level=level,
            flushable=self.flushable,
            pipe_size=pipe_size,
            chunk_size=chunk_size,
        )
        self.responder = GzipResponder(
            self.compressor,
            materialize_threshold=materialize_threshold,
            chunk_size=chunk_size,
        )

    def should_compress(self, request: Request, response: Response) -> bool:
        if not is_compressible(response, self.flushable, self.minimum_text_length):
            return False
        return accepts_gzip(request.header("accept-encoding", "") or "")

    def __call__(self, request: Request, response: Response) -> Response:
        if not self.should_compress(request, response):
            return response
        logger.debug(
            "gzipping %s response body", classify_body(response.body).value
        )
        return self.responder(response)


@functools.lru_cache(maxsize=1)
def default_policy() -> GzipPolicy:
    return GzipPolicy()


def should_compress(request: Request, response: Response) -> bool:
    return default_policy().should_compress(request, response)


def gzip_response(request: Request, response: Response) -> Response:
    return default_policy()(request, response)


class GzipHandler:
    """
    Wraps a request handler so its responses are gzipped when the client
    accepts it.

    Supports both handler shapes: ``handler(request)`` returning a response,
    and ``handler(request, respond, raise_)`` delivering it to ``respond``.
    """

    def __init__(self, handler: Callable[..., Any], **options: Any) -> None:
        self.handler = handler
        self.policy = GzipPolicy(**options)

    def __call__(
        self,
        request: Request,
        respond: Callable[[Response], Any] | None = None,
        raise_: Callable[[BaseException], Any] | None = None,
    ) -> Any:
        if respond is None:
            return self.policy(request, self.handler(request))

        def respond_gzipped(response: Response) -> Any:
            try:
                gzipped = self.policy(request, response)
            except Exception as exc:
                if raise_ is None:
                    raise
                return raise_(exc)
            return respond(gzipped)

        return self.handler(request, respond_gzipped, raise_)


def wrap_gzip(handler: Callable[..., Any], **options: Any) -> GzipHandler:
    return GzipHandler(handler, **options)


class GzipMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        level: int = DEFAULT_LEVEL,
        materialize_threshold: int = MATERIALIZE_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        pipe_size: int = DEFAULT_PIPE_SIZE,
        minimum_text_length: int = MINIMUM_TEXT_LENGTH,
    ) -> None:
        self.app = app
        self.policy = GzipPolicy(
            level=level,
            materialize_threshold=materialize_threshold,
            chunk_size=chunk_size,
            pipe_size=pipe_size,
            minimum_text_length=minimum_text_length,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request.from_scope(scope)

        # Nothing to negotiate, skip the responder altogether
        if not accepts_gzip(request.header("accept-encoding", "") or ""):
            await self.app(scope, receive, send)
            return

        responder = CompressionResponder(
            self.app,
            request,
            self.policy,
            chunk_size=self.policy.chunk_size,
        )
        await responder(scope, receive, send)
