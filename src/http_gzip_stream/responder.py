from __future__ import annotations

import asyncio
import dataclasses
import io
import logging
from collections.abc import Callable
from typing import Any

from http_gzip_stream.compressor import CompressedStream, CompressionError, StreamingCompressor
from http_gzip_stream.pipe import ChunkQueue
from http_gzip_stream.transfer import DEFAULT_CHUNK_SIZE, copy_flushing
from http_gzip_stream.types import (
    ASGIApp,
    Message,
    Receive,
    Request,
    Response,
    Scope,
    Send,
    replace_headers,
)

logger = logging.getLogger(__name__)

MATERIALIZE_THRESHOLD = 1024 * 1024

Policy = Callable[[Request, Response], Response]


def content_length(response: Response) -> int | None:
    """Parsed Content-Length, or None when absent or malformed."""
    value = response.header("content-length")
    if value is None:
        return None
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)


class GzipResponder:
    """
    Replaces a response body with its gzip encoding.

    Bodies with a known length under ``materialize_threshold`` are compressed
    into memory, so the response keeps an exact Content-Length. Anything else
    is handed on as a live compressed stream without a Content-Length.
    """

    def __init__(
        self,
        compressor: StreamingCompressor | None = None,
        materialize_threshold: int = MATERIALIZE_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.compressor = compressor or StreamingCompressor(chunk_size=chunk_size)
        self.materialize_threshold = materialize_threshold
        self.chunk_size = chunk_size

    def materializes(self, response: Response) -> bool:
        length = content_length(response)
        return length is not None and length < self.materialize_threshold

    def __call__(self, response: Response) -> Response:
        stream = self.compressor.compress(response.body)

        if not self.materializes(response):
            headers = replace_headers(
                response.headers,
                {"Content-Encoding": "gzip"},
                remove=("Content-Length",),
            )
            return dataclasses.replace(response, headers=headers, body=stream)

        buffer = io.BytesIO()
        with stream:
            copy_flushing(stream, buffer, chunk_size=self.chunk_size)
            error = stream.error
        if error is not None:
            raise CompressionError("gzip compression of response body failed") from error

        compressed = buffer.getvalue()
        headers = replace_headers(
            response.headers,
            {"Content-Encoding": "gzip", "Content-Length": str(len(compressed))},
        )
        return dataclasses.replace(response, headers=headers, body=io.BytesIO(compressed))


def gzipped_response(response: Response, **options: Any) -> Response:
    return GzipResponder(**options)(response)


class SendWriter:
    """
    Blocking, writable view of an ASGI ``send`` for use from a worker thread.

    Written bytes are held until ``flush``, which sends them as one body
    message on the event loop and waits for the send to complete.
    """

    def __init__(self, send: Send, loop: asyncio.AbstractEventLoop) -> None:
        self._send = send
        self._loop = loop
        self._pending = bytearray()

    def write(self, data: bytes) -> int:
        self._pending += data
        return len(data)

    def flush(self) -> None:
        if not self._pending:
            return
        message = {"type": "http.response.body", "body": bytes(self._pending), "more_body": True}
        self._pending.clear()
        asyncio.run_coroutine_threadsafe(self._send(message), self._loop).result()


class CompressionResponder:
    def __init__(
        self,
        app: ASGIApp,
        request: Request,
        policy: Policy,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.app = app
        self.request = request
        self.policy = policy
        self.chunk_size = chunk_size

        self.send: Send = self.unattached_send
        self.initial_message: Message = {}
        self.started = False
        self.passthrough = False
        self.chunks: ChunkQueue | None = None
        self.pump: asyncio.Task[None] | None = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        self.send = send
        try:
            await self.app(scope, receive, self.send_with_compression)
        except BaseException as exc:
            if self.chunks is not None and not self.chunks.ended:
                self.chunks.end(CompressionError("application failed while streaming"))
                logger.debug("streamed gzip response aborted: %r", exc)
            if self.pump is not None:
                await asyncio.wait([self.pump])
            raise

    async def send_with_compression(self, message: Message) -> None:
        message_type = message["type"]

        if message_type == "http.response.start":
            self.initial_message = message
            return

        if message_type != "http.response.body" or self.passthrough:
            if not self.started:
                # e.g. http.response.pathsend, the body never goes through us
                self.started = True
                self.passthrough = True
                await self.send(self.initial_message)
            await self.send(message)
            return

        body = message.get("body", b"")
        more_body = message.get("more_body", False)

        if self.started:
            if self.chunks is not None:
                if body:
                    self.chunks.put(body)
                if not more_body:
                    self.chunks.end()
            if not more_body and self.pump is not None:
                await self.pump
            return

        self.started = True
        status = self.initial_message.get("status", 200)
        headers = self._decoded_headers()

        if more_body:
            chunks = ChunkQueue()
            if body:
                chunks.put(body)
            # The remaining chunks have not been sent yet, so the body can
            # only be streamed, never drained into memory here.
            response = Response(
                status=status,
                headers=replace_headers(headers, remove=("content-length",)),
                body=chunks,
            )
        else:
            chunks = None
            response = Response(status=status, headers=headers, body=body)

        result = self.policy(self.request, response)

        if result is response:
            self.passthrough = True
            await self.send(self.initial_message)
            await self.send(message)
            return

        self.initial_message["headers"] = self._rewrite_headers(result)
        await self.send(self.initial_message)

        if isinstance(result.body, CompressedStream):
            self.chunks = chunks
            self.pump = asyncio.create_task(self._pump(result.body))
            if not more_body:
                await self.pump
        else:
            await self.send(
                {
                    "type": "http.response.body",
                    "body": result.body.getvalue(),
                    "more_body": False,
                }
            )

    async def _pump(self, stream: CompressedStream) -> None:
        writer = SendWriter(self.send, asyncio.get_running_loop())
        with stream:
            await asyncio.to_thread(copy_flushing, stream, writer, self.chunk_size)
            error = stream.error
        if error is None:
            await self.send({"type": "http.response.body", "body": b"", "more_body": False})

    def _decoded_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        for key, value in self.initial_message.get("headers", []):
            headers.setdefault(key.decode("latin-1").lower(), value.decode("latin-1"))
        return headers

    def _rewrite_headers(self, response: Response) -> list:
        replaced = (b"content-encoding", b"content-length")
        headers = [h for h in self.initial_message.get("headers", []) if h[0].lower() not in replaced]

        for name in ("content-encoding", "content-length"):
            value = response.header(name)
            if value is not None:
                headers.append((name.encode(), value.encode("latin-1")))

        for i, (key, value) in enumerate(headers):
            if key.lower() == b"vary":
                if b"accept-encoding" not in value.lower():
                    headers[i] = (key, value + b", Accept-Encoding" if value else b"Accept-Encoding")
                break
        else:
            headers.append((b"vary", b"Accept-Encoding"))
        return headers

    async def unattached_send(self, message: Message) -> None:
        raise RuntimeError("send awaitable not set")
