import pytest
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.responses import Response, StreamingResponse
from starlette.routing import Route

from http_gzip_stream.middleware import GzipMiddleware


async def small_response(request):
    """Response not longer than the minimum text length."""
    return Response("tiny", media_type="text/plain")

async def large_response(request):
    """Large response target for compression."""
    data = "A" * 1000  # 1000 bytes
    return Response(data, media_type="text/plain")

async def huge_response(request):
    """Response at the materialization threshold, compressed as a stream."""
    data = "H" * (1024 * 1024)
    return Response(data, media_type="text/plain")

async def streaming_response(request):
    """Streaming response generator."""
    async def generator():
        yield b"chunk1" * 100
        yield b"chunk2" * 100
        yield b"chunk3" * 100

    return StreamingResponse(generator(), media_type="text/plain")

async def error_response(request):
    """400 Bad Request response (for status code preservation test)."""
    return Response("Error occurred" * 50, status_code=400)

async def encoded_response(request):
    """Response that already carries a Content-Encoding."""
    return Response(
        "C" * 1000,
        media_type="text/plain",
        headers={"Content-Encoding": "identity"},
    )

# --- App Fixture ---

@pytest.fixture
def app():
    routes = [
        Route("/small", small_response),
        Route("/large", large_response),
        Route("/huge", huge_response),
        Route("/stream", streaming_response),
        Route("/error", error_response),
        Route("/encoded", encoded_response),
    ]

    application = Starlette(routes=routes)

    # Add Middleware
    application.add_middleware(GzipMiddleware, level=6)
    return application

@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver"
    ) as c:
        yield c
