from __future__ import annotations

import enum
import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

# ASGI types
Scope = dict[str, Any]
Message = dict[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

Headers = Mapping[str, str]


def get_header(headers: Headers, name: str, default: str | None = None) -> str | None:
    """Case-insensitive header lookup."""
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return default


def replace_headers(
    headers: Headers,
    updates: Mapping[str, str] | None = None,
    remove: Iterable[str] = (),
) -> dict[str, str]:
    """
    Returns a new headers mapping with ``updates`` applied and ``remove`` dropped.

    Every case variant of a touched name is dropped first, so the result never
    carries both ``content-length`` and ``Content-Length``.
    """
    updates = updates or {}
    touched = {name.lower() for name in updates} | {name.lower() for name in remove}
    result = {key: value for key, value in headers.items() if key.lower() not in touched}
    result.update(updates)
    return result


class BodyKind(enum.Enum):
    TEXT = "text"
    STREAM = "stream"
    FILE = "file"
    CHUNKS = "chunks"
    EMPTY = "empty"
    OTHER = "other"


def classify_body(body: Any) -> BodyKind:
    if body is None:
        return BodyKind.EMPTY
    if isinstance(body, (str, bytes, bytearray)):
        return BodyKind.TEXT
    if isinstance(body, os.PathLike):
        return BodyKind.FILE
    # File objects are iterable too, so streams are checked first
    if callable(getattr(body, "read", None)):
        return BodyKind.STREAM
    if isinstance(body, Iterable):
        return BodyKind.CHUNKS
    return BodyKind.OTHER


@dataclass(frozen=True)
class Request:
    headers: Headers = field(default_factory=dict)

    @classmethod
    def from_scope(cls, scope: Scope) -> Request:
        headers: dict[str, str] = {}
        for key, value in scope.get("headers", []):
            # latin-1 maps every byte, so decoding never fails
            headers.setdefault(key.decode("latin-1").lower(), value.decode("latin-1"))
        return cls(headers=headers)

    def header(self, name: str, default: str | None = None) -> str | None:
        return get_header(self.headers, name, default)


@dataclass(frozen=True)
class Response:
    status: int = 200
    headers: Headers = field(default_factory=dict)
    body: Any = None

    def header(self, name: str, default: str | None = None) -> str | None:
        return get_header(self.headers, name, default)
