"""Internal server utilities for WebDAV: method dispatch and error responses."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol
from urllib.parse import quote

from lxml import etree
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from .elements import MultiStatus, error_xml
from .internal import HTTPError, resolve_uri

logger = logging.getLogger("minidav")

XML_MEDIA_TYPE = "application/xml; charset=utf-8"

DAV_CAPABILITIES = "1, 2, 3"

METHODS = [
    "OPTIONS",
    "GET",
    "HEAD",
    "PUT",
    "DELETE",
    "COPY",
    "MOVE",
    "MKCOL",
    "PROPFIND",
    "PROPPATCH",
    "LOCK",
    "UNLOCK",
]


def xml_bytes(content: etree._Element) -> bytes:
    return etree.tostring(content, encoding="utf-8", xml_declaration=True)


def serve_error(err: Exception) -> StarletteResponse:
    """Serve an error response."""
    if not isinstance(err, HTTPError):
        logger.exception("webdav: unexpected error", exc_info=err)
        return StarletteResponse(content="Internal Server Error", status_code=500)

    logger.debug("=> %d - %s", err.code, err.message)

    return StarletteResponse(
        content=xml_bytes(error_xml(err.message)),
        status_code=err.code,
        headers=err.headers,
        media_type=XML_MEDIA_TYPE,
    )


def serve_xml(
    content: etree._Element, status_code: int = 200, headers: dict[str, str] | None = None
) -> StarletteResponse:
    """Serve an XML response."""
    return StarletteResponse(
        content=xml_bytes(content),
        status_code=status_code,
        headers=headers,
        media_type=XML_MEDIA_TYPE,
    )


def serve_multistatus(ms: MultiStatus) -> StarletteResponse:
    """Serve a multistatus response."""
    return serve_xml(ms.to_xml(), status_code=207, headers={"DAV": DAV_CAPABILITIES})


def raw_path(request: Request) -> str:
    """Return the request path as sent by the client, still URL-encoded."""
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return quote(request.url.path)


class Backend(Protocol):
    """WebDAV method handlers. Each one receives the resolved relative URI."""

    async def get(self, request: Request, uri: str) -> StarletteResponse: ...

    async def head(self, request: Request, uri: str) -> StarletteResponse: ...

    async def put(self, request: Request, uri: str) -> StarletteResponse: ...

    async def delete(self, request: Request, uri: str) -> StarletteResponse: ...

    async def copy(self, request: Request, uri: str) -> StarletteResponse: ...

    async def move(self, request: Request, uri: str) -> StarletteResponse: ...

    async def mkcol(self, request: Request, uri: str) -> StarletteResponse: ...

    async def propfind(self, request: Request, uri: str) -> StarletteResponse: ...

    async def proppatch(self, request: Request, uri: str) -> StarletteResponse: ...

    async def lock(self, request: Request, uri: str) -> StarletteResponse: ...

    async def unlock(self, request: Request, uri: str) -> StarletteResponse: ...


MethodHandler = Callable[[Request, str], Awaitable[StarletteResponse]]


class Handler:
    """WebDAV HTTP method dispatcher."""

    def __init__(self, backend: Backend, base_uri: str = "/"):
        self.backend = backend
        self.base_uri = base_uri
        self.handlers: dict[str, MethodHandler] = {
            "GET": backend.get,
            "HEAD": backend.head,
            "PUT": backend.put,
            "DELETE": backend.delete,
            "COPY": backend.copy,
            "MOVE": backend.move,
            "MKCOL": backend.mkcol,
            "PROPFIND": backend.propfind,
            "PROPPATCH": backend.proppatch,
            "LOCK": backend.lock,
            "UNLOCK": backend.unlock,
        }

    async def handle(self, request: Request) -> StarletteResponse:
        """Handle HTTP request."""
        method = request.method

        # Answered before looking at the URI at all
        if method == "OPTIONS":
            return self._handle_options()

        try:
            handler = self.handlers.get(method)
            if handler is None:
                raise HTTPError(405, "Invalid request method")

            uri = resolve_uri(raw_path(request), self.base_uri)
            logger.debug("<= %s /%s", method, uri)

            response = await handler(request, uri)
            logger.debug("=> %d", response.status_code)
            return response
        except Exception as e:
            return serve_error(e)

    def _handle_options(self) -> StarletteResponse:
        """Handle OPTIONS request."""
        headers = {
            "DAV": DAV_CAPABILITIES,
            "Allow": ", ".join(METHODS),
            "Content-Length": "0",
            "Accept-Ranges": "bytes",
            "MS-Author-Via": "DAV",
        }
        return StarletteResponse(status_code=200, headers=headers)
