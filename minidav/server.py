"""WebDAV server implementation."""

from __future__ import annotations

import logging
import posixpath
from datetime import datetime
from tempfile import SpooledTemporaryFile
from typing import Any, BinaryIO, Protocol
from urllib.parse import quote

from lxml import etree
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, StreamingResponse
from starlette.responses import Response as StarletteResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .html import html_directory
from .internal import (
    NAMESPACE,
    ByteRange,
    Depth,
    HTTPError,
    MultiStatus,
    accepts_gzip,
    check_lock,
    extract_requested_properties,
    get_lock_token,
    gzip_bytes,
    http_date,
    iter_file,
    join_uri,
    lock_discovery,
    new_lock_token,
    normalize_base_uri,
    parse_lock_info,
    parse_overwrite,
    parse_propfind_depth,
    parse_range,
    quote_etag,
    raw_path,
    resolve_range,
    resolve_uri,
    serve_multistatus,
    serve_xml,
    stream_length,
)
from .internal import Handler as InternalHandler
from .webdav import (
    BASIC_PROPERTIES,
    COLLECTION,
    GET_CONTENT_LENGTH,
    GET_CONTENT_TYPE,
    GET_ETAG,
    GET_LAST_MODIFIED,
    PROP_THUMB_URL,
    RESOURCE_TYPE,
    ConditionalMatch,
    FileContent,
    LockScope,
)

logger = logging.getLogger("minidav")

# PUT bodies larger than this are spooled to disk
SPOOL_MAX_SIZE = 1024 * 1024


class Storage(Protocol):
    """WebDAV storage backend interface.

    URIs are relative to the server base URI, without leading or trailing
    slash; the root collection is the empty string. Property names are
    "namespace-URI:local-name" (e.g. "DAV::getetag"). Failures are reported
    by raising HTTPError, which is forwarded to the client.
    """

    async def get(self, uri: str) -> FileContent | None:
        """Return the content of a file, or None if it does not exist."""
        ...

    async def exists(self, uri: str) -> bool:
        """Check if a resource exists."""
        ...

    async def properties(
        self, uri: str, requested: list[str] | None, depth: int
    ) -> dict[str, Any] | None:
        """Get the properties of a resource.

        Args:
            uri: Resource path
            requested: Requested property names, or None for the basic ones
            depth: Depth of the PROPFIND request

        Returns:
            Property name to value, or None if the resource does not exist
        """
        ...

    async def set_properties(self, uri: str, body: str) -> None:
        """Apply a PROPPATCH request body."""
        ...

    async def put(self, uri: str, body: BinaryIO) -> bool:
        """Create or replace a file.

        Returns:
            True if the file was created
        """
        ...

    async def delete(self, uri: str) -> None:
        """Delete a resource and, for collections, its members."""
        ...

    async def copy(self, uri: str, destination: str) -> bool:
        """Copy a resource.

        Returns:
            True if the destination was overwritten
        """
        ...

    async def move(self, uri: str, destination: str) -> bool:
        """Move a resource.

        Returns:
            True if the destination was overwritten
        """
        ...

    async def mkcol(self, uri: str) -> None:
        """Create a collection."""
        ...

    async def list(
        self, uri: str, requested: list[str] | None
    ) -> dict[str, dict[str, Any] | None]:
        """List the members of a collection.

        Returns:
            Member name to its properties, or to None if they should be
            fetched separately
        """
        ...

    async def lock(self, uri: str, token: str, scope: LockScope) -> None:
        """Lock a resource, or refresh an existing lock."""
        ...

    async def unlock(self, uri: str, token: str) -> None:
        """Release a lock."""
        ...

    async def get_lock(self, uri: str, token: str | None = None) -> str | None:
        """Return the scope of the lock held on a resource.

        If a token is given, only a lock matching that token counts.
        """
        ...


class WebDAVBackend:
    """WebDAV method handlers, on top of a Storage."""

    def __init__(self, storage: Storage, base_uri: str = "/"):
        self.storage = storage
        self.base_uri = base_uri

    async def _check_lock(self, request: Request, uri: str, token: str | None = None) -> None:
        await check_lock(self.storage, request.headers, self.base_uri, uri, token)

    async def _head(self, uri: str) -> tuple[dict[str, Any], dict[str, str]]:
        """Fetch base properties and build the headers shared by HEAD and GET."""
        props = await self.storage.properties(uri, BASIC_PROPERTIES + [GET_ETAG], 0)

        if not props:
            raise HTTPError(404, "Resource Not Found")

        headers: dict[str, str] = {}

        if isinstance(props.get(GET_LAST_MODIFIED), datetime):
            headers["Last-Modified"] = http_date(props[GET_LAST_MODIFIED])

        if props.get(GET_ETAG):
            headers["ETag"] = quote_etag(str(props[GET_ETAG]))

        if props.get(RESOURCE_TYPE) != COLLECTION:
            if props.get(GET_CONTENT_TYPE):
                headers["Content-Type"] = str(props[GET_CONTENT_TYPE])

            if props.get(GET_CONTENT_LENGTH) is not None:
                headers["Content-Length"] = str(int(props[GET_CONTENT_LENGTH]))
                headers["Accept-Ranges"] = "bytes"

        return props, headers

    async def head(self, request: Request, uri: str) -> StarletteResponse:
        """Handle HEAD request."""
        _, headers = await self._head(uri)
        return StarletteResponse(status_code=200, headers=headers)

    async def get(self, request: Request, uri: str) -> StarletteResponse:
        """Handle GET request."""
        props, headers = await self._head(uri)

        if props.get(RESOURCE_TYPE) == COLLECTION:
            return await self._get_collection(request, uri, headers)

        file = await self.storage.get(uri)

        if file is None:
            raise HTTPError(404, "File Not Found")

        if file.content is None and file.resource is None and file.path is None:
            raise RuntimeError("Invalid file returned by Storage.get()")

        compress = accepts_gzip(request.headers.get("accept-encoding"))
        requested = parse_range(request.headers.get("range"))

        if requested:
            logger.debug("HTTP Range requested: %s-%s", *requested)

        if file.content is not None:
            return self._serve_content(file.content, requested, compress, headers)

        f = file.resource if file.resource is not None else self._open(file.path)
        try:
            length = stream_length(f)
            byte_range: ByteRange | None = None

            if requested and length is not None:
                byte_range = resolve_range(requested, length)
                f.seek(byte_range.start)
                length = byte_range.size
                headers["Content-Range"] = byte_range.content_range()
        except Exception:
            f.close()
            raise

        if compress:
            # Compressed size is unknown until the end of the stream
            logger.debug("Using gzip output compression")
            headers["Content-Encoding"] = "gzip"
            headers.pop("Content-Length", None)
        elif length is not None:
            headers["Content-Length"] = str(length)

        return StreamingResponse(
            iter_file(f, length if byte_range else None, compress),
            status_code=206 if byte_range else 200,
            headers=headers,
        )

    def _open(self, path: str | None) -> BinaryIO:
        try:
            return open(path, "rb")  # type: ignore[arg-type]
        except FileNotFoundError as e:
            raise HTTPError(404, "File Not Found") from e

    def _serve_content(
        self,
        content: bytes,
        requested: tuple[int | None, int | None] | None,
        compress: bool,
        headers: dict[str, str],
    ) -> StarletteResponse:
        """Serve a file held in memory: its final length is always known."""
        status_code = 200

        if requested:
            byte_range = resolve_range(requested, len(content))
            content = content[byte_range.start : byte_range.end + 1]
            headers["Content-Range"] = byte_range.content_range()
            status_code = 206

        if compress:
            content = gzip_bytes(content)
            headers["Content-Encoding"] = "gzip"

        headers["Content-Length"] = str(len(content))
        return StarletteResponse(content=content, status_code=status_code, headers=headers)

    async def _get_collection(
        self, request: Request, uri: str, headers: dict[str, str]
    ) -> StarletteResponse:
        """List a collection, as plain text or as an HTML page for browsers."""
        members = await self.storage.list(uri, BASIC_PROPERTIES + [PROP_THUMB_URL])

        if "html" not in request.headers.get("accept", ""):
            text = "\n".join(members) if members else "Nothing in this collection\n"
            return StarletteResponse(
                content=text, headers=headers, media_type="text/plain; charset=utf-8"
            )

        if not raw_path(request).endswith("/"):
            location = "/" + (self.base_uri + uri).strip("/") + "/"
            return StarletteResponse(status_code=301, headers={"Location": quote(location)})

        listing: dict[str, dict[str, Any]] = {}
        for name, props in members.items():
            if props is None:
                props = await self.storage.properties(join_uri(uri, name), BASIC_PROPERTIES, 0)
            listing[name] = props or {}

        return HTMLResponse(html_directory(uri, listing), headers=headers)

    async def put(self, request: Request, uri: str) -> StarletteResponse:
        """Handle PUT request."""
        if request.headers.get("content-type", "").startswith("multipart/"):
            raise HTTPError(501, "Multipart PUT requests are not supported")

        if request.headers.get("content-encoding"):
            raise HTTPError(501, "Content Encoding is not supported")

        if request.headers.get("content-range"):
            raise HTTPError(501, "Content Range is not supported")

        # OS/X Finder sends chunked bodies with this header, and expects the
        # server to honor it, which we can't do here
        if "x-expected-entity-length" in request.headers:
            raise HTTPError(
                403,
                "This server is not compatible with OS/X finder. "
                "Consider using a different WebDAV client or webserver.",
            )

        await self._check_lock(request, uri)

        if_match = ConditionalMatch(request.headers.get("if-match", ""))
        if if_match.is_set():
            props = await self.storage.properties(uri, [GET_ETAG], 0)
            etag = str((props or {}).get(GET_ETAG) or "")
            if etag and not if_match.match_etag(etag):
                raise HTTPError(412, "ETag did not match condition")

        with SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as body:
            async for chunk in request.stream():
                body.write(chunk)
            body.seek(0)
            created = await self.storage.put(uri, body)  # type: ignore[arg-type]

        headers: dict[str, str] = {}
        props = await self.storage.properties(uri, [GET_ETAG], 0)
        if props and props.get(GET_ETAG):
            headers["ETag"] = quote_etag(str(props[GET_ETAG]))

        return StarletteResponse(status_code=201 if created else 204, headers=headers)

    async def delete(self, request: Request, uri: str) -> StarletteResponse:
        """Handle DELETE request."""
        # RFC 4918 section 9.6.1
        depth = request.headers.get("depth")
        if depth is not None and depth != "infinity":
            raise HTTPError(400, "We can only delete to infinity")

        await self._check_lock(request, uri)
        await self.storage.delete(uri)

        token = get_lock_token(request.headers)
        if token:
            await self.storage.unlock(uri, token)

        return StarletteResponse(status_code=204)

    async def copy(self, request: Request, uri: str) -> StarletteResponse:
        """Handle COPY request."""
        return await self._copy_move(request, uri, move=False)

    async def move(self, request: Request, uri: str) -> StarletteResponse:
        """Handle MOVE request."""
        return await self._copy_move(request, uri, move=True)

    async def _copy_move(self, request: Request, uri: str, move: bool) -> StarletteResponse:
        destination_header = request.headers.get("destination")
        if not destination_header:
            raise HTTPError(400, "Destination not supplied")

        destination = resolve_uri(destination_header, self.base_uri)
        overwrite = parse_overwrite(request.headers.get("overwrite"))

        # Some clients (e.g. Dolphin) drop the file name when moving to the root
        if not destination:
            destination = posixpath.basename(uri)

        logger.debug("<= Destination: %s", destination)
        logger.debug("<= Overwrite: %s", "Yes" if overwrite else "No")

        if not overwrite and await self.storage.exists(destination):
            raise HTTPError(412, "File already exists and overwriting is disabled")

        if move:
            await self._check_lock(request, uri)

        # The token sent for the source does not lock the destination
        if await self.storage.get_lock(destination):
            await self._check_lock(request, destination)

        if move:
            overwritten = await self.storage.move(uri, destination)
            token = get_lock_token(request.headers)
            if token:
                await self.storage.unlock(uri, token)
        else:
            overwritten = await self.storage.copy(uri, destination)

        return StarletteResponse(status_code=204 if overwritten else 201)

    async def mkcol(self, request: Request, uri: str) -> StarletteResponse:
        """Handle MKCOL request."""
        if request.headers.get("content-length", "0") not in ("", "0") or request.headers.get(
            "transfer-encoding"
        ):
            raise HTTPError(415, "Unsupported body for MKCOL")

        await self.storage.mkcol(uri)
        return StarletteResponse(status_code=201)

    async def propfind(self, request: Request, uri: str) -> StarletteResponse:
        """Handle PROPFIND request."""
        depth = parse_propfind_depth(request.headers.get("depth"))
        body = await request.body()

        logger.debug("Depth: %d", depth)

        requested = extract_requested_properties(body)
        requested_keys = list(requested) if requested else None

        properties = await self.storage.properties(uri, requested_keys, depth)

        if properties is None:
            raise HTTPError(404, "This does not exist")

        ms = MultiStatus(base_uri=self.base_uri, requested=requested)
        ms.add(uri, properties)

        if depth == Depth.ONE:
            members = await self.storage.list(uri, requested_keys)
            for name, props in members.items():
                path = join_uri(uri, name)
                if props is None:
                    props = await self.storage.properties(path, requested_keys, 0)

                if props is None:
                    logger.debug("!!! Cannot find %r", path)
                    continue

                ms.add(path, props)

        return serve_multistatus(ms)

    async def proppatch(self, request: Request, uri: str) -> StarletteResponse:
        """Handle PROPPATCH request.

        Which properties are stored, and how, is up to the storage.
        """
        await self._check_lock(request, uri)

        body = await request.body()
        await self.storage.set_properties(uri, body.decode("utf-8", errors="replace"))

        root = etree.Element(f"{{{NAMESPACE}}}multistatus", nsmap={"d": NAMESPACE})
        return serve_xml(root, status_code=207)

    async def lock(self, request: Request, uri: str) -> StarletteResponse:
        """Handle LOCK request: create a new lock, or refresh an existing one."""
        body = await request.body()
        lockinfo = None

        if not body.strip() and request.headers.get("if"):
            token = get_lock_token(request.headers)

            if not token:
                raise HTTPError(400, "Invalid If header")

            await self._check_lock(request, uri, token)

            stored = await self.storage.get_lock(uri, token)
            scope = LockScope(stored) if stored in list(LockScope) else LockScope.EXCLUSIVE
            logger.debug("Requesting LOCK refresh: %s = %s", uri, scope.value)
        else:
            lockinfo, scope = parse_lock_info(body)
            token = new_lock_token()

            logger.debug("Requesting LOCK: %s = %s", uri, scope.value)
            locked_scope = await self.storage.get_lock(uri)

            if locked_scope == LockScope.EXCLUSIVE or (locked_scope and scope == LockScope.EXCLUSIVE):
                raise HTTPError(423, "Cannot acquire another lock, resource is locked for exclusive use")

        await self.storage.lock(uri, token, scope)

        depth = "0" if request.headers.get("depth") == "0" else "infinity"
        return serve_xml(
            lock_discovery(token, scope, depth, lockinfo),
            headers={"Lock-Token": f"<{token}>"},
        )

    async def unlock(self, request: Request, uri: str) -> StarletteResponse:
        """Handle UNLOCK request."""
        token = get_lock_token(request.headers)

        if not token:
            raise HTTPError(400, "Invalid Lock-Token header")

        logger.debug("<= Lock Token: %s", token)

        await self._check_lock(request, uri, token)
        await self.storage.unlock(uri, token)

        return StarletteResponse(status_code=204)


class Handler:
    """WebDAV HTTP handler."""

    def __init__(self, storage: Storage, base_uri: str = "/", debug: bool = False):
        """Initialize handler.

        Args:
            storage: Storage backend
            base_uri: Path under which the WebDAV tree is served
            debug: Enable debug logging
        """
        self.storage = storage
        self.base_uri = normalize_base_uri(base_uri)
        self.backend = WebDAVBackend(storage, self.base_uri)
        self.internal_handler = InternalHandler(self.backend, self.base_uri)
        self.debug = debug

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = await self.handle(Request(scope, receive))
        await response(scope, receive, send)

    def in_scope(self, path: str) -> bool:
        """Check if a request path belongs to the WebDAV tree."""
        return path.startswith(self.base_uri) or path + "/" == self.base_uri

    async def handle(self, request: Request) -> StarletteResponse:
        """Handle WebDAV HTTP request.

        Args:
            request: Starlette request

        Returns:
            Starlette response
        """
        if self.debug:
            from .debug import log_request

            # Read and cache the request body
            request_body = await request.body()

            log_request(request.method, str(request.url.path), dict(request.headers.items()), request_body)

            # request.body() can only be read from the server once
            async def receive():
                return {"type": "http.request", "body": request_body}

            request = Request(scope=request.scope, receive=receive)

        if not self.in_scope(request.url.path):
            response = StarletteResponse(content="Not Found", status_code=404)
        else:
            response = await self.internal_handler.handle(request)

        if self.debug:
            await self._log_response(response)

        return response

    async def _log_response(self, response: StarletteResponse) -> None:
        """Log an outgoing response for debugging."""
        from .debug import log_response

        body: bytes | None = None
        # Streamed bodies can't be logged without consuming them
        if not isinstance(response, StreamingResponse):
            body = response.body

        log_response(response.status_code, dict(response.headers.items()), body)


def create_app(storage: Storage, base_uri: str = "/", debug: bool = False) -> Starlette:
    """Create a Starlette app for WebDAV.

    Args:
        storage: Storage backend
        base_uri: Path under which the WebDAV tree is served
        debug: Enable debug logging

    Returns:
        Starlette application
    """
    handler = Handler(storage, base_uri=base_uri, debug=debug)

    # Mounted as an ASGI app so that every method reaches the dispatcher,
    # unknown ones included
    return Starlette(routes=[Route("/{path:path}", handler)])
