"""Low-level helpers for the WebDAV server."""

from __future__ import annotations

import re
from enum import IntEnum
from http import HTTPStatus
from urllib.parse import unquote, urlparse


class Depth(IntEnum):
    """Depth indicates whether a request applies to the resource's members.

    Defined in RFC 4918 section 10.2. Infinity is not served by PROPFIND.
    """

    ZERO = 0  # Request applies only to the resource
    ONE = 1  # Request applies to resource and its internal members only


def parse_propfind_depth(s: str | None) -> Depth:
    """Parse the Depth header of a PROPFIND request.

    Only an explicit empty value or "0" means zero, anything else
    (including a missing header or "infinity") is served as depth 1.
    """
    if s is not None and s.strip() in ("", "0"):
        return Depth.ZERO
    return Depth.ONE


def parse_overwrite(s: str | None) -> bool:
    """Parse an Overwrite header. Only "T" enables overwriting."""
    return (s or "").strip() == "T"


class HTTPError(Exception):
    """HTTP error with status code.

    Raised by request handlers and storage implementations, and turned into
    an XML error response by the dispatcher.
    """

    def __init__(self, code: int, message: str = "", headers: dict[str, str] | None = None):
        self.code = code
        self.message = message
        self.headers = headers or {}
        super().__init__(str(self))

    @property
    def reason(self) -> str:
        try:
            return HTTPStatus(self.code).phrase
        except ValueError:
            return "Unknown"

    def __str__(self) -> str:
        s = f"{self.code} {self.reason}"
        if self.message:
            return f"{s}: {self.message}"
        return s


_MULTIPLE_SLASHES = re.compile(r"/{2,}")


def normalize_base_uri(base_uri: str) -> str:
    """Make sure the base URI starts and ends with a slash."""
    return "/" + base_uri.strip("/") + "/" if base_uri.strip("/") else "/"


def resolve_uri(source: str, base_uri: str) -> str:
    """Resolve a request URI or URL to a path relative to the base URI.

    The returned path has no leading or trailing slash; the collection root
    resolves to the empty string.

    Raises:
        HTTPError: 400 if the path is outside of the base URI or tries to
            escape it
    """
    uri = unquote(urlparse(source).path)
    uri = _MULTIPLE_SLASHES.sub("/", uri)
    uri = uri.rstrip("/")

    if uri + "/" == base_uri:
        uri += "/"

    if not uri.startswith(base_uri):
        raise HTTPError(400, f'Invalid URI, "{uri}" is outside of scope "{base_uri}"')

    if ".." in uri or "%2e%2e" in uri.lower():
        raise HTTPError(400, f'Invalid URI: "{uri}"')

    return uri[len(base_uri):].strip("/")


def join_uri(uri: str, name: str) -> str:
    """Join a relative collection path and a member name."""
    return f"{uri}/{name}".strip("/")
