"""WebDAV types and well-known property names."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO

# Property names are "namespace-URI:local-name"
RESOURCE_TYPE = "DAV::resourcetype"
GET_CONTENT_TYPE = "DAV::getcontenttype"
GET_LAST_MODIFIED = "DAV::getlastmodified"
GET_CONTENT_LENGTH = "DAV::getcontentlength"
DISPLAY_NAME = "DAV::displayname"
GET_ETAG = "DAV::getetag"
CREATION_DATE = "DAV::creationdate"
LAST_ACCESSED = "DAV::lastaccessed"
IS_HIDDEN = "DAV::ishidden"  # Microsoft thingy

# Thumbnail URL used by the HTML directory index
PROP_THUMB_URL = "urn:karadav:thumb_url"

# Returned when the client does not ask for specific properties
BASIC_PROPERTIES = [
    RESOURCE_TYPE,
    GET_CONTENT_TYPE,
    GET_LAST_MODIFIED,
    GET_CONTENT_LENGTH,
    DISPLAY_NAME,
]

EXTENDED_PROPERTIES = [
    GET_ETAG,
    CREATION_DATE,
    LAST_ACCESSED,
    IS_HIDDEN,
]

# Value of DAV::resourcetype for collections
COLLECTION = "collection"


class LockScope(str, Enum):
    """Scope of a WebDAV lock (RFC 4918 section 14.13)."""

    SHARED = "shared"
    EXCLUSIVE = "exclusive"


@dataclass
class RawXML:
    """Pre-rendered XML property value.

    ``xml`` is inserted as the content of the property element and
    ``attributes`` as its attributes (e.g. ``'ns0:dt="dateTime.tz"'``).
    Prefixes must be ones declared on the multistatus root: ``d`` for
    ``DAV:`` and ``ns0`` for the Microsoft datatypes namespace.
    """

    xml: str = ""
    attributes: str = ""


@dataclass
class FileContent:
    """File returned by a storage backend for a GET request.

    Exactly one of the fields should be set: the whole ``content`` in
    memory, an open binary ``resource``, or a ``path`` to open lazily.
    """

    content: bytes | None = None
    resource: BinaryIO | None = None
    path: str | None = None


@dataclass
class RequestedProperty:
    """A property requested in a PROPFIND body."""

    name: str
    ns_url: str
    ns_alias: str = ""

    @property
    def key(self) -> str:
        return f"{self.ns_url}:{self.name}"


@dataclass
class Lock:
    """A lock as seen by the server: token, scope and locked path."""

    token: str
    scope: LockScope
    uri: str
    created: float = field(default_factory=time.monotonic)


class ConditionalMatch(str):
    """Conditional match value from an If-Match header.

    According to RFC 7232 section 3.1, the value can either be a
    wildcard (*) or an ETag.
    """

    def is_set(self) -> bool:
        """Check if the conditional match is set."""
        return bool(self.strip())

    def is_wildcard(self) -> bool:
        """Check if the conditional match is a wildcard."""
        return self.strip() == "*"

    def get_etag(self) -> str:
        """Get the ETag value, without quotes."""
        if not self.is_set() or self.is_wildcard():
            return ""
        return self.strip('" ')

    def match_etag(self, etag: str) -> bool:
        """Check if the conditional match matches an ETag."""
        if not etag:
            return False
        if self.is_wildcard():
            return True
        return self.get_etag() == etag.strip('" ')
