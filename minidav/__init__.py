"""A minimal WebDAV server for Python."""

from .fs_local import LocalStorage
from .internal import HTTPError
from .server import Handler, Storage, WebDAVBackend, create_app
from .webdav import (
    BASIC_PROPERTIES,
    EXTENDED_PROPERTIES,
    ConditionalMatch,
    FileContent,
    Lock,
    LockScope,
    RawXML,
    RequestedProperty,
)

__version__ = "0.1.0"

__all__ = [
    "LocalStorage",
    "HTTPError",
    "Handler",
    "Storage",
    "WebDAVBackend",
    "create_app",
    "BASIC_PROPERTIES",
    "EXTENDED_PROPERTIES",
    "ConditionalMatch",
    "FileContent",
    "Lock",
    "LockScope",
    "RawXML",
    "RequestedProperty",
]
