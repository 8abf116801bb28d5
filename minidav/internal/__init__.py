"""Internal WebDAV protocol helpers."""

from .content import (
    CHUNK_SIZE,
    ByteRange,
    accepts_gzip,
    gzip_bytes,
    iter_file,
    parse_range,
    resolve_range,
    stream_length,
)
from .elements import (
    MS_NAMESPACE,
    NAMESPACE,
    SABREDAV_NAMESPACE,
    MultiStatus,
    error_xml,
    extract_requested_properties,
    http_date,
    iso_date,
    parse_xml,
    quote_etag,
    render_property,
    split_property_name,
)
from .internal import (
    Depth,
    HTTPError,
    join_uri,
    normalize_base_uri,
    parse_overwrite,
    parse_propfind_depth,
    resolve_uri,
)
from .locks import (
    LOCK_TIMEOUT,
    NO_LOCK,
    check_lock,
    client_alias,
    get_lock_token,
    lock_discovery,
    new_lock_token,
    parse_lock_info,
)
from .server import (
    Handler,
    raw_path,
    serve_error,
    serve_multistatus,
    serve_xml,
)

__all__ = [
    "CHUNK_SIZE",
    "ByteRange",
    "accepts_gzip",
    "gzip_bytes",
    "iter_file",
    "parse_range",
    "resolve_range",
    "stream_length",
    "MS_NAMESPACE",
    "NAMESPACE",
    "SABREDAV_NAMESPACE",
    "MultiStatus",
    "error_xml",
    "extract_requested_properties",
    "http_date",
    "iso_date",
    "parse_xml",
    "quote_etag",
    "render_property",
    "split_property_name",
    "Depth",
    "HTTPError",
    "join_uri",
    "normalize_base_uri",
    "parse_overwrite",
    "parse_propfind_depth",
    "resolve_uri",
    "LOCK_TIMEOUT",
    "NO_LOCK",
    "check_lock",
    "client_alias",
    "get_lock_token",
    "lock_discovery",
    "new_lock_token",
    "parse_lock_info",
    "Handler",
    "raw_path",
    "serve_error",
    "serve_multistatus",
    "serve_xml",
]
