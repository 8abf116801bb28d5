"""Debug logging utilities for the WebDAV server."""

from __future__ import annotations

import logging
from typing import Any

from lxml import etree

logger = logging.getLogger("minidav")

REQUEST_HEADERS = [
    "Content-Type",
    "Content-Length",
    "Depth",
    "Destination",
    "Overwrite",
    "If",
    "Lock-Token",
    "If-Match",
    "Range",
    "Accept-Encoding",
    "Authorization",
]

RESPONSE_HEADERS = [
    "Content-Type",
    "Content-Length",
    "Content-Range",
    "Content-Encoding",
    "ETag",
    "Lock-Token",
    "DAV",
    "Allow",
    "Location",
]


def format_xml(xml_bytes: bytes | str) -> str:
    """Format XML with proper indentation.

    Args:
        xml_bytes: XML content as bytes or string

    Returns:
        Pretty-formatted XML string, or the content as is if it isn't XML
    """
    if isinstance(xml_bytes, str):
        xml_bytes = xml_bytes.encode("utf-8")

    try:
        parser = etree.XMLParser(remove_blank_text=True)
        root = etree.fromstring(xml_bytes, parser)
    except etree.XMLSyntaxError:
        return xml_bytes.decode("utf-8", errors="replace")

    return etree.tostring(root, pretty_print=True, encoding="unicode")


def is_xml_content(content_type: str | None) -> bool:
    """Check if content type is XML."""
    if not content_type:
        return False

    return any(xml_type in content_type.lower() for xml_type in ("application/xml", "text/xml"))


def _log_headers(headers: dict[str, Any], interesting: list[str]) -> None:
    logger.info("Headers:")
    for header in interesting:
        value = headers.get(header.lower(), headers.get(header))
        if value:
            if header == "Authorization":
                value = "[REDACTED]"
            logger.info(f"  {header}: {value}")


def _log_body(headers: dict[str, Any], body: bytes | None, label: str) -> None:
    if not body:
        return

    logger.info("-" * 80)
    logger.info(f"{label}:")

    # PROPFIND and LOCK bodies often come without a content type
    content_type = headers.get("content-type", "")
    if is_xml_content(content_type) or body.lstrip().startswith(b"<?xml"):
        for line in format_xml(body).split("\n"):
            if line.strip():
                logger.info(f"  {line}")
    else:
        body_preview = body[:200].decode("utf-8", errors="replace")
        logger.info(f"  [{len(body)} bytes] {body_preview}")
        if len(body) > 200:
            logger.info(f"  ... ({len(body) - 200} more bytes)")


def log_request(method: str, path: str, headers: dict[str, str], body: bytes | None) -> None:
    """Log an incoming HTTP request.

    Args:
        method: HTTP method
        path: Request path
        headers: Request headers
        body: Request body (if any)
    """
    logger.info("=" * 80)
    logger.info(f">>> INCOMING REQUEST: {method} {path}")
    logger.info("-" * 80)
    _log_headers(headers, REQUEST_HEADERS)
    _log_body(headers, body, "Request Body")
    logger.info("=" * 80)


def log_response(status_code: int, headers: dict[str, Any], body: bytes | None) -> None:
    """Log an outgoing HTTP response.

    Args:
        status_code: HTTP status code
        headers: Response headers
        body: Response body (if any)
    """
    logger.info("=" * 80)
    logger.info(f"<<< OUTGOING RESPONSE: {status_code}")
    logger.info("-" * 80)
    _log_headers(headers, RESPONSE_HEADERS)
    _log_body(headers, body, "Response Body")
    logger.info("=" * 80)
    logger.info("")  # Empty line for readability


def setup_debug_logging() -> None:
    """Configure debug logging for the WebDAV server."""
    logger.setLevel(logging.DEBUG)

    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG)

    # Just the message, the dumps are formatted by hand
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)

    # Prevent propagation to avoid duplicate logs
    logger.propagate = False
