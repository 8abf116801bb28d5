"""WebDAV XML elements: PROPFIND request parsing and multistatus responses."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

from lxml import etree

from ..webdav import COLLECTION, RawXML, RequestedProperty

logger = logging.getLogger("minidav")

# WebDAV namespace
NAMESPACE = "DAV:"

# Microsoft clients need this namespace for date and time values
MS_NAMESPACE = "urn:uuid:c2f41010-65b3-11d1-a29f-00aa00c14882/"

# Only used in error bodies, for client debugging
SABREDAV_NAMESPACE = "http://sabredav.org/ns"

# Tolerant parser: clients send all kinds of broken XML
PARSER = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)


def parse_xml(body: bytes | str) -> etree._Element | None:
    """Parse a request body, returning None if nothing usable is found."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    if not body.strip():
        return None
    try:
        return etree.fromstring(body, PARSER)
    except etree.XMLSyntaxError:
        return None


def split_tag(element: etree._Element) -> tuple[str | None, str]:
    """Split an element tag into (namespace URI, local name).

    Undeclared prefixes are kept in the tag by the recovering parser, so
    "D:prop" yields (None, "prop").
    """
    tag = element.tag
    if tag.startswith("{"):
        ns, _, name = tag[1:].partition("}")
        return ns, name
    return None, tag.rpartition(":")[2]


def local_name(element: etree._Element) -> str:
    return split_tag(element)[1]


def find_element(root: etree._Element, name: str) -> etree._Element | None:
    """Find the first element with the given local name, whatever its namespace."""
    for el in root.iter():
        if isinstance(el.tag, str) and local_name(el) == name:
            return el
    return None


def split_property_name(key: str) -> tuple[str, str]:
    """Split "namespace-URI:local-name" into its two parts."""
    ns, _, name = key.rpartition(":")
    return ns, name


def extract_requested_properties(body: bytes | str) -> dict[str, RequestedProperty] | None:
    """Return the properties requested in a PROPFIND body.

    Returns None when the client did not ask for specific properties (no
    body, no <propfind>, <allprop/>, or XML we could not make sense of),
    meaning that the default properties should be returned.
    """
    root = parse_xml(body)
    if root is None:
        return None

    propfind = find_element(root, "propfind")
    if propfind is None:
        return None

    prop = None
    for el in propfind.iter():
        if el is not propfind and isinstance(el.tag, str) and local_name(el) == "prop":
            prop = el
            break

    if prop is None:
        return None

    properties: dict[str, RequestedProperty] = {}

    for child in prop:
        if not isinstance(child.tag, str):
            continue

        ns, name = split_tag(child)
        if not ns:
            continue

        requested = RequestedProperty(name=name, ns_url=ns, ns_alias=child.prefix or "")
        properties[requested.key] = requested

    return properties or None


def http_date(dt: datetime) -> str:
    """Format a date for HTTP headers and getlastmodified (RFC 7231)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime("%a, %d %b %Y %H:%M:%S GMT")


def iso_date(dt: datetime) -> str:
    """Format a date as RFC 3339."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.replace(microsecond=0).isoformat()


def quote_etag(etag: str) -> str:
    if etag and not etag.startswith('"'):
        return f'"{etag}"'
    return etag


@dataclass
class MultiStatus:
    """Properties of the resources matched by one PROPFIND request."""

    base_uri: str = "/"
    requested: dict[str, RequestedProperty] | None = None
    items: dict[str, dict[str, Any]] = field(default_factory=dict)

    def add(self, uri: str, properties: dict[str, Any]) -> None:
        self.items[uri] = properties

    def namespaces(self) -> dict[str, str]:
        """Map each namespace URI in use to its alias."""
        namespaces = {NAMESPACE: "d", MS_NAMESPACE: "ns0"}
        i = 0

        keys = list(self.requested or {})
        for properties in self.items.values():
            keys.extend(properties)

        for key in keys:
            ns, _ = split_property_name(key)
            if ns and ns not in namespaces:
                namespaces[ns] = f"rns{i}"
                i += 1

        return namespaces

    def href(self, uri: str) -> str:
        path = (self.base_uri + uri).lstrip("/")
        return "/" + quote(path, safe="/")

    def to_xml(self) -> etree._Element:
        """Convert to XML element."""
        namespaces = self.namespaces()
        nsmap = {alias: url for url, alias in namespaces.items()}
        root = etree.Element(f"{{{NAMESPACE}}}multistatus", nsmap=nsmap)

        for uri, properties in self.items.items():
            resp = etree.SubElement(root, f"{{{NAMESPACE}}}response")
            href = etree.SubElement(resp, f"{{{NAMESPACE}}}href")
            href.text = self.href(uri)

            found = {k: v for k, v in properties.items() if v is not None}
            missing = [k for k in (self.requested or {}) if k not in found]

            if found or not missing:
                prop = _propstat(resp, 200)
                for key, value in found.items():
                    render_property(prop, key, value, nsmap)

            if missing:
                prop = _propstat(resp, 404)
                for key in missing:
                    etree.SubElement(prop, _clark(key))

        return root


def _clark(key: str) -> str:
    ns, name = split_property_name(key)
    return f"{{{ns}}}{name}" if ns else name


def _propstat(resp: etree._Element, code: int) -> etree._Element:
    propstat = etree.SubElement(resp, f"{{{NAMESPACE}}}propstat")
    prop = etree.SubElement(propstat, f"{{{NAMESPACE}}}prop")
    status = etree.SubElement(propstat, f"{{{NAMESPACE}}}status")
    status.text = "HTTP/1.1 200 OK" if code == 200 else "HTTP/1.1 404 Not Found"
    return prop


def render_property(
    parent: etree._Element, key: str, value: Any, nsmap: dict[str, str]
) -> etree._Element:
    """Append one property element with its value rendered by type."""
    ns, name = split_property_name(key)
    el = etree.SubElement(parent, _clark(key))

    if ns == NAMESPACE and name == "resourcetype" and value == COLLECTION:
        etree.SubElement(el, f"{{{NAMESPACE}}}collection")
    elif ns == NAMESPACE and name == "getetag" and isinstance(value, str):
        el.text = quote_etag(value)
    elif isinstance(value, datetime):
        if ns == NAMESPACE and name == "creationdate":
            el.set(f"{{{MS_NAMESPACE}}}dt", "dateTime.tz")
            el.text = iso_date(value)
        else:
            el.text = http_date(value)
    elif isinstance(value, RawXML):
        _append_raw(el, value.xml, value.attributes, nsmap)
    elif isinstance(value, Mapping):
        _append_raw(el, value.get("xml", ""), value.get("attributes", ""), nsmap)
    elif isinstance(value, bool):
        el.text = "1" if value else "0"
    else:
        el.text = str(value)

    return el


def _append_raw(el: etree._Element, xml: str, attributes: str, nsmap: dict[str, str]) -> None:
    """Insert a pre-rendered XML fragment and attribute string into an element.

    A fragment that does not parse (bad escaping, undeclared prefix) is
    sent as plain text.
    """
    declarations = " ".join(f'xmlns:{alias}="{url}"' for alias, url in nsmap.items())
    try:
        fragment = etree.fromstring(f"<raw {declarations} {attributes or ''}>{xml or ''}</raw>")
    except etree.XMLSyntaxError:
        logger.debug("Invalid XML property value, sent as text: %r", xml)
        el.text = xml
        return

    for attr, attr_value in fragment.attrib.items():
        el.set(attr, attr_value)

    el.text = fragment.text
    for child in fragment:
        el.append(child)


def error_xml(message: str) -> etree._Element:
    """Build the body of an error response."""
    root = etree.Element(
        f"{{{NAMESPACE}}}error", nsmap={"d": NAMESPACE, "s": SABREDAV_NAMESPACE}
    )
    msg = etree.SubElement(root, f"{{{SABREDAV_NAMESPACE}}}message")
    msg.text = message
    return root
