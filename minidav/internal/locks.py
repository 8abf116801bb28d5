"""Lock-Token and If header handling, lock scopes and lockdiscovery bodies.

Locks themselves are owned by the storage backend: this module only decides
whether the token sent by a client satisfies what the storage reports for a
resource. Storage backends are free to simulate locking entirely.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Mapping
from copy import deepcopy
from typing import TYPE_CHECKING

from lxml import etree

from ..webdav import LockScope
from .elements import NAMESPACE, find_element, parse_xml, split_tag
from .internal import HTTPError, resolve_uri

if TYPE_CHECKING:
    from ..server import Storage

logger = logging.getLogger("minidav")

# Advertised lock timeout, in seconds. Expiry is up to the storage.
LOCK_TIMEOUT = 300

NO_LOCK = "DAV:no-lock"

_LOCK_TOKEN = re.compile(r"<(.*?)>")
_IF_TOKEN = re.compile(r"\(<(.*?)>\)")
_IF_TAGGED = re.compile(r"<([^>]+)>\s*\(<[^>]*>\)")


def new_lock_token() -> str:
    """Generate a new lock token (RFC 4918 appendix C)."""
    return f"opaquelocktoken:{uuid.uuid4()}"


def get_lock_token(headers: Mapping[str, str]) -> str | None:
    """Return the lock token supplied by the client, if any.

    Looks at "Lock-Token: <token>" first, then at "If: (<token>)".
    """
    lock_token = headers.get("lock-token")
    if lock_token:
        match = _LOCK_TOKEN.search(lock_token.strip())
        if match:
            return match.group(1)

    if_header = headers.get("if")
    if if_header:
        match = _IF_TOKEN.search(if_header.strip())
        if match:
            return match.group(1)

    return None


async def check_lock(
    storage: Storage,
    headers: Mapping[str, str],
    base_uri: str,
    uri: str,
    token: str | None = None,
) -> None:
    """Check that the request may modify the resource at uri.

    Raises:
        HTTPError: 423 if the resource is locked and no valid token was
            supplied, 400 if the If header targets an unrelated resource
    """
    if token is None:
        token = get_lock_token(headers)

    if token == NO_LOCK:
        raise HTTPError(423, "Resource is locked")

    # Token for a parent collection
    if_header = headers.get("if")
    if if_header:
        match = _IF_TAGGED.search(if_header)
        if match:
            root = resolve_uri(match.group(1), base_uri)
            if not uri.startswith(root):
                raise HTTPError(400, f'Invalid "If" header path: {root}')
            uri = root

    if token:
        if await storage.get_lock(uri, token):
            return
        raise HTTPError(423, "Invalid token")

    if await storage.get_lock(uri):
        raise HTTPError(423, "Resource is locked")


def parse_lock_info(body: bytes | str) -> tuple[etree._Element, LockScope]:
    """Find the <lockinfo> element of a LOCK body and the requested scope.

    The lock is exclusive unless the client asked for a shared lock only.
    """
    root = parse_xml(body)
    lockinfo = find_element(root, "lockinfo") if root is not None else None
    if lockinfo is None:
        raise HTTPError(400, "Invalid XML")

    scope = LockScope.EXCLUSIVE
    if find_element(lockinfo, "exclusive") is None and find_element(lockinfo, "shared") is not None:
        scope = LockScope.SHARED

    return lockinfo, scope


def client_alias(lockinfo: etree._Element | None) -> str | None:
    """Return the prefix the client used for the DAV: namespace.

    None stands for the default namespace, as in lxml namespace maps.
    """
    if lockinfo is None:
        return "d"
    ns, _ = split_tag(lockinfo)
    if ns != NAMESPACE:
        return "d"
    return lockinfo.prefix


def _namespaced(lockinfo: etree._Element) -> bool:
    """Whether lockinfo is in DAV: with no undeclared prefix left in its tags."""
    if split_tag(lockinfo)[0] != NAMESPACE:
        return False
    return not any(
        isinstance(el.tag, str) and not el.tag.startswith("{") and ":" in el.tag
        for el in lockinfo.iter()
    )


def lock_discovery(
    token: str,
    scope: LockScope,
    depth: str = "infinity",
    lockinfo: etree._Element | None = None,
) -> etree._Element:
    """Build the <prop><lockdiscovery> body of a LOCK response.

    What the client sent in <lockinfo> is sent back as is, under the same
    namespace alias, as some clients only understand their own prefix. A
    lockinfo with undeclared prefixes is described again in DAV: instead.
    """
    prop = etree.Element(f"{{{NAMESPACE}}}prop", nsmap={client_alias(lockinfo): NAMESPACE})
    discovery = etree.SubElement(prop, f"{{{NAMESPACE}}}lockdiscovery")
    active = etree.SubElement(discovery, f"{{{NAMESPACE}}}activelock")

    if lockinfo is not None and _namespaced(lockinfo):
        for child in lockinfo:
            if isinstance(child.tag, str):
                active.append(deepcopy(child))
    else:
        lockscope = etree.SubElement(active, f"{{{NAMESPACE}}}lockscope")
        etree.SubElement(lockscope, f"{{{NAMESPACE}}}{scope.value}")
        locktype = etree.SubElement(active, f"{{{NAMESPACE}}}locktype")
        etree.SubElement(locktype, f"{{{NAMESPACE}}}write")
        owner = etree.SubElement(active, f"{{{NAMESPACE}}}owner")
        client_owner = find_element(lockinfo, "owner") if lockinfo is not None else None
        text = "".join(client_owner.itertext()).strip() if client_owner is not None else ""
        owner.text = text or "unknown"

    etree.SubElement(active, f"{{{NAMESPACE}}}depth").text = depth
    etree.SubElement(active, f"{{{NAMESPACE}}}timeout").text = f"Second-{LOCK_TIMEOUT}"
    locktoken = etree.SubElement(active, f"{{{NAMESPACE}}}locktoken")
    etree.SubElement(locktoken, f"{{{NAMESPACE}}}href").text = token

    etree.cleanup_namespaces(prop)
    return prop
