"""Tests for the lock coordinator."""

import re

import pytest
from lxml import etree

from minidav.internal import (
    HTTPError,
    check_lock,
    get_lock_token,
    lock_discovery,
    new_lock_token,
    parse_lock_info,
)
from minidav.webdav import LockScope

# https://tools.ietf.org/html/rfc4918#section-9.10.7
EXAMPLE_LOCKINFO = """<?xml version="1.0" encoding="utf-8" ?>
<D:lockinfo xmlns:D='DAV:'>
  <D:lockscope><D:exclusive/></D:lockscope>
  <D:locktype><D:write/></D:locktype>
  <D:owner>
    <D:href>http://example.org/~ejw/contact.html</D:href>
  </D:owner>
</D:lockinfo>"""

SHARED_LOCKINFO = """<?xml version="1.0" encoding="utf-8" ?>
<lockinfo xmlns="DAV:">
  <lockscope><shared/></lockscope>
  <locktype><write/></locktype>
</lockinfo>"""

TOKEN = "opaquelocktoken:e71d4fae-5dec-22d6-fea5-00a0c91e6be4"


class FakeLocks:
    def __init__(self, locks=None):
        self.locks = locks or {}

    async def get_lock(self, uri, token=None):
        locks = self.locks.get(uri, {})
        if token is not None:
            return locks.get(token)
        return next(iter(locks.values()), None)


def test_new_lock_token():
    token = new_lock_token()

    assert re.fullmatch(
        r"opaquelocktoken:[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}", token
    )
    assert token != new_lock_token()


def test_get_lock_token():
    assert get_lock_token({"lock-token": f"<{TOKEN}>"}) == TOKEN
    assert get_lock_token({"if": f"(<{TOKEN}>)"}) == TOKEN
    assert get_lock_token({"if": f"<http://example.com/dir> (<{TOKEN}>)"}) == TOKEN
    assert get_lock_token({"if": '(["etag"])'}) is None
    assert get_lock_token({}) is None


def test_parse_lock_info():
    """Test that the scope is read whatever the namespace prefix."""
    lockinfo, scope = parse_lock_info(EXAMPLE_LOCKINFO)
    assert scope == LockScope.EXCLUSIVE
    assert lockinfo.prefix == "D"

    lockinfo, scope = parse_lock_info(SHARED_LOCKINFO)
    assert scope == LockScope.SHARED
    assert lockinfo.prefix is None


def test_parse_lock_info_without_scope_is_exclusive():
    body = '<a:lockinfo xmlns:a="DAV:"><a:locktype><a:write/></a:locktype></a:lockinfo>'
    _, scope = parse_lock_info(body)
    assert scope == LockScope.EXCLUSIVE


def test_parse_lock_info_invalid():
    with pytest.raises(HTTPError) as exc_info:
        parse_lock_info("<propfind/>")
    assert exc_info.value.code == 400


def test_lock_discovery_keeps_client_alias():
    """Test that the response uses the prefix the client used."""
    lockinfo, scope = parse_lock_info(EXAMPLE_LOCKINFO)

    xml = etree.tostring(lock_discovery(TOKEN, scope, "infinity", lockinfo), encoding="unicode")

    assert xml.startswith('<D:prop xmlns:D="DAV:"><D:lockdiscovery><D:activelock>')
    assert "<D:exclusive/>" in xml
    assert "<D:href>http://example.org/~ejw/contact.html</D:href>" in xml
    assert "<D:timeout>Second-300</D:timeout>" in xml
    assert f"<D:locktoken><D:href>{TOKEN}</D:href></D:locktoken>" in xml
    assert "xmlns:d=" not in xml


def test_lock_discovery_default_namespace():
    lockinfo, scope = parse_lock_info(SHARED_LOCKINFO)

    xml = etree.tostring(lock_discovery(TOKEN, scope, "0", lockinfo), encoding="unicode")

    assert xml.startswith('<prop xmlns="DAV:"><lockdiscovery><activelock>')
    assert "<depth>0</depth>" in xml


def test_lock_discovery_refresh():
    root = lock_discovery(TOKEN, LockScope.SHARED)
    ns = {"d": "DAV:"}

    assert root.find("d:lockdiscovery/d:activelock/d:lockscope/d:shared", ns) is not None
    assert root.findtext("d:lockdiscovery/d:activelock/d:owner", namespaces=ns) == "unknown"


@pytest.mark.asyncio
async def test_check_lock_unlocked():
    await check_lock(FakeLocks(), {}, "/", "a.txt")


@pytest.mark.asyncio
async def test_check_lock_locked_without_token():
    storage = FakeLocks({"a.txt": {TOKEN: "exclusive"}})

    with pytest.raises(HTTPError) as exc_info:
        await check_lock(storage, {}, "/", "a.txt")
    assert exc_info.value.code == 423


@pytest.mark.asyncio
async def test_check_lock_valid_and_invalid_token():
    storage = FakeLocks({"a.txt": {TOKEN: "exclusive"}})

    await check_lock(storage, {"lock-token": f"<{TOKEN}>"}, "/", "a.txt")

    with pytest.raises(HTTPError) as exc_info:
        await check_lock(storage, {"lock-token": "<opaquelocktoken:other>"}, "/", "a.txt")
    assert exc_info.value.code == 423


@pytest.mark.asyncio
async def test_check_lock_no_lock_sentinel():
    with pytest.raises(HTTPError) as exc_info:
        await check_lock(FakeLocks(), {"if": "(<DAV:no-lock>)"}, "/", "a.txt")
    assert exc_info.value.code == 423


@pytest.mark.asyncio
async def test_check_lock_if_header_for_parent():
    """Test a token submitted for a parent collection."""
    storage = FakeLocks({"dir": {TOKEN: "exclusive"}})

    await check_lock(storage, {"if": f"</dir> (<{TOKEN}>)"}, "/", "dir/a.txt")

    with pytest.raises(HTTPError) as exc_info:
        await check_lock(storage, {"if": f"</other> (<{TOKEN}>)"}, "/", "dir/a.txt")
    assert exc_info.value.code == 400


def test_lock_discovery_undeclared_prefix():
    """Test that tags with an undeclared prefix are not echoed literally."""
    body = (
        "<D:lockinfo><D:lockscope><D:shared/></D:lockscope>"
        "<D:locktype><D:write/></D:locktype><D:owner>me</D:owner></D:lockinfo>"
    )
    lockinfo, scope = parse_lock_info(body)

    xml = etree.tostring(lock_discovery(TOKEN, scope, "0", lockinfo), encoding="unicode")

    assert scope == LockScope.SHARED
    assert xml.startswith('<d:prop xmlns:d="DAV:">')
    assert "<d:lockscope><d:shared/></d:lockscope>" in xml
    assert "<d:owner>me</d:owner>" in xml
    assert "D:" not in xml
