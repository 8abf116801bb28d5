"""Local filesystem storage for the WebDAV server."""

from __future__ import annotations

import logging
import mimetypes
import os
import shutil
import time
from datetime import UTC, datetime
from html import escape
from pathlib import Path
from typing import Any, BinaryIO

from lxml import etree

from .internal import LOCK_TIMEOUT, NAMESPACE, HTTPError, join_uri, parse_xml
from .internal.elements import find_element, local_name, split_tag
from .webdav import (
    BASIC_PROPERTIES,
    COLLECTION,
    CREATION_DATE,
    DISPLAY_NAME,
    GET_CONTENT_LENGTH,
    GET_CONTENT_TYPE,
    GET_ETAG,
    GET_LAST_MODIFIED,
    IS_HIDDEN,
    LAST_ACCESSED,
    RESOURCE_TYPE,
    FileContent,
    Lock,
    LockScope,
    RawXML,
)

logger = logging.getLogger("minidav")


class LocalStorage:
    """Storage backend serving a local directory.

    Locks and dead properties (set through PROPPATCH) are kept in memory,
    for the lifetime of the process. Locks older than LOCK_TIMEOUT are
    considered released.
    """

    def __init__(self, root_dir: str | Path, lock_timeout: int = LOCK_TIMEOUT):
        """Initialize local storage.

        Args:
            root_dir: Root directory for the storage
            lock_timeout: Seconds after which a lock is released
        """
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.exists():
            raise ValueError(f"Root directory does not exist: {root_dir}")
        if not self.root_dir.is_dir():
            raise ValueError(f"Root path is not a directory: {root_dir}")

        self.lock_timeout = lock_timeout
        self.locks: dict[str, dict[str, Lock]] = {}
        self.dead_properties: dict[str, dict[str, Any]] = {}

    def _local_path(self, uri: str) -> Path:
        """Convert a WebDAV path to a local filesystem path.

        Raises:
            HTTPError: If the path is invalid or outside of the root
        """
        if "\x00" in uri:
            raise HTTPError(400, "invalid character in path")

        local_path = (self.root_dir / uri.strip("/")).resolve()

        try:
            local_path.relative_to(self.root_dir)
        except ValueError as e:
            raise HTTPError(403, "path outside root directory") from e

        return local_path

    def _etag(self, stat: os.stat_result) -> str:
        return f"{stat.st_mtime_ns:x}{stat.st_size:x}"

    def _live_properties(self, path: Path, uri: str) -> dict[str, Any]:
        stat = path.stat()
        is_dir = path.is_dir()

        props: dict[str, Any] = {
            RESOURCE_TYPE: COLLECTION if is_dir else "",
            GET_LAST_MODIFIED: datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            DISPLAY_NAME: path.name if uri else "",
            CREATION_DATE: datetime.fromtimestamp(stat.st_ctime, tz=UTC),
            LAST_ACCESSED: datetime.fromtimestamp(stat.st_atime, tz=UTC),
            IS_HIDDEN: path.name.startswith("."),
        }

        if not is_dir:
            mime_type, _ = mimetypes.guess_type(path.name)
            props[GET_CONTENT_TYPE] = mime_type or "application/octet-stream"
            props[GET_CONTENT_LENGTH] = stat.st_size
            props[GET_ETAG] = self._etag(stat)

        return props

    async def properties(
        self, uri: str, requested: list[str] | None, depth: int
    ) -> dict[str, Any] | None:
        path = self._local_path(uri)
        if not path.exists():
            return None

        available = self._live_properties(path, uri)
        available.update(self.dead_properties.get(uri, {}))

        if requested is None:
            requested = BASIC_PROPERTIES

        return {key: available[key] for key in requested if key in available}

    async def set_properties(self, uri: str, body: str) -> None:
        """Store the properties of a PROPPATCH <propertyupdate> body.

        Live properties in the DAV: namespace are left untouched.
        """
        if not self._local_path(uri).exists():
            raise HTTPError(404, "Resource Not Found")

        root = parse_xml(body)
        update = find_element(root, "propertyupdate") if root is not None else None
        if update is None:
            raise HTTPError(400, "Invalid XML")

        props = self.dead_properties.setdefault(uri, {})

        for instruction in update:
            if not isinstance(instruction.tag, str) or local_name(instruction) not in ("set", "remove"):
                continue

            prop = find_element(instruction, "prop")
            if prop is None:
                continue

            for el in prop:
                if not isinstance(el.tag, str):
                    continue

                ns, name = split_tag(el)
                if not ns or ns == NAMESPACE:
                    continue

                key = f"{ns}:{name}"
                if local_name(instruction) == "remove":
                    props.pop(key, None)
                elif len(el):
                    inner = "".join(etree.tostring(child, encoding="unicode") for child in el)
                    props[key] = RawXML(xml=escape(el.text or "", quote=False) + inner)
                else:
                    props[key] = el.text or ""

        if not props:
            del self.dead_properties[uri]

    async def get(self, uri: str) -> FileContent | None:
        path = self._local_path(uri)
        if not path.is_file():
            return None
        return FileContent(path=str(path))

    async def exists(self, uri: str) -> bool:
        return self._local_path(uri).exists()

    async def list(
        self, uri: str, requested: list[str] | None
    ) -> dict[str, dict[str, Any] | None]:
        path = self._local_path(uri)
        if not path.is_dir():
            return {}

        members: dict[str, dict[str, Any] | None] = {}
        for entry in sorted(path.iterdir(), key=lambda p: p.name):
            members[entry.name] = await self.properties(join_uri(uri, entry.name), requested, 0)
        return members

    async def put(self, uri: str, body: BinaryIO) -> bool:
        path = self._local_path(uri)

        if path.is_dir():
            raise HTTPError(409, "Target is a directory")

        if not path.parent.is_dir():
            raise HTTPError(409, "The parent directory does not exist")

        created = not path.exists()

        with open(path, "wb") as f:
            shutil.copyfileobj(body, f)

        return created

    async def delete(self, uri: str) -> None:
        path = self._local_path(uri)

        if not path.exists():
            raise HTTPError(404, "Target does not exist")

        if path == self.root_dir:
            raise HTTPError(403, "Cannot delete the root collection")

        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()

        self._forget(uri)

    async def copy(self, uri: str, destination: str) -> bool:
        return self._copy_move(uri, destination, move=False)

    async def move(self, uri: str, destination: str) -> bool:
        return self._copy_move(uri, destination, move=True)

    def _copy_move(self, uri: str, destination: str, move: bool) -> bool:
        source = self._local_path(uri)
        target = self._local_path(destination)

        if not source.exists():
            raise HTTPError(404, "File not found")

        if source == self.root_dir or target == self.root_dir:
            raise HTTPError(403, "Cannot copy or move the root collection")

        if not target.parent.is_dir():
            raise HTTPError(409, "Target parent directory does not exist")

        overwritten = target.exists()

        if overwritten:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()
            self._forget(destination)

        if move:
            os.replace(source, target)
        elif source.is_dir():
            shutil.copytree(source, target)
        else:
            shutil.copy2(source, target)

        self._relocate(uri, destination, keep=not move)
        return overwritten

    async def mkcol(self, uri: str) -> None:
        path = self._local_path(uri)

        if path.exists():
            raise HTTPError(405, "There is already a file with that name")

        if not path.parent.is_dir():
            raise HTTPError(409, "The parent directory does not exist")

        path.mkdir()

    def _forget(self, uri: str) -> None:
        """Drop dead properties of a deleted resource and its members."""
        for key in list(self.dead_properties):
            if key == uri or key.startswith(uri + "/"):
                del self.dead_properties[key]

    def _relocate(self, uri: str, destination: str, keep: bool) -> None:
        """Carry dead properties over to a copied or moved resource."""
        for key in list(self.dead_properties):
            if key == uri or key.startswith(uri + "/"):
                props = self.dead_properties[key] if keep else self.dead_properties.pop(key)
                self.dead_properties[destination + key[len(uri):]] = dict(props)

    def _active_locks(self, uri: str) -> dict[str, Lock]:
        locks = self.locks.get(uri, {})
        now = time.monotonic()

        for token, lock in list(locks.items()):
            if now - lock.created > self.lock_timeout:
                logger.debug("Lock expired: %s %s", uri, token)
                del locks[token]

        if not locks:
            self.locks.pop(uri, None)

        return locks

    async def lock(self, uri: str, token: str, scope: LockScope) -> None:
        self.locks.setdefault(uri, {})[token] = Lock(token=token, scope=LockScope(scope), uri=uri)

    async def unlock(self, uri: str, token: str) -> None:
        locks = self.locks.get(uri, {})
        locks.pop(token, None)
        if not locks:
            self.locks.pop(uri, None)

    async def get_lock(self, uri: str, token: str | None = None) -> str | None:
        locks = self._active_locks(uri)

        if token is not None:
            lock = locks.get(token)
            return lock.scope.value if lock else None

        if not locks:
            return None

        if any(lock.scope == LockScope.EXCLUSIVE for lock in locks.values()):
            return LockScope.EXCLUSIVE.value

        return LockScope.SHARED.value
