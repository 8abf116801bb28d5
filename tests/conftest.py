"""Shared fixtures: an in-memory storage and test clients."""

from __future__ import annotations

from datetime import UTC, datetime
from hashlib import md5
from io import BytesIO
from typing import Any, BinaryIO

import pytest
from starlette.testclient import TestClient

from minidav import create_app
from minidav.internal import HTTPError
from minidav.webdav import (
    BASIC_PROPERTIES,
    COLLECTION,
    DISPLAY_NAME,
    GET_CONTENT_LENGTH,
    GET_CONTENT_TYPE,
    GET_ETAG,
    GET_LAST_MODIFIED,
    RESOURCE_TYPE,
    FileContent,
    LockScope,
)

MODIFIED = datetime(2024, 1, 1, 10, 0, 0, tzinfo=UTC)


class UnseekableStream(BytesIO):
    def seekable(self) -> bool:
        return False


def parent_of(uri: str) -> str:
    return uri.rpartition("/")[0]


class MemoryStorage:
    """Storage keeping everything in dictionaries.

    ``mode`` selects how files are handed out by get(): "content" (bytes),
    "resource" (an open stream) or "unseekable" (a stream without length).
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.collections: set[str] = {""}
        self.locks: dict[str, dict[str, str]] = {}
        self.patches: list[tuple[str, str]] = []
        self.mode = "content"

    def _all_properties(self, uri: str) -> dict[str, Any] | None:
        name = uri.rpartition("/")[2]
        if uri in self.collections:
            return {
                RESOURCE_TYPE: COLLECTION,
                DISPLAY_NAME: name,
                GET_LAST_MODIFIED: MODIFIED,
            }
        if uri in self.files:
            data = self.files[uri]
            return {
                RESOURCE_TYPE: "",
                GET_CONTENT_TYPE: "text/plain",
                GET_CONTENT_LENGTH: len(data),
                GET_LAST_MODIFIED: MODIFIED,
                DISPLAY_NAME: name,
                GET_ETAG: md5(data).hexdigest(),
            }
        return None

    async def properties(
        self, uri: str, requested: list[str] | None, depth: int
    ) -> dict[str, Any] | None:
        props = self._all_properties(uri)
        if props is None:
            return None
        keys = BASIC_PROPERTIES if requested is None else requested
        return {k: v for k, v in props.items() if k in keys}

    async def set_properties(self, uri: str, body: str) -> None:
        self.patches.append((uri, body))

    async def get(self, uri: str) -> FileContent | None:
        if uri not in self.files:
            return None
        if self.mode == "content":
            return FileContent(content=self.files[uri])

        if self.mode == "unseekable":
            return FileContent(resource=UnseekableStream(self.files[uri]))
        return FileContent(resource=BytesIO(self.files[uri]))

    async def exists(self, uri: str) -> bool:
        return uri in self.files or uri in self.collections

    async def list(
        self, uri: str, requested: list[str] | None
    ) -> dict[str, dict[str, Any] | None]:
        members: dict[str, dict[str, Any] | None] = {}
        for path in sorted(self.collections | set(self.files)):
            if path and parent_of(path) == uri:
                # Leave properties of collections to be fetched separately
                if path in self.collections:
                    members[path.rpartition("/")[2]] = None
                else:
                    members[path.rpartition("/")[2]] = await self.properties(path, requested, 0)
        return members

    async def put(self, uri: str, body: BinaryIO) -> bool:
        if parent_of(uri) not in self.collections:
            raise HTTPError(409, "The parent directory does not exist")
        if uri in self.collections:
            raise HTTPError(409, "Target is a directory")
        created = uri not in self.files
        self.files[uri] = body.read()
        return created

    async def delete(self, uri: str) -> None:
        if not await self.exists(uri):
            raise HTTPError(404, "Target does not exist")
        self.files = {k: v for k, v in self.files.items() if k != uri and not k.startswith(uri + "/")}
        self.collections = {c for c in self.collections if c != uri and not c.startswith(uri + "/")}

    async def copy(self, uri: str, destination: str) -> bool:
        if uri not in self.files:
            raise HTTPError(404, "File not found")
        overwritten = await self.exists(destination)
        self.files[destination] = self.files[uri]
        return overwritten

    async def move(self, uri: str, destination: str) -> bool:
        overwritten = await self.copy(uri, destination)
        del self.files[uri]
        return overwritten

    async def mkcol(self, uri: str) -> None:
        if await self.exists(uri):
            raise HTTPError(405, "There is already a file with that name")
        if parent_of(uri) not in self.collections:
            raise HTTPError(409, "The parent directory does not exist")
        self.collections.add(uri)

    async def lock(self, uri: str, token: str, scope: LockScope) -> None:
        self.locks.setdefault(uri, {})[token] = LockScope(scope).value

    async def unlock(self, uri: str, token: str) -> None:
        self.locks.get(uri, {}).pop(token, None)

    async def get_lock(self, uri: str, token: str | None = None) -> str | None:
        locks = self.locks.get(uri, {})
        if token is not None:
            return locks.get(token)
        if LockScope.EXCLUSIVE.value in locks.values():
            return LockScope.EXCLUSIVE.value
        return next(iter(locks.values()), None)


@pytest.fixture
def storage() -> MemoryStorage:
    storage = MemoryStorage()
    storage.collections.add("docs")
    storage.files["docs/readme.txt"] = b"read me"
    storage.files["hello.txt"] = b"hello world"
    return storage


@pytest.fixture
def client(storage: MemoryStorage) -> TestClient:
    return TestClient(create_app(storage))


@pytest.fixture
def webdav_client(storage: MemoryStorage) -> TestClient:
    """Client for a server mounted under /webdav/."""
    return TestClient(create_app(storage, base_uri="/webdav"))
