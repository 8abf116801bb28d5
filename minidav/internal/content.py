"""HTTP byte ranges (RFC 7233) and gzip encoding of GET responses."""

from __future__ import annotations

import gzip
import re
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from .internal import HTTPError

# Files are streamed in chunks of this size
CHUNK_SIZE = 8192

_RANGE = re.compile(r"^bytes=(\d*)-(\d*)$", re.IGNORECASE)


@dataclass
class ByteRange:
    """A satisfiable byte range. Both ends are inclusive."""

    start: int
    end: int
    length: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.length}"


def parse_range(header: str | None) -> tuple[int | None, int | None] | None:
    """Parse a "Range: bytes=A-B" header.

    Returns (start, end) where start is None for a suffix range and end is
    None for an open range, or None if there is no usable range.
    """
    if not header:
        return None

    match = _RANGE.match(header.strip())
    if not match or not (match.group(1) or match.group(2)):
        return None

    start = int(match.group(1)) if match.group(1) else None
    end = int(match.group(2)) if match.group(2) else None
    return start, end


def resolve_range(requested: tuple[int | None, int | None], length: int) -> ByteRange:
    """Apply a parsed range to a resource of the given length.

    Raises:
        HTTPError: 416 if the range cannot be satisfied
    """
    start, end = requested
    unsatisfiable = HTTPError(
        416, "Range cannot be satisfied", headers={"Content-Range": f"bytes */{length}"}
    )

    if start is None:
        # Suffix range: the last "end" bytes
        if not end or not length:
            raise unsatisfiable
        start = max(0, length - end)
        end = length - 1
    elif end is None:
        end = length - 1

    if start >= length or end >= length or start > end:
        raise unsatisfiable

    return ByteRange(start=start, end=end, length=length)


def stream_length(f: BinaryIO) -> int | None:
    """Return the size of a seekable stream and rewind it, or None."""
    if not f.seekable():
        return None
    f.seek(0, 2)
    length = f.tell()
    f.seek(0)
    return length


def accepts_gzip(header: str | None) -> bool:
    """Whether an Accept-Encoding header allows a gzip response.

    "gzip;q=0" is a refusal. A q-value that does not parse counts as 1.
    """
    for coding in (header or "").split(","):
        name, _, params = coding.partition(";")
        if name.strip().lower() not in ("gzip", "x-gzip"):
            continue
        q = 1.0
        for param in params.split(";"):
            key, _, value = param.partition("=")
            if key.strip().lower() == "q":
                try:
                    q = float(value.strip())
                except ValueError:
                    q = 1.0
        return q > 0
    return False


def gzip_bytes(data: bytes) -> bytes:
    return gzip.compress(data, compresslevel=9)


def iter_file(f: BinaryIO, remaining: int | None = None, compress: bool = False) -> Iterator[bytes]:
    """Yield the content of a file in chunks, optionally gzip-compressed.

    Reads at most ``remaining`` bytes from the current position. The file
    is closed once exhausted or when the consumer goes away.
    """
    compressor = zlib.compressobj(9, zlib.DEFLATED, 16 + zlib.MAX_WBITS) if compress else None

    try:
        while remaining is None or remaining > 0:
            size = CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining)
            data = f.read(size)
            if not data:
                break
            if remaining is not None:
                remaining -= len(data)
            yield compressor.compress(data) if compressor else data

        if compressor:
            yield compressor.flush()
    finally:
        f.close()
