"""Request body helpers.

A body is ``None``, ``bytes`` or a seekable binary file object. File bodies
are always read from the position they were handed over at, so a retried
attempt rewinds to that same position.
"""

import hashlib
from typing import AsyncIterator, BinaryIO, Iterator, Optional, Union

Body = Union[bytes, bytearray, BinaryIO, None]

CHUNK_SIZE = 64 * 1024


def hash_payload(body: Body) -> tuple[str, int]:
    """Return the SHA-256 hex digest and length of ``body``.

    File objects are read to the end and rewound to where they started.
    """
    digest = hashlib.sha256()
    if body is None:
        return digest.hexdigest(), 0
    if isinstance(body, (bytes, bytearray)):
        digest.update(body)
        return digest.hexdigest(), len(body)

    start = body.tell()
    length = 0
    while True:
        chunk = body.read(CHUNK_SIZE)
        if not chunk:
            break
        digest.update(chunk)
        length += len(chunk)
    body.seek(start)
    return digest.hexdigest(), length


async def aiter_body(body: BinaryIO, length: int) -> AsyncIterator[bytes]:
    """Stream ``length`` bytes of a file object in chunks."""
    remaining = length
    while remaining > 0:
        chunk = body.read(min(CHUNK_SIZE, remaining))
        if not chunk:
            break
        remaining -= len(chunk)
        yield chunk


def read_part(stream: BinaryIO, part_size: int) -> bytes:
    """Read up to ``part_size`` bytes, tolerating short reads from pipes."""
    buffer = bytearray()
    while len(buffer) < part_size:
        chunk = stream.read(part_size - len(buffer))
        if not chunk:
            break
        buffer.extend(chunk)
    return bytes(buffer)


def iter_parts(stream: BinaryIO, part_size: int, size: Optional[int] = None) -> Iterator[tuple[int, bytes]]:
    """Split a stream into numbered parts, starting at part number 1.

    An empty stream yields a single empty part so that an object can still
    be assembled from it.
    """
    if part_size <= 0:
        raise ValueError("part_size must be positive")

    part_number = 1
    consumed = 0
    while True:
        want = part_size if size is None else min(part_size, size - consumed)
        data = read_part(stream, want) if want > 0 else b""
        if not data and part_number > 1:
            return
        yield part_number, data
        consumed += len(data)
        if len(data) < part_size or (size is not None and consumed >= size):
            return
        part_number += 1
