"""Normalize upload sources into async chunk iterators."""

import asyncio
from collections.abc import AsyncIterator
from typing import BinaryIO

UploadSource = bytes | bytearray | memoryview | BinaryIO | AsyncIterator[bytes]

DEFAULT_CHUNK_SIZE = 1024 * 1024


async def iter_source(
    source: UploadSource, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> AsyncIterator[bytes]:
    """Yield source as byte chunks no larger than chunk_size.

    Accepts raw bytes, a binary file-like object (read in a worker thread)
    or an async iterator of chunks (passed through, empty chunks dropped).
    """
    if isinstance(source, bytes | bytearray | memoryview):
        data = bytes(source)
        for start in range(0, len(data), chunk_size):
            yield data[start : start + chunk_size]
        return
    if hasattr(source, "__aiter__"):
        async for chunk in source:
            if chunk:
                yield bytes(chunk)
        return
    if hasattr(source, "read"):
        _rewind_if_seekable(source)
        while True:
            chunk = await asyncio.to_thread(source.read, chunk_size)
            if not chunk:
                break
            yield chunk
        return
    raise TypeError(f"Unsupported upload source: {type(source).__name__}")


def _rewind_if_seekable(file: BinaryIO) -> None:
    """Reset file position to start if stream is seekable."""
    if getattr(file, "seekable", lambda: False)():
        file.seek(0)
