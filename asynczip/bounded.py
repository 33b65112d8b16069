from __future__ import annotations

from .errors import UnexpectedEndOfEntry


class BoundedReader:
    """Forward-only view over an async file handle, limited to ``limit`` bytes.

    Reads never cross the limit, so a decoder sitting on top cannot run into the
    next entry or the central directory. The handle is expected to be positioned
    at the first byte of the window already.
    """

    def __init__(self, handle, limit: int):
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self._handle = handle
        self.limit = limit
        self.remaining = limit

    async def read(self, n: int = -1) -> bytes:
        if self.remaining <= 0 or n == 0:
            return b""
        if n < 0 or n > self.remaining:
            n = self.remaining
        data = await self._handle.read(n)
        if not data:
            # The archive is shorter than the directory claims
            raise UnexpectedEndOfEntry(f"Unexpected EOF with {self.remaining} payload byte(s) left")
        self.remaining -= len(data)
        return data

    async def read_exact(self, n: int) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            chunk = await self.read(n - len(buf))
            if not chunk:
                raise UnexpectedEndOfEntry("Unexpected end of bounded window")
            buf += chunk
        return bytes(buf)
