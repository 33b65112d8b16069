from __future__ import annotations

import bz2
import logging
import lzma
import struct
import zlib
from typing import Optional

import zstandard

from .constants import (
    COMPRESSION_BZIP2,
    COMPRESSION_DEFLATE,
    COMPRESSION_LZMA,
    COMPRESSION_NAMES,
    COMPRESSION_STORED,
    COMPRESSION_XZ,
    COMPRESSION_ZSTD,
    DEFAULT_READ_SIZE,
)
from .errors import DecompressionError, UnsupportedCompression


logger = logging.getLogger(__name__)

_CODEC_ERRORS = (zlib.error, lzma.LZMAError, OSError, EOFError, zstandard.ZstdError)


class _Passthrough:
    eof: Optional[bool] = None

    def decompress(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


class _StdlibDecompressor:
    """Adapts zlib/bz2/lzma decompressor objects to one interface."""

    def __init__(self, obj):
        self._obj = obj

    @property
    def eof(self) -> Optional[bool]:
        return self._obj.eof

    def decompress(self, data: bytes) -> bytes:
        return self._obj.decompress(data)

    def flush(self) -> bytes:
        flush = getattr(self._obj, "flush", None)
        return flush() if flush is not None else b""


class _ZipLzmaDecompressor:
    """LZMA as stored in ZIP: a 4-byte version/props-size header, the filter
    properties, then a raw LZMA1 stream."""

    def __init__(self):
        self._decomp = None
        self._header = b""
        self._eof = False

    @property
    def eof(self) -> Optional[bool]:
        # The end-of-stream marker is optional in ZIP, so a missing one is not an error
        return True if self._eof else None

    def decompress(self, data: bytes) -> bytes:
        if self._decomp is None:
            self._header += data
            if len(self._header) <= 4:
                return b""
            (psize,) = struct.unpack("<H", self._header[2:4])
            if len(self._header) <= 4 + psize:
                return b""
            props = self._header[4 : 4 + psize]
            # Same private helper zipfile.LZMADecompressor uses to parse the properties
            self._decomp = lzma.LZMADecompressor(
                lzma.FORMAT_RAW,
                filters=[lzma._decode_filter_properties(lzma.FILTER_LZMA1, props)],
            )
            data = self._header[4 + psize :]
            self._header = b""
        result = self._decomp.decompress(data)
        self._eof = self._decomp.eof
        return result

    def flush(self) -> bytes:
        return b""


class _ZstdDecompressor:
    eof: Optional[bool] = None

    def __init__(self):
        self._obj = zstandard.ZstdDecompressor().decompressobj()

    def decompress(self, data: bytes) -> bytes:
        return self._obj.decompress(data)

    def flush(self) -> bytes:
        return self._obj.flush()


class Codec:
    def __init__(self, method: int):
        self.method = method

    @property
    def name(self) -> str:
        return COMPRESSION_NAMES.get(self.method, f"method-{self.method}")

    def decompressor(self):
        if self.method == COMPRESSION_STORED:
            return _Passthrough()
        if self.method == COMPRESSION_DEFLATE:
            # Raw deflate stream, no zlib header
            return _StdlibDecompressor(zlib.decompressobj(-15))
        if self.method == COMPRESSION_BZIP2:
            return _StdlibDecompressor(bz2.BZ2Decompressor())
        if self.method == COMPRESSION_LZMA:
            return _ZipLzmaDecompressor()
        if self.method == COMPRESSION_XZ:
            return _StdlibDecompressor(lzma.LZMADecompressor(lzma.FORMAT_XZ))
        if self.method == COMPRESSION_ZSTD:
            return _ZstdDecompressor()
        # Unknown/unsupported method: fail fast
        raise UnsupportedCompression(f"unsupported compression method: {self.name}")


class CompressionReader:
    """Decoding stream over a bounded byte source.

    ``source`` is anything with an awaitable ``read(n)`` that returns ``b""`` at
    the end of the entry's payload.
    """

    def __init__(self, method: int, source, *, read_size: int = DEFAULT_READ_SIZE):
        self.codec = Codec(method)
        self._decompressor = self.codec.decompressor()
        self._source = source
        self._read_size = read_size
        self._buffer = bytearray()
        self._eof = False

    @classmethod
    def from_reader(cls, method: int, source, *, read_size: int = DEFAULT_READ_SIZE) -> "CompressionReader":
        return cls(method, source, read_size=read_size)

    @property
    def method(self) -> int:
        return self.codec.method

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._buffer

    async def read(self, n: int = -1) -> bytes:
        if n == 0:
            return b""
        while not self._eof and (n < 0 or len(self._buffer) < n):
            await self._fill()
        if n < 0 or n >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:n])
            del self._buffer[:n]
        return data

    async def _fill(self) -> None:
        chunk = await self._source.read(self._read_size)
        try:
            if chunk:
                self._buffer += self._decompressor.decompress(chunk)
                if self._decompressor.eof:
                    self._eof = True
                return
            self._buffer += self._decompressor.flush()
        except _CODEC_ERRORS as exc:
            raise DecompressionError(f"{self.codec.name} decompression failed: {exc}") from exc
        self._eof = True
        if self._decompressor.eof is False:
            raise DecompressionError(f"{self.codec.name} stream ended prematurely")
        logger.debug("%s stream exhausted", self.codec.name)
