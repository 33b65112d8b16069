from __future__ import annotations

import bz2
import lzma
import os
import struct
import unittest
import zlib

import zstandard

from asynczip.bounded import BoundedReader
from asynczip.compression import Codec, CompressionReader
from asynczip.constants import (
    COMPRESSION_BZIP2,
    COMPRESSION_DEFLATE,
    COMPRESSION_DEFLATE64,
    COMPRESSION_LZMA,
    COMPRESSION_STORED,
    COMPRESSION_XZ,
    COMPRESSION_ZSTD,
)
from asynczip.errors import DecompressionError, UnexpectedEndOfEntry, UnsupportedCompression


class _Source:
    """Async byte source handing out at most ``step`` bytes per read."""

    def __init__(self, data: bytes, step: int = 7):
        self.data = data
        self.pos = 0
        self.step = step
        self.calls = 0

    async def read(self, n: int = -1) -> bytes:
        self.calls += 1
        if n < 0:
            n = len(self.data)
        n = min(n, self.step)
        chunk = self.data[self.pos : self.pos + n]
        self.pos += len(chunk)
        return chunk


def _raw_deflate(data: bytes) -> bytes:
    c = zlib.compressobj(9, zlib.DEFLATED, -15)
    return c.compress(data) + c.flush()


def _zip_lzma(data: bytes) -> bytes:
    props = lzma._encode_filter_properties({"id": lzma.FILTER_LZMA1})
    c = lzma.LZMACompressor(lzma.FORMAT_RAW, filters=[lzma._decode_filter_properties(lzma.FILTER_LZMA1, props)])
    return struct.pack("<BBH", 9, 4, len(props)) + props + c.compress(data) + c.flush()


PLAIN = b"The quick brown fox jumps over the lazy dog. " * 400


class BoundedReaderTests(unittest.IsolatedAsyncioTestCase):
    async def test_reads_stop_at_limit(self):
        src = _Source(b"0123456789abcdef", step=100)
        b = BoundedReader(src, 10)
        self.assertEqual(b"0123", await b.read(4))
        self.assertEqual(b"456789", await b.read(100))
        self.assertEqual(b"", await b.read())
        self.assertEqual(0, b.remaining)
        # nothing past the window was consumed
        self.assertEqual(10, src.pos)

    async def test_zero_length_read(self):
        b = BoundedReader(_Source(b"abc"), 3)
        self.assertEqual(b"", await b.read(0))
        self.assertEqual(3, b.remaining)

    async def test_short_source_raises(self):
        b = BoundedReader(_Source(b"abc"), 10)
        self.assertEqual(b"abc", await b.read_exact(3))
        with self.assertRaises(UnexpectedEndOfEntry):
            await b.read()

    async def test_read_exact_beyond_window(self):
        b = BoundedReader(_Source(b"abcdef"), 4)
        with self.assertRaises(UnexpectedEndOfEntry):
            await b.read_exact(5)

    def test_negative_limit_rejected(self):
        with self.assertRaises(ValueError):
            BoundedReader(_Source(b""), -1)


class CompressionReaderTests(unittest.IsolatedAsyncioTestCase):
    async def decode(self, method: int, payload: bytes, *, step: int = 997, read_size: int = 4096) -> bytes:
        reader = CompressionReader.from_reader(method, _Source(payload, step=step), read_size=read_size)
        out = bytearray()
        while True:
            chunk = await reader.read(1500)
            if not chunk:
                break
            self.assertLessEqual(len(chunk), 1500)
            out += chunk
        self.assertTrue(reader.at_eof)
        return bytes(out)

    async def test_stored_passthrough(self):
        self.assertEqual(PLAIN, await self.decode(COMPRESSION_STORED, PLAIN))

    async def test_deflate(self):
        self.assertEqual(PLAIN, await self.decode(COMPRESSION_DEFLATE, _raw_deflate(PLAIN), step=13))

    async def test_bzip2(self):
        self.assertEqual(PLAIN, await self.decode(COMPRESSION_BZIP2, bz2.compress(PLAIN)))

    async def test_zip_lzma(self):
        self.assertEqual(PLAIN, await self.decode(COMPRESSION_LZMA, _zip_lzma(PLAIN), step=3))

    async def test_xz(self):
        self.assertEqual(PLAIN, await self.decode(COMPRESSION_XZ, lzma.compress(PLAIN, format=lzma.FORMAT_XZ)))

    async def test_zstd(self):
        payload = zstandard.ZstdCompressor(level=3).compress(PLAIN)
        self.assertEqual(PLAIN, await self.decode(COMPRESSION_ZSTD, payload))

    async def test_read_all_at_once(self):
        reader = CompressionReader(COMPRESSION_DEFLATE, _Source(_raw_deflate(PLAIN), step=50))
        self.assertEqual(PLAIN, await reader.read())
        self.assertEqual(b"", await reader.read())
        self.assertEqual(b"", await reader.read(0))

    async def test_trailing_bytes_after_stream_end_are_ignored(self):
        src = _Source(_raw_deflate(b"abc") + b"JUNK", step=1000)
        reader = CompressionReader(COMPRESSION_DEFLATE, src)
        self.assertEqual(b"abc", await reader.read())

    async def test_unsupported_method(self):
        with self.assertRaises(UnsupportedCompression):
            CompressionReader.from_reader(COMPRESSION_DEFLATE64, _Source(b""))
        with self.assertRaises(UnsupportedCompression):
            Codec(4242).decompressor()
        self.assertEqual("method-4242", Codec(4242).name)

    async def test_corrupt_deflate(self):
        with self.assertRaises(DecompressionError):
            await self.decode(COMPRESSION_DEFLATE, b"\xff" * 64)

    async def test_truncated_deflate(self):
        payload = _raw_deflate(os.urandom(5000))
        with self.assertRaises(DecompressionError):
            await self.decode(COMPRESSION_DEFLATE, payload[: len(payload) // 2])

    async def test_corrupt_bzip2(self):
        with self.assertRaises(DecompressionError):
            await self.decode(COMPRESSION_BZIP2, b"BZh9" + b"\x00" * 64)


if __name__ == "__main__":
    unittest.main()
