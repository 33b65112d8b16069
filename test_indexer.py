from __future__ import annotations

import struct
import tempfile
import unittest
from pathlib import Path

from asynczip.constants import COMPRESSION_DEFLATE, COMPRESSION_STORED
from asynczip.errors import (
    CentralDirectoryError,
    EntryBoundsError,
    EntryIndexOutOfBounds,
    FormatError,
    LocalHeaderError,
    MissingSizeMetadata,
    MultiDiskArchiveError,
    TooManyEntries,
    UncompressedSizeMismatch,
    UnsupportedCompression,
)
from asynczip.reader import ZipFileReader
from ziptestutil import RawEntry, build_zip, deflated, stored


class IndexerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp = Path(tmp.name)

    def write(self, name: str, data: bytes) -> Path:
        path = self.tmp / name
        path.write_bytes(data)
        return path

    async def read_entry(self, r: ZipFileReader, index: int) -> bytes:
        async with await r.entry_reader(index) as er:
            return await er.read_to_end()

    async def test_two_entry_scenario(self):
        foo = b"0123456789"
        bar = b"\x00\x01\x02\x03\x04"
        path = self.write("a.zip", build_zip([stored("foo.txt", foo), deflated("bar.bin", bar)]))
        r = await ZipFileReader.open(path)
        self.assertEqual(2, len(r.entries()))

        index, entry = r.lookup("bar.bin")
        self.assertEqual(1, index)
        self.assertEqual(COMPRESSION_DEFLATE, entry.compression)
        self.assertEqual(5, entry.uncompressed_size)

        foo_entry = r.entries()[0]
        self.assertEqual(COMPRESSION_STORED, foo_entry.compression)
        self.assertEqual(30 + len("foo.txt"), foo_entry.data_offset)
        self.assertEqual(foo, await self.read_entry(r, 0))
        self.assertEqual(bar, await self.read_entry(r, 1))
        with self.assertRaises(EntryIndexOutOfBounds):
            await r.entry_reader(2)

        raw = path.read_bytes()
        corrupt = self.write("corrupt.zip", raw[: len(raw) - 30])
        with self.assertRaises(FormatError):
            await ZipFileReader.open(corrupt)

    async def test_entry_metadata(self):
        path = self.write(
            "meta.zip",
            build_zip([RawEntry(name="dir/", payload=b"", external_attr=(0o40755 << 16) | 0x10), stored("dir/f.txt", b"x")]),
        )
        r = await ZipFileReader.open(path)
        d, f = r.entries()
        self.assertTrue(d.is_dir)
        self.assertFalse(f.is_dir)
        self.assertEqual((2024, 3, 15, 12, 30, 20), f.date_time)
        self.assertEqual(0o100644, f.mode)
        self.assertEqual("store", f.compression_name)
        self.assertFalse(f.is_encrypted)

    async def test_zip64_end_records_and_extra(self):
        payload = b"zip64 payload " * 100
        path = self.write("z64.zip", build_zip([stored("a.txt", b"alpha"), deflated("b.txt", payload)], zip64=True))
        r = await ZipFileReader.open(path)
        self.assertEqual(["a.txt", "b.txt"], [e.name for e in r.entries()])
        self.assertEqual(len(payload), r.entries()[1].uncompressed_size)
        self.assertEqual(b"alpha", await self.read_entry(r, 0))
        self.assertEqual(payload, await self.read_entry(r, 1))

    async def test_prepended_stub_shifts_offsets(self):
        stub = b"#!/bin/sh\necho self-extracting\nexit 0\n" * 4
        for zip64 in (False, True):
            path = self.write(f"sfx{zip64}.zip", build_zip([stored("x.txt", b"payload x"), deflated("y.txt", b"payload y" * 9)], prefix=stub, zip64=zip64))
            r = await ZipFileReader.open(path)
            self.assertEqual(len(stub), r.entries()[0].header_offset)
            self.assertEqual(b"payload x", await self.read_entry(r, 0))
            self.assertEqual(b"payload y" * 9, await self.read_entry(r, 1))

    async def test_archive_comment_with_fake_signature(self):
        comment = b"PK\x05\x06 not a real record"
        path = self.write("comment.zip", build_zip([stored("c.txt", b"commented")], comment=comment))
        r = await ZipFileReader.open(path)
        self.assertEqual(b"commented", await self.read_entry(r, 0))

    async def test_name_encodings(self):
        path = self.write(
            "names.zip",
            build_zip([stored("ünï.txt", b"u", flags=1 << 11), stored(b"\x81.txt", b"c")]),
        )
        r = await ZipFileReader.open(path)
        self.assertEqual(["ünï.txt", "ü.txt"], [e.name for e in r.entries()])

    async def test_missing_compressed_size_is_recoverable(self):
        path = self.write(
            "nosize.zip",
            build_zip([stored("ok.txt", b"fine"), stored("broken.txt", b"data", csize_field=0xFFFFFFFF)]),
        )
        r = await ZipFileReader.open(path)
        self.assertIsNone(r.entries()[1].compressed_size)
        with self.assertRaises(MissingSizeMetadata):
            await r.entry_reader(1)
        self.assertEqual(b"fine", await self.read_entry(r, 0))

    async def test_missing_uncompressed_size_skips_validation(self):
        path = self.write("nousize.zip", build_zip([stored("u.txt", b"unknown size", usize_field=0xFFFFFFFF)]))
        r = await ZipFileReader.open(path)
        self.assertIsNone(r.entries()[0].uncompressed_size)
        self.assertEqual(b"unknown size", await self.read_entry(r, 0))

    async def test_declared_size_mismatch(self):
        path = self.write("mismatch.zip", build_zip([deflated("m.txt", b"abc" * 10, usize_field=33)]))
        r = await ZipFileReader.open(path)
        async with await r.entry_reader(0) as er:
            with self.assertRaises(UncompressedSizeMismatch):
                await er.read_to_end()

    async def test_bad_local_header(self):
        raw = bytearray(build_zip([stored("l.txt", b"local")]))
        raw[0:4] = b"XXXX"
        with self.assertRaises(LocalHeaderError):
            await ZipFileReader.open(self.write("badlocal.zip", bytes(raw)))

    async def test_payload_running_into_central_directory(self):
        path = self.write("overrun.zip", build_zip([stored("o.txt", b"short", csize_field=5000)]))
        with self.assertRaises(EntryBoundsError):
            await ZipFileReader.open(path)

    async def test_central_directory_size_exceeding_archive(self):
        raw = bytearray(build_zip([stored("s.txt", b"size")]))
        struct.pack_into("<I", raw, len(raw) - 22 + 12, 10_000)
        with self.assertRaises(CentralDirectoryError):
            await ZipFileReader.open(self.write("cdsize.zip", bytes(raw)))

    async def test_entry_limit(self):
        path = self.write("limit.zip", build_zip([stored("1", b"1"), stored("2", b"2")]))
        with self.assertRaises(TooManyEntries):
            await ZipFileReader.open(path, max_entries=1)
        r = await ZipFileReader.open(path, max_entries=2)
        self.assertEqual(2, len(r))

    async def test_multi_disk_rejected(self):
        raw = bytearray(build_zip([stored("d.txt", b"disk")]))
        struct.pack_into("<H", raw, len(raw) - 22 + 4, 1)
        with self.assertRaises(MultiDiskArchiveError):
            await ZipFileReader.open(self.write("multidisk.zip", bytes(raw)))

    async def test_unsupported_method_is_raised_by_the_factory(self):
        path = self.write("d64.zip", build_zip([RawEntry(name="d64.bin", payload=b"\x00" * 8, method=9, usize=8)]))
        r = await ZipFileReader.open(path)
        with self.assertRaises(UnsupportedCompression):
            await r.entry_reader(0)


if __name__ == "__main__":
    unittest.main()
