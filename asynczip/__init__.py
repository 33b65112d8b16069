"""
asynczip: concurrent, random-access reading of ZIP archive entries.

Features:

- The central directory is indexed once; the reader keeps no open file handle.
- Every entry reader opens its own handle, seeks to the payload, bounds reads to
  the entry's compressed length and decodes on top, so entries can be read in
  parallel from asyncio tasks without locking.
- Store, deflate, bzip2, LZMA, xz and zstd methods; ZIP64 archives; archives
  with prepended data (self-extracting stubs).
- WinZip AES (AE-1/AE-2) encrypted entries via PyCryptodomex.
- Bounded-concurrency extraction helper and a small CLI (list, cat, extract).
"""

from .entry import ZipEntry
from .errors import ZipError
from .reader import ReaderState, ZipEntryReader, ZipFileReader

__version__ = "0.1"

__all__ = [
    "ZipFileReader",
    "ZipEntryReader",
    "ZipEntry",
    "ReaderState",
    "ZipError",
    "constants",
    "errors",
    "extract",
]
