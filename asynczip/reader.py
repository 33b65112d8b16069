"""
Concurrent reading of ZIP entries from the filesystem.

The archive is indexed once when the reader is built and no file handle is kept
afterwards. Every call to :meth:`ZipFileReader.entry_reader` opens a new handle,
seeks it to the entry's payload and returns a reader that owns that handle
exclusively, so any number of entries can be decoded at the same time without
locking.

Each in-flight reader holds one OS file descriptor. Callers that open many
entries at once should bound the number of concurrent acquisitions (see
:func:`asynczip.extract.extract_all`) or raise the process file limit.

Example::

    archive = await ZipFileReader.open("photos.zip")
    first, second = await asyncio.gather(archive.entry_reader(0), archive.entry_reader(1))
    async with first, second:
        a, b = await asyncio.gather(first.read_to_end(), second.read_to_end())
"""

from __future__ import annotations

import enum
import logging
import os
from typing import Iterable, Optional, Tuple, Union

import aiofiles

from .bounded import BoundedReader
from .compression import CompressionReader
from .constants import DEFAULT_MAX_ENTRIES, DEFAULT_READ_SIZE
from .encryption import AesDecryptingReader
from .entry import ZipEntry
from .errors import (
    DataOffsetOutOfRange,
    EntryIndexOutOfBounds,
    MissingSizeMetadata,
    PasswordRequired,
    ReaderClosedError,
    UncompressedSizeMismatch,
    UnsupportedEncryption,
)
from .indexer import read_cd


logger = logging.getLogger(__name__)


class ReaderState(enum.Enum):
    POSITIONED = "positioned"
    STREAMING = "streaming"
    EXHAUSTED = "exhausted"
    DROPPED = "dropped"


class ZipEntryReader:
    """Decoded stream of one entry, owning its own archive handle.

    Not reusable: once exhausted or closed, acquire a new reader from the
    :class:`ZipFileReader` for another pass over the entry.
    """

    def __init__(self, entry: ZipEntry, handle, stream: CompressionReader):
        self._entry = entry
        self._handle = handle
        self._stream = stream
        self._bytes_read = 0
        self.state = ReaderState.POSITIONED

    @property
    def entry(self) -> ZipEntry:
        return self._entry

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read(DEFAULT_READ_SIZE)
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def read(self, n: int = -1) -> bytes:
        if self.state is ReaderState.DROPPED:
            raise ReaderClosedError("Entry reader is closed")
        if self.state is ReaderState.EXHAUSTED:
            return b""
        self.state = ReaderState.STREAMING
        try:
            data = await self._stream.read(n)
        except BaseException:
            # A broken stream cannot be resumed
            await self.close()
            raise
        self._bytes_read += len(data)
        if self._stream.at_eof:
            await self._finish()
        return data

    async def read_to_end(self) -> bytes:
        return await self.read(-1)

    async def read_to_string(self, encoding: str = "utf-8") -> str:
        return (await self.read_to_end()).decode(encoding)

    async def copy_to(self, writer, chunk_size: int = DEFAULT_READ_SIZE) -> int:
        """Stream the remaining entry data into an async writer; returns the byte count."""
        total = 0
        while True:
            chunk = await self.read(chunk_size)
            if not chunk:
                return total
            await writer.write(chunk)
            total += len(chunk)

    async def close(self) -> None:
        if self._handle is not None:
            await self._handle.close()
            self._handle = None
        if self.state is not ReaderState.EXHAUSTED:
            self.state = ReaderState.DROPPED

    async def _finish(self) -> None:
        self.state = ReaderState.EXHAUSTED
        if self._handle is not None:
            await self._handle.close()
            self._handle = None
        expected = self._entry.uncompressed_size
        if expected is not None and self._bytes_read != expected:
            raise UncompressedSizeMismatch(
                f"{self._entry.name!r}: decoded {self._bytes_read} bytes, directory declares {expected}"
            )


class ZipFileReader:
    """A reader which acts concurrently over a ZIP file on the filesystem."""

    def __init__(self, path: Union[str, os.PathLike], entries: Iterable[ZipEntry]):
        self._path = os.fspath(path)
        self._entries: Tuple[ZipEntry, ...] = tuple(entries)

    @classmethod
    async def open(cls, path: Union[str, os.PathLike], *, max_entries: int = DEFAULT_MAX_ENTRIES) -> "ZipFileReader":
        """Index the archive at ``path``.

        The archive is opened once for indexing and closed again before this
        returns, whether indexing succeeded or not.
        """
        path = os.fspath(path)
        async with aiofiles.open(path, "rb") as fh:
            entries = await read_cd(fh, max_entries=max_entries)
        logger.debug("opened %s with %d entries", path, len(entries))
        return cls(path, entries)

    @property
    def path(self) -> str:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> Tuple[ZipEntry, ...]:
        return self._entries

    def lookup(self, name: str) -> Optional[Tuple[int, ZipEntry]]:
        """Searches for the first entry with exactly this name."""
        for index, entry in enumerate(self._entries):
            if entry.name == name:
                return index, entry
        return None

    async def entry_reader(self, index: int, *, password: Optional[Union[str, bytes]] = None) -> ZipEntryReader:
        """Opens the entry at ``index`` for reading on a handle of its own."""
        if not 0 <= index < len(self._entries):
            raise EntryIndexOutOfBounds(f"Entry index {index} out of range (archive has {len(self._entries)})")
        entry = self._entries[index]
        # The raw window is the on-disk payload; uncompressed_size only validates the output
        if entry.compressed_size is None:
            raise MissingSizeMetadata(f"{entry.name!r} has no compressed size to bound its payload")

        fh = await aiofiles.open(self._path, "rb")
        try:
            size = await fh.seek(0, os.SEEK_END)
            if entry.data_offset > size:
                raise DataOffsetOutOfRange(f"{entry.name!r}: data offset {entry.data_offset} beyond archive length {size}")
            await fh.seek(entry.data_offset)
            source = BoundedReader(fh, entry.compressed_size)
            if entry.is_encrypted:
                if entry.aes_strength is None:
                    raise UnsupportedEncryption(f"{entry.name!r}: only WinZip AES encryption is supported")
                if password is None:
                    raise PasswordRequired(f"{entry.name!r} is encrypted; password required")
                source = await AesDecryptingReader.begin(source, password, entry.aes_strength)
            stream = CompressionReader.from_reader(entry.compression, source)
        except BaseException:
            # Release the handle before propagating
            await fh.close()
            raise
        logger.debug("acquired reader for %r at offset %d", entry.name, entry.data_offset)
        return ZipEntryReader(entry, fh, stream)
