from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .constants import (
    CENTRAL_DIR_SIG,
    CENTRAL_DIR_STRUCT,
    COMPRESSION_AES,
    DEFAULT_MAX_ENTRIES,
    EOCD_SEARCH_WINDOW,
    EOCD_SIG,
    EOCD_STRUCT,
    EXTRA_AES,
    EXTRA_ZIP64,
    FLAG_UTF8,
    LOCAL_HEADER_SIG,
    LOCAL_HEADER_STRUCT,
    ZIP64_EOCD_SIG,
    ZIP64_EOCD_STRUCT,
    ZIP64_LIMIT_U32,
    ZIP64_LOCATOR_SIG,
    ZIP64_LOCATOR_STRUCT,
)
from .entry import ZipEntry, dos_date_time
from .errors import (
    CentralDirectoryError,
    EndOfCentralDirectoryNotFound,
    EntryBoundsError,
    LocalHeaderError,
    MultiDiskArchiveError,
    TooManyEntries,
    Zip64LocatorError,
)


logger = logging.getLogger(__name__)

_AES_EXTRA_STRUCT = struct.Struct("<H2sBH")


@dataclass
class CentralDirectory:
    start: int  # actual position of the first central directory header
    size: int
    total_entries: int
    concat: int  # bytes prepended to the archive (self-extracting stubs)
    comment: bytes


async def _read_at(fh, offset: int, n: int) -> bytes:
    await fh.seek(offset)
    return await fh.read(n)


async def find_central_directory(fh, size: int) -> CentralDirectory:
    """
    Locates the central directory from the records at the end of the archive.

    The End Of Central Directory record is searched backwards through the last
    ``EOCD_SEARCH_WINDOW`` bytes, keeping the last candidate whose comment fits
    in the file. When a ZIP64 locator precedes it, counts and sizes are taken
    from the ZIP64 record instead.
    """
    tail_size = min(EOCD_SEARCH_WINDOW, size)
    tail_start = size - tail_size
    tail = await _read_at(fh, tail_start, tail_size)
    scan_pos = len(tail)
    eocd_off = -1
    fields: Tuple = ()
    while True:
        scan_pos = tail.rfind(EOCD_SIG, 0, scan_pos)
        if scan_pos == -1:
            break
        raw = tail[scan_pos : scan_pos + EOCD_STRUCT.size]
        if len(raw) != EOCD_STRUCT.size:
            continue
        candidate = EOCD_STRUCT.unpack(raw)
        if scan_pos + EOCD_STRUCT.size + candidate[7] > len(tail):
            continue
        eocd_off = tail_start + scan_pos
        fields = candidate
        break
    if eocd_off < 0:
        raise EndOfCentralDirectoryNotFound("End of central directory record not found")
    _sig, disk_no, cd_disk, disk_entries, total_entries, cd_size, cd_offset, comment_len = fields
    comment = tail[scan_pos + EOCD_STRUCT.size : scan_pos + EOCD_STRUCT.size + comment_len]
    cd_end = eocd_off

    loc_off = eocd_off - ZIP64_LOCATOR_STRUCT.size
    if loc_off >= 0:
        loc_raw = await _read_at(fh, loc_off, ZIP64_LOCATOR_STRUCT.size)
        if loc_raw[:4] == ZIP64_LOCATOR_SIG:
            _lsig, eocd64_disk, eocd64_declared, total_disks = ZIP64_LOCATOR_STRUCT.unpack(loc_raw)
            if eocd64_disk != 0 or total_disks > 1:
                raise MultiDiskArchiveError("Multi-disk archives are not supported")
            # Expected right before the locator; the declared offset is ignored
            # when data was prepended to the archive
            eocd64_off = loc_off - ZIP64_EOCD_STRUCT.size
            raw64 = await _read_at(fh, eocd64_off, ZIP64_EOCD_STRUCT.size) if eocd64_off >= 0 else b""
            if raw64[:4] != ZIP64_EOCD_SIG:
                eocd64_off = eocd64_declared
                raw64 = await _read_at(fh, eocd64_off, ZIP64_EOCD_STRUCT.size)
            if len(raw64) != ZIP64_EOCD_STRUCT.size or raw64[:4] != ZIP64_EOCD_SIG:
                raise Zip64LocatorError("ZIP64 end of central directory record not found")
            (
                _sig64,
                _rec_size,
                _made_by,
                _needed,
                disk_no,
                cd_disk,
                disk_entries,
                total_entries,
                cd_size,
                cd_offset,
            ) = ZIP64_EOCD_STRUCT.unpack(raw64)
            cd_end = eocd64_off

    if disk_no != 0 or cd_disk != 0 or disk_entries != total_entries:
        raise MultiDiskArchiveError("Multi-disk archives are not supported")
    cd_start = cd_end - cd_size
    if cd_start < 0:
        raise CentralDirectoryError("Central directory size exceeds archive")
    concat = cd_start - cd_offset
    if concat < 0:
        raise CentralDirectoryError("Central directory offset beyond its position")
    return CentralDirectory(start=cd_start, size=cd_size, total_entries=total_entries, concat=concat, comment=comment)


def parse_extra(extra: bytes) -> Dict[int, bytes]:
    fields: Dict[int, bytes] = {}
    pos = 0
    while pos + 4 <= len(extra):
        header_id, data_len = struct.unpack_from("<HH", extra, pos)
        pos += 4
        if pos + data_len > len(extra):
            raise CentralDirectoryError("Corrupt extra field")
        fields.setdefault(header_id, extra[pos : pos + data_len])
        pos += data_len
    return fields


def _apply_zip64(data: Optional[bytes], usize: int, csize: int, header_offset: int) -> Tuple[Optional[int], Optional[int], int]:
    """Resolve sentinel values from the ZIP64 extra field.

    Sizes that are declared as ZIP64 but missing from the extra field come back
    as None; a missing header offset makes the entry unreadable and is an error.
    """
    data = data or b""
    pos = 0
    resolved = []
    for value in (usize, csize):
        if value != ZIP64_LIMIT_U32:
            resolved.append(value)
        elif pos + 8 <= len(data):
            resolved.append(struct.unpack_from("<Q", data, pos)[0])
            pos += 8
        else:
            resolved.append(None)
    if header_offset == ZIP64_LIMIT_U32:
        if pos + 8 > len(data):
            raise CentralDirectoryError("ZIP64 header offset missing from extra field")
        header_offset = struct.unpack_from("<Q", data, pos)[0]
    return resolved[0], resolved[1], header_offset


def _decode_name(raw: bytes, flags: int) -> str:
    if flags & FLAG_UTF8:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CentralDirectoryError(f"Invalid UTF-8 entry name: {exc}") from exc
    return raw.decode("cp437")


def parse_central_directory(data: bytes, total_entries: int, concat: int = 0) -> List[ZipEntry]:
    """Parse central directory headers into entries whose ``data_offset`` is
    still unknown (set to the local header position)."""
    entries: List[ZipEntry] = []
    pos = 0
    for _ in range(total_entries):
        if pos + CENTRAL_DIR_STRUCT.size > len(data):
            raise CentralDirectoryError("Central directory truncated")
        (
            sig,
            _create_version,
            create_system,
            _extract_version,
            _reserved,
            flags,
            method,
            dos_time,
            dos_date,
            crc,
            csize,
            usize,
            name_len,
            extra_len,
            comment_len,
            _disk_start,
            _internal_attr,
            external_attr,
            header_offset,
        ) = CENTRAL_DIR_STRUCT.unpack_from(data, pos)
        if sig != CENTRAL_DIR_SIG:
            raise CentralDirectoryError("Bad central directory header signature")
        pos += CENTRAL_DIR_STRUCT.size
        end = pos + name_len + extra_len + comment_len
        if end > len(data):
            raise CentralDirectoryError("Central directory record overruns directory")
        raw_name = data[pos : pos + name_len]
        extra = data[pos + name_len : pos + name_len + extra_len]
        raw_comment = data[pos + name_len + extra_len : end]
        pos = end

        extras = parse_extra(extra)
        usize_opt, csize_opt, header_offset = _apply_zip64(extras.get(EXTRA_ZIP64), usize, csize, header_offset)
        aes_strength = None
        aes_version = None
        if method == COMPRESSION_AES:
            aes = extras.get(EXTRA_AES)
            if aes is None or len(aes) < _AES_EXTRA_STRUCT.size:
                raise CentralDirectoryError("AES entry lacks a valid AES extra field")
            aes_version, vendor, aes_strength, method = _AES_EXTRA_STRUCT.unpack_from(aes)
            if vendor != b"AE":
                raise CentralDirectoryError("AES extra field has unknown vendor id")
        entries.append(
            ZipEntry(
                name=_decode_name(raw_name, flags),
                compression=method,
                data_offset=header_offset + concat,
                uncompressed_size=usize_opt,
                compressed_size=csize_opt,
                header_offset=header_offset + concat,
                crc32=crc,
                flags=flags,
                date_time=dos_date_time(dos_date, dos_time),
                comment=_decode_name(raw_comment, flags),
                extra=extra,
                create_system=create_system,
                external_attr=external_attr,
                aes_strength=aes_strength,
                aes_version=aes_version,
            )
        )
    return entries


async def _locate_payload(fh, entry: ZipEntry, cd_start: int) -> int:
    raw = await _read_at(fh, entry.header_offset, LOCAL_HEADER_STRUCT.size)
    if len(raw) != LOCAL_HEADER_STRUCT.size:
        raise LocalHeaderError(f"Local header of {entry.name!r} truncated")
    fields = LOCAL_HEADER_STRUCT.unpack(raw)
    if fields[0] != LOCAL_HEADER_SIG:
        raise LocalHeaderError(f"Bad local header signature for {entry.name!r}")
    name_len, extra_len = fields[9], fields[10]
    data_offset = entry.header_offset + LOCAL_HEADER_STRUCT.size + name_len + extra_len
    if data_offset > cd_start:
        raise EntryBoundsError(f"Local header of {entry.name!r} overlaps the central directory")
    if entry.compressed_size is not None and data_offset + entry.compressed_size > cd_start:
        raise EntryBoundsError(f"Payload of {entry.name!r} runs into the central directory")
    return data_offset


async def read_cd(fh, *, max_entries: int = DEFAULT_MAX_ENTRIES) -> List[ZipEntry]:
    """Index an archive from an open async handle.

    Reads the end records, the central directory, and every local file header
    (to learn where each payload starts). Raises a FormatError subclass when the
    structure is malformed; I/O errors from the handle propagate unchanged.
    """
    size = await fh.seek(0, os.SEEK_END)
    cd = await find_central_directory(fh, size)
    if cd.total_entries > max_entries:
        raise TooManyEntries(f"Archive declares {cd.total_entries} entries (limit {max_entries})")
    data = await _read_at(fh, cd.start, cd.size)
    if len(data) != cd.size:
        raise CentralDirectoryError("Central directory truncated")
    parsed = parse_central_directory(data, cd.total_entries, cd.concat)
    entries: List[ZipEntry] = []
    for entry in parsed:
        if entry.header_offset < 0 or entry.header_offset >= cd.start:
            raise EntryBoundsError(f"Local header offset of {entry.name!r} out of range")
        data_offset = await _locate_payload(fh, entry, cd.start)
        entries.append(replace(entry, data_offset=data_offset))
    logger.debug("indexed %d entries (central directory at %d, %d prepended bytes)", len(entries), cd.start, cd.concat)
    return entries
