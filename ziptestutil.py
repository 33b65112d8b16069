"""Byte-level ZIP builder for tests that need layouts the stdlib writer won't produce
(ZIP64 records, prepended stubs, AES entries, bogus directory values)."""

from __future__ import annotations

import os
import struct
import zlib
from dataclasses import dataclass
from typing import List, Optional, Union

from Cryptodome.Cipher import AES
from Cryptodome.Hash import HMAC, SHA1
from Cryptodome.Protocol.KDF import PBKDF2
from Cryptodome.Util import Counter

from asynczip.constants import (
    CENTRAL_DIR_SIG,
    CENTRAL_DIR_STRUCT,
    EOCD_SIG,
    EOCD_STRUCT,
    LOCAL_HEADER_SIG,
    LOCAL_HEADER_STRUCT,
    ZIP64_EOCD_SIG,
    ZIP64_EOCD_STRUCT,
    ZIP64_LOCATOR_SIG,
    ZIP64_LOCATOR_STRUCT,
)


DOS_DATE = (44 << 9) | (3 << 5) | 15  # 2024-03-15
DOS_TIME = (12 << 11) | (30 << 5) | (20 // 2)  # 12:30:20


@dataclass
class RawEntry:
    name: Union[str, bytes]
    payload: bytes  # exactly the bytes stored on disk
    method: int = 0
    usize: int = 0
    crc: int = 0
    flags: int = 0
    extra: bytes = b""
    csize_field: Optional[int] = None  # overrides the central directory value
    usize_field: Optional[int] = None
    external_attr: int = 0o100644 << 16


def stored(name: Union[str, bytes], data: bytes, **kw) -> RawEntry:
    return RawEntry(name=name, payload=data, method=0, usize=len(data), crc=zlib.crc32(data), **kw)


def deflated(name: Union[str, bytes], data: bytes, **kw) -> RawEntry:
    c = zlib.compressobj(6, zlib.DEFLATED, -15)
    payload = c.compress(data) + c.flush()
    return RawEntry(name=name, payload=payload, method=8, usize=len(data), crc=zlib.crc32(data), **kw)


def aes_encrypted(name: str, data: bytes, password: str, *, strength: int = 3, method: int = 8, salt: Optional[bytes] = None) -> RawEntry:
    key_len = {1: 16, 2: 24, 3: 32}[strength]
    salt = salt if salt is not None else os.urandom({1: 8, 2: 12, 3: 16}[strength])
    if method == 8:
        c = zlib.compressobj(6, zlib.DEFLATED, -15)
        inner = c.compress(data) + c.flush()
    else:
        inner = data
    material = PBKDF2(password.encode("utf-8"), salt, dkLen=2 * key_len + 2, count=1000)
    aes_key, hmac_key, verifier = material[:key_len], material[key_len : 2 * key_len], material[2 * key_len :]
    cipher = AES.new(aes_key, AES.MODE_CTR, counter=Counter.new(128, initial_value=1, little_endian=True))
    ciphertext = cipher.encrypt(inner)
    mac = HMAC.new(hmac_key, digestmod=SHA1)
    mac.update(ciphertext)
    payload = salt + verifier + ciphertext + mac.digest()[:10]
    extra = struct.pack("<HHH2sBH", 0x9901, 7, 2, b"AE", strength, method)
    return RawEntry(name=name, payload=payload, method=99, usize=len(data), crc=0, flags=1, extra=extra)


def build_zip(entries: List[RawEntry], *, prefix: bytes = b"", comment: bytes = b"", zip64: bool = False) -> bytes:
    """Lay out local headers, payloads, the central directory and the end records.

    Offsets are relative to the end of ``prefix``, as when a stub is concatenated
    in front of an existing archive.
    """
    out = bytearray(prefix)
    cd = bytearray()
    for e in entries:
        name = e.name if isinstance(e.name, bytes) else e.name.encode("utf-8")
        offset = len(out) - len(prefix)
        csize = len(e.payload)
        out += LOCAL_HEADER_STRUCT.pack(
            LOCAL_HEADER_SIG, 20, e.flags, e.method, DOS_TIME, DOS_DATE, e.crc, csize, e.usize, len(name), len(e.extra)
        )
        out += name + e.extra + e.payload
        cd_csize = e.csize_field if e.csize_field is not None else csize
        cd_usize = e.usize_field if e.usize_field is not None else e.usize
        cd_offset = offset
        cd_extra = e.extra
        if zip64:
            cd_extra = struct.pack("<HHQQQ", 0x0001, 24, cd_usize, cd_csize, offset) + cd_extra
            cd_csize = cd_usize = cd_offset = 0xFFFFFFFF
        cd += CENTRAL_DIR_STRUCT.pack(
            CENTRAL_DIR_SIG,
            45 if zip64 else 20,
            3,
            45 if zip64 else 20,
            0,
            e.flags,
            e.method,
            DOS_TIME,
            DOS_DATE,
            e.crc,
            cd_csize,
            cd_usize,
            len(name),
            len(cd_extra),
            0,
            0,
            0,
            e.external_attr,
            cd_offset,
        )
        cd += name + cd_extra
    cd_start = len(out) - len(prefix)
    out += cd
    n = len(entries)
    if zip64:
        eocd64_off = len(out) - len(prefix)
        out += ZIP64_EOCD_STRUCT.pack(ZIP64_EOCD_SIG, ZIP64_EOCD_STRUCT.size - 12, 45, 45, 0, 0, n, n, len(cd), cd_start)
        out += ZIP64_LOCATOR_STRUCT.pack(ZIP64_LOCATOR_SIG, 0, eocd64_off, 1)
        out += EOCD_STRUCT.pack(EOCD_SIG, 0, 0, 0xFFFF, 0xFFFF, 0xFFFFFFFF, 0xFFFFFFFF, len(comment))
    else:
        out += EOCD_STRUCT.pack(EOCD_SIG, 0, 0, n, n, len(cd), cd_start, len(comment))
    out += comment
    return bytes(out)
