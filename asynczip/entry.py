from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import COMPRESSION_NAMES, FLAG_ENCRYPTED, SYSTEM_UNIX


@dataclass(frozen=True)
class ZipEntry:
    """One entry of the central directory.

    ``data_offset`` is the absolute position of the first payload byte, past the
    local file header. ``compressed_size`` is the on-disk payload length and
    ``uncompressed_size`` the length after decoding; either may be ``None`` when
    the directory declares a ZIP64 value without providing it.
    """

    name: str
    compression: int
    data_offset: int
    uncompressed_size: Optional[int]
    compressed_size: Optional[int] = None
    header_offset: int = 0
    crc32: int = 0
    flags: int = 0
    date_time: Tuple[int, int, int, int, int, int] = (1980, 1, 1, 0, 0, 0)
    comment: str = ""
    extra: bytes = b""
    create_system: int = 0
    external_attr: int = 0
    aes_strength: Optional[int] = None
    aes_version: Optional[int] = None

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/")

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & FLAG_ENCRYPTED)

    @property
    def mode(self) -> Optional[int]:
        # Only unix hosts store a st_mode in the high word
        if self.create_system != SYSTEM_UNIX:
            return None
        return (self.external_attr >> 16) or None

    @property
    def compression_name(self) -> str:
        return COMPRESSION_NAMES.get(self.compression, f"method-{self.compression}")


def dos_date_time(date: int, time: int) -> Tuple[int, int, int, int, int, int]:
    return (
        (date >> 9) + 1980,
        (date >> 5) & 0x0F,
        date & 0x1F,
        time >> 11,
        (time >> 5) & 0x3F,
        (time & 0x1F) * 2,
    )
