import struct


# Record signatures
LOCAL_HEADER_SIG = b"PK\x03\x04"
CENTRAL_DIR_SIG = b"PK\x01\x02"
EOCD_SIG = b"PK\x05\x06"
ZIP64_EOCD_SIG = b"PK\x06\x06"
ZIP64_LOCATOR_SIG = b"PK\x06\x07"

# Fixed-size record layouts (little endian)
#  local header:   sig, version, flags, method, time, date, crc, csize, usize, name_len, extra_len
#  central header: sig, create_version, create_system, extract_version, reserved, flags, method,
#                  time, date, crc, csize, usize, name_len, extra_len, comment_len, disk_start,
#                  internal_attr, external_attr, header_offset
#  eocd:           sig, disk_no, cd_disk, disk_entries, total_entries, cd_size, cd_offset, comment_len
LOCAL_HEADER_STRUCT = struct.Struct("<4sHHHHHIIIHH")
CENTRAL_DIR_STRUCT = struct.Struct("<4sBBBBHHHHIIIHHHHHII")
EOCD_STRUCT = struct.Struct("<4sHHHHIIH")
ZIP64_LOCATOR_STRUCT = struct.Struct("<4sIQI")
ZIP64_EOCD_STRUCT = struct.Struct("<4sQHHIIQQQQ")

# Sentinels marking a value that lives in the ZIP64 extra field
ZIP64_LIMIT_U16 = 0xFFFF
ZIP64_LIMIT_U32 = 0xFFFFFFFF

# Extra field ids
EXTRA_ZIP64 = 0x0001
EXTRA_AES = 0x9901

# General purpose flag bits
FLAG_ENCRYPTED = 1 << 0
FLAG_DATA_DESCRIPTOR = 1 << 3
FLAG_STRONG_ENCRYPTION = 1 << 6
FLAG_UTF8 = 1 << 11


# Compression method ids (APPNOTE 4.4.5)
COMPRESSION_STORED = 0
COMPRESSION_DEFLATE = 8
COMPRESSION_DEFLATE64 = 9
COMPRESSION_BZIP2 = 12
COMPRESSION_LZMA = 14
COMPRESSION_ZSTD = 93
COMPRESSION_XZ = 95
COMPRESSION_AES = 99

COMPRESSION_NAMES = {
    COMPRESSION_STORED: "store",
    COMPRESSION_DEFLATE: "deflate",
    COMPRESSION_DEFLATE64: "deflate64",
    COMPRESSION_BZIP2: "bzip2",
    COMPRESSION_LZMA: "lzma",
    COMPRESSION_ZSTD: "zstd",
    COMPRESSION_XZ: "xz",
    COMPRESSION_AES: "aes",
}

# Host system ids used to interpret external attributes
SYSTEM_UNIX = 3


DEFAULT_READ_SIZE = 64 * 1024  # bytes pulled from the archive per read
DEFAULT_MAX_ENTRIES = 1_000_000
DEFAULT_JOBS = 4
EOCD_SEARCH_WINDOW = EOCD_STRUCT.size + 0xFFFF  # fixed record + longest possible comment
