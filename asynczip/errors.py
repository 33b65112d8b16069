class ZipError(Exception):
    """Base class for asynczip errors."""


# Index/format (raised while reading the central directory)
class FormatError(ZipError):
    """The archive's directory structure is malformed."""


class EndOfCentralDirectoryNotFound(FormatError):
    pass


class Zip64LocatorError(FormatError):
    pass


class MultiDiskArchiveError(FormatError):
    pass


class CentralDirectoryError(FormatError):
    pass


class TooManyEntries(FormatError):
    pass


class LocalHeaderError(FormatError):
    pass


class EntryBoundsError(FormatError):
    pass


# Acquisition
class EntryIndexOutOfBounds(ZipError, IndexError):
    pass


class MissingSizeMetadata(ZipError):
    pass


class DataOffsetOutOfRange(ZipError, OSError):
    pass


class UnexpectedEndOfEntry(ZipError, EOFError):
    pass


class UncompressedSizeMismatch(ZipError):
    pass


class ReaderClosedError(ZipError, ValueError):
    pass


# Compression
class UnsupportedCompression(ZipError):
    pass


class DecompressionError(ZipError):
    pass


# Encryption
class UnsupportedEncryption(ZipError):
    pass


class PasswordRequired(ZipError):
    pass


class IncorrectPassword(ZipError):
    pass


class AuthenticationFailed(ZipError):
    pass
