"""ZIP archive reader that works directly on an in-memory byte buffer."""

import logging
import struct
import zlib
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

LOCAL_HEADER_SIGNATURE = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIRECTORY_SIGNATURE = 0x02014B50
END_OF_CENTRAL_DIRECTORY_SIGNATURE = 0x06054B50
DATA_DESCRIPTOR_SIGNATURE = 0x08074B50

METHOD_STORED = 0
METHOD_DEFLATE = 8

FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8_NAME = 0x0800

# crc32, compressed size, uncompressed size
DESCRIPTOR_SIZE = 12


class ArchiveError(ValueError):
    """The archive bytes could not be parsed."""


class UnsupportedCompressionError(ArchiveError):
    """An entry uses a compression method other than stored or deflate."""


class EntryNotFoundError(ArchiveError):
    """Every entry was scanned and none had the requested name."""


class EmptyArchiveError(ArchiveError):
    """The archive holds no local entries at all."""


class ByteCursor:
    """Little-endian reader over a byte buffer with an explicit offset."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    @property
    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def _require(self, size: int) -> None:
        if size < 0 or self.offset + size > len(self.data):
            raise ArchiveError(
                f"Unexpected end of archive at offset {self.offset} (wanted {size} bytes)"
            )

    def read(self, size: int) -> bytes:
        self._require(size)
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def skip(self, size: int) -> None:
        self._require(size)
        self.offset += size

    def read_u16(self) -> int:
        self._require(2)
        (value,) = struct.unpack_from("<H", self.data, self.offset)
        self.offset += 2
        return value

    def read_u32(self) -> int:
        self._require(4)
        (value,) = struct.unpack_from("<I", self.data, self.offset)
        self.offset += 4
        return value

    def peek_u32(self) -> Optional[int]:
        """Return the next 4 bytes as an integer without advancing, or None at the end."""
        if self.remaining < 4:
            return None
        (value,) = struct.unpack_from("<I", self.data, self.offset)
        return value


@dataclass
class LocalEntry:
    """Header fields of one local entry."""
    name: str
    flags: int
    method: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    data_offset: int

    @property
    def has_descriptor(self) -> bool:
        return bool(self.flags & FLAG_DATA_DESCRIPTOR)

    @property
    def sizes_known(self) -> bool:
        # Writers that stream set bit 3 and leave the header sizes at zero.
        return not self.has_descriptor or self.compressed_size > 0


class ArchiveReader:
    """
    Sequential reader for ZIP local entries.

    Entries are located by walking the local headers from the start of the
    buffer; the central directory is never consulted.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)

    def names(self) -> List[str]:
        """List entry names in archive order."""
        return [entry.name for entry, _ in self._walk(lambda name: False)]

    def read(self, name: str) -> bytes:
        """
        Return the decompressed content of the entry called `name`.

        Raises:
            EmptyArchiveError: The archive has no entries.
            EntryNotFoundError: No entry has that name.
        """
        empty = True
        for entry, content in self._walk(lambda entry_name: entry_name == name):
            empty = False
            if content is not None:
                return content
        if empty:
            raise EmptyArchiveError("Archive contains no entries")
        raise EntryNotFoundError(f"Entry {name!r} not found in archive")

    def read_first(self) -> Tuple[str, bytes]:
        """Return the name and content of the first file entry (directories skipped)."""
        for entry, content in self._walk(lambda entry_name: not entry_name.endswith("/")):
            if content is not None:
                return entry.name, content
        raise EmptyArchiveError("Archive contains no file entries")

    def _walk(self, wanted: Callable[[str], bool]) -> Iterator[Tuple[LocalEntry, Optional[bytes]]]:
        """Yield every entry, with content decoded only for wanted names."""
        cursor = ByteCursor(self.data)
        while True:
            signature = cursor.peek_u32()
            if signature is None or signature in (
                CENTRAL_DIRECTORY_SIGNATURE,
                END_OF_CENTRAL_DIRECTORY_SIGNATURE,
            ):
                return
            if signature != LOCAL_HEADER_SIGNATURE:
                raise ArchiveError(f"Bad signature 0x{signature:08x} at offset {cursor.offset}")

            entry = self._read_header(cursor)
            if wanted(entry.name):
                content, length = self._decode(entry)
                yield entry, content
            else:
                length = self._data_length(entry)
                yield entry, None

            cursor.skip(length)
            if entry.has_descriptor:
                self._skip_descriptor(cursor)

    @staticmethod
    def _read_header(cursor: ByteCursor) -> LocalEntry:
        cursor.skip(4)  # signature
        cursor.skip(2)  # version needed to extract
        flags = cursor.read_u16()
        method = cursor.read_u16()
        cursor.skip(4)  # modification time and date
        crc32 = cursor.read_u32()
        compressed_size = cursor.read_u32()
        uncompressed_size = cursor.read_u32()
        name_length = cursor.read_u16()
        extra_length = cursor.read_u16()
        raw_name = cursor.read(name_length)
        cursor.skip(extra_length)

        if method not in (METHOD_STORED, METHOD_DEFLATE):
            raise UnsupportedCompressionError(
                f"Unsupported compression method {method} at offset {cursor.offset}"
            )

        encoding = "utf-8" if flags & FLAG_UTF8_NAME else "cp437"
        return LocalEntry(
            name=raw_name.decode(encoding, errors="replace"),
            flags=flags,
            method=method,
            crc32=crc32,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            data_offset=cursor.offset,
        )

    def _decode(self, entry: LocalEntry) -> Tuple[bytes, int]:
        """Return (content, compressed length) for an entry."""
        if entry.method == METHOD_STORED:
            length = self._data_length(entry)
            content = self.data[entry.data_offset:entry.data_offset + length]
            if len(content) < length:
                raise ArchiveError(f"Truncated entry {entry.name!r}")
            return content, length

        expected = entry.compressed_size if entry.sizes_known else None
        content, consumed = self._inflate(entry.data_offset, expected)
        return content, expected if expected is not None else consumed

    def _data_length(self, entry: LocalEntry) -> int:
        if entry.sizes_known:
            return entry.compressed_size
        if entry.method == METHOD_DEFLATE:
            _, consumed = self._inflate(entry.data_offset, None)
            return consumed

        # Stored with deferred sizes: the data ends where the descriptor begins.
        marker = struct.pack("<I", DATA_DESCRIPTOR_SIGNATURE)
        end = self.data.find(marker, entry.data_offset)
        if end < 0:
            raise ArchiveError(f"No data descriptor found for stored entry {entry.name!r}")
        return end - entry.data_offset

    def _inflate(self, start: int, expected: Optional[int]) -> Tuple[bytes, int]:
        """Raw-inflate from `start`; return (content, bytes of input consumed)."""
        chunk = self.data[start:] if expected is None else self.data[start:start + expected]
        inflater = zlib.decompressobj(-zlib.MAX_WBITS)
        try:
            content = inflater.decompress(chunk) + inflater.flush()
        except zlib.error as e:
            raise ArchiveError(f"Corrupt deflate stream at offset {start}: {e}") from e
        if not inflater.eof:
            raise ArchiveError(f"Truncated deflate stream at offset {start}")
        return content, len(chunk) - len(inflater.unused_data)

    @staticmethod
    def _skip_descriptor(cursor: ByteCursor) -> None:
        if cursor.peek_u32() == DATA_DESCRIPTOR_SIGNATURE:
            cursor.skip(4)
        cursor.skip(DESCRIPTOR_SIZE)


def extract_entry(archive_bytes: bytes, entry_name: str, encoding: str = "utf-8") -> str:
    """Extract one named entry from a ZIP buffer and decode it as text."""
    content = ArchiveReader(archive_bytes).read(entry_name)
    logger.debug(f"Extracted {entry_name} ({len(content)} bytes)")
    return content.decode(encoding, errors="replace")


def extract_first_entry(archive_bytes: bytes, encoding: str = "utf-8") -> str:
    """Extract the first file of a single-file ZIP buffer as text."""
    name, content = ArchiveReader(archive_bytes).read_first()
    logger.debug(f"Extracted first entry {name} ({len(content)} bytes)")
    return content.decode(encoding, errors="replace")
