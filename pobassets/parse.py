"""Binary layouts of bundle headers and the bundle index."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, TypeVar

T = TypeVar("T")

HEAD_MIN_SIZE = 60


class ParseError(Exception):
    """The data does not follow the expected layout."""


class Incomplete(ParseError):
    """More input is required; ``needed`` is the missing byte count if known."""

    def __init__(self, needed: Optional[int] = None) -> None:
        self.needed = needed
        detail = "an unknown number of" if needed is None else str(needed)
        super().__init__(f"incomplete input: {detail} more bytes needed")


class _Cursor:
    def __init__(self, data) -> None:
        self._data = data
        self._view = memoryview(data)
        self.pos = 0

    def take(self, n: int) -> memoryview:
        end = self.pos + n
        if end > len(self._view):
            raise Incomplete(end - len(self._view))
        chunk = self._view[self.pos:end]
        self.pos = end
        return chunk

    def u32(self) -> int:
        return int.from_bytes(self.take(4), "little")

    def u64(self) -> int:
        return int.from_bytes(self.take(8), "little")

    def rest(self):
        return self._data[self.pos:]


@dataclass
class HeadPayload:
    first_file_encode: int
    uncompressed_size: int
    compressed_size: int
    chunk_count: int
    chunk_unpacked_size: int
    chunk_sizes: list[int] = field(default_factory=list)

    @classmethod
    def _read(cls, cursor: _Cursor) -> "HeadPayload":
        first_file_encode = cursor.u32()
        cursor.u32()
        uncompressed_size = cursor.u64()
        compressed_size = cursor.u64()
        chunk_count = cursor.u32()
        chunk_unpacked_size = cursor.u32()
        cursor.take(16)
        sizes_data = cursor.take(chunk_count * 4)
        chunk_sizes = list(struct.unpack(f"<{chunk_count}I", sizes_data))
        return cls(
            first_file_encode=first_file_encode,
            uncompressed_size=uncompressed_size,
            compressed_size=compressed_size,
            chunk_count=chunk_count,
            chunk_unpacked_size=chunk_unpacked_size,
            chunk_sizes=chunk_sizes,
        )

    @classmethod
    def parse(cls, data) -> Tuple["HeadPayload", bytes]:
        """Parse a payload description; returns it and the remaining input."""
        cursor = _Cursor(data)
        return cls._read(cursor), cursor.rest()


@dataclass
class Head:
    uncompressed_size: int
    total_payload_size: int
    payload: HeadPayload

    @classmethod
    def _read(cls, cursor: _Cursor) -> "Head":
        uncompressed_size = cursor.u32()
        total_payload_size = cursor.u32()
        cursor.u32()
        payload = HeadPayload._read(cursor)
        return cls(uncompressed_size, total_payload_size, payload)

    @classmethod
    def parse(cls, data) -> Tuple["Head", bytes]:
        """Parse a bundle header; returns it and the remaining input."""
        cursor = _Cursor(data)
        return cls._read(cursor), cursor.rest()

    @classmethod
    def read(cls, reader) -> "Head":
        """Read a bundle header from a stream, consuming exactly its bytes."""
        return read_with_parser(cls.parse, HEAD_MIN_SIZE, reader)


@dataclass
class BundleEntry:
    name: str
    size: int

    @classmethod
    def _read(cls, cursor: _Cursor) -> "BundleEntry":
        name_len = cursor.u32()
        raw = bytes(cursor.take(name_len))
        size = cursor.u32()
        try:
            name = raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise ParseError(f"invalid bundle name: {err}") from err
        return cls(name, size)

    @classmethod
    def parse(cls, data) -> Tuple["BundleEntry", bytes]:
        cursor = _Cursor(data)
        return cls._read(cursor), cursor.rest()


@dataclass
class FileInfo:
    hash: int
    bundle_index: int
    file_offset: int
    file_size: int

    @classmethod
    def _read(cls, cursor: _Cursor) -> "FileInfo":
        return cls(cursor.u64(), cursor.u32(), cursor.u32(), cursor.u32())

    @classmethod
    def parse(cls, data) -> Tuple["FileInfo", bytes]:
        cursor = _Cursor(data)
        return cls._read(cursor), cursor.rest()


@dataclass
class PathRep:
    hash: int
    payload_offset: int
    payload_size: int
    payload_recursive_size: int

    @classmethod
    def _read(cls, cursor: _Cursor) -> "PathRep":
        return cls(cursor.u64(), cursor.u32(), cursor.u32(), cursor.u32())

    @classmethod
    def parse(cls, data) -> Tuple["PathRep", bytes]:
        cursor = _Cursor(data)
        return cls._read(cursor), cursor.rest()


@dataclass
class IndexData:
    bundles: list[BundleEntry]
    files: list[FileInfo]
    reps: list[PathRep]

    @classmethod
    def parse(cls, data) -> Tuple["IndexData", bytes]:
        """Parse the decompressed index; the remainder is the path data bundle."""
        cursor = _Cursor(data)
        bundles = [BundleEntry._read(cursor) for _ in range(cursor.u32())]
        files = [FileInfo._read(cursor) for _ in range(cursor.u32())]
        reps = [PathRep._read(cursor) for _ in range(cursor.u32())]
        return cls(bundles, files, reps), cursor.rest()


def _read_up_to(reader, n: int) -> bytes:
    parts = []
    remaining = n
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def read_with_parser(parser: Callable[[bytes], Tuple[T, object]], min_size: int, reader) -> T:
    """Run ``parser`` over a stream, reading only as many bytes as it asks for."""
    buffer = bytearray(_read_up_to(reader, min_size))
    while True:
        try:
            value, _ = parser(bytes(buffer))
            return value
        except Incomplete as incomplete:
            to_read = incomplete.needed or 1
        more = _read_up_to(reader, to_read)
        if not more:
            raise ParseError(f"unexpected end of data after {len(buffer)} bytes")
        buffer += more