"""Reading files out of the bundle index and its bundles."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Iterator, Optional

from .dat import DatFile
from .fs import BundleFs, BundleFsError, FileContents
from .hashing import HashStrategy
from .ooz import Codec, DecompressionError, decompress, decompress_chunk
from .parse import Head, IndexData, ParseError, PathRep

logger = logging.getLogger(__name__)

INDEX_NAME = "Bundles2/_.index.bin"


class BundleError(Exception):
    """A bundle could not be fetched, read, parsed or decompressed."""


@dataclass(frozen=True)
class _FileRef:
    bundle_name: str
    file_offset: int
    file_size: int


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def decompress_file(reader, file_ref=None, codec: Codec = decompress_chunk) -> bytes:
    """Decompress a bundle, or only the part a file reference points at.

    ``file_ref`` is anything with ``file_offset`` and ``file_size``; without
    it the whole bundle is decompressed. Only the chunks covering the file
    are read.
    """
    try:
        head = Head.read(reader)
    except ParseError as err:
        raise BundleError(f"failed to parse file: {err}") from err
    except OSError as err:
        raise BundleError(f"failed to read file: {err}") from err

    chunk_unpacked_size = head.payload.chunk_unpacked_size
    uncompressed_size = head.payload.uncompressed_size
    chunk_sizes = head.payload.chunk_sizes

    if chunk_unpacked_size == 0:
        raise BundleError("failed to parse file: chunk size is zero")

    file_offset = file_ref.file_offset if file_ref is not None else 0
    file_size = file_ref.file_size if file_ref is not None else uncompressed_size

    first_chunk = file_offset // chunk_unpacked_size
    last_chunk = _ceil_div(file_offset + file_size, chunk_unpacked_size)

    try:
        reader.discard(sum(chunk_sizes[:first_chunk]))
    except BundleFsError as err:
        raise BundleError(f"failed to get file from filesystem: {err}") from err

    try:
        content = decompress(
            reader,
            chunk_unpacked_size,
            chunk_sizes[first_chunk:last_chunk],
            first_chunk,
            uncompressed_size,
            codec,
        )
    except DecompressionError as err:
        if err.code is None:
            raise BundleError(f"failed to read file: {err}") from err
        raise BundleError(f"failed to decompress file: {err.code}") from err

    start = file_offset - first_chunk * chunk_unpacked_size
    return content[start:start + file_size]


class Bundle:
    """Entry point to a game installation's bundles."""

    def __init__(self, fs: BundleFs, codec: Codec = decompress_chunk) -> None:
        self.fs = fs
        self.codec = codec

    def index(self) -> "IndexBundle":
        """Load and parse the bundle index."""
        try:
            contents = self.fs.get(INDEX_NAME)
        except BundleFsError as err:
            raise BundleError(f"failed to get file from filesystem: {err}") from err
        with contents:
            data = decompress_file(contents, None, self.codec)
        return IndexBundle(self.fs, data, self.codec)


class IndexBundle:
    """The parsed bundle index: where every file lives."""

    def __init__(self, fs: BundleFs, data: bytes, codec: Codec = decompress_chunk) -> None:
        logger.debug("parsing index bundle")
        try:
            index, path_data = IndexData.parse(data)
        except ParseError as err:
            raise BundleError(f"failed to parse file: {err}") from err

        refs = {}
        for info in index.files:
            try:
                entry = index.bundles[info.bundle_index]
            except IndexError:
                raise BundleError(
                    f"failed to parse file: bundle index {info.bundle_index} out of range"
                ) from None
            refs[info.hash] = _FileRef(entry.name, info.file_offset, info.file_size)

        logger.debug("parsed %d files from index bundle", len(refs))

        self._fs = fs
        self._codec = codec
        self._refs = refs
        self._reps: list[PathRep] = index.reps
        self._path_data = bytes(path_data)

    def __len__(self) -> int:
        return len(self._refs)

    def read(self, table) -> Optional[DatFile]:
        """Read a data table by its row type; ``None`` if the file is missing."""
        data = self.read_by_name(table.FILE)
        if data is None:
            return None
        return DatFile(data, table)

    def read_by_name(self, name: str) -> Optional[bytes]:
        """Read a file by its path; ``None`` if the index does not know it."""
        file_ref = self._refs.get(HashStrategy.MURMUR3_21_2.path(name))
        if file_ref is None:
            logger.warning("file '%s' not found in index bundle", name)
            return None

        bundle_name = f"Bundles2/{file_ref.bundle_name}.bundle.bin"
        logger.debug(
            "reading file '%s' from bundle '%s' @ %d (%d bytes)",
            name,
            bundle_name,
            file_ref.file_offset,
            file_ref.file_size,
        )

        try:
            contents = self._fs.get(bundle_name)
        except BundleFsError as err:
            raise BundleError(f"failed to get file from filesystem: {err}") from err
        with contents:
            content = decompress_file(contents, file_ref, self._codec)

        logger.debug(
            "loaded file '%s' from bundle '%s' with %d bytes", name, bundle_name, len(content)
        )
        return content

    def files(self) -> Iterator[str]:
        """All file paths listed in the index."""
        data = decompress_file(FileContents(self._path_data), None, self._codec)
        return self._iter_paths(data)

    def _iter_paths(self, data: bytes) -> Iterator[str]:
        for rep in self._reps:
            yield from _rep_paths(data, rep)


def _rep_paths(data: bytes, rep: PathRep) -> Iterator[str]:
    pos = rep.payload_offset
    end = rep.payload_offset + rep.payload_size
    if end > len(data):
        raise BundleError("failed to parse file: path payload out of range")

    base_phase = False
    bases: list[str] = []

    while pos < end:
        if end - pos < 4:
            raise BundleError("failed to parse file: truncated path command")
        (cmd,) = struct.unpack_from("<I", data, pos)
        pos += 4

        if cmd == 0:
            base_phase = not base_phase
            if base_phase:
                bases.clear()
            continue

        nul = data.find(b"\0", pos, end)
        if nul < 0:
            raise BundleError("failed to parse file: unterminated path")
        try:
            part = data[pos:nul].decode("utf-8")
        except UnicodeDecodeError as err:
            raise BundleError(f"failed to parse file: {err}") from err
        pos = nul + 1

        if cmd - 1 < len(bases):
            part = bases[cmd - 1] + part

        if base_phase:
            bases.append(part)
        else:
            yield part