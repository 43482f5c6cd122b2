"""Chunked decompression of bundle payloads."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

Codec = Callable[[bytes, int], bytes]

DECODER_FAILURE = -1


class DecompressionError(Exception):
    """A chunk could not be read or decoded.

    ``code`` carries the decoder's failure code; it is ``None`` when the
    compressed data itself could not be read.
    """

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


def decompress_chunk(src: bytes, dst_size: int) -> bytes:
    """Default chunk codec.

    Chunks stored without compression are exactly as long as their unpacked
    size and are returned unchanged. Compressed chunks need a codec for the
    Oodle formats to be passed in; here they fail with the decoder's
    failure code.
    """
    if len(src) != dst_size:
        raise DecompressionError(
            f"Failed to decompress with error {DECODER_FAILURE}", code=DECODER_FAILURE
        )
    return bytes(src)


def decompress(
    reader,
    chunk_unpacked_size: int,
    chunk_sizes: Iterable[int],
    chunk_start: int,
    uncompressed_size: int,
    codec: Codec = decompress_chunk,
) -> bytes:
    """Decompress the next chunks of an already positioned reader.

    ``chunk_sizes`` are the compressed sizes of the chunks to read.
    ``chunk_start`` is the number of chunks already read or skipped; together
    with ``uncompressed_size`` it determines the size of a short last chunk.
    """
    uncompressed_offset = chunk_start * chunk_unpacked_size
    content = bytearray()

    for chunk_size in chunk_sizes:
        expected = min(
            chunk_unpacked_size, uncompressed_size - uncompressed_offset - len(content)
        )
        if expected < 0:
            raise DecompressionError("chunk lies past the end of the uncompressed data")

        try:
            buffer = reader.read(chunk_size)
        except OSError as err:
            raise DecompressionError(str(err)) from err
        if len(buffer) != chunk_size:
            raise DecompressionError("failed to fill whole buffer")

        unpacked = codec(bytes(buffer), expected)
        if len(unpacked) != expected:
            raise DecompressionError(
                f"chunk decoded to {len(unpacked)} bytes, expected {expected}",
                code=DECODER_FAILURE,
            )
        content += unpacked

    return bytes(content)