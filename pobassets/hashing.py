"""Path hashes used to look files up in the bundle index."""

from __future__ import annotations

import enum
import logging
import struct

import requests

logger = logging.getLogger(__name__)

_MASK64 = (1 << 64) - 1

FNV_OFFSET_BASIS = 14695981039346656037
FNV_PRIME = 1099511628211

MURMUR_SEED = 0x1337B33F
_MURMUR_M = 0xC6A4A7935BD1E995
_MURMUR_R = 47

LATEST_PATCH_URL = (
    "https://raw.githubusercontent.com/poe-tool-dev/latest-patch-version/main/latest.txt"
)


class Fnv1a64:
    """Incremental 64-bit FNV-1a hasher."""

    __slots__ = ("_state",)

    def __init__(self) -> None:
        self._state = FNV_OFFSET_BASIS

    def update(self, data: bytes) -> None:
        """Feed more bytes into the hash."""
        state = self._state
        for byte in data:
            state = ((state ^ byte) * FNV_PRIME) & _MASK64
        self._state = state

    def finalize(self) -> int:
        """Return the hash of everything fed so far."""
        return self._state


def murmur64a(data: bytes, seed: int) -> int:
    """MurmurHash64A of ``data`` with the given seed."""
    data = bytes(data)
    length = len(data)
    h = (seed ^ (length * _MURMUR_M)) & _MASK64

    tail_start = length - length % 8
    for (k,) in struct.iter_unpack("<Q", data[:tail_start]):
        k = (k * _MURMUR_M) & _MASK64
        k ^= k >> _MURMUR_R
        k = (k * _MURMUR_M) & _MASK64
        h ^= k
        h = (h * _MURMUR_M) & _MASK64

    tail = data[tail_start:]
    if tail:
        h ^= int.from_bytes(tail, "little")
        h = (h * _MURMUR_M) & _MASK64

    h ^= h >> _MURMUR_R
    h = (h * _MURMUR_M) & _MASK64
    h ^= h >> _MURMUR_R
    return h


class HashStrategy(enum.Enum):
    """How file paths are hashed in a given index format."""

    FNV3_11_2 = "fnv3_11_2"
    MURMUR3_21_2 = "murmur3_21_2"

    def path(self, path: str) -> int:
        """Hash a file path, ignoring case."""
        encoded = path.lower().encode("utf-8")
        if self is HashStrategy.FNV3_11_2:
            hasher = Fnv1a64()
            hasher.update(encoded)
            hasher.update(b"++")
            return hasher.finalize()
        return murmur64a(encoded, MURMUR_SEED)


def filepath_hash(name: str) -> int:
    """FNV-1a based path hash used by older index formats."""
    return HashStrategy.FNV3_11_2.path(name)


def latest_patch_version() -> str:
    """Fetch the identifier of the latest game patch."""
    response = requests.get(LATEST_PATCH_URL)
    response.raise_for_status()
    version = response.text
    logger.info("latest patch version: %s", version)
    return version