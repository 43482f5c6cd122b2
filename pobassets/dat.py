"""Reading rows out of ``.datc64`` data tables."""

from __future__ import annotations

import abc
import struct
from dataclasses import dataclass
from typing import ClassVar, Generic, Iterator, Optional, Type, TypeVar

VDATA_MAGIC = b"\xbb" * 8


class DatParseError(Exception):
    """A row or table does not hold the data its layout requires."""


def parse_u64(data: bytes, idx: int) -> int:
    """Little-endian u64 at ``idx``."""
    if idx < 0 or idx + 8 > len(data):
        raise DatParseError("not enough data")
    return int.from_bytes(data[idx:idx + 8], "little")


def parse_u32(data: bytes, idx: int) -> int:
    """Little-endian u32 at ``idx``."""
    if idx < 0 or idx + 4 > len(data):
        raise DatParseError("not enough data")
    return int.from_bytes(data[idx:idx + 4], "little")


def parse_flag(data: bytes, idx: int) -> bool:
    """A byte at ``idx`` that is true when it equals one."""
    if idx < 0 or idx >= len(data):
        raise DatParseError("not enough data")
    return data[idx] == 1


@dataclass(frozen=True, repr=False)
class DatString:
    """A UTF-16LE string stored in a table's variable data section."""

    raw: bytes

    def _units(self) -> list[int]:
        even = len(self.raw) - len(self.raw) % 2
        return [unit for (unit,) in struct.iter_unpack("<H", self.raw[:even])]

    def _chars(self) -> Iterator[Optional[str]]:
        """Code points, with ``None`` for each unpaired surrogate."""
        units = iter(self._units())
        pending: Optional[int] = None
        while True:
            unit = pending if pending is not None else next(units, None)
            pending = None
            if unit is None:
                return
            if unit < 0xD800 or unit > 0xDFFF:
                yield chr(unit)
            elif unit >= 0xDC00:
                yield None
            else:
                low = next(units, None)
                if low is not None and 0xDC00 <= low <= 0xDFFF:
                    yield chr(0x10000 + ((unit - 0xD800) << 10) + (low - 0xDC00))
                else:
                    yield None
                    pending = low

    def contains(self, ch: str) -> bool:
        """Whether the character occurs in the string."""
        return any(c == ch for c in self._chars())

    def starts_with(self, other: str) -> bool:
        chars = list(self._chars())
        return len(other) <= len(chars) and chars[: len(other)] == list(other)

    def ends_with(self, other: str) -> bool:
        chars = list(self._chars())
        if not other:
            return True
        return len(other) <= len(chars) and chars[-len(other):] == list(other)

    def decode(self) -> str:
        """The string's text; raises ``UnicodeDecodeError`` on invalid UTF-16."""
        even = len(self.raw) - len(self.raw) % 2
        return self.raw[:even].decode("utf-16-le")

    def __repr__(self) -> str:
        try:
            text = repr(self.decode())
        except UnicodeDecodeError as err:
            text = f"<invalid: {err.reason}>"
        return f"DatString({text})"


@dataclass(frozen=True)
class VarDataReader:
    """The variable data section of a table, starting at its magic marker."""

    data: bytes

    def get_string_from(self, data: bytes, idx: int) -> DatString:
        """The string whose offset is stored as a u64 at ``idx`` of a row."""
        return self.get_string(parse_u64(data, idx))

    def get_string(self, offset: int) -> DatString:
        """The NUL-terminated UTF-16 string at ``offset``."""
        if offset > len(self.data):
            raise DatParseError("not enough data")
        tail = self.data[offset:]
        length = next(
            (i * 2 for i, pair in enumerate(zip(tail[0::2], tail[1::2])) if pair == (0, 0)),
            len(self.data),
        )
        end = offset + length
        if end > len(self.data):
            raise DatParseError("not enough data")
        return DatString(self.data[offset:end])


class Row(abc.ABC):
    """A table row type; ``FILE`` names the table it is read from."""

    FILE: ClassVar[str]

    @classmethod
    @abc.abstractmethod
    def parse(cls, data: bytes, var_data: VarDataReader):
        """Parse one fixed-size row."""


R = TypeVar("R", bound=Row)


class DatFile(Generic[R]):
    """A whole data table whose rows parse as ``row``."""

    def __init__(self, data: bytes, row: Type[R]) -> None:
        data = bytes(data)
        if len(data) < 4:
            raise DatParseError("not enough data")
        self.row = row
        self.row_count = int.from_bytes(data[:4], "little")

        boundary = data.find(VDATA_MAGIC)
        if boundary < 4:
            raise DatParseError("variable data marker not found")

        self.row_size = (boundary - 4) // self.row_count if self.row_count else 0
        self._data = data
        self._vdr = VarDataReader(data[boundary:])

    def __len__(self) -> int:
        return self.row_count

    def __iter__(self) -> Iterator[R]:
        if self.row_size == 0:
            return
        rows = self._data[4:]
        available = len(rows) // self.row_size
        for n in range(min(self.row_count, available)):
            start = n * self.row_size
            yield self.row.parse(rows[start:start + self.row_size], self._vdr)

    def get(self, index: int) -> Optional[R]:
        """The row at ``index``, or ``None`` past the end of the data."""
        if index < 0:
            return None
        start = 4 + index * self.row_size
        end = start + self.row_size
        if end > len(self._data):
            return None
        return self.row.parse(self._data[start:end], self._vdr)

    def __repr__(self) -> str:
        return f"DatFile(row_count={self.row_count}, ...)"