import struct
from dataclasses import dataclass

import pytest

from pobassets.dat import (
    DatFile,
    DatParseError,
    DatString,
    Row,
    VarDataReader,
    parse_u32,
    parse_u64,
)

MAGIC = b"\xbb" * 8


def var_data(*strings):
    blob = bytearray(MAGIC)
    offsets = []
    for text in strings:
        offsets.append(len(blob))
        blob += text.encode("utf-16-le") + b"\0\0"
    return bytes(blob), offsets


@dataclass
class Pair(Row):
    FILE = "Data/Pair.datc64"

    number: int
    label: DatString

    @classmethod
    def parse(cls, data, var_data):
        return cls(parse_u32(data, 0), var_data.get_string_from(data, 4))


def make_table(entries):
    var, offsets = var_data(*(label for _, label in entries))
    rows = b"".join(
        struct.pack("<IQ", number, offset) for (number, _), offset in zip(entries, offsets)
    )
    return struct.pack("<I", len(entries)) + rows + var


def test_parse_integers_little_endian():
    data = struct.pack("<IQ", 7, 1 << 40)
    assert parse_u32(data, 0) == 7
    assert parse_u64(data, 4) == 1 << 40


def test_parse_out_of_range():
    with pytest.raises(DatParseError):
        parse_u64(b"\0" * 7, 0)
    with pytest.raises(DatParseError):
        parse_u32(b"\0" * 4, 1)


def test_var_data_reader_reads_strings():
    var, offsets = var_data("Amulet", "Ring")
    reader = VarDataReader(var)
    assert reader.get_string(offsets[0]).decode() == "Amulet"
    assert reader.get_string(offsets[1]).decode() == "Ring"


def test_get_string_from_row():
    var, offsets = var_data("Flask")
    row = struct.pack("<QQ", 0, offsets[0])
    assert VarDataReader(var).get_string_from(row, 8).decode() == "Flask"


def test_unterminated_string_past_start_fails():
    var = MAGIC + "ab".encode("utf-16-le")
    with pytest.raises(DatParseError):
        VarDataReader(var).get_string(8)


def test_offset_out_of_range_fails():
    with pytest.raises(DatParseError):
        VarDataReader(MAGIC).get_string(100)


def test_dat_string_queries():
    s = DatString("Metadata/Items/Gems".encode("utf-16-le"))
    assert s.starts_with("Metadata/")
    assert not s.starts_with("Items")
    assert s.ends_with("Gems")
    assert not s.ends_with("Metadata")
    assert s.contains("/")
    assert not s.contains("x")


def test_dat_string_prefix_longer_than_string():
    s = DatString("ab".encode("utf-16-le"))
    assert not s.starts_with("abc")
    assert not s.ends_with("zab")


def test_dat_string_surrogate_pair():
    text = "gem \U0001F48E"
    s = DatString(text.encode("utf-16-le"))
    assert s.decode() == text
    assert s.ends_with("\U0001F48E")


def test_dat_string_lone_surrogate():
    s = DatString(b"\x00\xd8a\x00")
    with pytest.raises(UnicodeDecodeError):
        s.decode()
    assert s.contains("a")
    assert not s.starts_with("a")


def test_dat_file_iterates_rows():
    table = DatFile(make_table([(1, "one"), (2, "two")]), Pair)
    assert len(table) == 2
    rows = [(row.number, row.label.decode()) for row in table]
    assert rows == [(1, "one"), (2, "two")]


def test_dat_file_get():
    table = DatFile(make_table([(1, "one"), (2, "two")]), Pair)
    row = table.get(1)
    assert (row.number, row.label.decode()) == (2, "two")
    assert table.get(50) is None


def test_dat_file_row_size_from_marker():
    table = DatFile(make_table([(3, "x"), (4, "y"), (5, "z")]), Pair)
    assert table.row_size == struct.calcsize("<IQ")


def test_dat_file_empty_table():
    table = DatFile(struct.pack("<I", 0) + MAGIC, Pair)
    assert list(table) == []
    assert len(table) == 0


def test_dat_file_without_marker_fails():
    with pytest.raises(DatParseError):
        DatFile(struct.pack("<I", 1) + bytes(12), Pair)