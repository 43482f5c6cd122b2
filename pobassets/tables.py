"""Row layouts of the data tables the pipelines read."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .dat import DatParseError, DatString, Row, VarDataReader, parse_flag, parse_u32, parse_u64


@dataclass
class BaseItemTypes(Row):
    FILE = "Data/BaseItemTypes.datc64"

    id: DatString
    name: DatString
    drop_level: int
    site_visibility: int
    item_visual_identity: int

    @classmethod
    def parse(cls, data: bytes, var_data: VarDataReader) -> "BaseItemTypes":
        return cls(
            id=var_data.get_string_from(data, 0),
            name=var_data.get_string_from(data, 32),
            drop_level=parse_u32(data, 48),
            site_visibility=parse_u32(data, 124),
            item_visual_identity=parse_u64(data, 128),
        )


@dataclass
class ItemVisualIdentity(Row):
    FILE = "Data/ItemVisualIdentity.datc64"

    id: DatString
    dds_file: DatString
    is_alternate_art: bool

    @classmethod
    def parse(cls, data: bytes, var_data: VarDataReader) -> "ItemVisualIdentity":
        return cls(
            id=var_data.get_string_from(data, 0),
            dds_file=var_data.get_string_from(data, 8),
            is_alternate_art=parse_flag(data, 300),
        )


@dataclass
class UniqueStashLayout(Row):
    FILE = "Data/UniqueStashLayout.datc64"

    words: int
    item_visual_identity: int
    show_if_empty_challenge_league: bool

    @classmethod
    def parse(cls, data: bytes, var_data: VarDataReader) -> "UniqueStashLayout":
        return cls(
            words=parse_u64(data, 0),
            item_visual_identity=parse_u64(data, 16),
            show_if_empty_challenge_league=parse_flag(data, 64),
        )


@dataclass
class Words(Row):
    FILE = "Data/Words.datc64"

    text2: DatString

    @classmethod
    def parse(cls, data: bytes, var_data: VarDataReader) -> "Words":
        return cls(text2=var_data.get_string_from(data, 48))


class Color(enum.Enum):
    """Colour of a skill gem."""

    RED = "red"
    GREEN = "green"
    BLUE = "blue"
    WHITE = "white"

    def as_str(self) -> str:
        return self.value


_COLOR_IDS = {1: Color.RED, 2: Color.GREEN, 3: Color.BLUE, 4: Color.WHITE}


@dataclass
class SkillGems(Row):
    FILE = "Data/SkillGems.datc64"

    base_item_type: int
    strength: int
    dexterity: int
    intelligence: int
    color: Color

    @classmethod
    def parse(cls, data: bytes, var_data: VarDataReader) -> "SkillGems":
        base_item_type = parse_u64(data, 0)
        strength = parse_u32(data, 32)
        dexterity = parse_u32(data, 36)
        intelligence = parse_u32(data, 40)
        color = _COLOR_IDS.get(parse_u32(data, 83))
        if color is None:
            raise DatParseError("invalid data")
        return cls(base_item_type, strength, dexterity, intelligence, color)