"""Gem data export: gem bases joined with their vendor rewards."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from .bundle import Bundle, BundleError
from .fs import BundleFs
from .tables import BaseItemTypes, SkillGems
from .wiki import cargo_fetch

logger = logging.getLogger(__name__)

VENDOR_REWARDS_QUERY = (
    ("tables", "items,vendor_rewards"),
    ("join_on", "items._pageID=vendor_rewards._pageID"),
    (
        "fields",
        "items.metadata_id,items.name,vendor_rewards.quest,vendor_rewards.act,"
        "vendor_rewards.class_ids,vendor_rewards.npc",
    ),
    ("where", "vendor_rewards._pageID IS NOT null"),
)

_ACT_PATTERN = re.compile(r"\+?[0-9]+")


@dataclass
class Vendor:
    """A vendor selling a gem and the quest that unlocks it."""

    quest: str
    act: int
    npc: str
    class_ids: Optional[FrozenSet[str]] = None

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"quest": self.quest, "act": self.act, "npc": self.npc}
        if self.class_ids is not None:
            out["class_ids"] = sorted(self.class_ids)
        return out


@dataclass
class Gem:
    """A skill or support gem as exported."""

    id: str
    name: str
    level: int
    color: str
    vendors: List[Vendor] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "level": self.level,
            "color": self.color,
        }
        if self.vendors:
            out["vendors"] = [vendor.to_json() for vendor in self.vendors]
        return out


@dataclass(frozen=True)
class VendorGemReward:
    """One row of the wiki's vendor reward table."""

    id: str
    quest: str
    act: int
    class_ids: Optional[FrozenSet[str]]
    npc: str

    @classmethod
    def from_cargo(cls, row: Mapping[str, Any]) -> "VendorGemReward":
        """Build a reward from a cargo row; raises ``ValueError`` on bad rows."""
        try:
            raw_id = row["metadata id"]
            quest = row["quest"]
            raw_act = row["act"]
            npc = row["npc"]
        except KeyError as err:
            raise ValueError(f"missing field {err}") from None

        gem_id = "" if raw_id is None else raw_id
        for name, value in (("metadata id", gem_id), ("quest", quest), ("npc", npc)):
            if not isinstance(value, str):
                raise ValueError(f"field '{name}' is not a string")

        if not isinstance(raw_act, str) or not _ACT_PATTERN.fullmatch(raw_act):
            raise ValueError(f"invalid act {raw_act!r}")
        act = int(raw_act)
        if act > 255:
            raise ValueError(f"act {raw_act!r} out of range")

        raw_classes = row.get("class ids")
        if raw_classes is None:
            class_ids = None
        elif isinstance(raw_classes, str):
            class_ids = frozenset(raw_classes.split(",")) if raw_classes else frozenset()
        else:
            raise ValueError("field 'class ids' is not a string")

        return cls(id=gem_id, quest=quest, act=act, class_ids=class_ids, npc=npc)


@dataclass
class Data:
    """Everything the data pipeline produces."""

    gems: List[Gem]


def fetch_vendor_gem_rewards(session=None) -> Dict[str, List[VendorGemReward]]:
    """Vendor rewards from the wiki, grouped by gem id."""
    grouped: Dict[str, List[VendorGemReward]] = {}
    for row in cargo_fetch(VENDOR_REWARDS_QUERY, session):
        reward = VendorGemReward.from_cargo(row)
        grouped.setdefault(reward.id, []).append(reward)
    return grouped


def build_gems(
    bits, skill_gems: Iterable[SkillGems], vendor_gem_rewards: Mapping[str, List[VendorGemReward]]
) -> List[Gem]:
    """Join skill gems with their base item types and vendors, sorted by id."""
    gems = []
    for skill_gem in skill_gems:
        bit = bits.get(skill_gem.base_item_type)
        if bit is None:
            raise LookupError(f"missing base item type {skill_gem.base_item_type} for gem")

        if bit.site_visibility == 0:
            continue

        gem_id = bit.id.decode()
        name = bit.name.decode()

        vendors = sorted(
            (
                Vendor(quest=r.quest, act=r.act, npc=r.npc, class_ids=r.class_ids)
                for r in vendor_gem_rewards.get(gem_id, ())
            ),
            key=lambda vendor: vendor.act,
        )

        gems.append(
            Gem(
                id=gem_id,
                name=name,
                level=bit.drop_level,
                color=skill_gem.color.as_str(),
                vendors=vendors,
            )
        )

    gems.sort(key=lambda gem: gem.id)
    return gems


def generate_gems(
    fs: BundleFs, vendor_gem_rewards: Mapping[str, List[VendorGemReward]]
) -> List[Gem]:
    """Read the gem tables from the bundles and build the gem list."""
    index = Bundle(fs).index()

    def read(table):
        dat = index.read(table)
        if dat is None:
            raise BundleError(f"{table.__name__} table does not exist")
        return dat

    bits = read(BaseItemTypes)
    skill_gems = read(SkillGems)
    return build_gems(bits, skill_gems, vendor_gem_rewards)


def generate(fs: BundleFs) -> Data:
    """Run the data pipeline."""
    logger.info("generating gem info")
    rewards = fetch_vendor_gem_rewards()
    logger.info("fetched vendor rewards for %d gems", len(rewards))
    return Data(gems=generate_gems(fs, rewards))