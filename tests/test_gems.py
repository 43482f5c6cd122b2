import struct
from unittest import mock

import pytest
import requests

from pobassets.bundle import BundleError
from pobassets.dat import DatFile
from pobassets.fs import LocalBundleFs
from pobassets.gems import (
    Gem,
    Vendor,
    VendorGemReward,
    build_gems,
    fetch_vendor_gem_rewards,
    generate,
    generate_gems,
)
from pobassets.hashing import HashStrategy
from pobassets.tables import BaseItemTypes, SkillGems

MAGIC = b"\xbb" * 8
FIREBALL = "Metadata/Items/Gems/SkillGemFireball"
CLEAVE = "Metadata/Items/Gems/SkillGemCleave"


def bundle_bytes(data):
    size = len(data)
    payload = struct.pack("<IIQQII", 0, 0, size, size, 1, size) + bytes(16)
    payload += struct.pack("<I", size)
    return struct.pack("<III", size, size, len(payload)) + payload + data


def write_bundles(root, files):
    blob = b""
    refs = b""
    for name, contents in files.items():
        refs += struct.pack("<QIII", HashStrategy.MURMUR3_21_2.path(name), 0, len(blob),
                            len(contents))
        blob += contents
    index = struct.pack("<I", 1) + struct.pack("<I", 4) + b"data" + struct.pack("<I", len(blob))
    index += struct.pack("<I", len(files)) + refs + struct.pack("<I", 0)
    bundles = root / "Bundles2"
    bundles.mkdir()
    (bundles / "data.bundle.bin").write_bytes(bundle_bytes(blob))
    (bundles / "_.index.bin").write_bytes(bundle_bytes(index))
    return LocalBundleFs(root)


def base_item_types(entries):
    vdata = bytearray(MAGIC)

    def add(text):
        offset = len(vdata)
        vdata.extend(text.encode("utf-16-le") + b"\0\0")
        return offset

    rows = []
    for gem_id, name, level, visibility in entries:
        row = bytearray(136)
        struct.pack_into("<Q", row, 0, add(gem_id))
        struct.pack_into("<Q", row, 32, add(name))
        struct.pack_into("<I", row, 48, level)
        struct.pack_into("<I", row, 124, visibility)
        rows.append(bytes(row))
    return struct.pack("<I", len(rows)) + b"".join(rows) + bytes(vdata)


def skill_gems(entries):
    rows = []
    for base, strength, dexterity, intelligence, color in entries:
        row = bytearray(88)
        struct.pack_into("<Q", row, 0, base)
        struct.pack_into("<III", row, 32, strength, dexterity, intelligence)
        struct.pack_into("<I", row, 83, color)
        rows.append(bytes(row))
    return struct.pack("<I", len(rows)) + b"".join(rows) + MAGIC


BITS = [(FIREBALL, "Fireball", 1, 1), ("Hidden", "Hidden", 5, 0), (CLEAVE, "Cleave", 3, 1)]
GEMS = [(0, 0, 0, 100, 3), (1, 0, 0, 0, 1), (2, 100, 0, 0, 1)]


def reward(gem_id, act, quest="Quest", npc="Nessa", class_ids=None):
    return VendorGemReward(id=gem_id, quest=quest, act=act, class_ids=class_ids, npc=npc)


def test_from_cargo_parses_row():
    row = {
        "metadata id": FIREBALL,
        "quest": "Enemy at the Gate",
        "act": "1",
        "class ids": "Witch,Marauder",
        "npc": "Nessa",
    }
    parsed = VendorGemReward.from_cargo(row)
    assert parsed == VendorGemReward(
        id=FIREBALL,
        quest="Enemy at the Gate",
        act=1,
        class_ids=frozenset({"Witch", "Marauder"}),
        npc="Nessa",
    )


def test_from_cargo_null_id_and_classes():
    parsed = VendorGemReward.from_cargo(
        {"metadata id": None, "quest": "Q", "act": "4", "class ids": None, "npc": "N"}
    )
    assert parsed.id == ""
    assert parsed.class_ids is None
    assert parsed.act == 4


@pytest.mark.parametrize("act", ["abc", "300", "-1", 2])
def test_from_cargo_rejects_bad_act(act):
    with pytest.raises(ValueError):
        VendorGemReward.from_cargo({"metadata id": "x", "quest": "q", "act": act, "npc": "n"})


def test_from_cargo_missing_field():
    with pytest.raises(ValueError):
        VendorGemReward.from_cargo({"metadata id": "x", "act": "1", "npc": "n"})


def test_vendor_json_omits_missing_classes_and_sorts_present():
    assert Vendor(quest="Q", act=2, npc="N").to_json() == {"quest": "Q", "act": 2, "npc": "N"}
    vendor = Vendor(quest="Q", act=2, npc="N", class_ids=frozenset({"b", "a"}))
    assert vendor.to_json()["class_ids"] == ["a", "b"]


def test_gem_json_omits_empty_vendors():
    gem = Gem(id="x", name="X", level=1, color="red")
    assert "vendors" not in gem.to_json()
    gem.vendors.append(Vendor(quest="Q", act=1, npc="N"))
    assert gem.to_json()["vendors"] == [{"quest": "Q", "act": 1, "npc": "N"}]


def test_build_gems_joins_filters_and_sorts():
    bits = DatFile(base_item_types(BITS), BaseItemTypes)
    sgs = DatFile(skill_gems(GEMS), SkillGems)
    rewards = {FIREBALL: [reward(FIREBALL, 3, quest="Late"), reward(FIREBALL, 1, quest="Early")]}

    gems = build_gems(bits, sgs, rewards)

    assert [gem.id for gem in gems] == [CLEAVE, FIREBALL]
    cleave, fireball = gems
    assert (cleave.name, cleave.level, cleave.color, cleave.vendors) == ("Cleave", 3, "red", [])
    assert (fireball.name, fireball.color) == ("Fireball", "blue")
    assert [vendor.quest for vendor in fireball.vendors] == ["Early", "Late"]


def test_build_gems_missing_base():
    bits = DatFile(base_item_types(BITS[:1]), BaseItemTypes)
    sgs = DatFile(skill_gems([(7, 0, 0, 0, 1)]), SkillGems)
    with pytest.raises(LookupError):
        build_gems(bits, sgs, {})


def test_generate_gems_reads_bundles(tmp_path):
    fs = write_bundles(tmp_path, {
        BaseItemTypes.FILE: base_item_types(BITS),
        SkillGems.FILE: skill_gems(GEMS),
    })
    gems = generate_gems(fs, {})
    assert [(gem.id, gem.level) for gem in gems] == [(CLEAVE, 3), (FIREBALL, 1)]


def test_generate_gems_missing_table(tmp_path):
    fs = write_bundles(tmp_path, {BaseItemTypes.FILE: base_item_types(BITS)})
    with pytest.raises(BundleError):
        generate_gems(fs, {})


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.status_code = 200

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


def cargo_payload(rows):
    return {"cargoquery": [{"title": row} for row in rows]}


class FakeSession:
    def __init__(self, rows):
        self._rows = rows

    def get(self, url):
        return FakeResponse(cargo_payload(self._rows))


ROWS = [
    {"metadata id": FIREBALL, "quest": "Enemy at the Gate", "act": "1",
     "class ids": "Witch,Marauder", "npc": "Nessa"},
    {"metadata id": FIREBALL, "quest": "Mercy Mission", "act": "1", "class ids": None,
     "npc": "Nessa"},
    {"metadata id": CLEAVE, "quest": "Enemy at the Gate", "act": "1", "class ids": "Duelist",
     "npc": "Nessa"},
]


def test_fetch_vendor_gem_rewards_groups_by_id():
    grouped = fetch_vendor_gem_rewards(FakeSession(ROWS))
    assert {key: len(value) for key, value in grouped.items()} == {FIREBALL: 2, CLEAVE: 1}
    assert [r.quest for r in grouped[FIREBALL]] == ["Enemy at the Gate", "Mercy Mission"]


def test_generate_combines_wiki_and_bundles(tmp_path):
    fs = write_bundles(tmp_path, {
        BaseItemTypes.FILE: base_item_types(BITS),
        SkillGems.FILE: skill_gems(GEMS),
    })

    def fake_request(self, method, url, *args, **kwargs):
        return FakeResponse(cargo_payload(ROWS[2:]))

    with mock.patch.object(requests.Session, "request", fake_request):
        result = generate(fs)

    assert [gem.id for gem in result.gems] == [CLEAVE, FIREBALL]
    assert result.gems[0].to_json()["vendors"] == [
        {"quest": "Enemy at the Gate", "act": 1, "npc": "Nessa", "class_ids": ["Duelist"]}
    ]
    assert result.gems[1].vendors == []