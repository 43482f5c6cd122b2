"""Command line interface for extracting bundle files, assets and data."""

from __future__ import annotations

import argparse
import hashlib
import json
import logging
import sys
from pathlib import Path, PurePosixPath
from typing import Optional

import requests

from .bundle import Bundle, BundleError
from .dat import DatParseError
from .fs import BundleFs, BundleFsError, CacheBundleFs, InMemoryCache, LocalBundleFs, LocalCache
from .fs import WebBundleFs
from .gems import generate
from .hashing import latest_patch_version
from .image import Image, ImageError
from .parse import ParseError
from .pipeline import File, Kind, Pipeline

_SELECT_PREFIXES = (
    "Metadata/Items/Gems",
    "Metadata/Items/Belts",
    "Metadata/Items/Rings",
    "Metadata/Items/Flasks",
    "Metadata/Items/Amulet",
    "Metadata/Items/Amulets",
    "Metadata/Items/Armours",
    "Metadata/Items/Jewels",
    "Metadata/Items/Quivers",
    "Metadata/Items/Weapons",
    "Metadata/Items/Trinkets",
    "Metadata/Items/AnimalCharms",
    "Metadata/Items/Tinctures",
)

_PASSIVE_PREFIXES = (
    "Art/2DArt/UIImages/InGame/NormalPassive",
    "Art/2DArt/UIImages/InGame/NotablePassive",
    "Art/2DArt/UIImages/InGame/AscendancyPassive",
    "Art/2DArt/UIImages/InGame/KeystonePassive",
    "Art/2DArt/UIImages/InGame/JewelPassive",
    "Art/2DArt/UIImages/InGame/PassiveMastery/MasteryPassiveHeader",
)

_SKILL_ICONS = "art/2dart/skillicons/passives/"

_FIXED_RENAMES = (
    ("BootsAtlas1", "TwoTonedEvEs"),
    ("BootsAtlas2", "TwoTonedArEv"),
    ("BootsAtlas3", "TwoTonedArEs"),
    ("Rings/Ring12", "TwoStoneFL"),
    ("Rings/Ring13", "TwoStoneCL"),
    ("Rings/Ring14", "TwoStoneFC"),
)

_NAME_REPLACEMENTS = str.maketrans({"\u2019": "'", "\u00f6": "o"})

FONT = "Art/2DArt/Fonts/Fontin-SmallCaps.ttf"


def pob_item_name(file: File) -> Optional[str]:
    """The item name with characters replaced as Path of Building spells them."""
    if "\u2019" in file.name or "\u00f6" in file.name:
        return file.name.translate(_NAME_REPLACEMENTS)
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pobassets")

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--patch", metavar="PATCH",
                        help="Patch version of the bundle for the PoE patch CDN.")
    source.add_argument("--web", metavar="URL", help="Base URL for the bundle.")
    source.add_argument("--path", metavar="PATH", help="Local path to bundle.")

    cache = parser.add_mutually_exclusive_group()
    cache.add_argument("--in-memory-cache", action="store_true",
                       help="In memory filesystem cache.")
    cache.add_argument("--local-cache", metavar="PATH", type=Path,
                       help="Local filesystem cache.")

    actions = parser.add_subparsers(dest="action", required=True)

    sha_cmd = actions.add_parser("sha", help="Print the SHA-256 hash of a bundled file.")
    sha_cmd.add_argument("file")

    extract_cmd = actions.add_parser("extract", help="Extract a file to the current directory.")
    extract_cmd.add_argument("file")

    assets_cmd = actions.add_parser("assets", help="Runs the asset pipeline.")
    assets_cmd.add_argument("-o", "--out", metavar="PATH", type=Path, default=Path("./out"),
                            help="Output directory.")

    data_cmd = actions.add_parser("data", help="Runs the data extraction pipeline.")
    data_cmd.add_argument("-o", "--out", metavar="PATH", type=Path, default=Path("./out"),
                          help="Output directory.")

    return parser


def build_fs(args: argparse.Namespace) -> BundleFs:
    """The bundle file source the arguments ask for, cached if requested."""
    if args.patch is not None:
        fs: BundleFs = WebBundleFs.cdn(args.patch)
    elif args.web is not None:
        fs = WebBundleFs(args.web)
    elif args.path is not None:
        fs = LocalBundleFs(args.path)
    else:
        fs = WebBundleFs.cdn(latest_patch_version())

    if args.in_memory_cache:
        return CacheBundleFs(fs, InMemoryCache())
    if args.local_cache is not None:
        return CacheBundleFs(fs, LocalCache(args.local_cache))
    return fs


def _prefix(prefix: str):
    return lambda file: file.id.startswith(prefix)


def _fixed_rename(suffix: str, name: str):
    return lambda file: name if file.id.endswith(suffix) else None


def _is_gem(file: File) -> bool:
    return file.id.startswith("Metadata/Items/Gems")


def _resize_icon(image: Image) -> None:
    image.resize(32, 32)


def configure_pipeline(pipeline: Pipeline) -> Pipeline:
    """Set up the asset selection, renames and postprocessing."""
    pipeline.font(FONT)

    for prefix in _SELECT_PREFIXES:
        pipeline.select(_prefix(prefix))
    pipeline.select(lambda file: file.kind is Kind.UNIQUE)
    pipeline.select(_prefix("Art/2DArt/UIImages/InGame/AncestralTrial/PassiveTreeTattoos"))
    pipeline.select(_prefix("Art/2DArt/UIImages/InGame/ItemsHeader"))
    pipeline.select(lambda file: file.id.startswith(_PASSIVE_PREFIXES))
    pipeline.select(_prefix("Art/2DArt/UIImages/Common/IconDex"))
    pipeline.select(_prefix("Art/2DArt/UIImages/Common/IconInt"))
    pipeline.select(_prefix("Art/2DArt/UIImages/Common/IconStr"))
    pipeline.select(
        lambda file: file.id.startswith(_SKILL_ICONS)
        and file.id.endswith("dds")
        and "/4k/" not in file.id
    )
    pipeline.select(_prefix("Art/2DArt/UIImages/InGame/ItemsSeparator"))
    pipeline.select(
        lambda file: file.id.startswith("Art/2DArt/UIImages/InGame/")
        and file.id.endswith("ItemSymbol")
    )

    pipeline.rename(pob_item_name)
    for suffix, name in _FIXED_RENAMES:
        pipeline.rename(_fixed_rename(suffix, name))
    pipeline.rename(lambda file: file.name if _is_gem(file) else None)
    pipeline.rename(lambda file: file.id if _is_gem(file) else None)

    pipeline.postprocess(_is_gem, Image.gem)
    pipeline.postprocess(
        lambda file: file.id.startswith("Metadata/Items/Flasks")
        or file.id.startswith("UniqueFlask"),
        Image.flask,
    )
    pipeline.postprocess(_prefix(_SKILL_ICONS), _resize_icon)
    return pipeline


def _read_required(fs: BundleFs, file: str) -> bytes:
    contents = Bundle(fs).index().read_by_name(file)
    if contents is None:
        raise LookupError(f"file {file} can not be found")
    return contents


def sha(fs: BundleFs, file: str) -> str:
    """Print and return the SHA-256 hex digest of a bundled file."""
    digest = hashlib.sha256(_read_required(fs, file)).hexdigest()
    print(digest)
    return digest


def extract(fs: BundleFs, file: str) -> Path:
    """Write a bundled file into the current directory under its base name."""
    contents = _read_required(fs, file)
    name = PurePosixPath(file).name
    if not name:
        raise ValueError(f"'{file}' has no file name")
    target = Path(name)
    target.write_bytes(contents)
    return target


def _report_progress(total: int, name: str) -> None:
    sys.stderr.write(f"\r{total} / {name}\x1b[K")
    sys.stderr.flush()


def assets(fs: BundleFs, out) -> int:
    """Run the asset pipeline into ``out``; returns the number of assets."""
    out = Path(out)
    if not out.is_dir():
        raise NotADirectoryError(f"out path '{out}' is not a directory")

    pipeline = configure_pipeline(Pipeline(fs, out))
    pipeline.progress(_report_progress)
    total = pipeline.execute()
    sys.stderr.write("\n")
    return total


def data(fs: BundleFs, out) -> Path:
    """Run the data pipeline and write ``gems.json`` into ``out``."""
    result = generate(fs)
    target = Path(out) / "gems.json"
    with open(target, "w", encoding="utf-8") as handle:
        json.dump(
            [gem.to_json() for gem in result.gems],
            handle,
            ensure_ascii=False,
            separators=(",", ":"),
        )
    return target


_ERRORS = (
    BundleError,
    BundleFsError,
    ParseError,
    DatParseError,
    ImageError,
    OSError,
    LookupError,
    ValueError,
    RuntimeError,
    requests.RequestException,
)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    try:
        fs = build_fs(args)
        if args.action == "sha":
            sha(fs, args.file)
        elif args.action == "extract":
            extract(fs, args.file)
        elif args.action == "assets":
            assets(fs, args.out)
        else:
            data(fs, args.out)
    except _ERRORS as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())