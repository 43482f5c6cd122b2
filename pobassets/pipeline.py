"""The asset pipeline: selects game art and writes it out as web images."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .bundle import Bundle, BundleError, IndexBundle
from .dat import DatString
from .fs import BundleFs
from .image import Image, ImageError, ttf_to_woff2
from .ooz import Codec, decompress_chunk
from .tables import BaseItemTypes, ItemVisualIdentity, UniqueStashLayout, Words

logger = logging.getLogger(__name__)

UI_IMAGES_FILE = "Art/UIImages1.txt"


class Kind(enum.Enum):
    """Where a selected file comes from."""

    ART = "art"
    BASE = "base"
    UNIQUE = "unique"
    FILE = "file"


@dataclass(frozen=True)
class ArtInfo:
    """A region of a UI art sheet."""

    art_file: str
    position: Tuple[int, int]
    size: Tuple[int, int]


@dataclass
class File:
    """A candidate asset offered to selectors, renamers and postprocessors."""

    kind: Kind
    id: str
    name: str
    item_visual_identity: int = 0
    art: Optional[ArtInfo] = None


Matcher = Callable[[File], bool]
Renamer = Callable[[File], Optional[str]]
Postprocess = Callable[[Image], None]
Progress = Callable[[int, str], None]


def parse_ui_images(text: str) -> List[File]:
    """Parse the UI image sheet listing into art files.

    Each line reads ``"name" "sheet" x1 y1 x2 y2``; lines not in that shape
    are skipped.
    """
    files = []
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        left, sep, right = line.partition('" "')
        if not sep or not left.startswith('"'):
            continue
        name = left[1:]
        art_file, sep, args = right.partition('" ')
        if not sep:
            continue
        numbers = [int(arg) for arg in args.split()]
        if len(numbers) < 4:
            continue
        x1, y1, x2, y2 = numbers[:4]
        files.append(
            File(
                kind=Kind.ART,
                id=name,
                name=name,
                art=ArtInfo(art_file, (x1, y1), (x2 - x1 + 1, y2 - y1 + 1)),
            )
        )
    return files


class Pipeline:
    """Configurable extraction of images and fonts from the bundles."""

    def __init__(
        self,
        fs: BundleFs,
        out: Union[str, os.PathLike],
        codec: Codec = decompress_chunk,
        image_format: str = "webp",
    ) -> None:
        self.fs = fs
        self.out = Path(out)
        self.codec = codec
        self.image_format = image_format
        self._progress: Progress = lambda total, name: None
        self._selectors: List[Matcher] = []
        self._postprocess: List[Tuple[Matcher, Postprocess]] = []
        self._renamers: List[Renamer] = []
        self._fonts: List[str] = []

    def progress(self, callback: Progress) -> "Pipeline":
        """Call ``callback(total, name)`` after every written asset."""
        self._progress = callback
        return self

    def font(self, font: str) -> "Pipeline":
        """Also extract the named font file."""
        self._fonts.append(font)
        return self

    def select(self, matcher: Matcher) -> "Pipeline":
        """Extract every file the matcher accepts."""
        self._selectors.append(matcher)
        return self

    def rename(self, renamer: Renamer) -> "Pipeline":
        """Add a renamer; every name it returns becomes an output name."""
        self._renamers.append(renamer)
        return self

    def postprocess(self, matcher: Matcher, postprocess: Postprocess) -> "Pipeline":
        """Apply ``postprocess`` to the images of matching files."""
        self._postprocess.append((matcher, postprocess))
        return self

    def names(self, file: File) -> List[str]:
        """Output names of an item: the renames, or its own name if none apply."""
        renames = [name for name in (r(file) for r in self._renamers) if name is not None]
        return renames or [file.name]

    def _selected(self, file: File) -> bool:
        return any(selector(file) for selector in self._selectors)

    def _apply_postprocess(self, file: File, image: Image) -> None:
        for matcher, postprocess in self._postprocess:
            if matcher(file):
                postprocess(image)

    def execute(self) -> int:
        """Run the pipeline; returns the number of assets written."""
        index = Bundle(self.fs, self.codec).index()

        def read(table):
            dat = index.read(table)
            if dat is None:
                raise BundleError(f"{table.__name__} table does not exist")
            return dat

        bases = read(BaseItemTypes)
        uniques = read(UniqueStashLayout)
        words = read(Words)
        vis = read(ItemVisualIdentity)

        total = 0

        def increment(name: str) -> None:
            nonlocal total
            total += 1
            self._progress(total, name)

        for item in self._items(bases, uniques, words, vis):
            identity = vis.get(item.item_visual_identity)
            if identity is None:
                logger.warning("item '%r' has no visual identity", item)
                continue

            if identity.is_alternate_art:
                # Alternate art shares its name with the regular art and would override it.
                continue

            try:
                dds_file = identity.dds_file.decode()
            except UnicodeDecodeError:
                logger.warning("invalid dds_file on item '%r' and vis '%r'", item, identity)
                continue

            image = self._load_image(index, dds_file)
            if image is None:
                continue

            self._apply_postprocess(item, image)

            for name in self.names(item):
                self._write_image(name, image)
                logger.debug("generated file '%s'", name)
                increment(name)

        for file in self._ui_images(index):
            art = file.art
            image = self._load_image(index, art.art_file)
            if image is None:
                continue

            image.crop(art.position, art.size)
            self._write_image(file.name, image)
            logger.debug("generated art file '%s'", file.name)
            increment(file.name)

        for file in self._bundle_files(index):
            image = self._load_image(index, file.id)
            if image is None:
                continue

            self._apply_postprocess(file, image)

            name = file.id.removesuffix(".dds")
            self._write_image(name, image)
            logger.debug("generated file '%s'", file.id)
            increment(name)

        for font in self._fonts:
            data = index.read_by_name(font)
            if data is None:
                logger.warning("font '%s' does not exist", font)
                continue

            self._write_font(font, data)
            logger.debug("generated font '%s'", font)
            increment(font)

        logger.info("extracted a total of %d assets", total)
        return total

    def _items(self, bases, uniques, words, vis) -> Iterator[File]:
        for base in bases:
            file = File(
                kind=Kind.BASE,
                id=base.id.decode(),
                name=base.name.decode(),
                item_visual_identity=base.item_visual_identity,
            )
            if self._selected(file):
                yield file

        for unique in uniques:
            if not unique.show_if_empty_challenge_league:
                continue
            word = words.get(unique.words)
            if word is None:
                raise LookupError(f"no word {unique.words} for unique")
            identity = vis.get(unique.item_visual_identity)
            if identity is None:
                raise LookupError(f"no visual identity {unique.item_visual_identity} for unique")
            file = File(
                kind=Kind.UNIQUE,
                id=identity.id.decode(),
                name=word.text2.decode(),
                item_visual_identity=unique.item_visual_identity,
            )
            if self._selected(file):
                yield file

    def _load_image(self, index: IndexBundle, name: str) -> Optional[Image]:
        data = index.read_by_name(name)
        if data is None:
            logger.warning("file '%s' does not exist", name)
            return None
        try:
            return Image.from_bytes(data)
        except ImageError:
            logger.warning("unable to read image %s", name)
            return None

    def _ui_images(self, index: IndexBundle) -> List[File]:
        data = index.read_by_name(UI_IMAGES_FILE)
        if data is None:
            raise BundleError(f"{UI_IMAGES_FILE} does not exist")
        text = DatString(data).decode()
        return [file for file in parse_ui_images(text) if self._selected(file)]

    def _bundle_files(self, index: IndexBundle) -> Iterator[File]:
        for path in index.files():
            file = File(kind=Kind.FILE, id=path, name=path)
            if self._selected(file):
                yield file

    def _write_image(self, name: str, image: Image) -> None:
        out = self.out / f"{name}.{self.image_format}"
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(image.write_blob(self.image_format))

    def _write_font(self, name: str, font: bytes) -> None:
        out = self.out / name
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(font)
        if name.endswith(".ttf"):
            ttf_to_woff2(out)