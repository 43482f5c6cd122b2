"""Image decoding, compositing and export, plus font conversion."""

from __future__ import annotations

import io
import os
import subprocess
from typing import Tuple, Union

from PIL import Image as PILImage
from PIL import UnidentifiedImageError

WOFF2_COMPRESS = "woff2_compress"


class ImageError(Exception):
    """An image could not be read, transformed or encoded."""


class Image:
    """A decoded game texture that can be cut up and exported."""

    def __init__(self, image: PILImage.Image) -> None:
        self._image = image if image.mode == "RGBA" else image.convert("RGBA")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Image":
        """Decode an image (DDS or any other format Pillow reads)."""
        try:
            with PILImage.open(io.BytesIO(bytes(data))) as opened:
                opened.load()
                return cls(opened.convert("RGBA"))
        except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as err:
            raise ImageError(f"unable to read image: {err}") from err

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    def _cropped(self, pos: Tuple[int, int], size: Tuple[int, int]) -> PILImage.Image:
        x, y = pos
        w, h = size
        full_w, full_h = self._image.size
        if w <= 0 or h <= 0 or x < 0 or y < 0 or x >= full_w or y >= full_h:
            raise ImageError("geometry does not contain image")
        return self._image.crop((x, y, min(x + w, full_w), min(y + h, full_h)))

    def flask(self) -> None:
        """Merge the three side by side layers of a flask texture."""
        width = self._image.width // 3
        height = self._image.height

        layer1 = self._cropped((width, 0), (width, height))
        layer2 = self._cropped((width * 2, 0), (width, height))
        base = self._cropped((0, 0), (width, height))

        below = PILImage.alpha_composite(layer1, layer2)
        self._image = PILImage.alpha_composite(below, base)

    def gem(self) -> None:
        """Merge the layers of a wide gem texture; regular gems are left alone."""
        width = self._image.width
        height = self._image.height

        if width < height + 10:
            return

        width //= 3
        layer = self._cropped((width * 2, 0), (width, height))
        base = self._cropped((0, 0), (width, height))
        self._image = PILImage.alpha_composite(layer, base)

    def crop(self, pos: Tuple[int, int], size: Tuple[int, int]) -> None:
        """Cut out ``size`` at ``pos``, clipped to the image."""
        self._image = self._cropped(pos, size)

    def resize(self, width: int, height: int) -> None:
        """Scale the image to exactly ``width`` x ``height``."""
        self._image = self._image.resize((width, height), PILImage.LANCZOS)

    def write_blob(self, fmt: str) -> bytes:
        """Encode the image in the named format, e.g. ``webp``."""
        buffer = io.BytesIO()
        try:
            self._image.save(buffer, format=fmt.upper())
        except (KeyError, OSError, ValueError) as err:
            raise ImageError(f"unable to encode image as {fmt}: {err}") from err
        return buffer.getvalue()


def ttf_to_woff2(path: Union[str, os.PathLike]) -> None:
    """Convert a TrueType font to WOFF2 next to it using ``woff2_compress``."""
    try:
        result = subprocess.run(
            [WOFF2_COMPRESS, os.fspath(path)], capture_output=True, check=False
        )
    except OSError as err:
        raise RuntimeError(f"Failed to run `{WOFF2_COMPRESS}`") from err

    if result.returncode != 0:
        raise RuntimeError(f"{WOFF2_COMPRESS} error: {result!r}")