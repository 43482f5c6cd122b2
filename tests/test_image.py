import io
from unittest import mock

import pytest
from PIL import Image as PILImage

from pobassets.image import Image, ImageError, ttf_to_woff2

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
CLEAR = (0, 0, 0, 0)


def strip_png(section_width, height, colors):
    img = PILImage.new("RGBA", (section_width * len(colors), height), CLEAR)
    for n, color in enumerate(colors):
        img.paste(color, (n * section_width, 0, (n + 1) * section_width, height))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def decode(blob):
    return PILImage.open(io.BytesIO(blob)).convert("RGBA")


def test_from_bytes_reads_dimensions():
    image = Image.from_bytes(strip_png(3, 5, [RED]))
    assert (image.width, image.height) == (3, 5)


def test_from_bytes_rejects_garbage():
    with pytest.raises(ImageError):
        Image.from_bytes(b"definitely not an image")


def test_write_blob_round_trip():
    image = Image.from_bytes(strip_png(2, 2, [RED, BLUE]))
    out = decode(image.write_blob("png"))
    assert out.size == (4, 2)
    assert out.getpixel((0, 0)) == RED
    assert out.getpixel((3, 1)) == BLUE


def test_write_blob_unknown_format():
    image = Image.from_bytes(strip_png(2, 2, [RED]))
    with pytest.raises(ImageError):
        image.write_blob("nonsense")


def test_flask_stacks_layers_with_base_on_top():
    w, h = 2, 3
    image = Image.from_bytes(strip_png(w, h, [CLEAR, RED, GREEN]))
    image.flask()
    out = decode(image.write_blob("png"))
    assert out.size == (w, h)
    assert out.getpixel((0, 0)) == GREEN


def test_flask_base_wins_where_opaque():
    w, h = 2, 2
    image = Image.from_bytes(strip_png(w, h, [BLUE, RED, GREEN]))
    image.flask()
    out = decode(image.write_blob("png"))
    assert out.getpixel((1, 1)) == BLUE


def test_gem_regular_left_unchanged():
    data = strip_png(4, 4, [RED])
    image = Image.from_bytes(data)
    before = image.write_blob("png")
    image.gem()
    assert image.write_blob("png") == before


def test_gem_wide_merges_layers():
    w, h = 12, 2
    image = Image.from_bytes(strip_png(w, h, [CLEAR, RED, BLUE]))
    image.gem()
    out = decode(image.write_blob("png"))
    assert out.size == (w, h)
    assert out.getpixel((0, 0)) == BLUE


def test_crop_selects_region():
    image = Image.from_bytes(strip_png(2, 2, [RED, BLUE]))
    image.crop((2, 0), (2, 2))
    out = decode(image.write_blob("png"))
    assert out.size == (2, 2)
    assert set(out.getdata()) == {BLUE}


def test_crop_clips_to_bounds():
    image = Image.from_bytes(strip_png(4, 4, [RED]))
    image.crop((2, 2), (10, 10))
    assert (image.width, image.height) == (2, 2)


def test_crop_outside_raises():
    image = Image.from_bytes(strip_png(4, 4, [RED]))
    with pytest.raises(ImageError):
        image.crop((10, 0), (1, 1))


def test_resize_sets_exact_size():
    image = Image.from_bytes(strip_png(8, 8, [RED]))
    image.resize(3, 5)
    assert (image.width, image.height) == (3, 5)


def test_ttf_to_woff2_missing_tool(tmp_path):
    with mock.patch("pobassets.image.subprocess.run", side_effect=FileNotFoundError):
        with pytest.raises(RuntimeError, match="woff2_compress"):
            ttf_to_woff2(tmp_path / "font.ttf")


def test_ttf_to_woff2_failure_status(tmp_path):
    failed = mock.Mock(returncode=1)
    with mock.patch("pobassets.image.subprocess.run", return_value=failed):
        with pytest.raises(RuntimeError, match="woff2_compress error"):
            ttf_to_woff2(tmp_path / "font.ttf")


def test_ttf_to_woff2_passes_path(tmp_path):
    ok = mock.Mock(returncode=0)
    target = tmp_path / "font.ttf"
    with mock.patch("pobassets.image.subprocess.run", return_value=ok) as run:
        ttf_to_woff2(target)
    assert run.call_args.args[0] == ["woff2_compress", str(target)]