"""Shared fixtures: small geometry, in-memory artwork, a font without a font file."""

import io

import pytest
from PIL import Image, ImageFont

from fb_nowplaying.layout import DisplayGeometry
from fb_nowplaying.palette import Palette


def png_bytes(color=(20, 40, 200), size=(40, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def geometry() -> DisplayGeometry:
    return DisplayGeometry.from_resolution(160, 96)


@pytest.fixture
def palette() -> Palette:
    return Palette(base=(10, 20, 30), lighter=(50, 60, 70), text=(255, 255, 255), lightness=18)


@pytest.fixture
def font_path(tmp_path, monkeypatch) -> str:
    """A font path that exists; glyphs come from Pillow's bundled font."""
    path = str(tmp_path / "font.ttf")
    with open(path, "wb"):
        pass
    real_truetype = ImageFont.truetype

    def truetype(font, size=10, *args, **kwargs):
        # load_default() goes through truetype() itself with a BytesIO
        if font == path:
            return ImageFont.load_default(size=size)
        return real_truetype(font, size, *args, **kwargs)

    monkeypatch.setattr(ImageFont, "truetype", truetype)
    return path
