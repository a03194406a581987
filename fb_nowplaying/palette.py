"""Colour palette derived from album art."""

from dataclasses import dataclass

from PIL import Image

RGB = tuple[int, int, int]

WHITE: RGB = (255, 255, 255)
BLACK: RGB = (0, 0, 0)

LIGHTEN_AMOUNT = 40
LIGHTNESS_THRESHOLD = 127  # at or above: dark text
SAMPLE_SIZE = 64
CLUSTERS = 8


@dataclass(frozen=True)
class Palette:
    base: RGB
    lighter: RGB
    text: RGB
    lightness: int


def lightness_of(color: RGB) -> int:
    """Perceptual luma (ITU-R BT.601) in 0-255."""
    r, g, b = color
    return max(0, min(255, round(0.299 * r + 0.587 * g + 0.114 * b)))


def lighten(color: RGB, amount: int = LIGHTEN_AMOUNT) -> RGB:
    return tuple(min(255, c + amount) for c in color)


def text_color_for(lightness: int) -> RGB:
    return BLACK if lightness >= LIGHTNESS_THRESHOLD else WHITE


def dominant_color(image: Image.Image) -> RGB:
    """Most populous colour cluster of the image.

    The mean colour is skewed by large uniform regions (borders, sky), so the
    image is quantised with median cut and the biggest bucket wins.
    """
    small = image.convert("RGB")
    small.thumbnail((SAMPLE_SIZE, SAMPLE_SIZE))
    quantized = small.quantize(colors=CLUSTERS, method=Image.Quantize.MEDIANCUT)
    counts = quantized.getcolors()
    _, index = max(counts)
    palette = quantized.getpalette()
    return tuple(palette[index * 3:index * 3 + 3])


def extract_palette(image: Image.Image) -> Palette:
    base = dominant_color(image)
    lightness = lightness_of(base)
    return Palette(
        base=base,
        lighter=lighten(base),
        text=text_color_for(lightness),
        lightness=lightness,
    )
