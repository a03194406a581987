"""Transparent text and progress-bar layer drawn over the background."""

import logging
import os

from PIL import Image, ImageDraw, ImageFont

from .layout import DisplayGeometry
from .palette import Palette
from .state import PlaybackState

logger = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    """Format seconds as M:SS, or H:MM:SS from one hour up."""
    seconds = max(0, int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def quality_label(state: PlaybackState) -> str:
    return " | ".join(part for part in (state.sample_rate, state.bit_depth) if part)


def progress_width(seek_ms: int, duration_s: int, track_w: int) -> int:
    """Filled width of the progress bar.

    Seek is truncated to whole seconds before the ratio is taken, so the
    bar moves in one-second steps like the readout above it.
    """
    if duration_s <= 0 or track_w <= 0:
        return 0
    elapsed_s = max(0, seek_ms) // 1000
    return max(0, min(track_w, int(track_w * elapsed_s / duration_s)))


def _rgba(color: tuple[int, int, int]) -> tuple[int, int, int, int]:
    return (*color, 255)


class OverlayRenderer:
    def __init__(self, geometry: DisplayGeometry, font_path: str, rotate: bool = True):
        if not os.path.isfile(font_path):
            raise FileNotFoundError(f"Font not found: {font_path}")
        self.geometry = geometry
        self.rotate = rotate
        self.title_font = ImageFont.truetype(font_path, geometry.title_size)
        self.text_font = ImageFont.truetype(font_path, geometry.text_size)
        logger.info(f"Loaded font {font_path} ({geometry.title_size}/{geometry.text_size}px)")

    def render(self, state: PlaybackState, palette: Palette) -> Image.Image:
        g = self.geometry
        layer = Image.new("RGBA", g.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        text = _rgba(palette.text)

        # Text is baseline-anchored; line spacing follows the title size
        x, y = g.h_pad, g.v_pad
        draw.text((x, y), state.title, fill=text, font=self.title_font, anchor="ls")
        y += int(g.title_size * 1.5)
        draw.text((x, y), state.artist, fill=text, font=self.text_font, anchor="ls")
        y += g.title_size
        draw.text((x, y), state.album, fill=text, font=self.text_font, anchor="ls")
        y += int(g.title_size * 1.5)
        label = quality_label(state)
        if label:
            draw.text((x, y), label, fill=_rgba(palette.lighter), font=self.text_font, anchor="ls")

        readout = f"{format_time(state.seek_ms // 1000)} / {format_time(state.duration_s)}"
        gap = max(4, g.text_size // 3)
        draw.text((x, g.bar_y - gap), readout, fill=text, font=self.text_font, anchor="ls")

        self._draw_progress(draw, state, palette)

        if self.rotate:
            layer = layer.transpose(Image.Transpose.ROTATE_180)
        return layer

    def _draw_progress(self, draw: ImageDraw.ImageDraw, state: PlaybackState,
                       palette: Palette) -> None:
        g = self.geometry
        track_w = g.track_width
        if track_w <= 0:
            return
        top = g.bar_y
        bottom = g.bar_y + g.bar_height - 1
        draw.rectangle([g.h_pad, top, g.h_pad + track_w - 1, bottom], fill=_rgba(palette.base))
        fill_w = progress_width(state.seek_ms, state.duration_s, track_w)
        if fill_w > 0:
            draw.rectangle([g.h_pad, top, g.h_pad + fill_w - 1, bottom], fill=_rgba(palette.text))
