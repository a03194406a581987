"""Final frame composition and hand-off to the output sink."""

import logging
from typing import Protocol

from PIL import Image

from .background import BackgroundImage

logger = logging.getLogger(__name__)


class FrameSink(Protocol):
    size: tuple[int, int]

    def write_frame(self, x: int, y: int, image: Image.Image) -> None: ...


class DisplayCompositor:
    def __init__(self, sink: FrameSink):
        self.sink = sink
        self.frames_written = 0

    @staticmethod
    def compose(background: BackgroundImage, overlay: Image.Image) -> Image.Image:
        return Image.alpha_composite(background.image.convert("RGBA"), overlay)

    def show(self, background: BackgroundImage, overlay: Image.Image) -> bool:
        """Compose and write a frame; on a write error the last frame stays up."""
        frame = self.compose(background, overlay)
        try:
            self.sink.write_frame(0, 0, frame)
        except OSError as e:
            logger.warning(f"Frame write failed, keeping previous frame: {e}")
            return False
        self.frames_written += 1
        return True
