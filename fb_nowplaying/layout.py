"""Screen geometry, computed once from the framebuffer resolution."""

from dataclasses import dataclass


@dataclass(frozen=True)
class DisplayGeometry:
    width: int
    height: int
    h_pad: int
    v_pad: int
    title_size: int
    text_size: int
    bar_height: int
    bar_y: int

    @classmethod
    def from_resolution(cls, width: int, height: int) -> "DisplayGeometry":
        """All proportions are relative to the panel size (tuned on 800x480)."""
        return cls(
            width=width,
            height=height,
            h_pad=int(width * 0.0625),
            v_pad=int(height * 0.15625),
            title_size=max(1, int(height * 0.1)),
            text_size=max(1, int(height * 0.078125)),
            bar_height=max(1, int(height * 0.00625)),
            bar_y=int(height * 0.8),
        )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def track_width(self) -> int:
        return max(0, self.width - 2 * self.h_pad)
