"""Output sinks: the Linux framebuffer and a PNG file for development."""

import logging
import mmap
import os

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def rgb_to_fb_native(rgb_array: np.ndarray, bpp: int) -> np.ndarray:
    """Convert an RGB array to native framebuffer pixels.

    Returns uint16 (h,w) for 16bpp or uint8 (h,w,4) BGRA for 32bpp.
    """
    if bpp == 16:
        r = rgb_array[:, :, 0].astype(np.uint16)
        g = rgb_array[:, :, 1].astype(np.uint16)
        b = rgb_array[:, :, 2].astype(np.uint16)
        return (((r >> 3) << 11) | ((g >> 2) << 5) | (b >> 3)).astype(np.uint16)
    h, w = rgb_array.shape[:2]
    bgra = np.empty((h, w, 4), dtype=np.uint8)
    bgra[:, :, 0] = rgb_array[:, :, 2]
    bgra[:, :, 1] = rgb_array[:, :, 1]
    bgra[:, :, 2] = rgb_array[:, :, 0]
    bgra[:, :, 3] = 255
    return bgra


class Framebuffer:
    """Memory-mapped ``/dev/fbN``; geometry comes from sysfs."""

    def __init__(self, device: str = "/dev/fb0", fallback_resolution: tuple[int, int] = (800, 480)):
        self.device = device
        self.width, self.height = fallback_resolution
        self.bpp = 32
        self.stride = self.width * 4
        self._fd: int | None = None
        self._mmap: mmap.mmap | None = None

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def _read_geometry(self) -> None:
        sys_path = f"/sys/class/graphics/{os.path.basename(self.device)}"
        try:
            with open(f"{sys_path}/virtual_size") as f:
                vw, vh = f.read().strip().split(",")
            with open(f"{sys_path}/bits_per_pixel") as f:
                bpp = int(f.read().strip())
            with open(f"{sys_path}/stride") as f:
                stride = int(f.read().strip())
        except FileNotFoundError:
            logger.warning(f"No sysfs geometry for {self.device}, using {self.width}x{self.height}")
            self.stride = self.width * self.bpp // 8
            return
        self.width, self.height, self.bpp, self.stride = int(vw), int(vh), bpp, stride

    def open(self) -> None:
        """Map the device. Raises OSError when it cannot be opened."""
        self._read_geometry()
        fd = os.open(self.device, os.O_RDWR)
        try:
            self._mmap = mmap.mmap(fd, self.stride * self.height, mmap.MAP_SHARED,
                                   mmap.PROT_WRITE | mmap.PROT_READ)
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        logger.info(f"Framebuffer {self.device}: {self.width}x{self.height}, "
                    f"{self.bpp}bpp, stride={self.stride}")

    def write_frame(self, x: int, y: int, image: Image.Image) -> None:
        if self._mmap is None:
            raise OSError(f"Framebuffer {self.device} is not open")
        pixels = rgb_to_fb_native(np.asarray(image.convert("RGB")), self.bpp)
        bpp_bytes = self.bpp // 8
        row_bytes = pixels.shape[1] * bpp_bytes
        if x == 0 and self.stride == row_bytes:
            self._mmap.seek(y * self.stride)
            self._mmap.write(pixels.tobytes())
            return
        for row in range(pixels.shape[0]):
            self._mmap.seek((y + row) * self.stride + x * bpp_bytes)
            self._mmap.write(pixels[row].tobytes())

    def close(self) -> None:
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None


class ImageFileSink:
    """Writes every frame to a PNG, for running without a framebuffer."""

    def __init__(self, path: str, size: tuple[int, int]):
        self.path = path
        self.width, self.height = size

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def open(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        if not os.path.isdir(directory):
            raise FileNotFoundError(f"Snapshot directory does not exist: {directory}")
        logger.info(f"Writing frames to {self.path} ({self.width}x{self.height})")

    def write_frame(self, x: int, y: int, image: Image.Image) -> None:
        frame = Image.new("RGB", self.size)
        frame.paste(image.convert("RGB"), (x, y))
        frame.save(self.path, format="PNG")

    def close(self) -> None:
        pass
