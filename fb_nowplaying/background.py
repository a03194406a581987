"""Album-art background: fetch, cover-fit, palette and gradient overlay.

Building a background is the expensive part of a render (HTTP fetch, decode,
Lanczos resize, quantise, per-pixel blend), so the result is cached by
artwork reference and only rebuilt when the reference changes.
"""

import io
import logging
import time
import urllib.parse
from dataclasses import dataclass
from typing import Callable

import numpy as np
import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from .layout import DisplayGeometry
from .palette import Palette, extract_palette

logger = logging.getLogger(__name__)

# Retry backoff for artwork that failed to fetch or decode
RETRY_INITIAL_S = 2.0
RETRY_MAX_S = 60.0
_FAILED_MAX = 100

FETCH_ERRORS = (requests.RequestException, UnidentifiedImageError, OSError,
                Image.DecompressionBombError)


@dataclass(frozen=True)
class BackgroundImage:
    image: Image.Image
    artwork_ref: str
    palette: Palette


class ArtworkFetcher:
    """Downloads artwork bytes; relative refs resolve against the player URL."""

    def __init__(self, base_url: str, timeout: float = 5.0,
                 session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.session = session or requests.Session()

    def url_for(self, artwork_ref: str) -> str:
        return urllib.parse.urljoin(self.base_url, artwork_ref)

    def __call__(self, artwork_ref: str) -> bytes:
        url = self.url_for(artwork_ref)
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        if not resp.content:
            raise requests.RequestException(f"Empty artwork response from {url}")
        return resp.content


def cover_fit(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Scale preserving aspect ratio and centre-crop so ``size`` is fully covered."""
    return ImageOps.fit(image.convert("RGB"), size, Image.Resampling.LANCZOS,
                        centering=(0.5, 0.5))


def gradient_alpha(width: int, height: int) -> np.ndarray:
    """Per-pixel alpha, opaque at the top-left corner and clear at the bottom-right.

    Each axis contributes a linear ramp from 127.5 at its near edge to 0 at
    its far edge; the two ramps are summed and clipped to 0-255.
    """
    ramp_x = (1.0 - np.arange(width) / max(width - 1, 1)) * 127.5
    ramp_y = (1.0 - np.arange(height) / max(height - 1, 1)) * 127.5
    alpha = np.rint(ramp_y[:, None] + ramp_x[None, :])
    return np.clip(alpha, 0, 255).astype(np.uint8)


def tint_overlay(color: tuple[int, int, int], alpha: np.ndarray) -> Image.Image:
    h, w = alpha.shape
    rgba = np.empty((h, w, 4), dtype=np.uint8)
    rgba[:, :, :3] = color
    rgba[:, :, 3] = alpha
    return Image.fromarray(rgba, "RGBA")


class BackgroundImageCache:
    def __init__(self, geometry: DisplayGeometry, fetch: Callable[[str], bytes],
                 placeholder_ref: str = "/albumart",
                 clock: Callable[[], float] = time.monotonic):
        self.geometry = geometry
        self.placeholder_ref = placeholder_ref
        self.current: BackgroundImage | None = None
        self.build_count = 0
        self._fetch = fetch
        self._clock = clock
        self._alpha = gradient_alpha(geometry.width, geometry.height)
        # artwork_ref -> (retry_at, last_delay)
        self._failed: dict[str, tuple[float, float]] = {}

    def _normalize(self, artwork_ref: str) -> str:
        return artwork_ref or self.placeholder_ref

    def is_current(self, artwork_ref: str) -> bool:
        return (self.current is not None
                and self.current.artwork_ref == self._normalize(artwork_ref))

    def build(self, artwork_ref: str) -> BackgroundImage:
        """Fetch and composite a background. Raises on fetch or decode failure."""
        data = self._fetch(artwork_ref)
        with Image.open(io.BytesIO(data)) as img:
            photo = cover_fit(img, self.geometry.size)
        palette = extract_palette(photo)
        if artwork_ref != self.placeholder_ref:
            overlay = tint_overlay(palette.base, self._alpha)
            photo = Image.alpha_composite(photo.convert("RGBA"), overlay).convert("RGB")
        self.build_count += 1
        logger.info(
            f"Background rebuilt for {artwork_ref} "
            f"(base={palette.base}, lightness={palette.lightness})"
        )
        return BackgroundImage(image=photo, artwork_ref=artwork_ref, palette=palette)

    def get(self, artwork_ref: str) -> BackgroundImage | None:
        """Return the background for ``artwork_ref``, building it on change.

        Returns None when the artwork cannot be fetched; the previous
        background stays cached and the ref is retried after a backoff.
        """
        ref = self._normalize(artwork_ref)
        if self.current is not None and self.current.artwork_ref == ref:
            return self.current

        now = self._clock()
        failed = self._failed.get(ref)
        if failed and now < failed[0]:
            logger.debug(f"Artwork {ref} in backoff for {failed[0] - now:.1f}s")
            return None

        try:
            background = self.build(ref)
        except FETCH_ERRORS as e:
            delay = min(RETRY_MAX_S, failed[1] * 2) if failed else RETRY_INITIAL_S
            if len(self._failed) >= _FAILED_MAX:
                self._failed.clear()
            self._failed[ref] = (now + delay, delay)
            logger.warning(f"Failed to load artwork {ref}: {e} (retry in {delay:.0f}s)")
            return None

        self._failed.pop(ref, None)
        self.current = background
        return background
