"""Runtime settings, read once from the environment."""

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_FONT = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _positive(env: Mapping[str, str], name: str, default: float) -> float:
    value = _float(env, name, default)
    if not value > 0:
        raise ValueError(f"{name} must be greater than 0, got {value}")
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_resolution(value: str) -> tuple[int, int]:
    """Parse ``"WIDTHxHEIGHT"`` into a tuple."""
    try:
        w, h = (int(x) for x in value.lower().split("x"))
    except ValueError:
        raise ValueError(f"DISPLAY_RESOLUTION must look like 800x480, got {value!r}") from None
    if w <= 0 or h <= 0:
        raise ValueError(f"DISPLAY_RESOLUTION must be positive, got {value!r}")
    return w, h


@dataclass(frozen=True)
class Settings:
    volumio_url: str = "http://localhost:3000"
    fb_device: str = "/dev/fb0"
    fallback_resolution: tuple[int, int] = (800, 480)
    snapshot_path: str = ""
    font_path: str = DEFAULT_FONT
    backlight_pin: str = ""
    backlight_timeout: int = 60
    tick_interval: float = 1.0
    rotate_overlay: bool = True
    placeholder_artwork: str = "/albumart"
    artwork_timeout: float = 5.0
    debounce_max: float = 0.05
    reconnect_delay: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Raises ValueError when a numeric variable cannot be parsed or is out
        of range. DEBOUNCE_MAX may be 0, which disables the race wait.
        """
        if env is None:
            env = os.environ
        timeout = _int(env, "BACKLIGHT_TIMEOUT", 60)
        if timeout < 1:
            raise ValueError(f"BACKLIGHT_TIMEOUT must be at least 1, got {timeout}")
        debounce_max = _float(env, "DEBOUNCE_MAX", 0.05)
        if not debounce_max >= 0:
            raise ValueError(f"DEBOUNCE_MAX must not be negative, got {debounce_max}")
        return cls(
            volumio_url=env.get("VOLUMIO_URL", "http://localhost:3000").rstrip("/"),
            fb_device=env.get("FB_DEVICE", "/dev/fb0"),
            fallback_resolution=parse_resolution(env.get("DISPLAY_RESOLUTION", "800x480")),
            snapshot_path=env.get("SNAPSHOT_PATH", ""),
            font_path=env.get("FONT_PATH", DEFAULT_FONT),
            backlight_pin=env.get("BACKLIGHT_PIN", "").strip(),
            backlight_timeout=timeout,
            tick_interval=_positive(env, "TICK_INTERVAL", 1.0),
            rotate_overlay=_flag(env, "ROTATE_OVERLAY", True),
            placeholder_artwork=env.get("PLACEHOLDER_ARTWORK", "/albumart"),
            artwork_timeout=_positive(env, "ARTWORK_TIMEOUT", 5.0),
            debounce_max=debounce_max,
            reconnect_delay=_positive(env, "RECONNECT_DELAY", 5.0),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
