"""Playback state, inbound event filtering and the local progress clock.

Volumio pushes ``pushState`` events far more often than the track actually
changes, sometimes twice in a row within a few milliseconds and sometimes with
half-populated fields. ``StateDeduplicator`` turns that stream into a clean
sequence of accepted states; ``ProgressClock`` advances the seek position
between pushes so the progress bar keeps moving.
"""

import asyncio
import dataclasses
import enum
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Track types that always report a bit depth when the event is complete
LOSSLESS_TRACK_TYPES = frozenset({"flac", "wav", "aiff", "alac", "ape", "wv", "dsf", "dff"})


class PlaybackStatus(enum.Enum):
    PLAYING = "play"
    PAUSED = "pause"
    STOPPED = "stop"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "PlaybackStatus":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


def _text(data: dict, key: str) -> str:
    return str(data.get(key, "") or "")


def _non_negative(data: dict, key: str) -> int:
    try:
        return max(0, int(data.get(key, 0) or 0))
    except (TypeError, ValueError):
        return 0


@dataclass
class PlaybackState:
    status: PlaybackStatus = PlaybackStatus.STOPPED
    title: str = ""
    artist: str = ""
    album: str = ""
    artwork_ref: str = ""
    track_type: str = ""
    seek_ms: int = 0
    duration_s: int = 0
    sample_rate: str = ""
    bit_depth: str = ""

    @classmethod
    def from_event(cls, data: dict) -> "PlaybackState":
        """Build a state from a raw ``pushState`` payload."""
        return cls(
            status=PlaybackStatus.parse(data.get("status")),
            title=_text(data, "title"),
            artist=_text(data, "artist"),
            album=_text(data, "album"),
            artwork_ref=_text(data, "albumart"),
            track_type=_text(data, "trackType"),
            seek_ms=_non_negative(data, "seek"),
            duration_s=_non_negative(data, "duration"),
            sample_rate=_text(data, "samplerate"),
            bit_depth=_text(data, "bitdepth"),
        )

    @property
    def is_playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING

    def snapshot(self) -> "PlaybackState":
        return dataclasses.replace(self)

    def same_position(self, other: "PlaybackState") -> bool:
        """True when status, title, artist and seek all match."""
        return (
            self.status is other.status
            and self.title == other.title
            and self.artist == other.artist
            and self.seek_ms == other.seek_ms
        )


class StateDeduplicator:
    """Filters raw events into accepted playback states.

    The random wait before commit is best-effort: it collapses duplicate
    pushes that arrive within a few milliseconds of each other, but the
    upstream gives no sequence number so it cannot rule out every race.
    """

    def __init__(self, max_delay: float = 0.05,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.max_delay = max_delay
        self._sleep = sleep
        self.accepted: PlaybackState | None = None

    def _reject_reason(self, candidate: PlaybackState) -> str | None:
        prev = self.accepted
        if candidate.track_type.lower() in LOSSLESS_TRACK_TYPES and not candidate.bit_depth:
            return "lossless track without bit depth"
        if candidate.is_playing and candidate.seek_ms == 0:
            if prev is None or not (prev.is_playing and prev.seek_ms == 0):
                return "spurious play at seek 0"
        if prev is not None and candidate.same_position(prev):
            return "duplicate of accepted state"
        return None

    async def process(self, raw: dict) -> PlaybackState | None:
        """Return the new accepted state, or None when the event is dropped."""
        candidate = PlaybackState.from_event(raw)
        reason = self._reject_reason(candidate)
        if reason:
            logger.debug(f"Dropped event ({reason}): {candidate.status.value} {candidate.title!r}")
            return None

        if self.max_delay > 0:
            await self._sleep(random.uniform(0, self.max_delay))
        if candidate == self.accepted:
            logger.debug(f"Dropped event (raced duplicate): {candidate.title!r}")
            return None

        self.accepted = candidate
        logger.debug(
            f"Accepted {candidate.status.value} {candidate.title!r} "
            f"seek={candidate.seek_ms}ms"
        )
        return candidate


class ProgressClock:
    """Advances ``seek_ms`` locally while the player reports it is playing."""

    def __init__(self, step_ms: int = 1000):
        self.step_ms = step_ms
        self.ticking = False

    def reset(self, state: PlaybackState) -> None:
        self.ticking = state.is_playing

    def tick(self, state: PlaybackState | None) -> bool:
        if not self.ticking or state is None:
            return False
        state.seek_ms += self.step_ms
        return True
