"""Single-consumer control loop tying events, ticks and rendering together.

Accepted states (from the socket.io handlers) and ticks (from the 1 Hz ticker)
both go through one queue, so the playback state, the cached background and
the backlight state are only ever mutated by the consumer. Renders run in a
worker thread on a snapshot of the state and never overlap; a tick that comes
due while a render is in progress is dropped.
"""

import asyncio
import logging

from .background import ArtworkFetcher, BackgroundImageCache
from .backlight import Backlight, BacklightTimeoutController
from .compositor import DisplayCompositor
from .config import Settings
from .framebuffer import Framebuffer, ImageFileSink
from .layout import DisplayGeometry
from .overlay import OverlayRenderer
from .state import PlaybackState, ProgressClock, StateDeduplicator

logger = logging.getLogger(__name__)

TICK = object()


class NowPlayingController:
    def __init__(self, deduplicator: StateDeduplicator,
                 background_cache: BackgroundImageCache,
                 renderer: OverlayRenderer,
                 compositor: DisplayCompositor,
                 backlight: BacklightTimeoutController,
                 clock: ProgressClock | None = None,
                 tick_interval: float = 1.0):
        self.deduplicator = deduplicator
        self.background_cache = background_cache
        self.renderer = renderer
        self.compositor = compositor
        self.backlight = backlight
        self.clock = clock or ProgressClock()
        self.tick_interval = tick_interval
        self.connected = False
        self.rendering = False
        # Only the consumer assigns this; the deduplicator may run ahead of it
        self.state: PlaybackState | None = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def handle_event(self, raw: dict) -> None:
        """Entry point for raw ``pushState`` payloads."""
        state = await self.deduplicator.process(raw)
        if state is not None:
            self._inbox.put_nowait(state)

    def set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        if not connected:
            logger.info("Transport down, ticking suspended, last frame stays on screen")

    def post_tick(self) -> bool:
        if not self.connected:
            return False
        if self.rendering:
            logger.debug("Render in progress, tick dropped")
            return False
        self._inbox.put_nowait(TICK)
        return True

    async def _ticker(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.post_tick()

    async def run(self) -> None:
        ticker = asyncio.create_task(self._ticker())
        try:
            while True:
                item = await self._inbox.get()
                await self.process(item)
        finally:
            ticker.cancel()

    async def process(self, item) -> None:
        if item is TICK:
            await self.on_tick()
        else:
            await self.on_state(item)

    async def on_state(self, state: PlaybackState) -> None:
        logger.info(f"Now {state.status.value}: {state.title or 'N/A'} - {state.artist or 'N/A'}")
        self.clock.reset(state)
        self.backlight.on_status(state.status)
        self.state = state
        await self.render()

    async def on_tick(self) -> None:
        advanced = self.clock.tick(self.state)
        self.backlight.tick()
        state = self.state
        stale = state is not None and not self.background_cache.is_current(state.artwork_ref)
        if advanced or stale:
            await self.render()

    async def render(self) -> bool:
        state = self.state
        if state is None:
            return False
        snapshot = state.snapshot()
        self.rendering = True
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._render_frame, snapshot)
        finally:
            self.rendering = False

    def _render_frame(self, state: PlaybackState) -> bool:
        background = self.background_cache.get(state.artwork_ref)
        if background is None:
            logger.debug("No background for current artwork, render skipped")
            return False
        overlay = self.renderer.render(state, background.palette)
        return self.compositor.show(background, overlay)

    def close(self) -> None:
        self.backlight.close()
        close = getattr(self.compositor.sink, "close", None)
        if close is not None:
            close()


def create_controller(settings: Settings) -> NowPlayingController:
    """Open the output, load the font, detect the backlight and wire everything.

    Raises OSError (including FileNotFoundError) when the sink cannot be opened
    or the font is missing; both are fatal at startup.
    """
    if settings.snapshot_path:
        sink = ImageFileSink(settings.snapshot_path, settings.fallback_resolution)
    else:
        sink = Framebuffer(settings.fb_device, settings.fallback_resolution)
    sink.open()

    try:
        geometry = DisplayGeometry.from_resolution(*sink.size)
        renderer = OverlayRenderer(geometry, settings.font_path, rotate=settings.rotate_overlay)
    except OSError:
        sink.close()
        raise

    fetcher = ArtworkFetcher(settings.volumio_url, timeout=settings.artwork_timeout)
    cache = BackgroundImageCache(geometry, fetcher, placeholder_ref=settings.placeholder_artwork)
    backlight = BacklightTimeoutController(
        Backlight.detect(settings.backlight_pin), timeout=settings.backlight_timeout
    )
    return NowPlayingController(
        deduplicator=StateDeduplicator(max_delay=settings.debounce_max),
        background_cache=cache,
        renderer=renderer,
        compositor=DisplayCompositor(sink),
        backlight=backlight,
        tick_interval=settings.tick_interval,
    )
