"""Tests for the control loop wiring (fake sink, fake artwork fetch)."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import png_bytes
from fb_nowplaying.background import BackgroundImageCache
from fb_nowplaying.backlight import Backlight, BacklightTimeoutController, Power
from fb_nowplaying.compositor import DisplayCompositor
from fb_nowplaying.config import Settings
from fb_nowplaying.controller import TICK, NowPlayingController, create_controller
from fb_nowplaying.framebuffer import ImageFileSink
from fb_nowplaying.overlay import OverlayRenderer
from fb_nowplaying.state import StateDeduplicator


def event(**overrides) -> dict:
    data = {
        "status": "play", "title": "A", "artist": "Artist", "album": "Album",
        "albumart": "/art/1.jpg", "trackType": "mp3", "seek": 5000,
        "duration": 200, "samplerate": "44.1 kHz", "bitdepth": "16 bit",
    }
    data.update(overrides)
    return data


class Harness:
    def __init__(self, geometry, font_path, timeout=60):
        self.fetch = MagicMock(return_value=png_bytes())
        self.sink = MagicMock()
        self.sink.size = geometry.size
        self.backlight = MagicMock(spec=Backlight)
        self.cache = BackgroundImageCache(geometry, self.fetch)
        self.controller = NowPlayingController(
            deduplicator=StateDeduplicator(max_delay=0),
            background_cache=self.cache,
            renderer=OverlayRenderer(geometry, font_path, rotate=False),
            compositor=DisplayCompositor(self.sink),
            backlight=BacklightTimeoutController(self.backlight, timeout=timeout),
        )

    async def push(self, **overrides):
        await self.controller.handle_event(event(**overrides))
        await self.drain()

    async def drain(self):
        inbox = self.controller._inbox
        while not inbox.empty():
            await self.controller.process(inbox.get_nowait())

    async def tick(self, n=1):
        for _ in range(n):
            await self.controller.process(TICK)

    @property
    def frames(self) -> int:
        return self.sink.write_frame.call_count


@pytest.fixture
def harness(geometry, font_path):
    return Harness(geometry, font_path)


class TestEvents:
    """Test the event path through to the sink."""

    def test_accepted_event_renders_frame(self, harness):
        asyncio.run(harness.push())
        assert harness.frames == 1
        assert harness.controller.state.title == "A"

    def test_rejected_event_does_not_render(self, harness):
        async def go():
            await harness.push(trackType="flac", bitdepth="")
            await harness.push(seek=0)
        asyncio.run(go())
        assert harness.frames == 0
        assert harness.controller.state is None

    def test_artwork_rebuild_only_on_change(self, harness):
        async def go():
            await harness.push(albumart="/art/1.jpg", seek=1000)
            await harness.push(albumart="/art/2.jpg", seek=2000)
            await harness.push(albumart="/art/2.jpg", seek=3000)
        asyncio.run(go())
        assert harness.cache.build_count == 2
        assert harness.fetch.call_count == 2
        assert harness.frames == 3

    def test_same_artwork_never_rebuilt(self, harness):
        async def go():
            for seek in (1000, 2000, 3000, 4000):
                await harness.push(seek=seek)
        asyncio.run(go())
        assert harness.cache.build_count == 1

    def test_fetch_failure_keeps_last_frame(self, harness):
        async def go():
            await harness.push(albumart="/art/1.jpg", seek=1000)
            harness.fetch.side_effect = requests.ConnectionError("down")
            await harness.push(albumart="/art/2.jpg", seek=2000)
        asyncio.run(go())
        assert harness.frames == 1
        assert harness.cache.current.artwork_ref == "/art/1.jpg"
        assert harness.controller.state.artwork_ref == "/art/2.jpg"


class TestTicks:
    """Test clock and backlight ticks."""

    def test_tick_advances_and_renders(self, harness):
        async def go():
            await harness.push(seek=5000)
            await harness.tick(3)
        asyncio.run(go())
        assert harness.controller.state.seek_ms == 8000
        assert harness.frames == 4
        assert harness.cache.build_count == 1

    def test_paused_tick_does_not_render(self, harness):
        async def go():
            await harness.push(status="pause")
            await harness.tick(5)
        asyncio.run(go())
        assert harness.frames == 1
        assert harness.controller.state.seek_ms == 5000

    def test_queued_tick_does_not_advance_newer_pause(self, harness):
        async def go():
            await harness.push(seek=5000)
            harness.controller.set_connected(True)
            harness.controller.post_tick()
            await harness.controller.handle_event(event(status="pause", seek=30000))
            await harness.drain()
        asyncio.run(go())
        assert harness.controller.state.seek_ms == 30000
        assert not harness.controller.clock.ticking

    def test_stale_background_retried_on_tick(self, harness):
        async def go():
            harness.fetch.side_effect = requests.Timeout("slow")
            await harness.push(status="pause")
            assert harness.frames == 0
            harness.fetch.side_effect = None
            harness.cache._failed.clear()
            await harness.tick()
        asyncio.run(go())
        assert harness.frames == 1

    def test_backlight_off_after_sixty_paused_ticks(self, harness):
        async def go():
            await harness.push(status="play", seek=1000)
            await harness.push(status="pause", seek=2000)
            await harness.tick(59)
            assert harness.controller.backlight.power is Power.ON
            await harness.tick()
        asyncio.run(go())
        assert harness.controller.backlight.power is Power.OFF
        harness.backlight.off.assert_called_once_with()

    def test_play_turns_backlight_back_on(self, harness):
        async def go():
            await harness.push(status="stop", seek=0)
            await harness.tick(60)
            await harness.push(status="play", seek=4000)
        asyncio.run(go())
        assert harness.controller.backlight.power is Power.ON
        harness.backlight.on.assert_called_once_with()


class TestTickGating:
    """Test that ticks are dropped while rendering or disconnected."""

    def test_disconnected_suspends_ticks(self, harness):
        harness.controller.set_connected(False)
        assert not harness.controller.post_tick()

    def test_tick_queued_when_connected(self, harness):
        harness.controller.set_connected(True)
        assert harness.controller.post_tick()
        assert harness.controller._inbox.get_nowait() is TICK

    def test_tick_dropped_during_render(self, harness):
        harness.controller.set_connected(True)
        harness.controller.rendering = True
        assert not harness.controller.post_tick()
        assert harness.controller._inbox.empty()

    def test_close_releases_backlight_and_sink(self, harness):
        harness.controller.close()
        harness.backlight.close.assert_called_once_with()
        harness.sink.close.assert_called_once_with()

    def test_rendering_flag_cleared(self, harness):
        asyncio.run(harness.push())
        assert not harness.controller.rendering


class TestCreateController:
    """Test startup wiring and fatal preconditions."""

    def test_snapshot_sink(self, tmp_path, font_path):
        settings = Settings(snapshot_path=str(tmp_path / "frame.png"),
                            fallback_resolution=(160, 96), font_path=font_path)
        controller = create_controller(settings)
        assert isinstance(controller.compositor.sink, ImageFileSink)
        assert controller.renderer.geometry.size == (160, 96)
        assert not controller.backlight.backlight.available
        controller.close()

    def test_missing_font_is_fatal(self, tmp_path):
        settings = Settings(snapshot_path=str(tmp_path / "frame.png"),
                            font_path=str(tmp_path / "missing.ttf"))
        with pytest.raises(FileNotFoundError):
            create_controller(settings)

    def test_unopenable_framebuffer_is_fatal(self, tmp_path, font_path):
        settings = Settings(fb_device=str(tmp_path / "fb7"), font_path=font_path)
        with pytest.raises(OSError):
            create_controller(settings)

    def test_backlight_pin_detected(self, tmp_path, font_path):
        settings = Settings(snapshot_path=str(tmp_path / "frame.png"),
                            font_path=font_path, backlight_pin="GPIO18")
        with patch("fb_nowplaying.backlight.OutputDevice") as device:
            controller = create_controller(settings)
        assert controller.backlight.backlight.available
        device.assert_called_once()
