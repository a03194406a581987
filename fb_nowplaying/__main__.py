"""Entry point: ``python -m fb_nowplaying`` or ``fb-nowplaying``."""

import asyncio
import logging
import signal

from .config import Settings
from .controller import NowPlayingController, create_controller
from .transport import VolumioClient

logger = logging.getLogger("fb_nowplaying")


async def serve(controller: NowPlayingController, settings: Settings) -> None:
    client = VolumioClient(
        settings.volumio_url,
        on_state=controller.handle_event,
        on_connection=controller.set_connected,
        reconnect_delay=settings.reconnect_delay,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    tasks = [asyncio.create_task(controller.run()), asyncio.create_task(client.run())]
    stopper = asyncio.create_task(stop.wait())
    done, _ = await asyncio.wait([*tasks, stopper], return_when=asyncio.FIRST_COMPLETED)
    for task in [*tasks, stopper]:
        task.cancel()
    await client.close()
    # Surface a crash in either loop instead of exiting quietly
    for task in done:
        if task is not stopper and not task.cancelled() and task.exception():
            raise task.exception()
    logger.info("Stopped")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    try:
        settings = Settings.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        raise SystemExit(1)
    logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))

    logger.info("Starting now-playing display")
    logger.info(f"  Player: {settings.volumio_url}")
    logger.info(f"  Output: {settings.snapshot_path or settings.fb_device}")
    logger.info(f"  Font: {settings.font_path}")

    try:
        controller = create_controller(settings)
    except OSError as e:
        logger.error(f"Startup failed: {e}")
        raise SystemExit(1)

    try:
        asyncio.run(serve(controller, settings))
    finally:
        controller.close()


if __name__ == "__main__":
    main()
