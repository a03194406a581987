"""Display backlight power and the idle timeout that switches it off."""

import enum
import logging

from gpiozero import OutputDevice
from gpiozero.exc import GPIOZeroError

from .state import PlaybackStatus

logger = logging.getLogger(__name__)


class Backlight:
    """Backlight control line. Calls are no-ops when no line is available."""

    def __init__(self, device: OutputDevice | None = None):
        self.device = device

    @classmethod
    def detect(cls, pin: str) -> "Backlight":
        if not pin:
            logger.info("No backlight pin configured, backlight control disabled")
            return cls()
        try:
            device = OutputDevice(pin, active_high=True, initial_value=True)
        except (GPIOZeroError, OSError) as e:
            logger.info(f"Backlight pin {pin} unavailable ({e}), backlight control disabled")
            return cls()
        logger.info(f"Backlight control on pin {pin}")
        return cls(device)

    @property
    def available(self) -> bool:
        return self.device is not None

    def on(self) -> None:
        if self.device is not None:
            self.device.on()

    def off(self) -> None:
        if self.device is not None:
            self.device.off()

    def close(self) -> None:
        if self.device is not None:
            self.device.close()
            self.device = None


class Power(enum.Enum):
    ON = "on"
    OFF = "off"


class BacklightTimeoutController:
    """Switches the backlight off after ``timeout`` ticks without playback.

    countdown is -1 while no countdown is running.
    """

    def __init__(self, backlight: Backlight, timeout: int = 60):
        self.backlight = backlight
        self.timeout = timeout
        self.power = Power.ON
        self.countdown = -1

    def on_status(self, status: PlaybackStatus) -> None:
        if status is PlaybackStatus.PLAYING:
            self.countdown = -1
            if self.power is Power.OFF:
                self.power = Power.ON
                self.backlight.on()
                logger.info("Backlight on")
        elif self.power is Power.ON:
            self.countdown = self.timeout

    def tick(self) -> bool:
        """Advance the countdown; True when the backlight was switched off."""
        if self.countdown <= 0:
            return False
        self.countdown -= 1
        if self.countdown > 0:
            return False
        self.countdown = -1
        self.power = Power.OFF
        self.backlight.off()
        logger.info(f"Backlight off after {self.timeout}s without playback")
        return True

    def close(self) -> None:
        self.backlight.close()
