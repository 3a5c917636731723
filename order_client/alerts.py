"""
Audible alerts for the staff views.

play_multiple repeats the alert with a pause between shots. Only one
sequence runs at a time, and stop_all asks the running one to stop; the
flag is checked between shots, so at most the current shot finishes.
"""

import asyncio
import logging
import sys
from typing import Callable, Optional

logger = logging.getLogger("alert_player")


def terminal_bell() -> None:
    sys.stdout.write("\a")
    sys.stdout.flush()


class AlertPlayer:
    """
    Example:
        alerts = AlertPlayer()
        alerts.play_once()
        await alerts.play_multiple(times=3)
        alerts.stop_all()
    """

    def __init__(self, sink: Optional[Callable[[], None]] = None):
        self.sink = sink or terminal_bell
        self._playing = False
        self._stop_requested = False

    @property
    def is_playing(self) -> bool:
        return self._playing

    def play_once(self) -> None:
        self._play()

    async def play_multiple(self, times: int = 5, delay: float = 0.8) -> int:
        """
        Play the alert ``times`` times, ``delay`` seconds apart.

        Returns how many shots were played; 0 if a sequence was already running.
        """
        if self._playing:
            logger.debug("Alert sequence already playing")
            return 0

        self._playing = True
        self._stop_requested = False
        played = 0
        try:
            for shot in range(times):
                if self._stop_requested:
                    break
                self._play()
                played += 1
                if shot < times - 1:
                    await asyncio.sleep(delay)
        finally:
            self._playing = False
        return played

    def stop_all(self) -> None:
        self._stop_requested = True

    def _play(self) -> None:
        try:
            self.sink()
        except Exception as e:
            # A missing audio device must not break order handling
            logger.debug(f"Alert sink failed: {e}")
