"""
Cancelable timers for heartbeats, reconnect backoff and VAD polling.

The client and the audio pipeline never call ``asyncio.sleep`` loops or
``loop.call_later`` directly; they receive a Scheduler at construction so
tests can substitute a manually advanced clock.
"""

import asyncio
import logging
from typing import Callable, Optional

from voice_client.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

Callback = Callable[[], None]


class TimerHandle:
    """Handle returned by a Scheduler; cancel() is idempotent."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class Scheduler:
    """Interface for scheduling callbacks on the client's dispatch loop."""

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        raise NotImplementedError

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        raise NotImplementedError


def run_callback(callback: Callback) -> None:
    """Invoke a timer callback, logging instead of propagating its errors."""
    try:
        callback()
    except Exception as e:
        logger.error(f"Error in scheduled callback {callback!r}: {e}", exc_info=True)


class _AsyncioTimerHandle(TimerHandle):
    def __init__(self):
        super().__init__()
        self._handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        super().cancel()
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = _AsyncioTimerHandle()

        def fire():
            handle._handle = None
            if not handle.cancelled:
                handle._cancelled = True
                run_callback(callback)

        handle._handle = self.loop.call_later(delay, fire)
        return handle

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = _AsyncioTimerHandle()
        loop = self.loop

        def fire():
            if handle.cancelled:
                return
            # Re-arm first so a callback that cancels the handle wins
            handle._handle = loop.call_later(interval, fire)
            run_callback(callback)

        handle._handle = loop.call_later(interval, fire)
        return handle
