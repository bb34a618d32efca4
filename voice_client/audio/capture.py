"""
Capture device contract and the pipeline that drives the detector.

The device collaborator owns microphone acquisition; this module only
consumes its frame stream. VoicePipeline pumps frames into the energy meter
and the detector, and polls the meter on a scheduler timer so the VAD runs at
a fixed cadence independent of the device's buffer size.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Optional

import numpy as np

from voice_client.audio.codec import FrequencyEnergyMeter
from voice_client.audio.vad import VoiceActivityDetector
from voice_client.config.constants import LOGGER_NAME, VAD_POLL_INTERVAL
from voice_client.errors import DeviceError
from voice_client.services.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(LOGGER_NAME)


class CaptureDevice(ABC):
    """A microphone handle producing fixed-size float32 sample blocks."""

    @abstractmethod
    def start_capture(self, sample_rate: int) -> AsyncIterator[np.ndarray]:
        """Begin capturing and return the live frame stream."""

    @abstractmethod
    def stop_capture(self) -> None:
        """Stop capturing and release the device."""


class VoicePipeline:
    """
    Runs a VoiceActivityDetector against a live CaptureDevice.

    Device failures are reported once through ``on_error`` as DeviceError and
    stop the pipeline; there is no retry.
    """

    def __init__(
        self,
        device: CaptureDevice,
        detector: VoiceActivityDetector,
        scheduler: Optional[Scheduler] = None,
        meter: Optional[FrequencyEnergyMeter] = None,
        poll_interval: float = VAD_POLL_INTERVAL,
        on_error: Optional[Callable[[DeviceError], None]] = None,
    ):
        self.device = device
        self.detector = detector
        self.scheduler = scheduler or AsyncioScheduler()
        self.meter = meter or FrequencyEnergyMeter()
        self.poll_interval = poll_interval
        self.on_error = on_error

        self._poll_timer: Optional[TimerHandle] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start capturing and polling.

        Raises:
            DeviceError: If the device could not be started
        """
        if self._running:
            logger.debug("Voice pipeline already running")
            return

        try:
            frames = self.device.start_capture(self.detector.sample_rate)
        except Exception as e:
            error = DeviceError(f"Could not start audio capture: {e}", cause=e)
            logger.error(error.message)
            self._report(error)
            raise error from e

        self.detector.reset()
        self.meter.reset()
        self._running = True
        self._poll_timer = self.scheduler.call_every(self.poll_interval, self._poll)
        self._pump_task = asyncio.create_task(self._pump(frames))
        logger.info(f"Voice pipeline started ({self.detector.mode}, {self.detector.sample_rate} Hz)")

    async def stop(self) -> None:
        """Stop capturing; an utterance in progress is flushed and closed."""
        if not self._running:
            return
        self._halt()
        task, self._pump_task = self._pump_task, None
        if task and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Frame pump cancelled")
        self._release_device()
        self.detector.finish()
        logger.info("Voice pipeline stopped")

    async def _pump(self, frames: AsyncIterator[np.ndarray]) -> None:
        try:
            async for frame in frames:
                self.meter.update(frame)
                self.detector.push_frame(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(DeviceError(f"Audio capture failed: {e}", cause=e))
            return

        if self._running:
            logger.info("Capture stream ended")
            self._halt()
            self._release_device()
            self.detector.finish()

    def _poll(self) -> None:
        if self._running:
            self.detector.poll(self.meter.read())

    def _fail(self, error: DeviceError) -> None:
        logger.error(error.message)
        self._halt()
        self._release_device()
        self.detector.reset()
        self._report(error)

    def _halt(self) -> None:
        self._running = False
        if self._poll_timer:
            self._poll_timer.cancel()
            self._poll_timer = None

    def _release_device(self) -> None:
        try:
            self.device.stop_capture()
        except Exception as e:
            logger.warning(f"Error stopping capture device: {e}")

    def _report(self, error: DeviceError) -> None:
        if self.on_error:
            self.on_error(error)
