"""
PyAudio-backed microphone implementing the CaptureDevice contract.

Blocking reads run in a worker thread; frames are delivered to the event
loop as float32 numpy arrays. Requires the ``audio`` extra (PyAudio and the
PortAudio system library).
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import numpy as np
import pyaudio

from voice_client.audio.capture import CaptureDevice
from voice_client.config.constants import CAPTURE_FRAMES_PER_BUFFER, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class PyAudioMicrophone(CaptureDevice):
    """
    Mono float32 microphone capture through PortAudio.

    The frame iterator owns the stream: PortAudio must not close a stream
    while a worker thread is blocked reading it, so a stop requested during
    a read is carried out once that read returns.
    """

    def __init__(
        self,
        frames_per_buffer: int = CAPTURE_FRAMES_PER_BUFFER,
        input_device_index: Optional[int] = None,
    ):
        self.frames_per_buffer = frames_per_buffer
        self.input_device_index = input_device_index
        self._audio: Optional[pyaudio.PyAudio] = None
        self._stream = None
        self._open_stream = None
        self._reading = False

    @property
    def capturing(self) -> bool:
        return self._stream is not None

    def start_capture(self, sample_rate: int) -> AsyncIterator[np.ndarray]:
        if self._open_stream is not None:
            raise RuntimeError("Microphone is already capturing")

        self._audio = pyaudio.PyAudio()
        try:
            stream = self._audio.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=self.input_device_index,
            )
        except Exception:
            self._audio.terminate()
            self._audio = None
            raise

        self._stream = self._open_stream = stream
        logger.info(f"Microphone opened at {sample_rate} Hz ({self.frames_per_buffer} frames/buffer)")
        return self._frames(stream)

    async def _frames(self, stream) -> AsyncIterator[np.ndarray]:
        try:
            while self._stream is stream:
                self._reading = True
                read = asyncio.ensure_future(
                    asyncio.to_thread(stream.read, self.frames_per_buffer, exception_on_overflow=False)
                )
                try:
                    data = await asyncio.shield(read)
                except asyncio.CancelledError:
                    await asyncio.wait([read])
                    raise
                finally:
                    self._reading = False
                yield np.frombuffer(data, dtype=np.float32).copy()
        finally:
            if self._stream is stream:
                self._stream = None
            self._close(stream)

    def stop_capture(self) -> None:
        """Stop capturing; a read in progress finishes before the stream closes."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        if self._reading:
            logger.debug("Read in progress, microphone closes when it returns")
            return
        self._close(stream)

    def _close(self, stream) -> None:
        if stream is not self._open_stream:
            return
        self._open_stream = None
        try:
            stream.stop_stream()
            stream.close()
        finally:
            if self._audio is not None:
                self._audio.terminate()
                self._audio = None
            logger.info("Microphone closed")
