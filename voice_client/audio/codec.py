"""
Audio codec utilities.

Pure helpers converting captured floating-point samples into 16-bit PCM,
wrapping PCM into a mono WAV container and moving binary payloads through
the text-only transport as base64. The module also hosts the
frequency-domain energy meter the voice activity detector polls.
"""

import base64
import binascii
import io
import wave
from typing import Optional, Sequence, Union

import numpy as np

SampleInput = Union[np.ndarray, Sequence[float]]

PCM16_SAMPLE_WIDTH = 2
WAV_HEADER_SIZE = 44


def float_to_pcm16(
    samples: SampleInput,
    source_rate: int,
    target_rate: Optional[int] = None,
) -> bytes:
    """
    Convert float samples in [-1, 1] to little-endian 16-bit PCM.

    Resampling is linear by index ratio: output sample ``i`` takes the source
    sample at ``floor(i * source_rate / target_rate)``. Samples outside
    [-1, 1] are clamped before scaling.

    Args:
        samples: Mono float samples
        source_rate: Sample rate of ``samples``
        target_rate: Desired output rate (defaults to ``source_rate``)

    Returns:
        bytes: PCM16 little-endian payload

    Raises:
        ValueError: If the input is empty or resamples to nothing
    """
    data = np.asarray(samples, dtype=np.float64).ravel()
    if data.size == 0:
        raise ValueError("Cannot convert an empty sample buffer")
    if source_rate <= 0 or (target_rate is not None and target_rate <= 0):
        raise ValueError("Sample rates must be positive")

    if target_rate is not None and target_rate != source_rate:
        ratio = source_rate / target_rate
        output_length = int(np.floor(data.size / ratio))
        if output_length == 0:
            raise ValueError("Sample buffer too short for the requested rate")
        indices = np.floor(np.arange(output_length) * ratio).astype(np.int64)
        data = data[np.minimum(indices, data.size - 1)]

    clamped = np.clip(np.nan_to_num(data), -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 0x8000, clamped * 0x7FFF)
    return np.rint(scaled).astype("<i2").tobytes()


def wrap_wav(pcm: bytes, sample_rate: int) -> bytes:
    """
    Wrap mono 16-bit PCM in a standard 44-byte-header WAV container.

    Raises:
        ValueError: If the payload is empty or not a whole number of samples
    """
    if not pcm:
        raise ValueError("Cannot wrap an empty PCM buffer")
    if len(pcm) % PCM16_SAMPLE_WIDTH:
        raise ValueError("PCM16 payload must contain whole 2-byte samples")

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(PCM16_SAMPLE_WIDTH)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def to_transport_text(data: bytes) -> str:
    """Encode binary data as base64 text for the transport."""
    if not data:
        raise ValueError("Cannot encode an empty buffer")
    return base64.b64encode(data).decode("ascii")


def from_transport_text(text: str) -> bytes:
    """
    Decode base64 transport text back to bytes.

    Raises:
        ValueError: If the text is empty or not valid base64
    """
    if not text:
        raise ValueError("Cannot decode an empty string")
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def encode_utterance(pcm: bytes, sample_rate: int) -> str:
    """WAV-wrap a PCM16 utterance and encode it for the transport."""
    return to_transport_text(wrap_wav(pcm, sample_rate))


class FrequencyEnergyMeter:
    """
    Frequency-domain loudness reading over the most recent samples.

    Mirrors a browser analyser node: a Blackman-windowed FFT over the last
    ``fft_size`` samples, magnitudes smoothed over successive reads, converted
    to decibels and mapped onto 0-255 between ``min_db`` and ``max_db``. The
    reading is the mean of those byte values.
    """

    def __init__(
        self,
        fft_size: int = 2048,
        smoothing: float = 0.8,
        min_db: float = -100.0,
        max_db: float = -30.0,
    ):
        if fft_size <= 0 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a positive power of two")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        if min_db >= max_db:
            raise ValueError("min_db must be below max_db")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db
        self._window = np.blackman(fft_size)
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._magnitudes = np.zeros(fft_size // 2, dtype=np.float64)

    def update(self, frame: SampleInput) -> None:
        """Feed newly captured samples."""
        data = np.asarray(frame, dtype=np.float64).ravel()
        if data.size >= self.fft_size:
            self._samples = data[-self.fft_size:].copy()
        elif data.size:
            self._samples = np.concatenate((self._samples[data.size:], data))

    def read(self) -> float:
        """Compute the current energy level (0-255)."""
        spectrum = np.fft.rfft(self._samples * self._window)[: self.fft_size // 2]
        magnitudes = np.abs(spectrum) / self.fft_size
        self._magnitudes = self.smoothing * self._magnitudes + (1.0 - self.smoothing) * magnitudes

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._magnitudes)
        scaled = (decibels - self.min_db) * (255.0 / (self.max_db - self.min_db))
        levels = np.floor(np.clip(np.nan_to_num(scaled, neginf=0.0), 0.0, 255.0))
        return float(levels.mean())

    def reset(self) -> None:
        """Forget all samples and smoothing history."""
        self._samples[:] = 0.0
        self._magnitudes[:] = 0.0
