"""
Energy-based voice activity detection with look-ahead buffering.

The detector keeps two kinds of input apart: raw frames pushed by the capture
stream, and energy readings polled on a fixed interval. Readings drive a
two-state machine (silence / speaking) against an exponentially smoothed
baseline; frames are buffered as PCM16 and leave the detector as
WAV-wrapped, transport-encoded chunks.
"""

import logging
from collections import deque
from typing import Callable, Deque, Optional

from voice_client.audio.codec import WAV_HEADER_SIZE, SampleInput, encode_utterance, float_to_pcm16
from voice_client.config.constants import (
    DEFAULT_SAMPLE_RATE,
    LOGGER_NAME,
    TURN_DETECTION_CLIENT_VAD,
    TURN_DETECTION_SERVER_VAD,
    VAD_BASELINE_DECAY,
    VAD_CHUNK_THRESHOLD,
    VAD_DELAY_FRAME_LIMIT,
    VAD_LOOKAHEAD_FRAMES,
)

logger = logging.getLogger(LOGGER_NAME)


class VoiceActivityDetector:
    """
    Segments a live frame stream into utterance chunks.

    In ``client_vad`` mode frames captured while silent go to a bounded
    look-ahead ring; on onset the ring is prepended to the utterance so the
    first syllable is not clipped. In ``server_vad`` mode every frame is
    buffered regardless of speech state and the remote decides turn ends;
    speech events are still reported.

    Utterances are flushed when their WAV size exceeds ``chunk_threshold``
    and when speech stops. A stop requires ``delay_frame_limit`` consecutive
    polls at or below the baseline.
    """

    def __init__(
        self,
        on_chunk: Callable[[str], None],
        on_speech_change: Optional[Callable[[bool], None]] = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        target_rate: Optional[int] = None,
        mode: str = TURN_DETECTION_CLIENT_VAD,
        delay_frame_limit: int = VAD_DELAY_FRAME_LIMIT,
        chunk_threshold: int = VAD_CHUNK_THRESHOLD,
        lookahead_frames: int = VAD_LOOKAHEAD_FRAMES,
        baseline_decay: float = VAD_BASELINE_DECAY,
    ):
        if mode not in (TURN_DETECTION_CLIENT_VAD, TURN_DETECTION_SERVER_VAD):
            raise ValueError(f"Unknown turn detection mode: {mode}")
        if delay_frame_limit < 1:
            raise ValueError("delay_frame_limit must be at least 1")
        if lookahead_frames < 1:
            raise ValueError("lookahead_frames must be at least 1")

        self.on_chunk = on_chunk
        self.on_speech_change = on_speech_change
        self.sample_rate = sample_rate
        self.target_rate = target_rate or sample_rate
        self.mode = mode
        self.delay_frame_limit = delay_frame_limit
        self.chunk_threshold = chunk_threshold
        self.baseline_decay = baseline_decay

        self._lookahead: Deque[bytes] = deque(maxlen=lookahead_frames)
        self._utterance = bytearray()
        self._speaking = False
        self._baseline: Optional[float] = None
        self._silent_polls = 0

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def baseline(self) -> Optional[float]:
        return self._baseline

    @property
    def buffered_bytes(self) -> int:
        """Size of the PCM currently held for the active utterance."""
        return len(self._utterance)

    def push_frame(self, samples: SampleInput) -> None:
        """Buffer one captured frame of float samples."""
        try:
            pcm = float_to_pcm16(samples, self.sample_rate, self.target_rate)
        except ValueError:
            logger.debug("Skipping empty audio frame")
            return

        if self.mode == TURN_DETECTION_SERVER_VAD:
            self._utterance += pcm
        elif self._speaking:
            self._drain_lookahead()
            self._utterance += pcm
        else:
            self._lookahead.append(pcm)
            return

        if WAV_HEADER_SIZE + len(self._utterance) > self.chunk_threshold:
            self.flush()

    def poll(self, energy: float) -> None:
        """Feed one energy reading and advance the speech state machine."""
        if self._baseline is None:
            self._baseline = energy

        if energy > self._baseline:
            if not self._speaking:
                logger.debug(f"Speech onset: energy {energy:.2f} > baseline {self._baseline:.2f}")
                self._set_speaking(True)
            self._silent_polls = 0
        else:
            self._silent_polls += 1
            if self._speaking and self._silent_polls >= self.delay_frame_limit:
                logger.debug(f"Speech ended after {self._silent_polls} quiet polls")
                self.flush()
                self._set_speaking(False)

        self._baseline = self._baseline * self.baseline_decay + energy * (1.0 - self.baseline_decay)

    def flush(self) -> None:
        """Emit whatever the active utterance holds."""
        if self._speaking:
            self._drain_lookahead()
        if not self._utterance:
            return
        payload = encode_utterance(bytes(self._utterance), self.target_rate)
        logger.debug(f"Flushing utterance chunk: {len(self._utterance)} PCM bytes")
        self._utterance.clear()
        self.on_chunk(payload)

    def finish(self) -> None:
        """End of input: close an open utterance and forget pre-onset audio."""
        if self._speaking:
            self.flush()
            self._set_speaking(False)
        elif self.mode == TURN_DETECTION_SERVER_VAD:
            self.flush()
        self.reset()

    def reset(self) -> None:
        """Drop all buffered audio and adaptive state without emitting."""
        self._lookahead.clear()
        self._utterance.clear()
        self._speaking = False
        self._baseline = None
        self._silent_polls = 0

    def _drain_lookahead(self) -> None:
        if self._lookahead:
            self._utterance += b"".join(self._lookahead)
            self._lookahead.clear()

    def _set_speaking(self, speaking: bool) -> None:
        self._speaking = speaking
        self._silent_polls = 0
        if self.on_speech_change:
            self.on_speech_change(speaking)
