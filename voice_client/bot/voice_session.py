"""
Voice front-end shim around RealtimeSessionClient.

VoiceSession joins a capture device, the voice activity detector and the
session client, and applies the turn-taking policy between them:

- Encoded utterance chunks are forwarded as input audio only while the
  connection is open. In client_vad mode a chunk is forwarded only while
  local speech is active; in server_vad mode every chunk goes through.
- In client_vad mode the end of local speech commits the input buffer and
  requests a response.
- The start of local speech while the agent is responding cancels the
  response (barge-in).

The shim holds no protocol state of its own; it is created per front end
and passed its event sink explicitly.
"""

import logging
from typing import Optional

from voice_client.audio.capture import CaptureDevice, VoicePipeline
from voice_client.audio.vad import VoiceActivityDetector
from voice_client.bot.events import RealtimeEventSink
from voice_client.bot.realtime_api import Connector, RealtimeSessionClient
from voice_client.config.constants import LOGGER_NAME, TURN_DETECTION_CLIENT_VAD
from voice_client.config.settings import ClientSettings
from voice_client.errors import DeviceError, ErrorCode, RealtimeConnectionError
from voice_client.models.conversation import MessageRole
from voice_client.models.session import ConnectionState, SessionConfig
from voice_client.services.scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(LOGGER_NAME)


class VoiceSession:
    """
    Text and voice conversation over one realtime session.
    """

    def __init__(
        self,
        settings: ClientSettings,
        events: Optional[RealtimeEventSink] = None,
        session_config: Optional[SessionConfig] = None,
        device: Optional[CaptureDevice] = None,
        scheduler: Optional[Scheduler] = None,
        connector: Optional[Connector] = None,
        client: Optional[RealtimeSessionClient] = None,
    ):
        self.settings = settings
        self.events = events or RealtimeEventSink()
        self.scheduler = scheduler or AsyncioScheduler()
        self.client = client or RealtimeSessionClient(
            settings,
            session_config=session_config,
            events=self.events,
            scheduler=self.scheduler,
            connector=connector,
        )
        self.device = device
        self.pipeline: Optional[VoicePipeline] = None

    @property
    def turn_detection(self) -> str:
        return self.client.session_config.turn_detection_mode

    @property
    def voice_active(self) -> bool:
        return self.pipeline is not None and self.pipeline.running

    async def connect(self) -> None:
        await self.client.connect()

    async def disconnect(self) -> None:
        """Stop voice input, then close the session."""
        await self.stop_voice_input()
        await self.client.disconnect()

    def send_text(self, text: str) -> str:
        """
        Send a typed user message and show it in the conversation.

        Args:
            text: The message text

        Returns:
            str: The id of the created conversation item

        Raises:
            ValueError: If the text is empty
            RealtimeConnectionError: If the session is not open
        """
        if not text or not text.strip():
            raise ValueError("Cannot send an empty message")
        if self.client.state != ConnectionState.OPEN:
            raise RealtimeConnectionError(
                f"Cannot send a message while {self.client.state.value}",
                code=ErrorCode.NOT_CONNECTED,
            )

        self.client.notify("on_message", MessageRole.USER.value, text)
        return self.client.send_text(text)

    async def start_voice_input(self) -> None:
        """
        Start capturing from the configured device.

        Raises:
            DeviceError: If there is no device or it could not be started
        """
        if self.voice_active:
            logger.debug("Voice input already active")
            return
        if self.device is None:
            raise DeviceError("No audio capture device configured")

        detector = VoiceActivityDetector(
            on_chunk=self._on_chunk,
            on_speech_change=self._on_speech_change,
            sample_rate=self.settings.sample_rate,
            mode=self.turn_detection,
        )
        self.pipeline = VoicePipeline(
            self.device,
            detector,
            scheduler=self.scheduler,
            on_error=self._on_device_error,
        )
        await self.pipeline.start()

    async def stop_voice_input(self) -> None:
        if self.pipeline is not None:
            await self.pipeline.stop()

    def cancel_response(self) -> None:
        self.client.cancel_response()

    def commit_audio(self) -> None:
        """End the user's turn by hand: commit the input buffer and ask for a response."""
        self.client.commit_audio_buffer()
        self.client.create_response()

    def _on_chunk(self, payload: str) -> None:
        if self.client.state != ConnectionState.OPEN:
            logger.debug("Dropping audio chunk, session is not open")
            return
        if self.turn_detection == TURN_DETECTION_CLIENT_VAD and not self.pipeline.detector.speaking:
            logger.debug("Dropping audio chunk outside detected speech")
            return
        try:
            self.client.send_audio_chunk(payload)
        except RealtimeConnectionError as e:
            logger.debug(f"Audio chunk not sent: {e.message}")

    def _on_speech_change(self, speaking: bool) -> None:
        self.client.notify("on_speech_activity", speaking)
        if self.client.state != ConnectionState.OPEN:
            return

        if speaking:
            if self.client.responding:
                logger.info("User started speaking while the agent is responding, cancelling response")
                self.client.cancel_response()
        elif self.turn_detection == TURN_DETECTION_CLIENT_VAD:
            logger.info("User stopped speaking, requesting response")
            self.commit_audio()

    def _on_device_error(self, error: DeviceError) -> None:
        self.client.notify("on_error", error)
