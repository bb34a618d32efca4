"""
Connection, status and session configuration models.

SessionConfig is the record negotiated with the remote once per connection:
built from caller configuration merged with the remote's defaults, sent with
session.create / session.update, and replaced by the remote's echo once the
update is confirmed.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from voice_client.config.constants import (
    AUDIO_FORMAT_PCM,
    AUDIO_FORMAT_WAV,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_VOICE,
    TURN_DETECTION_CLIENT_VAD,
)


class ConnectionState(str, Enum):
    """Lifecycle state of the transport connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSING = "closing"
    FAILED = "failed"


class ResponseStatus(str, Enum):
    """Agent activity as shown to the user."""
    IDLE = "idle"
    THINKING = "thinking"
    SPEAKING = "speaking"
    ERROR = "error"


class TurnDetection(BaseModel):
    """Who decides when the user's turn has ended."""
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str = TURN_DETECTION_CLIENT_VAD


class NoiseReduction(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str = "near_field"


class GreetingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enable: bool = False
    content: str = "Hello! How can I help you today?"


class BetaFields(BaseModel):
    """Vendor-specific session options."""
    model_config = ConfigDict(extra="allow", frozen=True)

    chat_mode: str = "audio"
    tts_source: str = "e2e"
    auto_search: bool = False
    greeting_config: GreetingConfig = Field(default_factory=GreetingConfig)


class SessionConfig(BaseModel):
    """Immutable per-session configuration."""
    model_config = ConfigDict(frozen=True, extra="ignore", protected_namespaces=())

    id: Optional[str] = Field(None, description="Session id assigned by the remote")
    model: str = DEFAULT_REALTIME_MODEL
    voice: str = DEFAULT_VOICE
    instructions: str = DEFAULT_INSTRUCTIONS
    modalities: List[str] = Field(default_factory=lambda: ["audio", "text"])
    input_audio_format: str = AUDIO_FORMAT_WAV
    output_audio_format: str = AUDIO_FORMAT_PCM
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    input_audio_noise_reduction: Optional[NoiseReduction] = Field(default_factory=NoiseReduction)
    beta_fields: Optional[BetaFields] = Field(default_factory=BetaFields)

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "SessionConfig":
        """Build a draft from ClientSettings plus explicit overrides."""
        values: Dict[str, Any] = {
            "model": settings.model,
            "voice": settings.voice,
            "instructions": settings.instructions,
            "turn_detection": {"type": settings.turn_detection},
        }
        values.update(overrides)
        return cls(**values)

    @property
    def turn_detection_mode(self) -> str:
        return self.turn_detection.type

    def merged(self, **overrides: Any) -> "SessionConfig":
        """Return a validated copy with ``overrides`` applied."""
        values = self.model_dump()
        values.update(overrides)
        return SessionConfig(**values)

    def to_update_payload(self) -> Dict[str, Any]:
        """The ``session`` object of a session.update message."""
        return self.model_dump(exclude={"id"}, exclude_none=True)

    def to_create_fields(self) -> Dict[str, Any]:
        """The flat fields of a session.create message."""
        return self.model_dump(
            include={"model", "voice", "instructions", "input_audio_format", "output_audio_format"}
        )
