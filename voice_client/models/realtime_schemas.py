"""
Pydantic models for the realtime session protocol.

Every frame is a flat JSON object with a mandatory ``type`` discriminator.
Inbound frames are decoded through a single registry keyed on ``type``
(see ``parse_server_event``); outbound commands serialize themselves with
``to_json``. Unmodelled fields are kept on inbound events so handlers and
callers can still reach vendor extensions.
"""

import base64
import binascii
import json
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from voice_client.config import constants as c
from voice_client.errors import ErrorCode, ProtocolError
from voice_client.models.conversation import ContentPart, ConversationItem


# Inbound (server -> client) events
class ServerEvent(BaseModel):
    """Base model for every inbound event."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Event type identifier")
    event_id: Optional[str] = None


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None
    param: Optional[str] = None


class ErrorEvent(ServerEvent):
    type: Literal["error"]
    error: ErrorDetail = Field(default_factory=ErrorDetail)

    @model_validator(mode="before")
    @classmethod
    def lift_flat_error(cls, data):
        """Accept errors reported as top-level ``message``/``code`` fields."""
        if isinstance(data, dict) and not isinstance(data.get("error"), dict):
            data = dict(data)
            detail = {k: data[k] for k in ("code", "message") if isinstance(data.get(k), str)}
            if isinstance(data.get("error"), str):
                detail.setdefault("message", data["error"])
            data["error"] = detail
        return data

    @property
    def description(self) -> str:
        return self.error.message or self.error.code or "Unknown remote error"


class SessionEvent(ServerEvent):
    session: Dict[str, Any] = Field(default_factory=dict)

    @property
    def session_id(self) -> Optional[str]:
        return self.session.get("id")


class SessionCreatedEvent(SessionEvent):
    type: Literal["session.created"]


class SessionUpdatedEvent(SessionEvent):
    type: Literal["session.updated"]


class ResponseInfo(BaseModel):
    """The ``response`` object carried by response lifecycle events."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    status: Optional[str] = None
    output: List[ConversationItem] = []

    def output_text(self) -> str:
        return "".join(item.text() for item in self.output)

    def first_item_id(self) -> Optional[str]:
        for item in self.output:
            if item.id:
                return item.id
        return None


class ResponseCreatedEvent(ServerEvent):
    type: Literal["response.created"]
    response: ResponseInfo = Field(default_factory=ResponseInfo)


class ResponseDoneEvent(ServerEvent):
    type: Literal["response.done"]
    response: ResponseInfo = Field(default_factory=ResponseInfo)

    @model_validator(mode="before")
    @classmethod
    def lift_flat_status(cls, data):
        """Accept a completion status reported next to ``response`` instead of inside it."""
        if isinstance(data, dict) and isinstance(data.get("status"), str):
            response = data.get("response") or {}
            if isinstance(response, dict) and response.get("status") is None:
                data = dict(data)
                data["response"] = {**response, "status": data["status"]}
        return data


class ResponseCancelledEvent(ServerEvent):
    type: Literal["response.cancelled"]
    response_id: Optional[str] = None
    response: Optional[ResponseInfo] = None

    @property
    def target_response_id(self) -> Optional[str]:
        if self.response_id:
            return self.response_id
        return self.response.id if self.response else None


class OutputItemEvent(ServerEvent):
    """response.output_item.added / response.output_item.done"""
    response_id: Optional[str] = None
    output_index: int = 0
    item: ConversationItem = Field(default_factory=ConversationItem)


class ContentPartEvent(ServerEvent):
    """response.content_part.added / response.content_part.done"""
    response_id: Optional[str] = None
    item_id: Optional[str] = None
    output_index: int = 0
    content_index: int = 0
    part: ContentPart = Field(default_factory=ContentPart)


class DeltaEvent(ServerEvent):
    """Streamed fragment: text, audio transcript or base64 audio."""
    response_id: Optional[str] = None
    item_id: Optional[str] = None
    output_index: int = 0
    content_index: int = 0
    delta: str = ""

    @model_validator(mode="before")
    @classmethod
    def lift_nested_delta(cls, data):
        """Some deployments nest the fragment under ``data.text``/``data.audio``."""
        if isinstance(data, dict) and not data.get("delta") and isinstance(data.get("data"), dict):
            nested = data["data"].get("text") or data["data"].get("audio")
            if isinstance(nested, str):
                data = dict(data)
                data["delta"] = nested
        return data


class PartDoneEvent(ServerEvent):
    """Terminal marker for a streamed part (text, transcript or audio)."""
    response_id: Optional[str] = None
    item_id: Optional[str] = None
    text: Optional[str] = None
    transcript: Optional[str] = None


class ItemCreatedEvent(ServerEvent):
    type: Literal["conversation.item.created"]
    previous_item_id: Optional[str] = None
    item: ConversationItem = Field(default_factory=ConversationItem)


class ItemDeletedEvent(ServerEvent):
    type: Literal["conversation.item.deleted"]
    item_id: str


class TranscriptionCompletedEvent(ServerEvent):
    type: Literal["conversation.item.input_audio_transcription.completed"]
    item_id: Optional[str] = None
    content_index: int = 0
    transcript: str = ""


class AudioBufferEvent(ServerEvent):
    """input_audio_buffer.committed / input_audio_buffer.cleared"""
    item_id: Optional[str] = None
    previous_item_id: Optional[str] = None


class SpeechEvent(ServerEvent):
    """Server-side detector reports speech started or stopped."""
    item_id: Optional[str] = None
    audio_start_ms: Optional[int] = None
    audio_end_ms: Optional[int] = None

    @property
    def started(self) -> bool:
        return self.type in (c.MESSAGE_TYPE_SPEECH_STARTED, c.MESSAGE_TYPE_SPEECH_STARTED_SHORT)


SERVER_EVENT_MODELS: Dict[str, Type[ServerEvent]] = {
    c.MESSAGE_TYPE_ERROR: ErrorEvent,
    c.MESSAGE_TYPE_SESSION_CREATED: SessionCreatedEvent,
    c.MESSAGE_TYPE_SESSION_UPDATED: SessionUpdatedEvent,
    c.MESSAGE_TYPE_RESPONSE_CREATED: ResponseCreatedEvent,
    c.MESSAGE_TYPE_RESPONSE_DONE: ResponseDoneEvent,
    c.MESSAGE_TYPE_RESPONSE_CANCELLED: ResponseCancelledEvent,
    c.MESSAGE_TYPE_OUTPUT_ITEM_ADDED: OutputItemEvent,
    c.MESSAGE_TYPE_OUTPUT_ITEM_DONE: OutputItemEvent,
    c.MESSAGE_TYPE_CONTENT_PART_ADDED: ContentPartEvent,
    c.MESSAGE_TYPE_CONTENT_PART_DONE: ContentPartEvent,
    c.MESSAGE_TYPE_TEXT_DELTA: DeltaEvent,
    c.MESSAGE_TYPE_TRANSCRIPT_DELTA: DeltaEvent,
    c.MESSAGE_TYPE_AUDIO_DELTA: DeltaEvent,
    c.MESSAGE_TYPE_TEXT_DONE: PartDoneEvent,
    c.MESSAGE_TYPE_TRANSCRIPT_DONE: PartDoneEvent,
    c.MESSAGE_TYPE_AUDIO_DONE: PartDoneEvent,
    c.MESSAGE_TYPE_ITEM_CREATED: ItemCreatedEvent,
    c.MESSAGE_TYPE_ITEM_DELETED: ItemDeletedEvent,
    c.MESSAGE_TYPE_TRANSCRIPTION_COMPLETED: TranscriptionCompletedEvent,
    c.MESSAGE_TYPE_AUDIO_COMMITTED: AudioBufferEvent,
    c.MESSAGE_TYPE_AUDIO_CLEARED: AudioBufferEvent,
    c.MESSAGE_TYPE_SPEECH_STARTED: SpeechEvent,
    c.MESSAGE_TYPE_SPEECH_STOPPED: SpeechEvent,
    c.MESSAGE_TYPE_SPEECH_STARTED_SHORT: SpeechEvent,
    c.MESSAGE_TYPE_SPEECH_STOPPED_SHORT: SpeechEvent,
}


def parse_server_event(raw: Union[str, bytes]) -> ServerEvent:
    """
    Decode one transport frame into its typed event.

    Unknown event types decode to a plain ServerEvent.

    Raises:
        ProtocolError: If the frame is not a JSON object with a string ``type``
            or does not match the model registered for its type
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON frame: {e}", code=ErrorCode.MALFORMED_MESSAGE) from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ProtocolError("Frame is missing a string 'type' field", code=ErrorCode.MALFORMED_MESSAGE)

    model = SERVER_EVENT_MODELS.get(data["type"], ServerEvent)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(
            f"Invalid {data['type']} frame: {e}", error_type=data["type"], code=ErrorCode.MALFORMED_MESSAGE
        ) from e


# Outbound (client -> server) commands
class ClientCommand(BaseModel):
    """Base model for every outbound command."""

    type: str
    event_id: Optional[str] = None
    client_timestamp: Optional[int] = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class SessionCreateCommand(ClientCommand):
    model_config = ConfigDict(protected_namespaces=())

    type: Literal["session.create"] = c.MESSAGE_TYPE_SESSION_CREATE
    model: str
    voice: str
    instructions: str
    input_audio_format: str
    output_audio_format: str


class SessionUpdateCommand(ClientCommand):
    type: Literal["session.update"] = c.MESSAGE_TYPE_SESSION_UPDATE
    session: Dict[str, Any]


class AudioAppendCommand(ClientCommand):
    type: Literal["input_audio_buffer.append"] = c.MESSAGE_TYPE_AUDIO_APPEND
    audio: str = Field(..., description="Base64-encoded audio data")

    @field_validator("audio")
    def validate_audio(cls, v):
        """Validate that the audio payload is non-empty base64."""
        if not v:
            raise ValueError("Audio chunk cannot be empty")
        try:
            base64.b64decode(v, validate=True)
        except binascii.Error:
            raise ValueError("Invalid base64 encoded audio data")
        return v


class AudioCommitCommand(ClientCommand):
    type: Literal["input_audio_buffer.commit"] = c.MESSAGE_TYPE_AUDIO_COMMIT


class AudioClearCommand(ClientCommand):
    type: Literal["input_audio_buffer.clear"] = c.MESSAGE_TYPE_AUDIO_CLEAR


class ItemCreateCommand(ClientCommand):
    type: Literal["conversation.item.create"] = c.MESSAGE_TYPE_ITEM_CREATE
    previous_item_id: Optional[str] = None
    item: ConversationItem


class ItemDeleteCommand(ClientCommand):
    type: Literal["conversation.item.delete"] = c.MESSAGE_TYPE_ITEM_DELETE
    item_id: str


class ResponseCreateCommand(ClientCommand):
    type: Literal["response.create"] = c.MESSAGE_TYPE_RESPONSE_CREATE
    response: Optional[Dict[str, Any]] = None


class ResponseCancelCommand(ClientCommand):
    type: Literal["response.cancel"] = c.MESSAGE_TYPE_RESPONSE_CANCEL
    response_id: Optional[str] = None


class HeartbeatCommand(ClientCommand):
    type: Literal["heartbeat"] = c.MESSAGE_TYPE_HEARTBEAT
    timestamp: int
