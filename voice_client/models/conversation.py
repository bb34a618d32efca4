"""
Conversation state for one realtime session.

ConversationState tracks which conversation items have already been surfaced
to the user (the deduplication set) and the single response currently being
streamed. Item ids are the deduplication key: a re-delivered item never
produces a second message, while a deleted id may legitimately come back.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from voice_client.config.constants import CLOSED_RESPONSE_HISTORY


class MessageRole(str, Enum):
    """Role of a participant in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ContentPart(BaseModel):
    """One part of a conversation item: text, audio or a transcript."""
    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: Optional[str] = None
    transcript: Optional[str] = None
    audio: Optional[str] = None

    def text_value(self) -> str:
        """Readable text of the part, preferring the transcript for audio parts."""
        if self.type in ("audio", "input_audio") and self.transcript:
            return self.transcript
        return self.text or self.transcript or ""


class ConversationItem(BaseModel):
    """An addressable unit of dialogue."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: str = "message"
    role: Optional[str] = None
    status: Optional[str] = None
    content: List[ContentPart] = []

    def text(self) -> str:
        return "".join(part.text_value() for part in self.content)


class ResponseLifecycle(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class ResponseState:
    """A streamed agent reply being reassembled."""
    id: Optional[str]
    status: ResponseLifecycle = ResponseLifecycle.IN_PROGRESS
    item_id: Optional[str] = None
    fragments: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.fragments)

    def append(self, fragment: str) -> None:
        if fragment:
            self.fragments.append(fragment)


class ConversationState:
    """
    Deduplication set and active response for a session.

    Only the client's dispatch path mutates this object.
    """

    def __init__(self, closed_history: int = CLOSED_RESPONSE_HISTORY):
        self.emitted_ids: Set[str] = set()
        # Most recent finished response ids, oldest first
        self.closed_response_ids: Deque[str] = deque(maxlen=closed_history)
        self.active_response: Optional[ResponseState] = None

    def has_emitted(self, item_id: Optional[str]) -> bool:
        return item_id is not None and item_id in self.emitted_ids

    def record(self, item_id: Optional[str]) -> bool:
        """
        Add an id to the deduplication set.

        Returns:
            True if the id was new (a message may be surfaced), False otherwise
        """
        if item_id is None:
            return True
        if item_id in self.emitted_ids:
            return False
        self.emitted_ids.add(item_id)
        return True

    def forget(self, item_id: str) -> None:
        """Remove a deleted item's id so it can be re-created later."""
        self.emitted_ids.discard(item_id)

    def start_response(self, response_id: Optional[str]) -> ResponseState:
        """Begin a new active response, replacing any lingering one."""
        self.active_response = ResponseState(id=response_id)
        return self.active_response

    def is_closed(self, response_id: Optional[str]) -> bool:
        return response_id is not None and response_id in self.closed_response_ids

    def finish_response(self, status: ResponseLifecycle) -> Optional[ResponseState]:
        """Detach the active response, marking it finished."""
        response, self.active_response = self.active_response, None
        if response is not None:
            response.status = status
            self.close_response_id(response.id)
        return response

    def close_response_id(self, response_id: Optional[str]) -> None:
        if response_id is not None and response_id not in self.closed_response_ids:
            self.closed_response_ids.append(response_id)

    def clear(self) -> None:
        """Reset everything for a fresh connect."""
        self.emitted_ids.clear()
        self.closed_response_ids.clear()
        self.active_response = None
