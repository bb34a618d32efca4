"""
Handles conversation item snapshots and input transcriptions.

Some deliveries carry the assistant's text as a complete item instead of (or
in addition to) streamed deltas, and server-side speech-to-text arrives as a
transcription event. Both go through the same item-id deduplication set as
streamed responses.
"""

import logging

from voice_client.config.constants import LOGGER_NAME
from voice_client.models.conversation import MessageRole
from voice_client.models.realtime_schemas import (
    ItemCreatedEvent,
    ItemDeletedEvent,
    TranscriptionCompletedEvent,
)

logger = logging.getLogger(LOGGER_NAME)


def handle_item_created(event: ItemCreatedEvent, client) -> None:
    """Emit an assistant item that already carries its text."""
    item = event.item
    if item.role != MessageRole.ASSISTANT:
        logger.debug(f"Conversation item {item.id} created ({item.role})")
        return

    text = item.text()
    if not text:
        return
    if not client.conversation.record(item.id):
        logger.debug(f"Item {item.id} already surfaced, skipping")
        return
    client.emit_message(MessageRole.ASSISTANT, text)


def handle_item_deleted(event: ItemDeletedEvent, client) -> None:
    client.conversation.forget(event.item_id)
    logger.debug(f"Conversation item deleted: {event.item_id}")


def handle_transcription_completed(event: TranscriptionCompletedEvent, client) -> None:
    """Emit the user's transcribed speech once per item."""
    if not event.transcript.strip():
        return
    if not client.conversation.record(event.item_id):
        logger.debug(f"Transcript for item {event.item_id} already surfaced")
        return
    client.emit_message(MessageRole.USER, event.transcript)
