"""
Reassembles streamed responses into finalized messages.

A response starts with response.created, grows through output-item,
content-part and delta events, and ends with response.done or
response.cancelled. Only a completed response produces a message, and only
when its item id has not been surfaced before.
"""

import logging
from typing import Optional

from voice_client.audio.codec import from_transport_text
from voice_client.config.constants import LOGGER_NAME
from voice_client.models.conversation import MessageRole, ResponseLifecycle, ResponseState
from voice_client.models.realtime_schemas import (
    ContentPartEvent,
    DeltaEvent,
    OutputItemEvent,
    PartDoneEvent,
    ResponseCancelledEvent,
    ResponseCreatedEvent,
    ResponseDoneEvent,
)
from voice_client.models.session import ResponseStatus

logger = logging.getLogger(LOGGER_NAME)


def _target_response(client, response_id: Optional[str]) -> Optional[ResponseState]:
    """
    Find the response a streamed fragment belongs to.

    Fragments for a finished or superseded response are ignored. A fragment
    arriving before any response.created starts the response implicitly.
    """
    conversation = client.conversation
    active = conversation.active_response

    if active is not None:
        if response_id and active.id and response_id != active.id:
            logger.debug(f"Ignoring fragment for inactive response {response_id}")
            return None
        if active.id is None:
            active.id = response_id
        return active

    if conversation.is_closed(response_id):
        logger.debug(f"Ignoring late fragment for finished response {response_id}")
        return None

    logger.debug(f"Fragment without response.created, starting response {response_id}")
    return conversation.start_response(response_id)


def _append(client, response: ResponseState, fragment: str, item_id: Optional[str]) -> None:
    if item_id and response.item_id is None:
        response.item_id = item_id
    if fragment:
        response.append(fragment)
        client.set_response_status(ResponseStatus.SPEAKING)


def handle_response_created(event: ResponseCreatedEvent, client) -> None:
    conversation = client.conversation
    lingering = conversation.active_response
    if lingering is not None:
        logger.debug(f"Replacing lingering response {lingering.id}")
        conversation.close_response_id(lingering.id)

    conversation.start_response(event.response.id)
    logger.info(f"Response started: {event.response.id}")
    client.set_response_status(ResponseStatus.THINKING)


def handle_output_item_added(event: OutputItemEvent, client) -> None:
    response = _target_response(client, event.response_id)
    if response is not None:
        _append(client, response, event.item.text(), event.item.id)


def handle_content_part_added(event: ContentPartEvent, client) -> None:
    response = _target_response(client, event.response_id)
    if response is not None:
        _append(client, response, event.part.text_value(), event.item_id)


def handle_text_delta(event: DeltaEvent, client) -> None:
    """Append a text or audio-transcript fragment in arrival order."""
    response = _target_response(client, event.response_id)
    if response is not None:
        _append(client, response, event.delta, event.item_id)


def handle_audio_delta(event: DeltaEvent, client) -> None:
    """Decode agent audio and hand it to the caller for playback."""
    response = _target_response(client, event.response_id)
    if response is None:
        return
    try:
        audio = from_transport_text(event.delta)
    except ValueError as e:
        logger.warning(f"Dropping undecodable audio delta: {e}")
        return

    if event.item_id and response.item_id is None:
        response.item_id = event.item_id
    client.set_response_status(ResponseStatus.SPEAKING)
    client.notify("on_audio_delta", audio)


def handle_part_done(event, client) -> None:
    logger.debug(f"{event.type} for response {getattr(event, 'response_id', None)}")


def handle_response_done(event: ResponseDoneEvent, client) -> None:
    """
    Finalize the active response.

    A status other than ``completed`` discards the buffer; a missing status
    counts as completed. A completed response emits one assistant message
    unless its item id was already surfaced. Repeated or late done events
    leave an idle client idle.

    A done event for a response that was already replaced by a newer
    response.created only closes that old id. The active response and the
    reported status are left alone, so the newer reply keeps streaming
    instead of being reported idle.
    """
    conversation = client.conversation
    info = event.response
    active = conversation.active_response

    if active is not None and info.id and active.id and info.id != active.id:
        logger.debug(f"response.done for superseded response {info.id}")
        conversation.close_response_id(info.id)
        return

    status = info.status or ResponseLifecycle.COMPLETED.value
    if status != ResponseLifecycle.COMPLETED.value:
        conversation.finish_response(ResponseLifecycle.CANCELLED)
        conversation.close_response_id(info.id)
        logger.info(f"Response {info.id} ended with status {status}, discarding")
    else:
        response = conversation.finish_response(ResponseLifecycle.COMPLETED)
        if response is None:
            conversation.close_response_id(info.id)
            logger.debug(f"response.done for {info.id} with no active response")
        else:
            text = response.text or info.output_text()
            item_id = response.item_id or info.first_item_id() or response.id
            if not text:
                logger.debug(f"Response {response.id} completed without text")
            elif conversation.record(item_id):
                client.emit_message(MessageRole.ASSISTANT, text)
            else:
                logger.debug(f"Item {item_id} already surfaced, skipping")

    client.set_response_status(ResponseStatus.IDLE)


def handle_response_cancelled(event: ResponseCancelledEvent, client) -> None:
    conversation = client.conversation
    target = event.target_response_id
    active = conversation.active_response

    if active is not None and (target is None or active.id is None or active.id == target):
        conversation.finish_response(ResponseLifecycle.CANCELLED)
    conversation.close_response_id(target)

    logger.info(f"Response cancelled: {target}")
    client.set_response_status(ResponseStatus.IDLE)
