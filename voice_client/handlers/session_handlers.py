"""
Handles session negotiation, input-buffer and error events.

session.created carries the server-assigned session id; the client answers
with session.update carrying its draft configuration until the remote
confirms it with session.updated. Remote error events are surfaced as
non-fatal ProtocolErrors, and server-side speech detection is forwarded to the
caller with barge-in when the agent is mid-response.
"""

import logging

from pydantic import ValidationError

from voice_client.config.constants import LOGGER_NAME
from voice_client.errors import ProtocolError
from voice_client.models.realtime_schemas import (
    AudioBufferEvent,
    ErrorEvent,
    SessionCreatedEvent,
    SessionUpdatedEvent,
    SpeechEvent,
)
from voice_client.models.session import ResponseStatus, SessionConfig

logger = logging.getLogger(LOGGER_NAME)


def handle_session_created(event: SessionCreatedEvent, client) -> None:
    """
    Store the assigned session id and push the draft configuration.

    Args:
        event: The session.created event
        client: The RealtimeSessionClient that received it
    """
    client.session_id = event.session_id
    logger.info(f"Session created: {event.session_id}")

    if not client.session_confirmed:
        logger.debug("Sending draft session configuration")
        client.update_session()


def handle_session_updated(event: SessionUpdatedEvent, client) -> None:
    """Acknowledge the remote's echo of our configuration."""
    client.session_confirmed = True
    if event.session_id:
        client.session_id = event.session_id

    try:
        client.confirmed_session = SessionConfig.model_validate({**event.session, "id": client.session_id})
    except ValidationError as e:
        logger.warning(f"Could not read confirmed session configuration: {e}")
        client.confirmed_session = client.session_config.merged(id=client.session_id)

    logger.info(f"Session updated: {client.session_id}")


def handle_error(event: ErrorEvent, client) -> None:
    """Surface a remote error without closing the connection."""
    error = ProtocolError(
        event.description,
        error_type=event.error.type,
        error_code=event.error.code,
    )
    logger.error(f"Received error from remote: {error.to_dict()}")
    client.set_response_status(ResponseStatus.ERROR)
    client.notify("on_error", error)


def handle_audio_committed(event: AudioBufferEvent, client) -> None:
    client.last_committed_item_id = event.item_id
    logger.debug(f"Input audio committed as item {event.item_id}")


def handle_audio_cleared(event: AudioBufferEvent, client) -> None:
    logger.debug("Input audio buffer cleared")


def handle_speech_event(event: SpeechEvent, client) -> None:
    """
    Forward server-side speech detection; cancel the agent on barge-in.
    """
    client.notify("on_speech_activity", event.started)

    if event.started and client.responding:
        logger.info("Speech detected while the agent is responding, cancelling response")
        client.cancel_response()
