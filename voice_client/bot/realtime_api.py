"""
Realtime session client over a persistent WebSocket.

RealtimeSessionClient owns one connection to the realtime endpoint and
everything that rides on it: the connection state machine, the session
negotiation handshake, reassembly of streamed responses into finalized
messages, heartbeats and linear-backoff reconnection.

All state is mutated on the asyncio loop that runs the client. Outbound
commands are synchronous: they stamp the frame and put it on an outbox
drained by a single writer task, so frames leave in call order and a caller
never blocks on the network. Inbound frames are decoded and dispatched to the
functions in ``voice_client.handlers`` one at a time, in arrival order.

Key components:
- connect / disconnect: user-initiated lifecycle; a fresh connect clears the
  conversation state.
- Command methods (send_text, send_audio_chunk, create_response, ...): legal
  only while the connection is open.
- Reconnection: an unclean close schedules attempt n after
  ``reconnect_delay * n`` seconds, up to ``max_reconnect_attempts``.

Usage example:
```python
settings = load_settings()
client = RealtimeSessionClient(settings, events=MySink())
await client.connect()
client.send_text("Hello")
...
await client.disconnect()
```
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed

from voice_client.audio.codec import to_transport_text
from voice_client.bot.events import RealtimeEventSink
from voice_client.config import constants as c
from voice_client.config.settings import ClientSettings
from voice_client.errors import (
    ErrorCode,
    ProtocolError,
    RealtimeConnectionError,
    ReconnectExhausted,
    TransportDrop,
)
from voice_client.handlers import conversation_handlers, response_handlers, session_handlers
from voice_client.models.conversation import (
    ContentPart,
    ConversationItem,
    ConversationState,
    MessageRole,
    ResponseLifecycle,
)
from voice_client.models.realtime_schemas import (
    AudioAppendCommand,
    AudioClearCommand,
    AudioCommitCommand,
    ClientCommand,
    HeartbeatCommand,
    ItemCreateCommand,
    ItemDeleteCommand,
    ResponseCancelCommand,
    ResponseCreateCommand,
    ServerEvent,
    SessionCreateCommand,
    SessionUpdateCommand,
    parse_server_event,
)
from voice_client.models.session import ConnectionState, ResponseStatus, SessionConfig
from voice_client.services.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(c.LOGGER_NAME)

Connector = Callable[[str], Awaitable[Any]]
Handler = Callable[[ServerEvent, "RealtimeSessionClient"], None]

# Seconds disconnect() waits for queued frames before closing
DISCONNECT_DRAIN_TIMEOUT = 1.0


async def default_connector(url: str):
    """Open the WebSocket with buffering tuned for streamed audio."""
    return await websockets.connect(
        url,
        max_size=c.WS_MAX_SIZE,
        max_queue=c.WS_MAX_QUEUE,
        compression=None,
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


def _close_details(ws, exc: Optional[ConnectionClosed] = None):
    """Close code and reason from a ConnectionClosed or the socket itself."""
    if exc is not None:
        rcvd = getattr(exc, "rcvd", None)
        if rcvd is not None:
            return rcvd.code, rcvd.reason
        return None, ""
    return getattr(ws, "close_code", None), getattr(ws, "close_reason", "") or ""


class RealtimeSessionClient:
    """
    Client for one realtime conversation session.
    """

    def __init__(
        self,
        settings: ClientSettings,
        session_config: Optional[SessionConfig] = None,
        events: Optional[RealtimeEventSink] = None,
        scheduler: Optional[Scheduler] = None,
        connector: Optional[Connector] = None,
    ):
        self.settings = settings
        self.session_config = session_config or SessionConfig.from_settings(settings)
        self.events = events or RealtimeEventSink()
        self.scheduler = scheduler or AsyncioScheduler()
        self._connector = connector or default_connector

        self.conversation = ConversationState()
        self.session_id: Optional[str] = None
        self.session_confirmed = False
        self.confirmed_session: Optional[SessionConfig] = None
        self.last_committed_item_id: Optional[str] = None

        self.ws = None
        self._state = ConnectionState.DISCONNECTED
        self._response_status = ResponseStatus.IDLE
        self._reconnect_attempts = 0
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._recv_task: Optional[asyncio.Task] = None
        self._send_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[TimerHandle] = None
        self._heartbeat_timer: Optional[TimerHandle] = None

        self.handlers: Dict[str, Handler] = {
            c.MESSAGE_TYPE_SESSION_CREATED: session_handlers.handle_session_created,
            c.MESSAGE_TYPE_SESSION_UPDATED: session_handlers.handle_session_updated,
            c.MESSAGE_TYPE_ERROR: session_handlers.handle_error,
            c.MESSAGE_TYPE_AUDIO_COMMITTED: session_handlers.handle_audio_committed,
            c.MESSAGE_TYPE_AUDIO_CLEARED: session_handlers.handle_audio_cleared,
            c.MESSAGE_TYPE_SPEECH_STARTED: session_handlers.handle_speech_event,
            c.MESSAGE_TYPE_SPEECH_STOPPED: session_handlers.handle_speech_event,
            c.MESSAGE_TYPE_SPEECH_STARTED_SHORT: session_handlers.handle_speech_event,
            c.MESSAGE_TYPE_SPEECH_STOPPED_SHORT: session_handlers.handle_speech_event,
            c.MESSAGE_TYPE_RESPONSE_CREATED: response_handlers.handle_response_created,
            c.MESSAGE_TYPE_OUTPUT_ITEM_ADDED: response_handlers.handle_output_item_added,
            c.MESSAGE_TYPE_OUTPUT_ITEM_DONE: response_handlers.handle_part_done,
            c.MESSAGE_TYPE_CONTENT_PART_ADDED: response_handlers.handle_content_part_added,
            c.MESSAGE_TYPE_CONTENT_PART_DONE: response_handlers.handle_part_done,
            c.MESSAGE_TYPE_TEXT_DELTA: response_handlers.handle_text_delta,
            c.MESSAGE_TYPE_TRANSCRIPT_DELTA: response_handlers.handle_text_delta,
            c.MESSAGE_TYPE_AUDIO_DELTA: response_handlers.handle_audio_delta,
            c.MESSAGE_TYPE_TEXT_DONE: response_handlers.handle_part_done,
            c.MESSAGE_TYPE_TRANSCRIPT_DONE: response_handlers.handle_part_done,
            c.MESSAGE_TYPE_AUDIO_DONE: response_handlers.handle_part_done,
            c.MESSAGE_TYPE_RESPONSE_DONE: response_handlers.handle_response_done,
            c.MESSAGE_TYPE_RESPONSE_CANCELLED: response_handlers.handle_response_cancelled,
            c.MESSAGE_TYPE_ITEM_CREATED: conversation_handlers.handle_item_created,
            c.MESSAGE_TYPE_ITEM_DELETED: conversation_handlers.handle_item_deleted,
            c.MESSAGE_TYPE_TRANSCRIPTION_COMPLETED: conversation_handlers.handle_transcription_completed,
        }
        logger.info(f"RealtimeSessionClient initialized with model: {self.session_config.model}")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def response_status(self) -> ResponseStatus:
        return self._response_status

    @property
    def responding(self) -> bool:
        """True while a response is being streamed."""
        return self.conversation.active_response is not None

    # Lifecycle

    async def connect(self) -> None:
        """
        Open the connection and start the receive loop.

        A fresh connect clears the conversation state. Session negotiation
        starts when the remote sends session.created.

        Raises:
            RealtimeConnectionError: If the handshake fails or times out
        """
        if self._state == ConnectionState.OPEN:
            logger.debug("connect() called while already open")
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CLOSING):
            raise RealtimeConnectionError(f"Cannot connect while {self._state.value}")
        if not self.settings.api_key:
            raise RealtimeConnectionError("API key is not configured")

        await self._cancel_reconnect()
        self._reconnect_attempts = 0
        self.conversation.clear()

        try:
            await self._open()
        except RealtimeConnectionError as e:
            logger.error(f"Failed to connect: {e.message}")
            self._set_state(ConnectionState.DISCONNECTED)
            raise

    async def disconnect(self) -> None:
        """
        Close the connection with a normal closure; never reconnects.
        """
        await self._cancel_reconnect()

        ws = self.ws
        if ws is None:
            self._set_state(ConnectionState.DISCONNECTED)
            return

        logger.info("Closing realtime session")
        self._set_state(ConnectionState.CLOSING)

        try:
            await asyncio.wait_for(self._outbox.join(), timeout=DISCONNECT_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Timed out flushing outbound frames before close")

        await self._cancel_task(self._send_task)
        self._send_task = None

        try:
            await ws.close(code=c.NORMAL_CLOSURE, reason="Client closed")
        except Exception as e:
            logger.warning(f"Error closing WebSocket: {e}")

        await self._cancel_task(self._recv_task)
        self._recv_task = None

        self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Realtime session closed")

    async def drain(self) -> None:
        """Wait until every queued outbound frame has been written."""
        await self._outbox.join()

    async def _open(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Connecting to {self.settings.url} with model: {self.session_config.model}")

        try:
            ws = await asyncio.wait_for(
                self._connector(self.settings.connection_url()),
                timeout=self.settings.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RealtimeConnectionError(
                f"Timed out connecting after {self.settings.connect_timeout}s", url=self.settings.url
            ) from e
        except Exception as e:
            raise RealtimeConnectionError(f"Handshake failed: {e}", url=self.settings.url) from e

        self.ws = ws
        self.session_id = None
        self.session_confirmed = False
        self.confirmed_session = None
        self._outbox = asyncio.Queue()
        self._reconnect_attempts = 0
        self._set_state(ConnectionState.OPEN)

        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        self._send_task = asyncio.create_task(self._send_loop(ws, self._outbox))
        self._heartbeat_timer = self.scheduler.call_every(self.settings.heartbeat_interval, self._send_heartbeat)
        logger.info("Connected to realtime endpoint")

    # Outbound commands

    def send_message(self, command: ClientCommand) -> None:
        """
        Stamp and enqueue an outbound command.

        Raises:
            RealtimeConnectionError: If the connection is not open
        """
        if self._state != ConnectionState.OPEN or self.ws is None:
            raise RealtimeConnectionError(
                f"Cannot send {command.type} while {self._state.value}",
                code=ErrorCode.NOT_CONNECTED,
            )
        command.client_timestamp = _now_ms()
        self._outbox.put_nowait(command.to_json())
        logger.debug(f"Queued {command.type}")

    def create_session(self, config: Optional[SessionConfig] = None) -> None:
        if config is not None:
            self.session_config = config
        self.send_message(SessionCreateCommand(**self.session_config.to_create_fields()))

    def update_session(self, config: Optional[SessionConfig] = None) -> None:
        """Send the draft (or a replacement) configuration as session.update."""
        if config is not None:
            self.session_config = config
        self.send_message(
            SessionUpdateCommand(
                event_id=f"event_{uuid.uuid4().hex}",
                session=self.session_config.to_update_payload(),
            )
        )

    def send_text(self, text: str) -> str:
        """
        Add a user text message to the conversation and request a response.

        Returns:
            str: The id of the created conversation item
        """
        if not text or not text.strip():
            raise ValueError("Cannot send an empty message")

        item = ConversationItem(
            id=f"item_{uuid.uuid4().hex[:24]}",
            role=MessageRole.USER.value,
            content=[ContentPart(type="input_text", text=text)],
        )
        self.send_message(ItemCreateCommand(item=item))
        self.conversation.record(item.id)
        self.send_message(ResponseCreateCommand())
        return item.id

    def send_audio_chunk(self, payload: Union[bytes, str]) -> None:
        """Append one encoded utterance chunk (raw bytes or base64 text)."""
        audio = payload if isinstance(payload, str) else to_transport_text(payload)
        self.send_message(AudioAppendCommand(audio=audio))

    def commit_audio_buffer(self) -> None:
        self.send_message(AudioCommitCommand())

    def clear_audio_buffer(self) -> None:
        self.send_message(AudioClearCommand())

    def create_response(self, response: Optional[Dict[str, Any]] = None) -> None:
        self.send_message(ResponseCreateCommand(response=response))

    def create_conversation_item(
        self,
        item: Union[ConversationItem, Dict[str, Any]],
        previous_item_id: Optional[str] = None,
    ) -> None:
        if not isinstance(item, ConversationItem):
            item = ConversationItem.model_validate(item)
        self.send_message(ItemCreateCommand(item=item, previous_item_id=previous_item_id))

    def delete_conversation_item(self, item_id: str) -> None:
        self.send_message(ItemDeleteCommand(item_id=item_id))

    def cancel_response(self) -> None:
        """
        Ask the remote to stop the active response and reset locally.

        Fragments that arrive for the cancelled response afterwards are ignored.
        """
        active = self.conversation.active_response
        self.send_message(ResponseCancelCommand(response_id=active.id if active else None))
        self.conversation.finish_response(ResponseLifecycle.CANCELLED)
        self.set_response_status(ResponseStatus.IDLE)
        logger.info(f"Response cancelled locally: {active.id if active else None}")

    # Inbound dispatch

    def handle_message(self, raw: Union[str, bytes]) -> None:
        """Decode one inbound frame and dispatch it to its handler."""
        try:
            event = parse_server_event(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping malformed frame: {e}")
            return

        self.notify("on_event", event)

        handler = self.handlers.get(event.type)
        if handler is None:
            logger.debug(f"No handler for event type: {event.type}")
            return
        try:
            handler(event, self)
        except Exception as e:
            logger.error(f"Error handling {event.type}: {e}", exc_info=True)

    async def _recv_loop(self, ws) -> None:
        close_code, reason = None, ""
        try:
            async for message in ws:
                self.handle_message(message)
            close_code, reason = _close_details(ws)
        except ConnectionClosed as e:
            close_code, reason = _close_details(ws, e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in receive loop: {e}", exc_info=True)
        self._on_transport_closed(ws, close_code, reason)

    async def _send_loop(self, ws, outbox: asyncio.Queue) -> None:
        while True:
            frame = await outbox.get()
            try:
                await ws.send(frame)
            except ConnectionClosed as e:
                logger.warning(f"Dropped outbound frame, connection closed: {e}")
            except Exception as e:
                logger.error(f"Error sending frame: {e}")
            finally:
                outbox.task_done()

    def _on_transport_closed(self, ws, close_code: Optional[int], reason: str) -> None:
        if ws is not self.ws:
            return

        if self._send_task is not None:
            self._send_task.cancel()
            self._send_task = None
        self._recv_task = None
        self._teardown()

        if self._state in (ConnectionState.CLOSING, ConnectionState.DISCONNECTED):
            return

        if close_code == c.NORMAL_CLOSURE:
            logger.info("Remote closed the connection normally")
            self._set_state(ConnectionState.DISCONNECTED)
            return

        drop = TransportDrop(close_code, reason)
        logger.warning(drop.message)
        self._schedule_reconnect()

    def _teardown(self) -> None:
        """Forget the socket, pending frames and the in-flight response."""
        self.ws = None
        self._stop_heartbeat()
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()
        if self.conversation.finish_response(ResponseLifecycle.CANCELLED) is not None:
            logger.debug("Discarded in-flight response")
        self.set_response_status(ResponseStatus.IDLE)

    # Reconnection

    def _schedule_reconnect(self) -> None:
        attempt = self._reconnect_attempts + 1
        if attempt > self.settings.max_reconnect_attempts:
            self._reconnect_failed()
            return

        self._reconnect_attempts = attempt
        delay = self.settings.reconnect_delay * attempt
        self._set_state(ConnectionState.RECONNECTING)
        logger.info(
            f"Reconnecting (attempt {attempt}/{self.settings.max_reconnect_attempts}) in {delay} seconds"
        )
        self._reconnect_timer = self.scheduler.call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        if self._state == ConnectionState.RECONNECTING:
            self._reconnect_task = asyncio.create_task(self._attempt_reconnect())

    async def _attempt_reconnect(self) -> None:
        attempt = self._reconnect_attempts
        try:
            await self._open()
        except RealtimeConnectionError as e:
            logger.warning(f"Reconnect attempt {attempt} failed: {e.message}")
            if self._state == ConnectionState.CONNECTING:
                self._schedule_reconnect()
            return
        finally:
            self._reconnect_task = None
        logger.info(f"Connection restored after {attempt} attempt(s)")

    def _reconnect_failed(self) -> None:
        error = ReconnectExhausted(self._reconnect_attempts)
        logger.error(error.message)
        self._set_state(ConnectionState.FAILED)
        self.set_response_status(ResponseStatus.ERROR)
        self.notify("on_error", error)

    async def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            await self._cancel_task(task)

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug(f"Task {task.get_name()} cancelled")

    # Heartbeat

    def _send_heartbeat(self) -> None:
        if self._state == ConnectionState.OPEN:
            self.send_message(HeartbeatCommand(timestamp=_now_ms()))

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_timer is not None:
            self._heartbeat_timer.cancel()
            self._heartbeat_timer = None

    # Reporting

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info(f"Connection state: {self._state.value} -> {state.value}")
        self._state = state
        if state != ConnectionState.OPEN:
            self._stop_heartbeat()
        self.notify("on_connection_change", state, self._reconnect_attempts)

    def set_response_status(self, status: ResponseStatus) -> None:
        if status == self._response_status:
            return
        logger.debug(f"Response status: {self._response_status.value} -> {status.value}")
        self._response_status = status
        self.notify("on_status_change", status)

    def emit_message(self, role: MessageRole, text: str) -> None:
        """Surface a finalized message to the event sink."""
        logger.info(f"{role.value} message ({len(text)} chars)")
        self.notify("on_message", role.value, text)

    def notify(self, method: str, *args: Any) -> None:
        """Call an event sink method; sink failures are logged, never raised."""
        try:
            getattr(self.events, method)(*args)
        except Exception as e:
            logger.error(f"Error in event sink {method}: {e}", exc_info=True)
