"""
Unit tests for the realtime session client.

These tests verify the connection lifecycle of RealtimeSessionClient:
session negotiation, outbound command framing, heartbeats, clean and
unclean closes and the linear reconnect backoff. The transport and the
clock are in-memory fakes.
"""

import asyncio
import base64

import pytest

from conftest import FakeConnector, settle
from voice_client.bot.realtime_api import RealtimeSessionClient
from voice_client.config.settings import ClientSettings
from voice_client.errors import ErrorCode, RealtimeConnectionError, ReconnectExhausted
from voice_client.models.session import ConnectionState, ResponseStatus


@pytest.mark.asyncio
async def test_connect_opens_and_negotiates_session(client, connector, sink):
    await client.connect()
    ws = connector.latest

    assert client.state == ConnectionState.OPEN
    assert connector.urls == ["wss://realtime.example.test/v4/realtime?Authorization=test-key"]
    assert sink.states == [(ConnectionState.CONNECTING, 0), (ConnectionState.OPEN, 0)]

    ws.feed({"type": "session.created", "session": {"id": "s1"}})
    await settle()
    await client.drain()

    assert client.session_id == "s1"
    assert ws.sent_types == ["session.update"]
    update = ws.sent_messages[0]
    assert update["session"]["turn_detection"] == {"type": "client_vad"}
    assert update["session"]["input_audio_format"] == "wav"
    assert "id" not in update["session"]
    assert isinstance(update["client_timestamp"], int)

    ws.feed({"type": "session.updated", "session": {"id": "s1", "voice": "female-tianmei"}})
    await settle()

    assert client.state == ConnectionState.OPEN
    assert client.session_id == "s1"
    assert client.session_confirmed
    assert client.confirmed_session.voice == "female-tianmei"


@pytest.mark.asyncio
async def test_connect_without_api_key_raises(sink, scheduler, connector):
    client = RealtimeSessionClient(
        ClientSettings(api_key=None), events=sink, scheduler=scheduler, connector=connector
    )

    with pytest.raises(RealtimeConnectionError):
        await client.connect()

    assert connector.urls == []
    assert client.state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_failure_returns_to_disconnected(client, connector, scheduler):
    connector.fail = True

    with pytest.raises(RealtimeConnectionError) as exc_info:
        await client.connect()

    assert exc_info.value.code == ErrorCode.CONNECTION_FAILED
    assert client.state == ConnectionState.DISCONNECTED
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_connect_timeout(sink, scheduler):
    async def hanging_connector(url):
        await asyncio.sleep(10)

    client = RealtimeSessionClient(
        ClientSettings(api_key="test-key", connect_timeout=0.01),
        events=sink,
        scheduler=scheduler,
        connector=hanging_connector,
    )

    with pytest.raises(RealtimeConnectionError) as exc_info:
        await client.connect()

    assert "Timed out" in exc_info.value.message
    assert client.state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_while_open_is_noop(client, connector):
    await client.connect()
    await client.connect()

    assert len(connector.urls) == 1


@pytest.mark.asyncio
async def test_commands_rejected_when_not_open(client):
    with pytest.raises(RealtimeConnectionError) as exc_info:
        client.send_text("Hello")
    assert exc_info.value.code == ErrorCode.NOT_CONNECTED

    for command in (client.commit_audio_buffer, client.create_response, client.cancel_response):
        with pytest.raises(RealtimeConnectionError):
            command()


@pytest.mark.asyncio
async def test_send_text_creates_item_then_response(client, connector):
    await client.connect()
    ws = connector.latest

    item_id = client.send_text("Hello")
    await client.drain()

    assert ws.sent_types == ["conversation.item.create", "response.create"]
    create = ws.sent_messages[0]
    assert create["item"]["id"] == item_id
    assert create["item"]["role"] == "user"
    assert create["item"]["content"] == [{"type": "input_text", "text": "Hello"}]
    assert client.conversation.has_emitted(item_id)


@pytest.mark.asyncio
async def test_send_text_rejects_empty_text(client, connector):
    await client.connect()

    with pytest.raises(ValueError):
        client.send_text("   ")


@pytest.mark.asyncio
async def test_outbound_frames_keep_call_order(client, connector):
    await client.connect()
    ws = connector.latest

    client.send_audio_chunk(b"\x01\x02\x03\x04")
    client.send_audio_chunk("AAAA")
    client.commit_audio_buffer()
    client.create_response()
    client.clear_audio_buffer()
    client.delete_conversation_item("item_1")
    await client.drain()

    assert ws.sent_types == [
        "input_audio_buffer.append",
        "input_audio_buffer.append",
        "input_audio_buffer.commit",
        "response.create",
        "input_audio_buffer.clear",
        "conversation.item.delete",
    ]
    assert base64.b64decode(ws.sent_messages[0]["audio"]) == b"\x01\x02\x03\x04"
    assert ws.sent_messages[1]["audio"] == "AAAA"
    assert ws.sent_messages[5]["item_id"] == "item_1"
    assert all("client_timestamp" in message for message in ws.sent_messages)


@pytest.mark.asyncio
async def test_create_session_sends_flat_fields(client, connector):
    await client.connect()
    ws = connector.latest

    client.create_session()
    await client.drain()

    message = ws.sent_messages[0]
    assert message["type"] == "session.create"
    assert message["model"] == "glm-4-realtime"
    assert message["input_audio_format"] == "wav"
    assert message["output_audio_format"] == "pcm"


@pytest.mark.asyncio
async def test_heartbeat_sent_while_open(client, connector, scheduler):
    await client.connect()
    ws = connector.latest

    scheduler.advance(30.0)
    await client.drain()
    scheduler.advance(30.0)
    await client.drain()

    heartbeats = [m for m in ws.sent_messages if m["type"] == "heartbeat"]
    assert len(heartbeats) == 2
    assert isinstance(heartbeats[0]["timestamp"], int)


@pytest.mark.asyncio
async def test_disconnect_closes_normally(client, connector, scheduler, sink):
    await client.connect()
    ws = connector.latest

    await client.disconnect()

    assert ws.close_code == 1000
    assert client.state == ConnectionState.DISCONNECTED
    assert sink.states[-2:] == [(ConnectionState.CLOSING, 0), (ConnectionState.DISCONNECTED, 0)]
    assert scheduler.pending == []

    scheduler.advance(120.0)
    await settle()
    assert len(connector.urls) == 1


@pytest.mark.asyncio
async def test_remote_normal_close_does_not_reconnect(client, connector, scheduler):
    await client.connect()

    connector.latest.drop(1000)
    await settle()

    assert client.state == ConnectionState.DISCONNECTED
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_unclean_close_reconnects_and_renegotiates(client, connector, scheduler, sink):
    await client.connect()
    first = connector.latest
    first.feed({"type": "session.created", "session": {"id": "s1"}})
    first.feed({"type": "session.updated", "session": {"id": "s1"}})
    await settle()

    first.drop(1006, "abnormal")
    await settle()

    assert client.state == ConnectionState.RECONNECTING
    assert client.reconnect_attempts == 1

    scheduler.advance(1.9)
    await settle()
    assert len(connector.urls) == 1

    scheduler.advance(0.1)
    await settle()

    second = connector.latest
    assert second is not first
    assert client.state == ConnectionState.OPEN
    assert client.reconnect_attempts == 0
    assert client.session_id is None
    assert not client.session_confirmed

    second.feed({"type": "session.created", "session": {"id": "s2"}})
    await settle()
    await client.drain()
    assert second.sent_types == ["session.update"]
    assert client.session_id == "s2"


@pytest.mark.asyncio
async def test_reconnect_exhaustion_uses_linear_backoff(client, connector, scheduler, sink):
    await client.connect()
    connector.fail = True

    connector.latest.drop(1006)
    await settle()
    assert client.state == ConnectionState.RECONNECTING
    assert client.reconnect_attempts == 1

    for attempt in range(1, 6):
        delay = 2.0 * attempt
        calls = len(connector.urls)

        scheduler.advance(delay - 0.5)
        await settle()
        assert len(connector.urls) == calls

        scheduler.advance(0.5)
        await settle()
        assert len(connector.urls) == calls + 1

        if attempt < 5:
            assert client.state == ConnectionState.RECONNECTING
            assert client.reconnect_attempts == attempt + 1

    assert client.state == ConnectionState.FAILED
    exhausted = [e for e in sink.errors if isinstance(e, ReconnectExhausted)]
    assert len(exhausted) == 1
    assert exhausted[0].attempts == 5
    assert client.response_status == ResponseStatus.ERROR

    scheduler.advance(100.0)
    await settle()
    assert len(connector.urls) == 6

    reconnecting = [attempt for state, attempt in sink.states if state == ConnectionState.RECONNECTING]
    assert reconnecting == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_connect_after_failure_starts_fresh(client, connector, scheduler):
    await client.connect()
    client.conversation.record("item_1")
    connector.fail = True
    connector.latest.drop(1006)
    await settle()
    for attempt in range(1, 6):
        scheduler.advance(2.0 * attempt)
        await settle()
    assert client.state == ConnectionState.FAILED

    connector.fail = False
    await client.connect()

    assert client.state == ConnectionState.OPEN
    assert client.reconnect_attempts == 0
    assert not client.conversation.has_emitted("item_1")


@pytest.mark.asyncio
async def test_zero_reconnect_attempts_fails_immediately(sink, scheduler):
    connector = FakeConnector()
    client = RealtimeSessionClient(
        ClientSettings(api_key="test-key", max_reconnect_attempts=0),
        events=sink,
        scheduler=scheduler,
        connector=connector,
    )
    await client.connect()

    connector.latest.drop(1011)
    await settle()

    assert client.state == ConnectionState.FAILED
    assert len(sink.errors) == 1
    assert sink.errors[0].attempts == 0


@pytest.mark.asyncio
async def test_disconnect_during_backoff_cancels_reconnect(client, connector, scheduler):
    await client.connect()
    connector.latest.drop(1006)
    await settle()
    assert client.state == ConnectionState.RECONNECTING

    await client.disconnect()
    scheduler.advance(60.0)
    await settle()

    assert client.state == ConnectionState.DISCONNECTED
    assert len(connector.urls) == 1


@pytest.mark.asyncio
async def test_malformed_frame_is_dropped(client, connector, sink):
    await client.connect()
    ws = connector.latest

    ws.feed("not json")
    ws.feed({"no_type": True})
    ws.feed({"type": "conversation.item.deleted"})
    ws.feed({"type": "session.created", "session": {"id": "s1"}})
    await settle()

    assert client.state == ConnectionState.OPEN
    assert client.session_id == "s1"
    assert [event.type for event in sink.events] == ["session.created"]


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(client, connector, sink):
    await client.connect()

    connector.latest.feed({"type": "rate_limits.updated", "rate_limits": []})
    connector.latest.feed({"type": "heartbeat", "timestamp": 1})
    await settle()

    assert client.state == ConnectionState.OPEN
    assert [event.type for event in sink.events] == ["rate_limits.updated", "heartbeat"]
    assert sink.messages == []


@pytest.mark.asyncio
async def test_sink_failure_does_not_stop_receive_loop(settings, scheduler, connector):
    class ExplodingSink:
        def __getattr__(self, name):
            def explode(*args):
                raise RuntimeError(f"{name} failed")
            return explode

    client = RealtimeSessionClient(settings, events=ExplodingSink(), scheduler=scheduler, connector=connector)
    await client.connect()

    connector.latest.feed({"type": "session.created", "session": {"id": "s1"}})
    await settle()

    assert client.state == ConnectionState.OPEN
    assert client.session_id == "s1"
