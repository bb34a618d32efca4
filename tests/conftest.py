import asyncio
import json
import logging

import pytest

from voice_client.audio.capture import CaptureDevice
from voice_client.bot.events import RealtimeEventSink
from voice_client.bot.realtime_api import RealtimeSessionClient
from voice_client.config.settings import ENV_VARIABLES, ClientSettings
from voice_client.services.scheduler import Scheduler, TimerHandle, run_callback

_CLOSE = object()


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualScheduler(Scheduler):
    """Scheduler driven by advance() instead of the wall clock."""

    def __init__(self):
        self.now = 0.0
        self._timers = []
        self._seq = 0

    def _add(self, delay, callback, interval):
        handle = TimerHandle()
        self._seq += 1
        self._timers.append([self.now + delay, self._seq, interval, callback, handle])
        return handle

    def call_later(self, delay, callback):
        return self._add(delay, callback, None)

    def call_every(self, interval, callback):
        return self._add(interval, callback, interval)

    @property
    def pending(self):
        return [t for t in self._timers if not t[4].cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t[4].cancelled and t[0] <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t[0], t[1]))
            self.now = timer[0]
            if timer[2] is None:
                self._timers.remove(timer)
                timer[4].cancel()
            else:
                timer[0] += timer[2]
            run_callback(timer[3])
        self.now = target
        self._timers = self.pending


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.close_code = None
        self.close_reason = ""
        self.closed = False
        self._incoming = asyncio.Queue()

    def feed(self, message) -> None:
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self, code: int = 1006, reason: str = "") -> None:
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_CLOSE)

    async def send(self, frame) -> None:
        self.sent.append(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self.close_reason = reason
            self._incoming.put_nowait(_CLOSE)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            message = await self._incoming.get()
            if message is _CLOSE:
                self.closed = True
                return
            yield message

    @property
    def sent_messages(self):
        return [json.loads(frame) for frame in self.sent]

    @property
    def sent_types(self):
        return [message["type"] for message in self.sent_messages]


class FakeConnector:
    """Connector returning FakeWebSockets, or failing while ``fail`` is set."""

    def __init__(self):
        self.urls = []
        self.sockets = []
        self.fail = False

    async def __call__(self, url):
        self.urls.append(url)
        if self.fail:
            raise OSError("Connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


class RecordingSink(RealtimeEventSink):
    """Event sink that records every callback."""

    def __init__(self):
        self.messages = []
        self.statuses = []
        self.states = []
        self.speech = []
        self.errors = []
        self.audio = []
        self.events = []

    def on_message(self, role, text):
        self.messages.append((role, text))

    def on_status_change(self, status):
        self.statuses.append(status)

    def on_connection_change(self, state, attempt):
        self.states.append((state, attempt))

    def on_speech_activity(self, active):
        self.speech.append(active)

    def on_error(self, error):
        self.errors.append(error)

    def on_audio_delta(self, audio):
        self.audio.append(audio)

    def on_event(self, event):
        self.events.append(event)


class FakeCaptureDevice(CaptureDevice):
    """Capture device fed by push(); None ends the stream, an exception fails it."""

    def __init__(self, start_error=None):
        self.start_error = start_error
        self.started_with = None
        self.stopped = False
        self._frames = asyncio.Queue()

    def start_capture(self, sample_rate):
        if self.start_error is not None:
            raise self.start_error
        self.started_with = sample_rate
        return self._iterate()

    async def _iterate(self):
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            if isinstance(frame, Exception):
                raise frame
            yield frame

    def push(self, frame) -> None:
        self._frames.put_nowait(frame)

    def stop_capture(self) -> None:
        self.stopped = True


@pytest.fixture
def settings():
    """Settings pointing at a test endpoint."""
    return ClientSettings(api_key="test-key", url="wss://realtime.example.test/v4/realtime")


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def client(settings, sink, scheduler, connector):
    """A RealtimeSessionClient wired to in-memory fakes."""
    return RealtimeSessionClient(settings, events=sink, scheduler=scheduler, connector=connector)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove client variables from the environment and restore them afterwards."""
    for variable in ENV_VARIABLES:
        monkeypatch.setenv(variable, "")
        monkeypatch.delenv(variable)
    return monkeypatch
