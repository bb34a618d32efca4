"""
Event sink interface between the client core and its user interface.

A sink is passed to the client at construction. Every method has a no-op
default so a front end only overrides what it renders.
"""

from voice_client.errors import RealtimeError
from voice_client.models.realtime_schemas import ServerEvent
from voice_client.models.session import ConnectionState, ResponseStatus


class RealtimeEventSink:
    """Receives messages, status and connection changes from the client."""

    def on_message(self, role: str, text: str) -> None:
        """A finalized message for the conversation view."""

    def on_status_change(self, status: ResponseStatus) -> None:
        """Agent activity changed (idle, thinking, speaking, error)."""

    def on_connection_change(self, state: ConnectionState, attempt: int) -> None:
        """Connection lifecycle changed; ``attempt`` is the reconnect attempt number."""

    def on_speech_activity(self, active: bool) -> None:
        """The user started or stopped speaking."""

    def on_error(self, error: RealtimeError) -> None:
        """A failure the user should see."""

    def on_audio_delta(self, audio: bytes) -> None:
        """Decoded agent audio, in the session's output format."""

    def on_event(self, event: ServerEvent) -> None:
        """Every decoded inbound event, before the client handles it."""
