"""
Realtime session client and the voice front-end shim.

Key components:
- realtime_api: RealtimeSessionClient, which owns the WebSocket connection,
  the session negotiation, response reassembly and reconnection.
- voice_session: VoiceSession, which wires a capture device and the voice
  activity detector into the client and applies the turn-taking policy.
- events: RealtimeEventSink, the callback surface a user interface implements.
"""

# Bot module initialization
