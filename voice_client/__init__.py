"""
Realtime Voice Client - streaming conversations with a realtime speech model

This package connects to a realtime conversational endpoint over a persistent
WebSocket, negotiates a session, streams microphone audio gated by a local
voice activity detector, and reassembles the agent's streamed replies into
finalized messages for a user interface.

Architecture Overview:
- A single asyncio loop owns the connection, the conversation state and all
  timers
- Outbound commands are queued synchronously and written by one writer task
- Inbound frames are decoded into pydantic models and routed to handlers
- Unclean disconnects are retried with linear backoff

Key Components:
- audio: PCM/WAV/base64 codec, frequency-domain energy meter, voice activity
  detector, capture pipeline and the PyAudio microphone
- bot: RealtimeSessionClient, the VoiceSession shim and the event sink
- config: Constants, settings loaded from the environment, logging setup
- handlers: Per-event handlers for session, response and conversation events
- models: Protocol messages, session configuration and conversation state
- services: Scheduler abstraction for cancelable timers

Getting Started:
1. Set up environment variables (or a .env file):
   - REALTIME_API_KEY: Access token for the realtime endpoint
   - REALTIME_URL: Endpoint URL (default: the GLM realtime endpoint)
   - REALTIME_TURN_DETECTION: client_vad or server_vad
   - LOG_LEVEL: Logging level (default INFO)

2. Start the terminal client:
   ```bash
   python run.py            # text chat
   python run.py --mic      # text chat plus microphone input
   ```
"""

# Voice client package initialization
