"""
Constants and configuration values used throughout the client.

This module defines constants that are used across different parts of the client,
providing a centralized location for protocol names and tuning defaults so that
the connection layer, the audio pipeline and the tests agree on them.
"""

# Logger name used throughout the client
LOGGER_NAME = "voice_client"

# Remote endpoint defaults
DEFAULT_REALTIME_URL = "wss://open.bigmodel.cn/api/paas/v4/realtime"
DEFAULT_REALTIME_MODEL = "glm-4-realtime"
DEFAULT_VOICE = "tongtong"
DEFAULT_INSTRUCTIONS = "You are a helpful assistant. Answer clearly and concisely."
AUTH_QUERY_PARAM = "Authorization"

# Audio format constants
AUDIO_FORMAT_WAV = "wav"
AUDIO_FORMAT_PCM = "pcm"
DEFAULT_SAMPLE_RATE = 16000

# Turn detection modes
TURN_DETECTION_CLIENT_VAD = "client_vad"
TURN_DETECTION_SERVER_VAD = "server_vad"

# Connection tuning
MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY = 2.0  # seconds, multiplied by the attempt number
HEARTBEAT_INTERVAL = 30.0  # seconds
CONNECTION_TIMEOUT = 30.0  # seconds
NORMAL_CLOSURE = 1000

# WebSocket configuration
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32

# Finished response ids remembered to drop late fragments
CLOSED_RESPONSE_HISTORY = 64

# Voice activity detection
VAD_POLL_INTERVAL = 0.1  # seconds
VAD_DELAY_FRAME_LIMIT = 20
VAD_CHUNK_THRESHOLD = 10000  # bytes of encoded WAV before a forced flush
VAD_LOOKAHEAD_FRAMES = 8
VAD_BASELINE_DECAY = 0.95
CAPTURE_FRAMES_PER_BUFFER = 4096

# Client -> server message types
MESSAGE_TYPE_SESSION_CREATE = "session.create"
MESSAGE_TYPE_SESSION_UPDATE = "session.update"
MESSAGE_TYPE_AUDIO_APPEND = "input_audio_buffer.append"
MESSAGE_TYPE_AUDIO_COMMIT = "input_audio_buffer.commit"
MESSAGE_TYPE_AUDIO_CLEAR = "input_audio_buffer.clear"
MESSAGE_TYPE_ITEM_CREATE = "conversation.item.create"
MESSAGE_TYPE_ITEM_DELETE = "conversation.item.delete"
MESSAGE_TYPE_RESPONSE_CREATE = "response.create"
MESSAGE_TYPE_RESPONSE_CANCEL = "response.cancel"
MESSAGE_TYPE_HEARTBEAT = "heartbeat"

# Server -> client message types
MESSAGE_TYPE_ERROR = "error"
MESSAGE_TYPE_SESSION_CREATED = "session.created"
MESSAGE_TYPE_SESSION_UPDATED = "session.updated"
MESSAGE_TYPE_AUDIO_COMMITTED = "input_audio_buffer.committed"
MESSAGE_TYPE_AUDIO_CLEARED = "input_audio_buffer.cleared"
MESSAGE_TYPE_SPEECH_STARTED = "input_audio_buffer.speech_started"
MESSAGE_TYPE_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
MESSAGE_TYPE_SPEECH_STARTED_SHORT = "speech_started"
MESSAGE_TYPE_SPEECH_STOPPED_SHORT = "speech_stopped"
MESSAGE_TYPE_ITEM_CREATED = "conversation.item.created"
MESSAGE_TYPE_ITEM_DELETED = "conversation.item.deleted"
MESSAGE_TYPE_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
MESSAGE_TYPE_RESPONSE_CREATED = "response.created"
MESSAGE_TYPE_RESPONSE_DONE = "response.done"
MESSAGE_TYPE_RESPONSE_CANCELLED = "response.cancelled"
MESSAGE_TYPE_OUTPUT_ITEM_ADDED = "response.output_item.added"
MESSAGE_TYPE_OUTPUT_ITEM_DONE = "response.output_item.done"
MESSAGE_TYPE_CONTENT_PART_ADDED = "response.content_part.added"
MESSAGE_TYPE_CONTENT_PART_DONE = "response.content_part.done"
MESSAGE_TYPE_TEXT_DELTA = "response.text.delta"
MESSAGE_TYPE_TEXT_DONE = "response.text.done"
MESSAGE_TYPE_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
MESSAGE_TYPE_TRANSCRIPT_DONE = "response.audio_transcript.done"
MESSAGE_TYPE_AUDIO_DELTA = "response.audio.delta"
MESSAGE_TYPE_AUDIO_DONE = "response.audio.done"
