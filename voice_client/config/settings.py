"""
Environment-driven settings for the realtime voice client.

Values are read from the process environment, optionally seeded from a
``.env`` file, and validated by a Pydantic model so that a typo in a
variable surfaces at startup rather than on the first reconnect.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import dotenv
from pydantic import BaseModel, Field, field_validator

from voice_client.config.constants import (
    AUTH_QUERY_PARAM,
    CONNECTION_TIMEOUT,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_URL,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_VOICE,
    HEARTBEAT_INTERVAL,
    LOGGER_NAME,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_DELAY,
    TURN_DETECTION_CLIENT_VAD,
)

logger = logging.getLogger(LOGGER_NAME)

# Environment variable -> settings field
ENV_VARIABLES = {
    "REALTIME_API_KEY": "api_key",
    "REALTIME_URL": "url",
    "REALTIME_MODEL": "model",
    "REALTIME_VOICE": "voice",
    "REALTIME_INSTRUCTIONS": "instructions",
    "REALTIME_TURN_DETECTION": "turn_detection",
    "REALTIME_SAMPLE_RATE": "sample_rate",
    "REALTIME_MAX_RECONNECT_ATTEMPTS": "max_reconnect_attempts",
    "REALTIME_RECONNECT_DELAY": "reconnect_delay",
    "REALTIME_HEARTBEAT_INTERVAL": "heartbeat_interval",
    "LOG_LEVEL": "log_level",
}


class ClientSettings(BaseModel):
    """Connection and pipeline settings for one client instance."""

    api_key: Optional[str] = Field(None, description="Opaque token sent as a URL query parameter")
    url: str = Field(DEFAULT_REALTIME_URL, description="Realtime WebSocket endpoint")
    model: str = DEFAULT_REALTIME_MODEL
    voice: str = DEFAULT_VOICE
    instructions: str = DEFAULT_INSTRUCTIONS
    turn_detection: Literal["client_vad", "server_vad"] = TURN_DETECTION_CLIENT_VAD
    sample_rate: int = Field(DEFAULT_SAMPLE_RATE, gt=0)
    max_reconnect_attempts: int = Field(MAX_RECONNECT_ATTEMPTS, ge=0)
    reconnect_delay: float = Field(RECONNECT_DELAY, ge=0)
    heartbeat_interval: float = Field(HEARTBEAT_INTERVAL, gt=0)
    connect_timeout: float = Field(CONNECTION_TIMEOUT, gt=0)
    log_level: str = "INFO"

    @field_validator("url")
    def validate_url(cls, v):
        """Validate that the endpoint is a WebSocket URL."""
        if urlsplit(v).scheme not in ("ws", "wss"):
            raise ValueError(f"Realtime URL must use ws:// or wss://, got: {v}")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    def connection_url(self) -> str:
        """
        Build the connection URL carrying the API key as a query parameter.

        Existing query parameters on the endpoint are preserved.
        """
        parts = urlsplit(self.url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != AUTH_QUERY_PARAM]
        if self.api_key:
            query.append((AUTH_QUERY_PARAM, self.api_key))
        return urlunsplit(parts._replace(query=urlencode(query)))


def load_settings(env_file: Optional[str] = ".env", **overrides: Any) -> ClientSettings:
    """
    Load settings from the environment, seeded by an optional .env file.

    Args:
        env_file: Path of a dotenv file to load if it exists (None to skip)
        **overrides: Explicit values that win over the environment

    Returns:
        ClientSettings: The validated settings
    """
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            dotenv.load_dotenv(env_path)
            logger.debug(f"Loaded environment from {env_path}")

    values: Dict[str, Any] = {}
    for variable, field_name in ENV_VARIABLES.items():
        raw = os.getenv(variable)
        if raw is not None and raw != "":
            values[field_name] = raw

    values.update({k: v for k, v in overrides.items() if v is not None})
    return ClientSettings(**values)
