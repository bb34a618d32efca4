"""
Error types for the realtime voice client.

The taxonomy separates failures the client recovers from on its own
(transport drops, malformed frames) from those the caller has to act on
(connect failures, reconnect exhaustion, remote protocol errors, capture
device failures).
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes reported by the client."""

    CONNECTION_FAILED = "CONNECTION_FAILED"
    NOT_CONNECTED = "NOT_CONNECTED"
    TRANSPORT_DROP = "TRANSPORT_DROP"
    RECONNECT_EXHAUSTED = "RECONNECT_EXHAUSTED"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    MALFORMED_MESSAGE = "MALFORMED_MESSAGE"
    DEVICE_ERROR = "DEVICE_ERROR"


class RealtimeError(Exception):
    """Base exception for realtime client errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging or display."""
        result = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class RealtimeConnectionError(RealtimeError, ConnectionError):
    """Raised on handshake failure or when sending while the connection is not open."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.CONNECTION_FAILED, **details: Any):
        super().__init__(code=code, message=message, details=details)


class TransportDrop(RealtimeError):
    """Unclean close of an open connection."""

    def __init__(self, close_code: Optional[int] = None, reason: str = ""):
        self.close_code = close_code
        self.reason = reason
        super().__init__(
            code=ErrorCode.TRANSPORT_DROP,
            message=f"Connection dropped (code={close_code}, reason={reason or 'n/a'})",
            details={"close_code": close_code, "reason": reason},
        )


class ReconnectExhausted(RealtimeError):
    """Raised once the reconnect sequence gave up."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            code=ErrorCode.RECONNECT_EXHAUSTED,
            message=f"Reconnection failed after {attempts} attempts",
            details={"attempts": attempts},
        )


class ProtocolError(RealtimeError):
    """Remote-reported error event or a payload that could not be decoded."""

    def __init__(
        self,
        message: str,
        error_type: Optional[str] = None,
        error_code: Optional[str] = None,
        code: ErrorCode = ErrorCode.PROTOCOL_ERROR,
    ):
        self.error_type = error_type
        self.error_code = error_code
        details = {}
        if error_type:
            details["type"] = error_type
        if error_code:
            details["code"] = error_code
        super().__init__(code=code, message=message, details=details)


class DeviceError(RealtimeError):
    """Audio capture device failure."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        details = {"cause": repr(cause)} if cause is not None else {}
        super().__init__(code=ErrorCode.DEVICE_ERROR, message=message, details=details)
