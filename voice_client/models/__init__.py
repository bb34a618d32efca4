"""
Models module for data structures and state management in the realtime voice client.

This module provides structured data models and state management classes for the
client, defining the wire schemas of the realtime protocol and the state the
client keeps for one session.

Key components:
- realtime_schemas: Pydantic models for every inbound event and outbound command,
  plus parse_server_event, the single decoder keyed on the ``type`` field.
- session: ConnectionState, ResponseStatus and the immutable SessionConfig record.
- conversation: ConversationItem, ResponseState and ConversationState, which holds
  the item-id deduplication set and the response currently being streamed.

Usage examples:
```python
from voice_client.models.realtime_schemas import parse_server_event, AudioAppendCommand

event = parse_server_event('{"type": "response.text.delta", "delta": "Hi"}')
print(event.delta)

command = AudioAppendCommand(audio=payload)
await websocket.send(command.to_json())
```
"""

from voice_client.models.conversation import (
    ContentPart,
    ConversationItem,
    ConversationState,
    MessageRole,
    ResponseLifecycle,
    ResponseState,
)
from voice_client.models.realtime_schemas import ClientCommand, ServerEvent, parse_server_event
from voice_client.models.session import ConnectionState, ResponseStatus, SessionConfig
