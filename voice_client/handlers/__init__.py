"""
Handlers for inbound realtime session events.

Each handler takes the decoded event and the RealtimeSessionClient that
received it, and mutates the client's conversation state or reports to its
event sink. Handlers never await: outbound replies are enqueued through the
client's synchronous command methods.

Key components:
- session_handlers: session.created / session.updated negotiation, remote
  errors, input audio buffer acknowledgements and server-side speech detection
  (including barge-in).
- response_handlers: response lifecycle and streamed fragments, reassembled
  into one assistant message per completed response.
- conversation_handlers: conversation item snapshots, deletions and input
  audio transcriptions, all deduplicated by item id.

Usage examples:
```python
from voice_client.handlers import response_handlers
from voice_client.models.realtime_schemas import parse_server_event

event = parse_server_event(frame)
if event.type == "response.done":
    response_handlers.handle_response_done(event, client)
```
"""

# Handlers module initialization
