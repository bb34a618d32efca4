"""
Services module for runtime infrastructure shared by the client components.

Key components:
- scheduler: Cancelable one-shot and periodic timers behind a small Scheduler
  interface. AsyncioScheduler runs on the event loop; tests inject a manually
  advanced implementation so backoff, heartbeat and VAD-poll behaviour can be
  checked without wall-clock delays.
"""

# Services module initialization
