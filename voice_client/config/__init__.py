"""
Configuration module for the realtime voice client.

This module provides centralized configuration management for the client,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Defines protocol message types, endpoint defaults and the tuning
  values shared by the connection layer and the audio pipeline.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.
- settings: Loads and validates ClientSettings from the environment and an
  optional .env file.

Usage examples:
```python
from voice_client.config.logging_config import configure_logging
from voice_client.config.settings import load_settings

logger = configure_logging()
settings = load_settings(model="glm-4-realtime")
logger.info(f"Connecting to {settings.url}")
```
"""

# Config module initialization
