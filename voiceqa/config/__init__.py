"""
Configuration module for the conversational test-caller engine.

This module provides centralized configuration management for the package,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Provider endpoints, message types, audio format tags and roles.
- logging_config: Console and rotating-file logging under a single named logger.
- settings: Pydantic models for credentials and session timer durations.

Usage examples:
```python
from voiceqa.config.logging_config import configure_logging
logger = configure_logging()

from voiceqa.config.settings import Settings, SessionTimings
settings = Settings.from_env()
fast = SessionTimings(text_silence=0.05, audio_silence=0.05)
```
"""

# Config module initialization
