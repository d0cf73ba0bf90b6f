"""
Environment-backed settings for the engine.

Session timings are grouped in ``SessionTimings`` so a test can shrink every
timer at once; service credentials are read from the environment (optionally
populated from a ``.env`` file by the entry points).
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from voiceqa.config.constants import DEFAULT_CALLER_MODEL, DEFAULT_TTS_VOICE_ID


class SessionTimings(BaseModel):
    """Timer durations (seconds) and turn limits of one conversation session."""

    greeting_grace: float = Field(3.0, description="Wait for the agent to greet first")
    text_silence: float = Field(3.0, description="Quiet period after a text delta")
    audio_silence: float = Field(2.5, description="Quiet period after an audio delta")
    agent_response_timeout: float = Field(30.0, description="Watchdog after our reply")
    session_timeout: float = Field(180.0, description="Hard ceiling for the whole call")
    close_delay: float = Field(3.0, description="Delay before closing after goodbye")
    frame_interval: float = Field(0.1, description="Delay between outbound audio frames")
    frame_seconds: float = Field(1.0, description="Audio duration per outbound frame")
    trailing_silence: float = Field(1.5, description="Silence appended after a reply")
    retry_delay: float = Field(0.5, description="Back-off between generation attempts")
    max_generation_attempts: int = Field(3, ge=1)
    max_tts_attempts: int = Field(3, ge=1)
    min_turns: int = Field(4, ge=0)
    soft_turns: int = Field(8, ge=0)
    max_turns: int = Field(30, ge=1)


class Settings(BaseModel):
    """Process-wide configuration."""

    openai_api_key: Optional[str] = None
    caller_model: str = DEFAULT_CALLER_MODEL
    elevenlabs_api_key: Optional[str] = None
    tts_provider: str = "elevenlabs"
    tts_voice_id: str = DEFAULT_TTS_VOICE_ID
    max_concurrent_sessions: int = 4
    timings: SessionTimings = Field(default_factory=SessionTimings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            caller_model=os.getenv("OPENAI_CALLER_MODEL", DEFAULT_CALLER_MODEL),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
            tts_provider=os.getenv("TTS_PROVIDER", "elevenlabs").lower(),
            tts_voice_id=os.getenv("ELEVENLABS_VOICE_ID", DEFAULT_TTS_VOICE_ID),
            max_concurrent_sessions=int(os.getenv("MAX_CONCURRENT_SESSIONS", "4")),
        )
