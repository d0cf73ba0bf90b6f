"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the engine,
providing a centralized location for provider endpoints, audio format tags and
default model settings.
"""

# Logger name used throughout the application
LOGGER_NAME = "voiceqa"

# Default OpenAI model for the synthetic caller
DEFAULT_CALLER_MODEL = "gpt-4o-mini"

# Default ElevenLabs voice for the synthetic caller (neutral American voice)
DEFAULT_TTS_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"
DEFAULT_TTS_MODEL_ID = "eleven_turbo_v2"

# Audio format tags as negotiated by the providers
AUDIO_FORMAT_ULAW_8000 = "ulaw_8000"
AUDIO_FORMAT_PCM_16000 = "pcm_16000"

# Provider identifiers
PROVIDER_ELEVENLABS = "elevenlabs"
PROVIDER_RETELL = "retell"
PROVIDER_VAPI = "vapi"

# Provider endpoints
ELEVENLABS_API_BASE = "https://api.elevenlabs.io"
RETELL_API_BASE = "https://api.retellai.com"
RETELL_WS_BASE = "wss://api.retellai.com/audio-websocket"
VAPI_API_BASE = "https://api.vapi.ai"

# ElevenLabs Conversational AI message types
MESSAGE_TYPE_INITIATION_METADATA = "conversation_initiation_metadata"
MESSAGE_TYPE_AGENT_RESPONSE = "agent_response"
MESSAGE_TYPE_AUDIO = "audio"
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"

# Transcript roles
ROLE_TEST_CALLER = "test_caller"
ROLE_AI_AGENT = "ai_agent"

# Websocket close code for a normal closure
CLOSE_CODE_NORMAL = 1000
CLOSE_CODE_ABNORMAL = 1006
