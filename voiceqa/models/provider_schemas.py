"""
Pydantic models for the provider wire protocols.

This module defines structured data models for the messages exchanged with
ElevenLabs Conversational AI, Retell and VAPI over their live channels and the
REST responses used to set those channels up. Incoming models tolerate the
flat and nested field layouts the providers have used over time.
"""

import base64
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderMessage(BaseModel):
    """Base model for incoming provider messages; unknown fields are kept."""

    model_config = ConfigDict(extra="allow")


# ElevenLabs Conversational AI


class InitiationMetadataEvent(BaseModel):
    """Body of ``conversation_initiation_metadata``."""

    model_config = ConfigDict(extra="allow")

    conversation_id: str = ""
    user_input_audio_format: Optional[str] = None
    agent_output_audio_format: Optional[str] = None


class ElevenLabsInitiationMetadata(ProviderMessage):
    """Model for the first message of an ElevenLabs conversation."""

    type: Literal["conversation_initiation_metadata"]
    conversation_initiation_metadata_event: Optional[InitiationMetadataEvent] = None
    conversation_id: Optional[str] = None

    @property
    def metadata(self) -> InitiationMetadataEvent:
        return self.conversation_initiation_metadata_event or InitiationMetadataEvent()

    @property
    def call_id(self) -> str:
        return self.metadata.conversation_id or self.conversation_id or ""


class ElevenLabsAgentResponse(ProviderMessage):
    """Model for ``agent_response``: the text the agent is speaking."""

    type: Literal["agent_response"]
    agent_response_event: Optional[Dict[str, Any]] = None
    agent_response: Optional[str] = None
    text: Optional[str] = None

    @property
    def content(self) -> str:
        event = self.agent_response_event or {}
        return event.get("agent_response") or self.agent_response or self.text or ""


class ElevenLabsAudio(ProviderMessage):
    """Model for ``audio``: a base64 chunk of agent speech."""

    type: Literal["audio", "audio_event"]
    audio_event: Optional[Dict[str, Any]] = None
    audio_base_64: Optional[str] = None

    @property
    def audio(self) -> bytes:
        encoded = (self.audio_event or {}).get("audio_base_64") or self.audio_base_64
        if not encoded:
            return b""
        return base64.b64decode(encoded)


class ElevenLabsPing(ProviderMessage):
    """Model for ``ping``; must be answered with a pong carrying the event id."""

    type: Literal["ping"]
    ping_event: Optional[Dict[str, Any]] = None
    event_id: Optional[Any] = None

    @property
    def ping_id(self) -> Optional[str]:
        event_id = (self.ping_event or {}).get("event_id", self.event_id)
        return None if event_id is None else str(event_id)


class ElevenLabsUserAudioChunk(BaseModel):
    """Model for outgoing caller audio."""

    user_audio_chunk: str = Field(..., description="Base64-encoded audio data")

    @field_validator("user_audio_chunk")
    def validate_audio_chunk(cls, v):
        """Validate that audio chunk is valid base64."""
        try:
            if v:
                base64.b64decode(v)
            else:
                raise ValueError("Audio chunk cannot be empty")
        except Exception:
            raise ValueError("Invalid base64 encoded audio data")
        return v


class ElevenLabsPong(BaseModel):
    """Model for the pong answering a ping."""

    type: Literal["pong"] = "pong"
    event_id: Any


class SignedUrlResponse(BaseModel):
    """Response of ``get_signed_url``."""

    model_config = ConfigDict(extra="allow")

    signed_url: str


# Retell


class RetellCreateCallResponse(BaseModel):
    """Response of ``create-web-call``."""

    model_config = ConfigDict(extra="allow")

    call_id: str
    access_token: str


class RetellAgentResponse(ProviderMessage):
    """Model for Retell's ``agent_response`` text update."""

    response_type: Literal["agent_response"]
    content: str = ""


class RetellPingPong(ProviderMessage):
    """Model for Retell keep-alives."""

    response_type: Literal["ping_pong"]
    timestamp: Optional[int] = None


class RetellConfig(BaseModel):
    """Configuration sent right after the Retell socket opens."""

    response_type: Literal["config"] = "config"
    config: Dict[str, Any] = Field(
        default_factory=lambda: {"auto_reconnect": False, "call_details": True}
    )


# VAPI


class VapiTransport(BaseModel):
    model_config = ConfigDict(extra="allow")

    websocketCallUrl: str


class VapiCreateCallResponse(BaseModel):
    """Response of ``POST /call`` with a websocket transport."""

    model_config = ConfigDict(extra="allow")

    id: str
    transport: VapiTransport


class VapiTranscript(ProviderMessage):
    """Model for VAPI transcript updates."""

    type: Literal["transcript"]
    role: str = ""
    transcriptType: str = "final"
    transcript: str = ""

    @property
    def is_final_assistant(self) -> bool:
        return self.role == "assistant" and self.transcriptType == "final"
