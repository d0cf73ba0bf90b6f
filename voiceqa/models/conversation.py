"""
Conversation data model for the synthetic test caller.

This module defines the immutable inputs of a conversational test (the test
case and the provider credentials), the records a session accumulates while a
call is live (transcript turns and captured audio segments), and the single
result a session is destroyed into.
"""

import base64
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from voiceqa.config.constants import (
    PROVIDER_ELEVENLABS,
    PROVIDER_RETELL,
    PROVIDER_VAPI,
    ROLE_AI_AGENT,
    ROLE_TEST_CALLER,
)

Role = Literal["test_caller", "ai_agent"]


class TestCaseSpec(BaseModel):
    """A single test case the synthetic caller plays out."""

    # Keep pytest from collecting this model as a test class
    __test__ = False

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    scenario: str = Field(..., description="Situation the caller is in")
    opening_goal: str = Field("", description="What the caller is trying to achieve")
    expected_outcome: str = Field("", description="What the agent should do")
    category: str = "general"


class ProviderCredentials(BaseModel):
    """Connection details for the voice agent under test."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["elevenlabs", "retell", "vapi"]
    agent_id: str
    api_key: str
    base_url: Optional[str] = None

    @field_validator("agent_id", "api_key")
    def validate_not_empty(cls, v):
        """Reject blank identifiers early, before any network call."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v


SUPPORTED_PROVIDERS = [PROVIDER_ELEVENLABS, PROVIDER_RETELL, PROVIDER_VAPI]


class ConversationTurn(BaseModel):
    """One uninterrupted utterance by either party."""

    role: Role
    content: str
    timestamp_ms: int
    duration_ms: Optional[int] = None


class AudioFormat(BaseModel):
    """Encoding and sample rate of a mono audio stream."""

    model_config = ConfigDict(frozen=True)

    encoding: Literal["ulaw", "pcm"]
    sample_rate: int = Field(..., gt=0)

    @classmethod
    def parse(cls, tag: Optional[str], default: str = "pcm_16000") -> "AudioFormat":
        """
        Parse a provider format tag such as ``ulaw_8000`` or ``pcm_16000``.

        Unknown or missing tags fall back to ``default``.
        """
        for candidate in (tag, default):
            if not candidate:
                continue
            encoding, _, rate = candidate.lower().partition("_")
            if encoding in ("ulaw", "mulaw"):
                encoding = "ulaw"
            if encoding in ("ulaw", "pcm") and rate.isdigit():
                return cls(encoding=encoding, sample_rate=int(rate))
        raise ValueError(f"Unrecognised audio format: {tag!r}")

    @property
    def tag(self) -> str:
        return f"{self.encoding}_{self.sample_rate}"

    @property
    def sample_width(self) -> int:
        """Bytes per sample on the wire."""
        return 1 if self.encoding == "ulaw" else 2

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.sample_width

    def silence(self, seconds: float) -> bytes:
        """Return ``seconds`` of silence in this format."""
        samples = int(self.sample_rate * seconds)
        if self.encoding == "ulaw":
            return b"\xff" * samples
        return b"\x00" * (samples * 2)


ULAW_8000 = AudioFormat(encoding="ulaw", sample_rate=8000)
PCM_16000 = AudioFormat(encoding="pcm", sample_rate=16000)


class AudioSegment(BaseModel):
    """Audio captured for one turn, in the format it arrived or was sent in."""

    role: Role
    raw_bytes: bytes
    audio_format: AudioFormat


class RecordingArtifact(BaseModel):
    """A playable recording: either inline audio or a provider-hosted URL."""

    model_config = ConfigDict(frozen=True)

    content_type: str = "audio/wav"
    data: Optional[bytes] = None
    url: Optional[str] = None

    def data_url(self) -> Optional[str]:
        """Render the recording as a link a browser can play."""
        if self.url:
            return self.url
        if self.data is None:
            return None
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.content_type};base64,{encoded}"


class SessionState(str, Enum):
    """Turn-taking states of a conversation session."""

    CONNECTING = "connecting"
    AWAITING_GREETING = "awaiting_greeting"
    LISTENING_TO_AGENT = "listening_to_agent"
    PROCESSING_AGENT_TURN = "processing_agent_turn"
    AWAITING_CALLER_REPLY = "awaiting_caller_reply"
    SENDING_CALLER_AUDIO = "sending_caller_audio"
    CLOSING = "closing"
    FINALIZED = "finalized"


class ConversationResult(BaseModel):
    """Outcome of one conversational test, produced exactly once."""

    model_config = ConfigDict(frozen=True)

    call_id: str = ""
    duration_ms: int = 0
    transcript: List[ConversationTurn] = Field(default_factory=list)
    recording: Optional[RecordingArtifact] = None
    agent_transcript_text: str = ""
    test_caller_transcript_text: str = ""
    message_count: int = 0
    success: bool = False
    error: Optional[str] = None

    @classmethod
    def from_transcript(
        cls,
        call_id: str,
        duration_ms: int,
        transcript: List[ConversationTurn],
        recording: Optional[RecordingArtifact] = None,
        error: Optional[str] = None,
    ) -> "ConversationResult":
        """Build a result, deriving the per-role texts and the success flag."""
        agent_text = "\n".join(t.content for t in transcript if t.role == ROLE_AI_AGENT)
        caller_text = "\n".join(t.content for t in transcript if t.role == ROLE_TEST_CALLER)
        return cls(
            call_id=call_id,
            duration_ms=duration_ms,
            transcript=list(transcript),
            recording=recording,
            agent_transcript_text=agent_text,
            test_caller_transcript_text=caller_text,
            message_count=len(transcript),
            success=len(transcript) > 0,
            error=error,
        )

    @classmethod
    def failed(cls, error: str, duration_ms: int = 0, call_id: str = "") -> "ConversationResult":
        """Result for a run that never produced a session."""
        return cls(call_id=call_id, duration_ms=duration_ms, success=False, error=error)
