"""
Abstract channel events.

Every provider adapter reduces its concrete message set to exactly these five
events. They form a closed union discriminated on ``kind`` so the session can
dispatch them in one place.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from voiceqa.models.conversation import AudioFormat, Role


class _ChannelEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


class ChannelReady(_ChannelEvent):
    """The provider accepted the call and negotiated audio formats."""

    kind: Literal["channel_ready"] = "channel_ready"
    call_id: str = ""
    audio_format: AudioFormat = Field(..., description="Format the agent expects from us")
    output_format: Optional[AudioFormat] = Field(
        None, description="Format the agent speaks in, when it differs"
    )


class TextDelta(_ChannelEvent):
    """
    A piece of transcript text.

    ``continues`` marks text that extends the previous fragment of the same
    utterance and is joined to it without a separator.
    """

    kind: Literal["text_delta"] = "text_delta"
    role: Role = "ai_agent"
    text: str
    continues: bool = False


class AudioDelta(_ChannelEvent):
    """A piece of raw audio."""

    kind: Literal["audio_delta"] = "audio_delta"
    role: Role = "ai_agent"
    data: bytes


class ControlPing(_ChannelEvent):
    """A keep-alive the provider expects to be answered."""

    kind: Literal["control_ping"] = "control_ping"
    ping_id: Optional[str] = None


class ChannelClosed(_ChannelEvent):
    """The live channel is gone, normally or not."""

    kind: Literal["channel_closed"] = "channel_closed"
    code: int = 1000
    reason: str = ""

    @property
    def is_normal(self) -> bool:
        return self.code == 1000


ChannelEvent = Annotated[
    Union[ChannelReady, TextDelta, AudioDelta, ControlPing, ChannelClosed],
    Field(discriminator="kind"),
]
