"""
Models module for the data structures of the test-caller engine.

Key components:
- conversation: Test cases, provider credentials, transcript turns, audio
  formats and segments, recordings and the final ConversationResult.
- events: The five abstract channel events every provider is reduced to.
- provider_schemas: Pydantic models of the ElevenLabs, Retell and VAPI wire
  messages and setup responses.

Usage examples:
```python
from voiceqa.models.conversation import ProviderCredentials, TestCaseSpec

test_case = TestCaseSpec(
    id="refund-1",
    name="Refund request",
    scenario="You bought headphones that stopped working after a week",
    opening_goal="I'd like to return my headphones",
)
credentials = ProviderCredentials(provider="retell", agent_id="agent_123", api_key="key")
```
"""

from voiceqa.models.conversation import (
    PCM_16000,
    ULAW_8000,
    AudioFormat,
    AudioSegment,
    ConversationResult,
    ConversationTurn,
    ProviderCredentials,
    RecordingArtifact,
    SessionState,
    TestCaseSpec,
)
from voiceqa.models.events import (
    AudioDelta,
    ChannelClosed,
    ChannelEvent,
    ChannelReady,
    ControlPing,
    TextDelta,
)
