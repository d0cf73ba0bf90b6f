"""
Services module for external speech integrations.

Key components:
- tts: SpeechSynthesizer interface with ElevenLabs (HTTP, via httpx) and
  OpenAI speech implementations, both returning audio in the channel's
  negotiated input format.

Usage examples:
```python
from voiceqa.services.tts import ElevenLabsSpeechSynthesizer
from voiceqa.models.conversation import ULAW_8000

tts = ElevenLabsSpeechSynthesizer(api_key)
audio = await tts.synthesize("Hello?", ULAW_8000)
```
"""

# Services module initialization
