import os
import unittest
from unittest.mock import patch

from pydantic import TypeAdapter, ValidationError

from voiceqa.config.settings import SessionTimings, Settings
from voiceqa.models.conversation import (
    PCM_16000,
    ULAW_8000,
    AudioFormat,
    ConversationResult,
    ConversationTurn,
    ProviderCredentials,
    RecordingArtifact,
    TestCaseSpec,
)
from voiceqa.models.events import ChannelClosed, ChannelEvent, ChannelReady, TextDelta


class TestConversationModels(unittest.TestCase):
    def test_test_case_is_immutable(self):
        case = TestCaseSpec(id="1", name="n", scenario="s")
        with self.assertRaises(ValidationError):
            case.scenario = "changed"
        self.assertEqual(case.category, "general")

    def test_credentials_validation(self):
        ProviderCredentials(provider="vapi", agent_id="a", api_key="k")
        with self.assertRaises(ValidationError):
            ProviderCredentials(provider="vapi", agent_id="", api_key="k")
        with self.assertRaises(ValidationError):
            ProviderCredentials(provider="twilio", agent_id="a", api_key="k")

    def test_audio_format_parse(self):
        self.assertEqual(AudioFormat.parse("ulaw_8000"), ULAW_8000)
        self.assertEqual(AudioFormat.parse("mulaw_8000"), ULAW_8000)
        self.assertEqual(AudioFormat.parse("pcm_16000"), PCM_16000)
        self.assertEqual(AudioFormat.parse(None), PCM_16000)
        self.assertEqual(AudioFormat.parse("mp3_44100", "ulaw_8000"), ULAW_8000)
        self.assertEqual(PCM_16000.tag, "pcm_16000")
        self.assertEqual(ULAW_8000.bytes_per_second, 8000)
        self.assertEqual(PCM_16000.bytes_per_second, 32000)

    def test_result_from_transcript(self):
        transcript = [
            ConversationTurn(role="ai_agent", content="Hello.", timestamp_ms=0),
            ConversationTurn(role="test_caller", content="Hi!", timestamp_ms=3100),
            ConversationTurn(role="ai_agent", content="How can I help?", timestamp_ms=6000),
        ]
        result = ConversationResult.from_transcript("c1", 9000, transcript)
        self.assertTrue(result.success)
        self.assertEqual(result.message_count, 3)
        self.assertEqual(result.agent_transcript_text, "Hello.\nHow can I help?")
        self.assertEqual(result.test_caller_transcript_text, "Hi!")

    def test_empty_transcript_is_not_success(self):
        result = ConversationResult.from_transcript("c1", 100, [])
        self.assertFalse(result.success)
        self.assertFalse(ConversationResult.failed("nope").success)

    def test_recording_data_url(self):
        self.assertEqual(RecordingArtifact(url="https://x/r.wav").data_url(), "https://x/r.wav")
        self.assertIsNone(RecordingArtifact().data_url())


class TestChannelEvents(unittest.TestCase):
    def test_discriminated_union(self):
        adapter = TypeAdapter(ChannelEvent)
        event = adapter.validate_python({"kind": "text_delta", "text": "hi"})
        self.assertIsInstance(event, TextDelta)
        self.assertEqual(event.role, "ai_agent")
        ready = adapter.validate_python({"kind": "channel_ready", "audio_format": {"encoding": "ulaw", "sample_rate": 8000}})
        self.assertIsInstance(ready, ChannelReady)
        self.assertIsNone(ready.output_format)

    def test_channel_closed_normal(self):
        self.assertTrue(ChannelClosed().is_normal)
        self.assertFalse(ChannelClosed(code=1011).is_normal)


class TestSettings(unittest.TestCase):
    def test_timing_defaults(self):
        timings = SessionTimings()
        self.assertEqual(timings.greeting_grace, 3.0)
        self.assertEqual(timings.text_silence, 3.0)
        self.assertEqual(timings.audio_silence, 2.5)
        self.assertEqual(timings.agent_response_timeout, 30.0)
        self.assertEqual(timings.session_timeout, 180.0)
        self.assertEqual((timings.min_turns, timings.soft_turns, timings.max_turns), (4, 8, 30))

    def test_from_env(self):
        env = {
            "OPENAI_API_KEY": "sk",
            "ELEVENLABS_API_KEY": "xi",
            "TTS_PROVIDER": "OpenAI",
            "MAX_CONCURRENT_SESSIONS": "7",
        }
        with patch.dict(os.environ, env):
            settings = Settings.from_env()
        self.assertEqual(settings.openai_api_key, "sk")
        self.assertEqual(settings.elevenlabs_api_key, "xi")
        self.assertEqual(settings.tts_provider, "openai")
        self.assertEqual(settings.max_concurrent_sessions, 7)


if __name__ == "__main__":
    unittest.main()
