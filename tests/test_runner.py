"""
Tests for the test runner: wiring, failure conversion and bounded concurrency.
"""

import asyncio

import pytest

from conftest import FakeChannel, FakeTTS, ScriptedLLM
from voiceqa import runner
from voiceqa.config.settings import SessionTimings, Settings
from voiceqa.models.conversation import ULAW_8000, ProviderCredentials
from voiceqa.models.events import ChannelClosed, ChannelReady, TextDelta
from voiceqa.session.clock import ManualClock
from voiceqa.signaling.base import ChannelSetupError, SignalingClient


class StubSignalingClient(SignalingClient):
    provider = "retell"

    def __init__(self, channel=None, error=None, delay=0.0):
        super().__init__()
        self.channel = channel
        self.error = error
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.opened = []

    async def open_channel(self, agent_id, credentials):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self.opened.append(agent_id)
            if self.error:
                raise self.error
            return self.channel
        finally:
            self.active -= 1


@pytest.fixture
def credentials():
    return ProviderCredentials(provider="retell", agent_id="agent-1", api_key="secret")


@pytest.fixture
def settings():
    return Settings(openai_api_key="sk-test", elevenlabs_api_key="xi-test", timings=SessionTimings())


@pytest.mark.asyncio
async def test_run_conversational_test_returns_transcript(test_case, credentials, settings):
    channel = FakeChannel(events=[
        ChannelReady(call_id="call_7", audio_format=ULAW_8000),
        TextDelta(text="Thanks for calling Acme."),
        ChannelClosed(code=1000),
    ])
    result = await runner.run_conversational_test(
        test_case, credentials, settings,
        signaling_client=StubSignalingClient(channel),
        llm=ScriptedLLM(), tts=FakeTTS(), clock=ManualClock(),
    )

    assert result.success
    assert result.call_id == "call_7"
    assert result.agent_transcript_text == "Thanks for calling Acme."
    assert result.test_caller_transcript_text == "Caller reply 1"
    assert runner.active_sessions == 0


@pytest.mark.asyncio
async def test_setup_error_becomes_failed_result(test_case, credentials, settings):
    client = StubSignalingClient(error=ChannelSetupError("retell setup rejected (401): bad key"))
    tts = FakeTTS()

    result = await runner.run_conversational_test(
        test_case, credentials, settings, signaling_client=client, llm=ScriptedLLM(), tts=tts,
    )

    assert not result.success
    assert result.transcript == []
    assert "401" in result.error
    assert not tts.closed


@pytest.mark.asyncio
async def test_missing_tts_key_becomes_failed_result(test_case, credentials):
    settings = Settings(openai_api_key="sk-test", elevenlabs_api_key=None)
    client = StubSignalingClient(channel=FakeChannel())

    result = await runner.run_conversational_test(
        test_case, credentials, settings, signaling_client=client, llm=ScriptedLLM(),
    )

    assert not result.success
    assert "ELEVENLABS_API_KEY" in result.error
    assert client.opened == []


@pytest.mark.asyncio
async def test_unexpected_error_becomes_failed_result(test_case, credentials, settings):
    client = StubSignalingClient(error=RuntimeError("boom"))

    result = await runner.run_conversational_test(
        test_case, credentials, settings, signaling_client=client, llm=ScriptedLLM(), tts=FakeTTS(),
    )

    assert not result.success
    assert result.error == "Unexpected error: boom"


@pytest.mark.asyncio
async def test_run_many_bounds_concurrency_and_keeps_order(test_case, settings):
    client = StubSignalingClient(error=ChannelSetupError("rejected"), delay=0.01)
    cases = [
        (test_case, ProviderCredentials(provider="retell", agent_id=f"agent-{i}", api_key="k"))
        for i in range(5)
    ]

    results = await runner.run_many(
        cases, settings, concurrency=2, signaling_client=client, llm=ScriptedLLM(), tts=FakeTTS(),
    )

    assert len(results) == 5
    assert all(not r.success for r in results)
    assert client.max_active <= 2
    assert sorted(client.opened) == [f"agent-{i}" for i in range(5)]
