import asyncio
import logging
from typing import List, Optional

import pytest

from voiceqa.brain.llm import ChatCompletionClient
from voiceqa.brain.prompts import CLOSING_TURN_INSTRUCTION
from voiceqa.models.conversation import TestCaseSpec
from voiceqa.models.events import ChannelClosed
from voiceqa.services.tts import SpeechSynthesizer
from voiceqa.signaling.base import ChannelHandle


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


async def settle(rounds: int = 20):
    """Let pending tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeChannel(ChannelHandle):
    """In-memory channel: tests push events, the session's output is recorded."""

    def __init__(self, call_id: str = "call-1", events=None):
        self.call_id = call_id
        self.queue: asyncio.Queue = asyncio.Queue()
        for event in events or []:
            self.queue.put_nowait(event)
        self.sent_audio: List[bytes] = []
        self.pongs: List[Optional[str]] = []
        self.closed = False
        self.recording = None

    async def events(self):
        while True:
            event = await self.queue.get()
            yield event
            if isinstance(event, ChannelClosed):
                return

    async def push(self, *events):
        for event in events:
            await self.queue.put(event)
        await settle()

    async def send_audio(self, audio: bytes) -> None:
        self.sent_audio.append(audio)

    async def send_pong(self, ping_id: Optional[str]) -> None:
        self.pongs.append(ping_id)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.queue.put(ChannelClosed(code=1000, reason="closed by caller"))

    async def fetch_recording(self):
        return self.recording


class ScriptedLLM(ChatCompletionClient):
    """Returns numbered replies, or a goodbye when asked to close."""

    def __init__(self, goodbye: str = "Thanks so much, goodbye!"):
        self.goodbye = goodbye
        self.calls: List[list] = []

    async def complete(self, messages, temperature=0.7, max_tokens=200) -> str:
        self.calls.append(list(messages))
        if messages[-1]["content"] == CLOSING_TURN_INSTRUCTION:
            return self.goodbye
        return f"Caller reply {len(self.calls)}"


class FailingLLM(ChatCompletionClient):
    """Always raises."""

    def __init__(self):
        self.calls = 0

    async def complete(self, messages, temperature=0.7, max_tokens=200) -> str:
        self.calls += 1
        raise RuntimeError("LLM unavailable")


class FakeTTS(SpeechSynthesizer):
    """Deterministic synthesizer: the audio is the UTF-8 text repeated."""

    def __init__(self, repeat: int = 1):
        self.repeat = repeat
        self.texts: List[str] = []
        self.closed = False

    @staticmethod
    def render(text: str, repeat: int = 1) -> bytes:
        return text.encode("utf-8") * repeat

    async def synthesize(self, text, audio_format) -> bytes:
        self.texts.append(text)
        return self.render(text, self.repeat)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_case():
    return TestCaseSpec(
        id="tc-1",
        name="Refund request",
        scenario="You bought headphones that stopped working after a week",
        opening_goal="I'd like to return my headphones",
        expected_outcome="Agent starts a return",
    )


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def scripted_llm():
    return ScriptedLLM()


@pytest.fixture
def fake_tts():
    return FakeTTS()
