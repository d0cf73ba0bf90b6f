"""
LLM-backed synthetic caller.

The brain keeps the chat history of one conversation (persona prompt, agent
lines as ``user`` messages, caller lines as ``assistant`` messages) and turns
it into the caller's next utterance. Generation never fails from the caller's
point of view: empty or erroring completions are retried a bounded number of
times, then a deterministic scripted line is used instead.
"""

import asyncio
import logging
import traceback
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from voiceqa.brain.llm import ChatCompletionClient, ChatMessage
from voiceqa.brain.prompts import (
    CLOSING_TURN_INSTRUCTION,
    FALLBACK_GOODBYE,
    FALLBACK_LINES,
    NORMAL_TURN_INSTRUCTION,
    build_persona_prompt,
)
from voiceqa.config.constants import LOGGER_NAME
from voiceqa.models.conversation import TestCaseSpec

logger = logging.getLogger(LOGGER_NAME)


class ReplyMode(str, Enum):
    NORMAL = "normal"
    CLOSING = "closing"


class SyntheticCallerBrain:
    """
    Generates the test caller's side of the conversation.

    Args:
        test_case: The scenario the caller plays out
        llm: Chat completion client
        max_attempts: Attempts per reply before falling back
        retry_delay: Seconds to wait between attempts
        sleep: Coroutine function used for the back-off (defaults to asyncio.sleep)
    """

    def __init__(self, test_case: TestCaseSpec, llm: ChatCompletionClient,
                 max_attempts: int = 3, retry_delay: float = 0.5,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        self.test_case = test_case
        self.llm = llm
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep or asyncio.sleep
        self.history: List[ChatMessage] = [
            {"role": "system", "content": build_persona_prompt(test_case)}
        ]
        self.fallbacks_used = 0

    def record_agent_line(self, text: str) -> None:
        """Add what the agent said to the history."""
        self.history.append({"role": "user", "content": text})

    def record_caller_line(self, text: str) -> None:
        """Add what the caller said to the history."""
        self.history.append({"role": "assistant", "content": text})

    async def generate_reply(self, mode: ReplyMode = ReplyMode.NORMAL, turn_index: int = 1) -> str:
        """
        Produce the caller's next line.

        Args:
            mode: ``normal`` for a regular reply, ``closing`` for a goodbye
            turn_index: 1-based agent turn number, selects the fallback line

        Returns:
            str: The reply, never empty. Every reply, closing ones included, is
            appended to the history.
        """
        instruction = CLOSING_TURN_INSTRUCTION if mode == ReplyMode.CLOSING else NORMAL_TURN_INSTRUCTION
        messages = self.history + [{"role": "user", "content": instruction}]

        reply = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                reply = (await self.llm.complete(messages, temperature=0.7, max_tokens=200)).strip()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Caller LLM error (attempt {attempt}/{self.max_attempts}): {e}")
                logger.debug(f"Caller LLM error details: {traceback.format_exc()}")
                reply = ""
            if reply:
                break
            logger.info(f"Empty caller reply, attempt {attempt}/{self.max_attempts}")
            if attempt < self.max_attempts:
                await self._sleep(self.retry_delay)

        if not reply:
            self.fallbacks_used += 1
            reply = FALLBACK_GOODBYE if mode == ReplyMode.CLOSING else self.fallback_line(turn_index)
            logger.warning(f"Using fallback caller line after {self.max_attempts} failed attempts")

        self.record_caller_line(reply)
        return reply

    def fallback_line(self, turn_index: int) -> str:
        """Deterministic scripted line for the given agent turn."""
        goal = self.test_case.opening_goal
        if turn_index <= 1 and goal and goal != self.test_case.scenario:
            return goal
        index = min(max(turn_index, 1) - 1, len(FALLBACK_LINES) - 1)
        return FALLBACK_LINES[index]
