"""
Chat-completion clients used by the synthetic caller.

The brain only depends on the ``ChatCompletionClient`` interface so tests can
inject fakes; ``OpenAIChatClient`` is the production implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from voiceqa.config.constants import DEFAULT_CALLER_MODEL, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

ChatMessage = Dict[str, str]


class ChatCompletionClient(ABC):
    """Produces one assistant message for a chat history."""

    @abstractmethod
    async def complete(self, messages: List[ChatMessage], temperature: float = 0.7,
                       max_tokens: int = 200) -> str:
        """Return the completion text (may be empty)."""


class OpenAIChatClient(ChatCompletionClient):
    """Chat completions through the OpenAI API."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_CALLER_MODEL,
                 client: Optional[AsyncOpenAI] = None):
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key)
        logger.info(f"OpenAIChatClient initialized with model: {model}")

    async def complete(self, messages: List[ChatMessage], temperature: float = 0.7,
                       max_tokens: int = 200) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.choices:
            return ""
        content = response.choices[0].message.content
        return (content or "").strip()
