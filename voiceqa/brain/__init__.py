"""
Brain module: the LLM-driven synthetic caller.

Key components:
- caller_brain: SyntheticCallerBrain, which keeps the chat history and
  produces the next caller line with retry and deterministic fallback.
- llm: ChatCompletionClient interface and the OpenAI implementation.
- prompts: Persona prompt, per-turn instructions and scripted fallback lines.
"""

from voiceqa.brain.caller_brain import ReplyMode, SyntheticCallerBrain
from voiceqa.brain.llm import ChatCompletionClient, OpenAIChatClient

__all__ = ["ChatCompletionClient", "OpenAIChatClient", "ReplyMode", "SyntheticCallerBrain"]
