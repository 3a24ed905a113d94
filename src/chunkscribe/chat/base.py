"""Abstract base class for chat backends."""

from __future__ import annotations

import abc

from chunkscribe.chat.prompts import ASK_SYSTEM, build_ask_prompt


class ChatBackend(abc.ABC):
    """Base class for LLM backends that answer questions about a transcript."""

    max_context_tokens: int = 100_000

    @abc.abstractmethod
    def chat(self, system_prompt: str, user_prompt: str) -> str:
        """Send one system/user exchange and return the cleaned reply."""

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Check if the chat backend is reachable."""

    def ask(self, question: str, transcript_text: str, name: str = "transcript") -> str:
        prompt = build_ask_prompt(question, transcript_text, name=name, max_tokens=self.max_context_tokens)
        return self.chat(ASK_SYSTEM, prompt)
