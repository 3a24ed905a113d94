"""Ollama-based chat backend."""

from __future__ import annotations

import ollama

from chunkscribe.chat.base import ChatBackend
from chunkscribe.chat.prompts import clean_response
from chunkscribe.config import ChatConfig


class OllamaChat(ChatBackend):
    """Answers questions using a local Ollama model."""

    def __init__(self, config: ChatConfig) -> None:
        self._config = config
        self.max_context_tokens = config.max_context_tokens
        self._client = ollama.Client(host=config.host or "http://localhost:11434")

    def chat(self, system_prompt: str, user_prompt: str) -> str:
        response = self._client.chat(
            model=self._config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        return clean_response(response["message"]["content"])

    def is_available(self) -> bool:
        try:
            self._client.list()
            return True
        except Exception:
            return False
