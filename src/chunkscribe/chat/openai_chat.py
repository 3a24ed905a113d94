"""OpenAI (or OpenAI-compatible server) chat backend."""

from __future__ import annotations

import openai

from chunkscribe.chat.base import ChatBackend
from chunkscribe.chat.prompts import clean_response
from chunkscribe.config import ChatConfig


class OpenAIChat(ChatBackend):
    """Answers questions using the OpenAI chat completions API.

    With ``host`` set, talks to a local OpenAI-compatible server
    (LM Studio, llama.cpp server) instead.
    """

    def __init__(self, config: ChatConfig, api_key: str = "") -> None:
        self._config = config
        self.max_context_tokens = config.max_context_tokens
        if config.host:
            base_url = config.host
            if not base_url.endswith("/v1"):
                base_url = base_url.rstrip("/") + "/v1"
            # Local servers ignore the key
            self._client = openai.OpenAI(base_url=base_url, api_key=api_key or "not-needed")
        else:
            self._client = openai.OpenAI(api_key=api_key or None)

    def chat(self, system_prompt: str, user_prompt: str) -> str:
        response = self._client.chat.completions.create(
            model=self._config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        return clean_response(response.choices[0].message.content or "")

    def is_available(self) -> bool:
        try:
            self._client.models.list()
            return True
        except openai.OpenAIError:
            return False
