from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chunkscribe.chat.base import ChatBackend
    from chunkscribe.config import Config


def create_chat_backend(config: Config) -> ChatBackend:
    """Create the appropriate chat backend based on config."""
    if config.chat.backend == "ollama":
        from chunkscribe.chat.ollama_chat import OllamaChat

        return OllamaChat(config.chat)
    else:
        from chunkscribe.chat.openai_chat import OpenAIChat

        return OpenAIChat(config.chat, api_key=config.transcription.api_key)
