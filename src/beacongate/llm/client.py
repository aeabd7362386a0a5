"""OpenAI-compatible LLM client.

This wraps the `openai` Python SDK and provides a minimal interface for chat completions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, Sequence

import httpx
from openai import OpenAI

from beacongate.config import Settings
from beacongate.logging import get_logger

logger = get_logger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """A chat message."""

    role: Role
    content: str


class ChatModel(Protocol):
    model: str

    def complete(
        self, messages: Sequence[ChatMessage], *, temperature: float = 0.2, json_mode: bool = False
    ) -> str: ...


class LLMClient:
    """LLM client using OpenAI-compatible Chat Completions API."""

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise ValueError(
                "Missing BEACONGATE_OPENAI_API_KEY. "
                "Set it in environment variables or a .env file."
            )
        self._settings = settings
        self.model = settings.openai_model
        self._client = OpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            http_client=httpx.Client(timeout=httpx.Timeout(settings.openai_timeout_s)),
            max_retries=1,
        )

    def complete(
        self, messages: Sequence[ChatMessage], *, temperature: float = 0.2, json_mode: bool = False
    ) -> str:
        """Generate a completion.

        Args:
            messages: Chat messages.
            temperature: Sampling temperature.
            json_mode: Ask the server for a single JSON object response.

        Returns:
            Assistant message content.
        """

        payload: list[dict[str, str]] = [{"role": m.role, "content": m.content} for m in messages]
        extra: dict = {"response_format": {"type": "json_object"}} if json_mode else {}
        resp = self._client.chat.completions.create(
            model=self.model,
            messages=payload,
            temperature=temperature,
            **extra,
        )
        choice = resp.choices[0]
        if not choice.message or choice.message.content is None:
            return ""
        return choice.message.content
