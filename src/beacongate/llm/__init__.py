"""LLM client wrappers."""

from beacongate.llm.client import ChatMessage, ChatModel, LLMClient

__all__ = ["ChatMessage", "ChatModel", "LLMClient"]
