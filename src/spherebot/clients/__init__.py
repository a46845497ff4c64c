"""Adapters for the LLM backend and the Slack Web API."""

from .llm import AnythingLLMClient, LLMBackend
from .slack import Messenger, SlackMessenger

__all__ = ["AnythingLLMClient", "LLMBackend", "Messenger", "SlackMessenger"]
