"""Provider definitions for chat_relay."""

from .base import BaseProvider
from .openai import OpenAIProvider

__all__ = [
    "BaseProvider",
    "OpenAIProvider",
]
