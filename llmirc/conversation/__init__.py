"""Conversation history."""

from llmirc.conversation.buffer import ContextBuffer

__all__ = ["ContextBuffer"]
