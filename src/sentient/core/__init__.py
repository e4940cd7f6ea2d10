"""Conversation data structures."""

from sentient.core.memories import Memory, load_memory_file, save_memory_file
from sentient.core.models import Character, Conversation, Turn

__all__ = [
    "Character",
    "Conversation",
    "Memory",
    "Turn",
    "load_memory_file",
    "save_memory_file",
]
