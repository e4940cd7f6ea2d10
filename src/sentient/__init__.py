"""Sentient - inference worker and prompt assembly for character chat.

- InferenceEngine: spawns the worker thread and exchanges messages with it
- PromptAssembler: fills prompt templates within the model's context budget
- Character / Conversation / Turn: the chat data the prompts are built from
"""

__version__ = "0.2.0"

from sentient.core import Character, Conversation, Turn
from sentient.engine import (
    InferenceContext,
    InferenceEngine,
    ModelLoaded,
    NewText,
    NewTextFragment,
    PromptAssembler,
)

__all__ = [
    "Character",
    "Conversation",
    "Turn",
    "InferenceContext",
    "InferenceEngine",
    "ModelLoaded",
    "NewText",
    "NewTextFragment",
    "PromptAssembler",
]
