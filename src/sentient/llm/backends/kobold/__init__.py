"""KoboldAI-compatible remote generation backend."""

from sentient.llm.backends.kobold.client import KoboldBackend

__all__ = ["KoboldBackend"]
