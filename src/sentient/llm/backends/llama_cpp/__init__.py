"""llama-cpp-python backend for in-process GGUF model inference."""

from sentient.llm.backends.llama_cpp.config import LlamaCppConfig
from sentient.llm.backends.llama_cpp.inference import LlamaCppBackend

__all__ = ["LlamaCppBackend", "LlamaCppConfig"]
