"""In-process text generation using llama-cpp-python.

The model is loaded once per backend instance and released by ``close()``;
the worker closes the old backend before building a new one so only one
model is resident at a time.

Cancellation:
    Generation runs to completion (or to ``max_new_tokens``) once started.
    ``should_cancel`` is not consulted; only terminating the process stops a
    local generation early.
"""

import os

# Force single-threaded OpenMP before any libraries are loaded
# This prevents SIGSEGV race conditions in ggml's multi-threaded CPU code
os.environ.setdefault("OMP_NUM_THREADS", "1")
os.environ.setdefault("MKL_NUM_THREADS", "1")
os.environ.setdefault("OPENBLAS_NUM_THREADS", "1")

import random
import time
from typing import Callable, List, Optional

from llama_cpp import Llama
from loguru import logger

from sentient.config.settings import SamplingProfile
from sentient.llm.backends.llama_cpp.config import LlamaCppConfig
from sentient.llm.base import Backend
from sentient.llm.sampling import SamplerConfig
from sentient.utils.exceptions import LLMInferenceError, ModelLoadError
from sentient.utils.hardware import resolve_gpu_offload


class LlamaCppBackend(Backend):
    """Backend wrapping a llama-cpp-python ``Llama`` model.

    Example:
        >>> config = LlamaCppConfig(path="./model.gguf", gpu_layers=35)
        >>> backend = LlamaCppBackend(config)
        >>> text = backend.infer("Alice: Hi!\\nBob:", SamplingProfile(name="default"), 64)
    """

    KIND = "local"
    SUPPORTS_STREAMING = True
    SUPPORTS_CANCEL = False

    def __init__(self, config: LlamaCppConfig):
        """Initialize the backend and load the model.

        Raises:
            ModelLoadError: If the model cannot be loaded
        """
        self.config = config
        self.hardware, self.gpu_layers = resolve_gpu_offload(
            config.hardware_backend, config.gpu_layers
        )
        self.seed = config.seed if config.seed is not None else random.randint(0, 2**31 - 1)
        self.model: Optional[Llama] = self._load_model()

    def _load_model(self) -> Llama:
        """Load GGUF model with appropriate backend."""
        try:
            logger.info(f"Loading model from: {self.config.path}")
            model = Llama(
                model_path=self.config.path,
                n_ctx=self.config.context_length,
                n_gpu_layers=self.gpu_layers,
                n_threads=self.config.n_threads,
                n_batch=self.config.n_batch,
                seed=self.seed,
                verbose=False,
            )
            logger.info("Model loaded successfully")
            return model
        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise ModelLoadError(f"Failed to load model from {self.config.path}: {e}") from e

    def infer(
        self,
        prompt: str,
        sampling: SamplingProfile,
        max_new_tokens: int,
        stop_sequences: Optional[List[str]] = None,
        on_fragment: Optional[Callable[[str], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> str:
        """Generate text for the prompt, streaming fragments when a callback is given."""
        if self.model is None:
            raise LLMInferenceError("Model has been released")

        kwargs = SamplerConfig.from_profile(sampling).to_llama_kwargs()
        kwargs.update(prompt=prompt, max_tokens=max_new_tokens)
        if stop_sequences:
            kwargs["stop"] = list(stop_sequences)
        if self.config.seed is not None:
            kwargs["seed"] = self.config.seed

        started = time.perf_counter()
        try:
            if on_fragment is not None:
                text, n_tokens = self._stream(kwargs, on_fragment)
            else:
                response = self.model.create_completion(**kwargs)
                text = response["choices"][0]["text"]
                n_tokens = response.get("usage", {}).get("completion_tokens", 0)
        except Exception as e:
            logger.error(f"Text inference failed: {e}")
            raise LLMInferenceError(f"Inference failed: {e}") from e

        elapsed = time.perf_counter() - started
        rate = n_tokens / elapsed if elapsed > 0 else 0.0
        logger.debug(f"{n_tokens} tokens ; total {elapsed * 1000:.2f} ms ({rate:.2f} T/s)")
        return text

    def _stream(self, kwargs, on_fragment: Callable[[str], None]):
        pieces = []
        for chunk in self.model.create_completion(stream=True, **kwargs):
            piece = chunk["choices"][0].get("text", "")
            if piece:
                pieces.append(piece)
                on_fragment(piece)
        return "".join(pieces), len(pieces)

    def close(self) -> None:
        """Free the model so the next one can be loaded."""
        if self.model is None:
            return
        closer = getattr(self.model, "close", None)
        if callable(closer):
            closer()
        self.model = None
        logger.debug(f"Released model {self.config.path}")
