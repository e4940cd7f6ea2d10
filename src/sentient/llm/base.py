"""Abstract base class for text generation backends."""

from abc import ABC, abstractmethod
from typing import Callable, List, Literal, Optional

from sentient.config.settings import SamplingProfile


class Backend(ABC):
    """
    Abstract base class for text generation backends.

    A backend turns a finished prompt into raw generated text. Prompt
    assembly and stop-name trimming happen before and after, in the worker.

    Backend Capabilities
    --------------------
    KIND : Literal["local", "remote"]
        Whether the model runs in-process or behind an HTTP API.

    SUPPORTS_STREAMING : bool
        Whether ``on_fragment`` is called as tokens are produced. Backends
        without streaming ignore the callback.

    SUPPORTS_CANCEL : bool
        Whether ``should_cancel`` is consulted. In-process generation cannot
        be interrupted mid-token, so local backends ignore it.
    """

    KIND: Literal["local", "remote"] = "local"
    SUPPORTS_STREAMING: bool = False
    SUPPORTS_CANCEL: bool = False

    @abstractmethod
    def infer(
        self,
        prompt: str,
        sampling: SamplingProfile,
        max_new_tokens: int,
        stop_sequences: Optional[List[str]] = None,
        on_fragment: Optional[Callable[[str], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> str:
        """
        Generate a continuation of the prompt.

        Args:
            prompt: The fully assembled prompt
            sampling: Sampling hyperparameters for this request
            max_new_tokens: Maximum tokens to generate
            stop_sequences: Strings that end generation when produced
            on_fragment: Called with each streamed piece of text
            should_cancel: Polled between network calls by remote backends

        Returns:
            The generated text

        Raises:
            LLMInferenceError: If generation fails
        """
        pass

    def close(self) -> None:
        """Release the backend's resources (model memory, connections)."""
        pass
