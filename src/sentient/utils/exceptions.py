"""Custom exceptions for Sentient."""


class SentientError(Exception):
    """Base exception for all Sentient errors."""

    pass


class ConfigurationError(SentientError):
    """Configuration loading or validation error."""

    pass


class LLMInferenceError(SentientError):
    """LLM inference failed."""

    pass


class ModelLoadError(LLMInferenceError):
    """Failed to load LLM model."""

    pass


class BackendUnavailableError(LLMInferenceError):
    """The backend's optional dependencies are not installed."""

    pass


class EmbeddingError(SentientError):
    """Embedding model failed to load or encode."""

    pass


class WorkerError(SentientError):
    """Inference worker error."""

    pass


class WorkerStartupError(WorkerError):
    """The inference worker could not reach the ready state."""

    pass


class EngineBusyError(WorkerError):
    """The request queue is full."""

    pass


class GenerationCancelled(LLMInferenceError):
    """Generation was abandoned after a cancel command."""

    pass
