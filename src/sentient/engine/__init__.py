"""Prompt assembly and the inference worker."""

from sentient.engine.messages import (
    InferenceContext,
    InferenceRequest,
    InferenceResponse,
    ModelLoaded,
    NewText,
    NewTextFragment,
    Shutdown,
    TextInference,
    WorkerCommand,
)
from sentient.engine.prompt import PromptAssembler
from sentient.engine.stops import build_stop_sequences, trim_at_display_names
from sentient.engine.worker import InferenceEngine, InferenceWorker, WorkerState

__all__ = [
    # Messages
    "InferenceContext",
    "InferenceRequest",
    "InferenceResponse",
    "ModelLoaded",
    "NewText",
    "NewTextFragment",
    "Shutdown",
    "TextInference",
    "WorkerCommand",
    # Prompting
    "PromptAssembler",
    "build_stop_sequences",
    "trim_at_display_names",
    # Worker
    "InferenceEngine",
    "InferenceWorker",
    "WorkerState",
]
