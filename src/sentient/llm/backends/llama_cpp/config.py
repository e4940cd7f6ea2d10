"""Configuration for the llama-cpp-python backend.

This backend runs GGUF quantized models in-process on CPU/CUDA/ROCm.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LlamaCppConfig(BaseSettings):
    """Load-time configuration for a local GGUF model.

    Per-request sampling comes from the request's SamplingProfile instead.
    """

    path: str = Field(description="Path to GGUF model file")
    context_length: int = Field(
        default=2048,
        ge=1,
        le=131072,
        description="Context window size in tokens",
    )
    gpu_layers: int = Field(
        default=0,
        ge=0,
        description="Number of layers to offload to GPU",
    )
    n_threads: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Number of CPU threads for inference",
    )
    n_batch: int = Field(
        default=512,
        ge=1,
        description="Prompt processing batch size",
    )
    seed: Optional[int] = Field(
        default=None,
        description="Fixed seed; a random one is drawn at load time when unset",
    )
    hardware_backend: Literal["auto", "cuda", "rocm", "cpu"] = Field(
        default="cpu",
        description="Hardware backend for inference",
    )

    model_config = SettingsConfigDict(
        env_prefix="SENTIENT_LLAMA_CPP_",
        extra="ignore",
    )
