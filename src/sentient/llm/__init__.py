"""LLM backends.

This module provides the public API for text generation backends:
- Backend: Abstract base class for all backends
- create_backend: Factory that picks the backend for a model profile
- get_available_backends: Query available backends and their status
"""

from sentient.llm.backends import (
    backend_name_for,
    create_backend,
    get_available_backends,
    is_backend_available,
    register_backend,
)
from sentient.llm.base import Backend
from sentient.llm.sampling import SamplerConfig, kobold_sampling_fields

__all__ = [
    "Backend",
    "SamplerConfig",
    "backend_name_for",
    "create_backend",
    "get_available_backends",
    "is_backend_available",
    "kobold_sampling_fields",
    "register_backend",
]
