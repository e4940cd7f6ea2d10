"""LLM backend registry and factory.

Backends are registered by name with a loader and an availability flag, so
a missing optional dependency (llama-cpp-python) only matters when a
profile actually needs that backend.
"""

from typing import TYPE_CHECKING, Callable, Dict, Tuple

from loguru import logger

from sentient.llm.base import Backend
from sentient.utils.exceptions import BackendUnavailableError

if TYPE_CHECKING:
    from sentient.config.settings import ModelProfile, Settings

LLAMA_CPP = "llama-cpp"
KOBOLD = "kobold"

# Registry of available backends
# Maps backend name -> (loader_func, is_available)
_BACKENDS: Dict[str, Tuple[Callable[["ModelProfile", "Settings"], Backend], bool]] = {}


def register_backend(
    name: str,
    loader: Callable[["ModelProfile", "Settings"], Backend],
    available: bool = True,
) -> None:
    """Register a backend with the registry.

    Args:
        name: Backend identifier (e.g., "llama-cpp", "kobold")
        loader: Factory taking the model profile and root settings
        available: Whether the backend's dependencies are installed
    """
    _BACKENDS[name] = (loader, available)
    logger.debug(f"Registered backend '{name}' (available={available})")


def get_available_backends() -> Dict[str, bool]:
    """Get mapping of backend names to their availability status."""
    return {name: avail for name, (_, avail) in _BACKENDS.items()}


def is_backend_available(name: str) -> bool:
    """Check if a specific backend is registered and available."""
    if name not in _BACKENDS:
        return False
    _, available = _BACKENDS[name]
    return available


def backend_name_for(profile: "ModelProfile") -> str:
    """Name of the backend that serves a model profile."""
    return LLAMA_CPP if profile.is_local else KOBOLD


def create_backend(profile: "ModelProfile", settings: "Settings") -> Backend:
    """Create the backend for a model profile.

    Args:
        profile: The model to serve
        settings: Root settings (threads, batch size, hardware)

    Returns:
        Ready-to-use Backend; local models are loaded before returning

    Raises:
        BackendUnavailableError: If the backend's dependencies are missing
        ModelLoadError: If a local model fails to load
    """
    backend_name = backend_name_for(profile)

    if backend_name not in _BACKENDS:
        raise BackendUnavailableError(f"Unknown backend '{backend_name}'")

    loader, available = _BACKENDS[backend_name]
    if not available:
        raise BackendUnavailableError(
            f"Backend '{backend_name}' is not available for model '{profile.name}'. "
            f"Required dependencies may not be installed."
        )

    logger.info(f"Creating {backend_name} backend for model '{profile.name}'")
    return loader(profile, settings)


# =============================================================================
# Backend Registration
# =============================================================================

def _load_llama_cpp(profile: "ModelProfile", settings: "Settings") -> Backend:
    """Load llama-cpp backend with converted config."""
    from sentient.llm.backends.llama_cpp import LlamaCppBackend

    return LlamaCppBackend(settings.to_llama_cpp_config(profile))


try:
    from sentient.llm.backends.llama_cpp import LlamaCppBackend  # noqa: F401
    register_backend(LLAMA_CPP, _load_llama_cpp, available=True)
except ImportError:
    register_backend(LLAMA_CPP, _load_llama_cpp, available=False)
    logger.debug("llama-cpp backend unavailable (llama-cpp-python not installed)")


def _load_kobold(profile: "ModelProfile", settings: "Settings") -> Backend:
    """Create a KoboldAI API client for a remote profile."""
    from sentient.llm.backends.kobold import KoboldBackend

    return KoboldBackend(
        host=profile.remote_host,
        context_window_tokens=profile.context_window_tokens,
        timeout_s=profile.remote_timeout_s,
    )


register_backend(KOBOLD, _load_kobold, available=True)


__all__ = [
    "LLAMA_CPP",
    "KOBOLD",
    "backend_name_for",
    "register_backend",
    "get_available_backends",
    "is_backend_available",
    "create_backend",
]
