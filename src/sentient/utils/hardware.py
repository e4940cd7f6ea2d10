"""Pick the GPU offload for local models."""

import shutil
import subprocess
from enum import Enum
from typing import Tuple

from loguru import logger


class HardwareBackend(Enum):
    """Where local llama.cpp layers run."""

    CUDA = "cuda"
    ROCM = "rocm"
    CPU = "cpu"


# Probed in order; the first tool that answers wins.
_PROBES = (
    (HardwareBackend.CUDA, "nvidia-smi"),
    (HardwareBackend.ROCM, "rocm-smi"),
)


def _tool_responds(command: str) -> bool:
    if shutil.which(command) is None:
        return False
    try:
        result = subprocess.run([command], capture_output=True, timeout=2, check=False)
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def detect_hardware() -> HardwareBackend:
    for backend, command in _PROBES:
        if _tool_responds(command):
            return backend
    return HardwareBackend.CPU


def resolve_gpu_offload(configured: str, gpu_layers: int) -> Tuple[HardwareBackend, int]:
    """Resolve the configured backend and the layer count actually offloaded.

    Args:
        configured: "auto", "cuda", "rocm" or "cpu"
        gpu_layers: Layers the model profile asks to offload

    Returns:
        (backend, layers); layers is 0 whenever the backend is the CPU
    """
    backend = detect_hardware() if configured == "auto" else HardwareBackend(configured)
    layers = 0 if backend == HardwareBackend.CPU else gpu_layers
    if configured == "auto":
        logger.info(f"Detected hardware backend: {backend.value}")
    if gpu_layers and not layers:
        logger.warning(f"Ignoring gpu_layers={gpu_layers}; running on the CPU")
    return backend, layers
