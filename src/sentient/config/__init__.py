"""Configuration models and loading."""

from sentient.config.settings import (
    EmbeddingSettings,
    LoggingSettings,
    ModelProfile,
    SamplingProfile,
    Settings,
    load_settings,
    locate_config_file,
)

__all__ = [
    "EmbeddingSettings",
    "LoggingSettings",
    "ModelProfile",
    "SamplingProfile",
    "Settings",
    "load_settings",
    "locate_config_file",
]
