"""Translating sampling profiles into backend parameters."""

from dataclasses import asdict, dataclass
from typing import Any, Dict

from sentient.config.settings import SamplingProfile

# Values that switch the classical samplers off while mirostat is active.
NEUTRAL_CLASSICAL = {"top_k": 0, "top_p": 1.0, "min_p": 0.0, "temperature": 1.0}


@dataclass
class SamplerConfig:
    """Concrete sampler settings for an in-process llama.cpp model.

    Defaults mirror llama-cpp-python's completion defaults.
    """

    temperature: float = 0.8
    top_k: int = 40
    top_p: float = 0.95
    min_p: float = 0.05
    repeat_penalty: float = 1.1
    mirostat_mode: int = 0
    mirostat_tau: float = 5.0
    mirostat_eta: float = 0.1

    @classmethod
    def from_profile(cls, profile: SamplingProfile) -> "SamplerConfig":
        """Build sampler settings, overriding defaults with what the profile sets."""
        config = cls()
        if profile.mirostat_active:
            config.top_k = NEUTRAL_CLASSICAL["top_k"]
            config.top_p = NEUTRAL_CLASSICAL["top_p"]
            config.min_p = NEUTRAL_CLASSICAL["min_p"]
            config.temperature = NEUTRAL_CLASSICAL["temperature"]
            config.mirostat_mode = profile.mirostat
            if profile.mirostat_tau is not None:
                config.mirostat_tau = profile.mirostat_tau
            if profile.mirostat_eta is not None:
                config.mirostat_eta = profile.mirostat_eta
        else:
            config.mirostat_mode = 0
            if profile.top_k is not None:
                config.top_k = profile.top_k
            if profile.top_p is not None:
                config.top_p = profile.top_p
            if profile.min_p is not None:
                config.min_p = profile.min_p
            if profile.temperature is not None:
                config.temperature = profile.temperature

        if profile.repeat_penalty is not None:
            config.repeat_penalty = profile.repeat_penalty
        return config

    def to_llama_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``Llama.create_completion``."""
        return asdict(self)


def kobold_sampling_fields(profile: SamplingProfile) -> Dict[str, Any]:
    """Flatten a sampling profile into KoboldAI generate-request fields.

    Unset values are left out so the server's defaults apply.
    """
    fields: Dict[str, Any] = {}
    if profile.mirostat_active:
        fields.update(NEUTRAL_CLASSICAL)
        fields["mirostat"] = profile.mirostat
        if profile.mirostat_tau is not None:
            fields["mirostat_tau"] = profile.mirostat_tau
        if profile.mirostat_eta is not None:
            fields["mirostat_eta"] = profile.mirostat_eta
    else:
        for name in ("temperature", "top_k", "top_p", "min_p"):
            value = getattr(profile, name)
            if value is not None:
                fields[name] = value
        if profile.mirostat is not None:
            fields["mirostat"] = profile.mirostat

    if profile.repeat_penalty is not None:
        fields["rep_pen"] = profile.repeat_penalty
    if profile.repeat_penalty_range is not None:
        fields["rep_pen_range"] = profile.repeat_penalty_range
    return fields
