"""Pydantic settings models for Sentient configuration."""

from pathlib import Path
from typing import TYPE_CHECKING, List, Literal, Optional, Tuple, Type, Union

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from sentient.config.constants import (
    APPLICATION_CONFIG_FOLDER_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DISPLAY_NAME,
    DEFAULT_MAX_NEW_TOKENS,
    DEFAULT_MEMORY_SCAN_TURNS,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_SIMILAR_SENTENCE_COUNT,
    DEFAULT_TEXT_TO_TOKEN_RATIO,
    DEFAULT_THREAD_COUNT,
)
from sentient.utils.exceptions import ConfigurationError

if TYPE_CHECKING:
    from sentient.llm.backends.llama_cpp.config import LlamaCppConfig


class SamplingProfile(BaseModel):
    """A named set of generation hyperparameters.

    Unset values leave the backend's own default in place. Mirostat (1 or 2)
    and the classical top_k/top_p/min_p/temperature family are mutually
    exclusive: when mirostat is active the classical knobs are ignored.
    """

    name: str
    top_k: Optional[int] = Field(default=None, ge=0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    min_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    repeat_penalty: Optional[float] = Field(default=None, ge=0.0)
    repeat_penalty_range: Optional[int] = Field(default=None, ge=0)

    # 0=disabled, 1=mirostat, 2=mirostat 2.0
    mirostat: Optional[int] = Field(default=None, ge=0, le=2)
    mirostat_tau: Optional[float] = Field(default=None, ge=0.0)
    mirostat_eta: Optional[float] = Field(default=None, ge=0.0)

    @property
    def mirostat_active(self) -> bool:
        return self.mirostat in (1, 2)


class ModelProfile(BaseModel):
    """A configured model: either a local GGUF file or a remote generation API."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    local_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("local_path", "path"),
        description="Path to a GGUF model file to load in-process",
    )
    remote_host: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("remote_host", "remote_server", "remote_path"),
        description="Base URL of a KoboldAI-compatible server, without a trailing slash",
    )
    remote_timeout_s: Optional[int] = Field(default=None, ge=1)
    context_window_tokens: int = Field(
        default=2048,
        ge=1,
        validation_alias=AliasChoices("context_window_tokens", "context_size"),
    )
    gpu_layers: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("gpu_layers", "gpu_layer_count"),
    )
    seed: Optional[int] = None
    prompt_template: str = Field(
        default="<|chat_history|>\n<|character_name|>:",
        validation_alias=AliasChoices("prompt_template", "prompt_instruct_template"),
    )
    similar_sentence_count: int = Field(default=DEFAULT_SIMILAR_SENTENCE_COUNT, ge=0)
    memory_scan_turns: int = Field(default=DEFAULT_MEMORY_SCAN_TURNS, ge=0)

    @model_validator(mode="after")
    def _require_backend(self) -> "ModelProfile":
        if not self.local_path and not self.remote_host:
            raise ValueError(
                f"Model '{self.name}' needs either 'local_path' or 'remote_host'"
            )
        return self

    @property
    def is_local(self) -> bool:
        # a local path wins when both are configured
        return bool(self.local_path)


class EmbeddingSettings(BaseSettings):
    """Sentence embedding model used for similar-sentence retrieval."""

    model_name_or_path: str = Field(
        default="all-MiniLM-L6-v2",
        description="SentenceTransformer model name or local model directory",
    )
    token_cutoff_limit: int = Field(
        default=512,
        ge=1,
        description="Tokens the embedding model can take before clipping its input",
    )
    device: Optional[str] = Field(
        default=None,
        description="Torch device for the embedding model (None lets the library choose)",
    )
    query_pretext: Optional[str] = Field(
        default=None,
        description="Text prepended to queries before encoding",
    )
    encode_pretext: Optional[str] = Field(
        default=None,
        description="Text prepended to stored passages before encoding",
    )

    model_config = SettingsConfigDict(env_prefix="SENTIENT_EMBEDDING_")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="WARNING")
    output_file: Optional[str] = Field(default=None)
    format: Literal["json", "text"] = Field(default="json")
    prompt_dump_dir: Optional[str] = Field(
        default=None,
        description="If set, the last prompt and raw generation are written here",
    )

    model_config = SettingsConfigDict(env_prefix="SENTIENT_LOGGING_")


class Settings(BaseSettings):
    """Root configuration for Sentient."""

    # The user's name in the chat; also what goes into the prompts.
    display_name: str = Field(default=DEFAULT_DISPLAY_NAME)
    # Trim generations at the first "{name}:" of any participant.
    stop_on_display_name: bool = Field(default=True)
    text_to_token_ratio_prediction: float = Field(
        default=DEFAULT_TEXT_TO_TOKEN_RATIO,
        gt=0.0,
        description="Predicted characters of text per token, used for history budgeting",
    )
    maximum_new_tokens: int = Field(default=DEFAULT_MAX_NEW_TOKENS, ge=1)

    hardware_backend: Literal["auto", "cuda", "rocm", "cpu"] = Field(
        default="cpu",
        description="GPU layers are only offloaded when this resolves to a GPU",
    )
    thread_count: int = Field(default=DEFAULT_THREAD_COUNT, ge=1, le=256)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)

    request_queue_size: int = Field(default=DEFAULT_QUEUE_SIZE, ge=1)
    response_queue_size: int = Field(default=DEFAULT_QUEUE_SIZE, ge=1)
    stream_fragments: bool = Field(
        default=False,
        description="Forward generated tokens as NewTextFragment responses (local models)",
    )

    parameters: List[SamplingProfile] = Field(default_factory=list)
    models: List[ModelProfile] = Field(default_factory=list)
    embedding_model: Optional[EmbeddingSettings] = Field(default=None)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        toml_file=CONFIG_FILE_NAME,
        env_prefix="SENTIENT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Configure settings sources with TOML support.

        Priority (highest to lowest):
        1. Init settings (constructor arguments)
        2. Environment variables
        3. TOML config file
        4. Default values
        """
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )

    def find_model(self, name_or_path: str) -> Optional[ModelProfile]:
        """Find a configured model by name or by local file path (case-insensitive)."""
        wanted = name_or_path.lower()
        for profile in self.models:
            if profile.name.lower() == wanted:
                return profile
            if profile.local_path and profile.local_path.lower() == wanted:
                return profile
        return None

    def find_parameters(self, name: str) -> Optional[SamplingProfile]:
        """Find a sampling profile by name (case-insensitive)."""
        wanted = name.lower()
        for profile in self.parameters:
            if profile.name.lower() == wanted:
                return profile
        return None

    def to_llama_cpp_config(self, profile: ModelProfile) -> "LlamaCppConfig":
        """Build the llama-cpp backend config for a local model profile.

        Returns:
            LlamaCppConfig combining the profile with the global runtime settings
        """
        from sentient.llm.backends.llama_cpp.config import LlamaCppConfig

        return LlamaCppConfig(
            path=profile.local_path,
            context_length=profile.context_window_tokens,
            gpu_layers=profile.gpu_layers or 0,
            n_threads=self.thread_count,
            n_batch=self.batch_size,
            seed=profile.seed,
            hardware_backend=self.hardware_backend,
        )


def locate_config_file(explicit: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Find the configuration file.

    Search order:
    1. The explicit path, if given and it exists
    2. ~/.config/sentient/config.toml
    3. config.toml in the working directory
    """
    candidates = []
    if explicit:
        candidates.append(Path(explicit))
    candidates.append(Path.home() / ".config" / APPLICATION_CONFIG_FOLDER_NAME / CONFIG_FILE_NAME)
    candidates.append(Path(CONFIG_FILE_NAME))

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_settings(config_file: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from the located TOML file, falling back to defaults.

    Raises:
        ConfigurationError: If the file exists but cannot be parsed or validated
    """
    path = locate_config_file(config_file)
    if path is None:
        logger.warning("No configuration file found; using default settings")
        return Settings()

    logger.info(f"Loading configuration from {path}")

    class FileSettings(Settings):
        model_config = SettingsConfigDict(toml_file=path)

    try:
        return FileSettings()
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e
