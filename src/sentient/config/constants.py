"""Default values shared by the configuration and the inference engine."""

# Characters of history text predicted per token when budgeting the prompt.
DEFAULT_TEXT_TO_TOKEN_RATIO = 3.0
DEFAULT_MAX_NEW_TOKENS = 150
DEFAULT_BATCH_SIZE = 512
DEFAULT_THREAD_COUNT = 8

DEFAULT_SIMILAR_SENTENCE_COUNT = 3
DEFAULT_MEMORY_SCAN_TURNS = 2

# Remote generation can be slow on local hardware; two hours.
DEFAULT_REMOTE_TIMEOUT_S = 60 * 120

DEFAULT_QUEUE_SIZE = 10
DEFAULT_DISPLAY_NAME = "USER"

APPLICATION_CONFIG_FOLDER_NAME = "sentient"
CONFIG_FILE_NAME = "config.toml"
