"""Prompt template tags and conversation constants."""

CHARACTER_DESCRIPTION_TAG = "<|character_description|>"
CURRENT_CONTEXT_TAG = "<|current_context|>"
# older templates name the scene context after the character
CHARACTER_CONTEXT_TAG = "<|character_context|>"
USER_DESCRIPTION_TAG = "<|user_description|>"
MEMORY_MATCHES_TAG = "<|memory_matches|>"
SIMILAR_SENTENCES_TAG = "<|similar_sentences|>"
CHARACTER_NAME_TAG = "<|character_name|>"
USER_NAME_TAG = "<|user_name|>"
CHAT_HISTORY_TAG = "<|chat_history|>"

DEFAULT_SPEAKER_NAME = "Unknown"
