"""Turns a conversation into a single prompt string that fits the model's context."""

from typing import Optional, Tuple

from loguru import logger

from sentient.config.constants import DEFAULT_TEXT_TO_TOKEN_RATIO
from sentient.config.settings import ModelProfile
from sentient.core.constants import (
    CHARACTER_CONTEXT_TAG,
    CHARACTER_DESCRIPTION_TAG,
    CHARACTER_NAME_TAG,
    CHAT_HISTORY_TAG,
    CURRENT_CONTEXT_TAG,
    MEMORY_MATCHES_TAG,
    SIMILAR_SENTENCES_TAG,
    USER_DESCRIPTION_TAG,
    USER_NAME_TAG,
)
from sentient.core.models import Conversation, Turn
from sentient.engine.messages import InferenceContext
from sentient.retrieval.embeddings import EmbeddingEngine
from sentient.utils.exceptions import EmbeddingError


class PromptAssembler:
    """
    Builds bounded-size prompts from a template and an inference context.

    Substitution order:
    1. Description, scene context, user description and memory matches
    2. Similar sentences (needs an embedding engine)
    3. Character and user names, so name tags inside descriptions expand
    4. Chat history, newest turns first until the character budget is spent
    5. The continuation fragment, appended as the very last text

    Conversation text enters the prompt only after the name substitution and
    is never expanded.
    """

    def __init__(
        self,
        user_name: str,
        max_new_tokens: int,
        text_to_token_ratio: float = DEFAULT_TEXT_TO_TOKEN_RATIO,
        embedding_engine: Optional[EmbeddingEngine] = None,
    ):
        """
        Initialize the assembler.

        Args:
            user_name: Display name of the human participant
            max_new_tokens: Tokens reserved in the context window for the reply
            text_to_token_ratio: Predicted characters per token for history budgeting
            embedding_engine: Optional engine for the similar sentences tag
        """
        self.user_name = user_name
        self.max_new_tokens = max_new_tokens
        self.text_to_token_ratio = text_to_token_ratio
        self.embedding_engine = embedding_engine

    def history_budget(self, profile: ModelProfile, prompt_so_far: str) -> int:
        """Characters of history that should fit next to ``prompt_so_far``."""
        available_tokens = profile.context_window_tokens - self.max_new_tokens
        return int(available_tokens * self.text_to_token_ratio) - len(prompt_so_far)

    def assemble(self, context: InferenceContext, profile: ModelProfile) -> str:
        """Build the prompt for ``context`` using the profile's template.

        Embeddings computed for the similar sentences tag are stored on the
        context's conversation.
        """
        conversation = context.conversation
        buf = profile.prompt_template

        buf = buf.replace(CHARACTER_DESCRIPTION_TAG, context.character.description)
        buf = buf.replace(CURRENT_CONTEXT_TAG, conversation.current_context)
        buf = buf.replace(CHARACTER_CONTEXT_TAG, conversation.current_context)
        buf = buf.replace(USER_DESCRIPTION_TAG, conversation.user_description or "")
        if MEMORY_MATCHES_TAG in buf:
            buf = buf.replace(
                MEMORY_MATCHES_TAG,
                self._memory_matches(conversation, profile.memory_scan_turns),
            )

        if SIMILAR_SENTENCES_TAG in buf:
            buf = buf.replace(SIMILAR_SENTENCES_TAG, self._similar_sentences(context, profile))

        buf = buf.replace(CHARACTER_NAME_TAG, context.character.name)
        buf = buf.replace(USER_NAME_TAG, self.user_name)

        budget = self.history_budget(profile, buf)
        history, continuation = self.build_history(
            conversation,
            budget,
            continue_as=context.character.name if context.continue_last_turn else None,
        )
        logger.debug(
            f"Prompt budget {budget} chars; history uses {len(history)}, "
            f"continuation {len(continuation)}"
        )

        buf = buf.replace(CHAT_HISTORY_TAG, history)
        return buf + continuation

    def build_history(
        self,
        conversation: Conversation,
        budget: int,
        continue_as: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Walk turns newest to oldest, prepending each while the budget allows.

        The newest turn included is exempt from the budget so a non-empty
        conversation never yields an empty history.

        Args:
            conversation: Turns to render
            budget: Maximum characters for history plus continuation
            continue_as: When set, the newest turn is held back as a
                continuation fragment, with this speaker's name prefix removed

        Returns:
            (history with trailing whitespace stripped, continuation fragment)
        """
        turns = list(conversation.turns)
        continuation = ""
        if continue_as is not None and turns:
            continuation = self._continuation_text(turns.pop(), continue_as)

        history = ""
        included = 0
        for turn in reversed(turns):
            candidate = f"{turn.render()}\n{history}"
            if included and len(candidate) + len(continuation) > budget:
                break
            history = candidate
            included += 1

        if included < len(turns):
            logger.debug(f"History trimmed to {included} of {len(turns)} turns")
        return history.rstrip(), continuation

    @staticmethod
    def _continuation_text(turn: Turn, speaker_name: str) -> str:
        rendered = turn.render()
        prefix = f"{speaker_name}:"
        # multi-line turns re-joined by the caller may lack the name prefix
        if rendered.startswith(prefix):
            return rendered[len(prefix):].removeprefix(" ")
        return rendered

    @staticmethod
    def _memory_matches(conversation: Conversation, scan_turns: int) -> str:
        if not conversation.memories or scan_turns <= 0:
            return ""

        recent = "\n".join(t.text() for t in conversation.turns[-scan_turns:]).lower()
        values = []
        for key, remembered in conversation.memories.items():
            if key and key.lower() in recent:
                for value in remembered:
                    if value not in values:
                        values.append(value)
        return "\n".join(values)

    def _similar_sentences(self, context: InferenceContext, profile: ModelProfile) -> str:
        conversation = context.conversation
        if len(conversation) == 0:
            return ""

        if self.embedding_engine is None:
            logger.warning(
                f"The prompt template includes {SIMILAR_SENTENCES_TAG} but no embedding "
                "model is configured, so it is being skipped"
            )
            return ""

        try:
            self.embedding_engine.build_embeddings(conversation)
            matches = self.embedding_engine.find_similar(
                conversation,
                # the newest turn is the one being continued, so query the one before
                extra_offset=1 if context.continue_last_turn else 0,
                count=profile.similar_sentence_count,
            )
        except EmbeddingError as e:
            logger.error(f"Similar sentence search failed: {e}")
            return ""

        return "\n".join(m.text for m in matches)
