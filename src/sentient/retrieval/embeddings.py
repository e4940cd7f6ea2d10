"""Sentence embeddings for finding earlier turns similar to the newest one."""

from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np
from loguru import logger

try:
    from sentence_transformers import SentenceTransformer
    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SENTENCE_TRANSFORMERS_AVAILABLE = False

from sentient.config.constants import DEFAULT_TEXT_TO_TOKEN_RATIO
from sentient.config.settings import EmbeddingSettings
from sentient.core.models import Conversation
from sentient.utils.exceptions import EmbeddingError


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Compute cosine similarity between two embeddings.

    Both vectors are flattened first.

    Returns:
        Cosine similarity in range [-1, 1], or 0.0 if either vector has zero norm
    """
    a = np.ravel(a)
    b = np.ravel(b)
    dot = np.dot(a, b)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(dot / (norm_a * norm_b))


def chunk_text(text: str, char_budget: int) -> List[str]:
    """Split text on line boundaries into chunks of at most ``char_budget`` characters.

    Lines are never split, so a single line longer than the budget becomes a
    chunk of its own (the embedding model clips it). Empty chunks are never
    produced.
    """
    chunks: List[str] = []
    buffer = ""
    for line in text.splitlines():
        candidate = f"{buffer}\n{line}" if buffer else line
        if len(candidate) <= char_budget:
            buffer = candidate
            continue

        if buffer:
            chunks.append(buffer)
        if len(line) > char_budget:
            chunks.append(line)
            buffer = ""
        else:
            buffer = line

    if buffer:
        chunks.append(buffer)
    return chunks


@dataclass
class SimilarityMatch:
    """An earlier turn that resembles the query turn."""

    index: int
    score: float
    text: str


class EmbeddingEngine:
    """
    Computes turn embeddings and ranks earlier turns by cosine similarity.

    Runs entirely on local compute. Owned by the inference worker.
    """

    def __init__(
        self,
        settings: EmbeddingSettings,
        text_to_token_ratio: float = DEFAULT_TEXT_TO_TOKEN_RATIO,
        model: Optional[Any] = None,
    ):
        """
        Initialize the embedding engine.

        Args:
            settings: Embedding model configuration
            text_to_token_ratio: Characters per token, used to size chunks
            model: Pre-built encoder with a SentenceTransformer-style ``encode``;
                loaded from settings when omitted

        Raises:
            EmbeddingError: If the model cannot be loaded
        """
        self.settings = settings
        self.chunk_budget = max(1, int(settings.token_cutoff_limit * text_to_token_ratio))

        if model is None:
            if not SENTENCE_TRANSFORMERS_AVAILABLE:
                raise EmbeddingError(
                    "sentence-transformers is required for similar sentence retrieval. "
                    "Install with: pip install sentence-transformers"
                )
            logger.info(f"Loading embedding model: {settings.model_name_or_path}")
            try:
                model = SentenceTransformer(settings.model_name_or_path, device=settings.device)
            except Exception as e:
                raise EmbeddingError(f"Failed to load the embedding model: {e}") from e

        self.model = model

    def _encode(self, texts: List[str], pretext: Optional[str]) -> List[np.ndarray]:
        prefix = pretext or ""
        try:
            vectors = self.model.encode([prefix + text for text in texts])
        except Exception as e:
            raise EmbeddingError(f"Failed to encode {len(texts)} text(s): {e}") from e
        return [np.ravel(np.asarray(v, dtype=np.float32)) for v in vectors]

    def build_embeddings(self, conversation: Conversation, force: bool = False) -> int:
        """Embed every turn whose embeddings are missing or stale.

        Args:
            conversation: Conversation whose turns receive the embeddings
            force: Recompute even turns with current embeddings

        Returns:
            Number of turns that were (re)embedded
        """
        embedded = 0
        for turn in conversation:
            if turn.has_current_embeddings() and not force:
                continue
            chunks = chunk_text(turn.render(), self.chunk_budget)
            vectors = self._encode(chunks, self.settings.encode_pretext) if chunks else []
            turn.set_embeddings(vectors)
            embedded += 1

        if embedded:
            logger.debug(f"Computed embeddings for {embedded} turn(s)")
        return embedded

    def find_similar(
        self,
        conversation: Conversation,
        extra_offset: int = 0,
        count: int = 3,
    ) -> List[SimilarityMatch]:
        """Rank the turns before the query turn by similarity to it.

        The query is the newest turn, or ``extra_offset`` turns before it.
        Each earlier turn scores with its best-matching chunk. Ties keep
        chronological order.

        Args:
            conversation: Conversation with embeddings already built
            extra_offset: How many turns to skip back from the newest for the query
            count: Maximum number of matches to return

        Returns:
            Up to ``count`` matches, best first
        """
        query_index = len(conversation) - 1 - extra_offset
        if query_index < 0 or count <= 0:
            return []

        query_text = conversation[query_index].render()
        logger.debug(f"Searching {count} similarities for: {query_text}")
        query = self._encode([query_text], self.settings.query_pretext)[0]

        scored = []
        for index in range(query_index):
            scores = [
                cosine_similarity(query, emb)
                for emb in conversation[index].current_embeddings()
            ]
            if scores:
                scored.append((max(scores), index))

        scored.sort(key=lambda item: item[0], reverse=True)

        matches = []
        for score, index in scored[:count]:
            text = conversation[index].render()
            logger.debug(f"Result #{index} Score:{score:.2f} Text: {text}")
            matches.append(SimilarityMatch(index=index, score=score, text=text))
        return matches
