"""Similar-sentence retrieval over conversation turns."""

from sentient.retrieval.embeddings import (
    EmbeddingEngine,
    SimilarityMatch,
    chunk_text,
    cosine_similarity,
)

__all__ = ["EmbeddingEngine", "SimilarityMatch", "chunk_text", "cosine_similarity"]
