from medlegal.services.embeddings.embedding_service import (
    EmbeddingResult,
    EmbeddingService,
    chunk_text,
    cosine_similarity,
)

__all__ = ["EmbeddingResult", "EmbeddingService", "chunk_text", "cosine_similarity"]
