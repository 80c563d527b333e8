"""Vector embeddings through Azure OpenAI or OpenAI, plus similarity helpers."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from medlegal.core.config import settings
from medlegal.core.exceptions import APIClientError, EmbeddingError, UnavailableError
from medlegal.core.llm_client import BaseLLMClient
from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHARS_PER_TOKEN = 4


@dataclass
class EmbeddingResult:
    vector: List[float]
    model: str
    dimensions: int
    token_usage: Dict[str, int] = field(default_factory=dict)

    def metadata(self, chunk_count: int = 1) -> Dict[str, Any]:
        """Summary stored on the document record (the vector itself is not)."""
        return {
            "model": self.model,
            "dimensions": self.dimensions,
            "usage": self.token_usage,
            "chunkCount": chunk_count,
        }


def chunk_text(text: str, max_tokens: int = 8000) -> List[str]:
    """Split text into chunks of roughly ``max_tokens`` tokens.

    A token is approximated as four characters. Each window is cut at the
    last sentence end, or failing that the last paragraph break, provided it
    falls in the second half of the window. Chunks are stripped and empty
    chunks dropped.
    """
    if not text or not text.strip():
        return []

    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return [text]

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = min(start + max_chars, len(text))

        if end < len(text):
            window = text[start:end]
            last_period = window.rfind(".")
            last_paragraph = window.rfind("\n\n")
            if last_period > max_chars * 0.5:
                end = start + last_period + 1
            elif last_paragraph > max_chars * 0.5:
                end = start + last_paragraph

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        start = end

    return chunks


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity of two vectors.

    Missing, empty or zero-norm vectors give 0.0.

    Raises:
        ValueError: If the vectors have different dimensions
    """
    if not a or not b:
        return 0.0
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def find_similar(
    query: Sequence[float],
    candidates: Sequence[Tuple[Any, Sequence[float]]],
    threshold: float = 0.7,
    limit: int = 10,
) -> List[Tuple[Any, float]]:
    """Rank ``(item, vector)`` candidates by similarity to ``query``.

    Returns at most ``limit`` ``(item, score)`` pairs scoring at least
    ``threshold``, best first. Candidates with mismatched dimensions are
    skipped.
    """
    scored: List[Tuple[Any, float]] = []
    for item, vector in candidates:
        try:
            score = cosine_similarity(query, vector)
        except ValueError:
            LOGGER.debug("Skipping candidate with mismatched dimensions")
            continue
        if score >= threshold:
            scored.append((item, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]


class EmbeddingService:
    """Generates embeddings from an Azure OpenAI deployment or OpenAI.

    Azure is used when endpoint, key and embeddings deployment are all set;
    otherwise OpenAI when ``OPENAI_API_KEY`` is set; otherwise the service is
    unavailable and the pipeline runs without embeddings.
    """

    def __init__(
        self,
        azure_endpoint: Optional[str] = None,
        azure_api_key: Optional[str] = None,
        azure_deployment: Optional[str] = None,
        openai_api_key: Optional[str] = None,
    ):
        llm = settings.llm
        azure_endpoint = azure_endpoint if azure_endpoint is not None else llm.azure_openai_endpoint
        azure_api_key = azure_api_key if azure_api_key is not None else llm.azure_openai_api_key
        azure_deployment = (
            azure_deployment if azure_deployment is not None else settings.azure.embeddings_deployment
        )
        openai_api_key = openai_api_key if openai_api_key is not None else llm.openai_api_key

        self.client: Optional[BaseLLMClient] = None
        self.model: Optional[str] = None
        self.provider: Optional[str] = None

        if azure_endpoint and azure_api_key and azure_deployment:
            self.client = BaseLLMClient(
                api_key=azure_api_key,
                base_url=f"{azure_endpoint.rstrip('/')}/openai/deployments/{azure_deployment}",
                timeout=settings.http_timeout,
                max_retries=settings.max_retries,
                retry_delay=settings.retry_delay,
                auth_header="api-key",
                auth_scheme=None,
                query_params={"api-version": llm.azure_openai_api_version},
            )
            self.model = azure_deployment
            self.provider = "azure_openai"
        elif openai_api_key:
            self.client = BaseLLMClient(
                api_key=openai_api_key,
                base_url=llm.openai_api_url,
                timeout=settings.http_timeout,
                max_retries=settings.max_retries,
                retry_delay=settings.retry_delay,
            )
            self.model = settings.azure.openai_embeddings_model
            self.provider = "openai"
        else:
            LOGGER.warning("No embeddings provider configured, embeddings disabled")

    def is_available(self) -> bool:
        return self.client is not None

    def chunk(self, text: str, max_tokens: int = 8000) -> List[str]:
        return chunk_text(text, max_tokens)

    async def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text.

        Raises:
            UnavailableError: If no provider is configured
            EmbeddingError: If the input is empty or the request fails
        """
        results = await self.embed_batch([text])
        if not results:
            raise EmbeddingError("Cannot embed empty text")
        return results[0]

    async def embed_batch(self, texts: List[str]) -> List[EmbeddingResult]:
        """Embed several texts in one request; empty strings are dropped."""
        if not self.is_available():
            raise UnavailableError("Embeddings are not configured", stage="embedding")

        inputs = [text for text in texts if text and text.strip()]
        if not inputs:
            return []

        payload: Dict[str, Any] = {"input": inputs}
        if self.provider == "openai":
            payload["model"] = self.model

        try:
            response = await self.client.call_api(endpoint="/embeddings", payload=payload)
        except APIClientError as e:
            raise EmbeddingError(f"Embedding request failed: {e}", original_error=e) from e

        data = sorted(response.get("data") or [], key=lambda item: item.get("index", 0))
        if len(data) != len(inputs):
            raise EmbeddingError(
                f"Embedding response returned {len(data)} vectors for {len(inputs)} inputs"
            )

        usage = response.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens", 0))
        total_tokens = int(usage.get("total_tokens", 0))
        model = response.get("model") or self.model
        per_item = len(inputs)

        try:
            results = [
                EmbeddingResult(
                    vector=item["embedding"],
                    model=model,
                    dimensions=len(item["embedding"]),
                    token_usage={
                        "promptTokens": prompt_tokens // per_item,
                        "totalTokens": total_tokens // per_item,
                    },
                )
                for item in data
            ]
        except (KeyError, TypeError) as e:
            raise EmbeddingError(f"Malformed embedding response: {e}", original_error=e) from e

        LOGGER.info(
            "Generated embeddings",
            extra={"provider": self.provider, "model": model, "count": len(results), "total_tokens": total_tokens}
        )
        return results
