import pytest
from unittest.mock import AsyncMock

from medlegal.core.exceptions import APIClientError, EmbeddingError, UnavailableError
from medlegal.services.embeddings.embedding_service import (
    EmbeddingService,
    chunk_text,
    cosine_similarity,
    find_similar,
)


class TestChunkText:

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
    def test_blank_text_has_no_chunks(self, text):
        assert chunk_text(text) == []

    def test_short_text_is_returned_unchanged(self):
        text = "  Patient reports neck pain.  "
        assert chunk_text(text, max_tokens=100) == [text]

    def test_long_text_splits_on_sentence_ends(self):
        sentence = "The patient was seen for follow up. "
        text = sentence * 40

        chunks = chunk_text(text, max_tokens=50)

        assert len(chunks) > 1
        for chunk in chunks:
            assert chunk
            assert len(chunk) <= 50 * 4
            assert chunk.endswith(".")

    def test_chunks_cover_all_content(self):
        text = ("word " * 30 + "\n\n") * 20
        chunks = chunk_text(text, max_tokens=40)

        assert "".join(chunks).replace(" ", "").replace("\n", "") == text.replace(" ", "").replace("\n", "")


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    @pytest.mark.parametrize("a, b", [(None, [1.0]), ([], [1.0]), ([0.0, 0.0], [1.0, 1.0])])
    def test_missing_or_zero_vectors_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestFindSimilar:

    def test_ranks_and_filters_candidates(self):
        candidates = [
            ("same", [1.0, 0.0]),
            ("close", [0.9, 0.1]),
            ("orthogonal", [0.0, 1.0]),
            ("wrong-size", [1.0, 0.0, 0.0]),
        ]

        results = find_similar([1.0, 0.0], candidates, threshold=0.7)

        assert [item for item, _ in results] == ["same", "close"]
        assert results[0][1] >= results[1][1]

    def test_limit(self):
        candidates = [(i, [1.0, 0.0]) for i in range(5)]
        assert len(find_similar([1.0, 0.0], candidates, limit=2)) == 2


class TestEmbeddingService:

    def test_unconfigured_service_is_unavailable(self):
        service = EmbeddingService(azure_endpoint="", azure_api_key="", azure_deployment="", openai_api_key="")
        assert not service.is_available()

    @pytest.mark.asyncio
    async def test_unconfigured_service_raises_unavailable(self):
        service = EmbeddingService(azure_endpoint="", azure_api_key="", azure_deployment="", openai_api_key="")
        with pytest.raises(UnavailableError):
            await service.embed("text")

    def test_azure_preferred_when_complete(self):
        service = EmbeddingService(
            azure_endpoint="https://firm.openai.azure.com",
            azure_api_key="azure-key",
            azure_deployment="embeddings",
            openai_api_key="sk-direct",
        )
        assert service.provider == "azure_openai"
        assert service.client.base_url.endswith("/openai/deployments/embeddings")

    @pytest.fixture
    def openai_service(self):
        service = EmbeddingService(azure_endpoint="", azure_api_key="", azure_deployment="", openai_api_key="sk-direct")
        service.client.call_api = AsyncMock()
        return service

    @pytest.mark.asyncio
    async def test_embed_batch_orders_by_index(self, openai_service):
        openai_service.client.call_api.return_value = {
            "model": "text-embedding-ada-002",
            "data": [
                {"index": 1, "embedding": [0.0, 1.0]},
                {"index": 0, "embedding": [1.0, 0.0]},
            ],
            "usage": {"prompt_tokens": 10, "total_tokens": 10},
        }

        results = await openai_service.embed_batch(["first", "", "second"])

        assert [r.vector for r in results] == [[1.0, 0.0], [0.0, 1.0]]
        assert results[0].dimensions == 2
        assert results[0].token_usage == {"promptTokens": 5, "totalTokens": 5}
        payload = openai_service.client.call_api.call_args.kwargs["payload"]
        assert payload == {"input": ["first", "second"], "model": "text-embedding-ada-002"}

    @pytest.mark.asyncio
    async def test_count_mismatch_raises(self, openai_service):
        openai_service.client.call_api.return_value = {"data": []}
        with pytest.raises(EmbeddingError):
            await openai_service.embed("text")

    @pytest.mark.asyncio
    async def test_client_error_raises_embedding_error(self, openai_service):
        openai_service.client.call_api.side_effect = APIClientError("rate limited", status_code=429)
        with pytest.raises(EmbeddingError):
            await openai_service.embed("text")
