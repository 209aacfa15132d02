"""Tests for cosine similarity and semantic ranking."""

import math

import pytest

from memchat.embeddings.provider import EmbeddingProvider, fallback_embedding
from memchat.memory.retrieval import SemanticRetriever, cosine_similarity
from memchat.storage import InMemoryBackend


def _store(backend: InMemoryBackend, session_id: str, rows: list[tuple[str, str, list[float] | None]]) -> list[int]:
    backend.create_session_if_absent(session_id, 1)
    return [
        backend.append_message(session_id, role, content, 1, i + 1, embedding)
        for i, (role, content, embedding) in enumerate(rows)
    ]


class TestCosineSimilarity:
    def test_self_similarity_is_one(self) -> None:
        v = fallback_embedding("hello world")
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_is_symmetric(self) -> None:
        a = [0.3, -1.2, 4.0]
        b = [2.0, 0.5, -0.7]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    @pytest.mark.parametrize(
        "a,b",
        [
            ([1.0, 0.0], [-1.0, 0.0]),
            ([1.0, 2.0, 3.0], [-3.0, 0.5, 9.0]),
            ([1e-9, 1e9], [1e9, 1e-9]),
        ],
    )
    def test_is_bounded(self, a, b) -> None:
        assert -1.0 - 1e-12 <= cosine_similarity(a, b) <= 1.0 + 1e-12

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 5.0]) == 0.0

    def test_scale_invariant(self) -> None:
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_zero_vector_scores_zero(self) -> None:
        score = cosine_similarity([0.0, 0.0], [1.0, 1.0])
        assert score == 0.0
        assert not math.isnan(score)


class TestRank:
    def test_sorted_by_descending_score(self) -> None:
        backend = InMemoryBackend()
        _store(backend, "s1", [
            ("user", "far", [0.0, 1.0]),
            ("assistant", "close", [1.0, 0.1]),
            ("user", "middle", [1.0, 1.0]),
        ])
        ranked = SemanticRetriever(backend).rank("s1", [1.0, 0.0], 10)
        assert [r["content"] for r in ranked] == ["close", "middle", "far"]
        assert ranked[0]["role"] == "assistant"
        assert ranked[0]["score"] == pytest.approx(1 / math.sqrt(1.01))

    def test_ties_keep_storage_order(self) -> None:
        backend = InMemoryBackend()
        _store(backend, "s1", [
            ("user", "first", [2.0, 0.0]),
            ("user", "other", [0.0, 1.0]),
            ("user", "second", [1.0, 0.0]),
            ("user", "third", [3.0, 0.0]),
        ])
        ranked = SemanticRetriever(backend).rank("s1", [1.0, 0.0], 10)
        assert [r["content"] for r in ranked[:3]] == ["first", "second", "third"]

    def test_limit_truncates(self) -> None:
        backend = InMemoryBackend()
        _store(backend, "s1", [("user", f"m{i}", [1.0, float(i)]) for i in range(5)])
        assert len(SemanticRetriever(backend).rank("s1", [1.0, 0.0], 2)) == 2

    def test_fewer_candidates_than_limit_returns_all(self) -> None:
        backend = InMemoryBackend()
        _store(backend, "s1", [("user", "only", [1.0, 0.0])])
        assert len(SemanticRetriever(backend).rank("s1", [1.0, 0.0], 5)) == 1

    def test_only_the_given_session_is_searched(self) -> None:
        backend = InMemoryBackend()
        _store(backend, "s1", [("user", "mine", [1.0, 0.0])])
        _store(backend, "s2", [("user", "theirs", [1.0, 0.0])])
        ranked = SemanticRetriever(backend).rank("s1", [1.0, 0.0], 10)
        assert [r["content"] for r in ranked] == ["mine"]

    def test_summarized_messages_are_candidates(self) -> None:
        backend = InMemoryBackend()
        ids = _store(backend, "s1", [("user", "old", [1.0, 0.0]), ("user", "new", [0.0, 1.0])])
        backend.mark_summarized(ids[:1])
        ranked = SemanticRetriever(backend).rank("s1", [1.0, 0.0], 10)
        assert [r["content"] for r in ranked] == ["old", "new"]

    def test_messages_without_comparable_embedding_are_skipped(self) -> None:
        backend = InMemoryBackend()
        _store(backend, "s1", [
            ("user", "no vector", None),
            ("user", "wrong size", [1.0, 0.0, 0.0]),
            ("user", "ok", [1.0, 0.0]),
        ])
        ranked = SemanticRetriever(backend).rank("s1", [1.0, 0.0], 10)
        assert [r["content"] for r in ranked] == ["ok"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_embeds_query_and_ranks(self) -> None:
        backend = InMemoryBackend()
        embeddings = EmbeddingProvider()
        _store(backend, "s1", [
            ("user", "I like green tea", fallback_embedding("I like green tea")),
            ("assistant", "zzzz", fallback_embedding("zzzz")),
        ])
        results = await SemanticRetriever(backend, embeddings).search("s1", "green tea", limit=1)
        assert [r["content"] for r in results] == ["I like green tea"]

    @pytest.mark.asyncio
    async def test_search_requires_embeddings(self) -> None:
        with pytest.raises(RuntimeError):
            await SemanticRetriever(InMemoryBackend()).search("s1", "anything")
