"""Tests for literal and embedding-based segment matching."""

import math

import pytest

from voicerewind.daemon.semantic import (
    EmbeddingIndex,
    IndexedSegment,
    SemanticMatcher,
    cosine_similarity,
    find_literal,
    rank_segments,
)


class KeywordEmbedder:
    """Embeds text as counts of a few keywords."""

    KEYWORDS = ("bread", "starter", "shape", "channel")
    SYNONYMS = {"sourdough": "bread", "loaf": "shape", "yeast": "starter"}

    def __init__(self, model="embed-a"):
        self.model = model
        self.calls = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            words = [self.SYNONYMS.get(word, word) for word in text.lower().split()]
            vectors.append([float(words.count(keyword)) for keyword in self.KEYWORDS])
        return vectors


@pytest.mark.unit
class TestCosineSimilarity:
    """Similarity edge cases."""

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0

    def test_self_similarity_is_one(self):
        assert math.isclose(cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]), 1.0)

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


@pytest.mark.unit
class TestRanking:
    """Literal lookup and candidate ranking."""

    def test_literal_match_ignores_case_and_punctuation(self, segments):
        match = find_literal(segments, "first feed your STARTER")

        assert match.method == "literal"
        assert match.start == 60.0
        assert match.index == 2

    def test_literal_miss(self, segments):
        assert find_literal(segments, "knead") is None
        assert find_literal(segments, "!!!") is None

    def test_ties_keep_segment_order(self):
        index = EmbeddingIndex(
            model="m",
            dims=2,
            items=[
                IndexedSegment(idx=0, start=0.0, duration=1.0, text="a", embedding=(1.0, 0.0)),
                IndexedSegment(idx=1, start=5.0, duration=1.0, text="b", embedding=(1.0, 0.0)),
            ],
        )

        match = rank_segments(index, [1.0, 0.0])

        assert match.index == 0
        assert [candidate.index for candidate in match.candidates] == [0, 1]

    def test_empty_index(self):
        assert rank_segments(EmbeddingIndex(model="m", dims=0), [1.0]).method == "none"


@pytest.mark.unit
class TestSemanticMatcher:
    """Index caching, staleness and search."""

    @pytest.mark.asyncio
    async def test_semantic_search_finds_best_segment(self, cache_store, segments):
        matcher = SemanticMatcher(KeywordEmbedder(), cache_store)

        match = await matcher.search("vid00001", segments, "loaf shaping")

        assert match.method == "semantic"
        assert match.start == 200.0
        assert match.text == "Now shape the loaf gently"
        assert cache_store.read_embeddings("vid00001").model == "embed-a"

    @pytest.mark.asyncio
    async def test_literal_match_skips_embeddings(self, cache_store, segments):
        embedder = KeywordEmbedder()
        matcher = SemanticMatcher(embedder, cache_store)

        match = await matcher.search("vid00001", segments, "sourdough")

        assert match.method == "literal"
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_fresh_index_is_reused(self, cache_store, segments):
        embedder = KeywordEmbedder()
        matcher = SemanticMatcher(embedder, cache_store)
        await matcher.ensure_index("vid00001", segments)

        await matcher.ensure_index("vid00001", segments)

        assert len(embedder.calls) == 1

    @pytest.mark.asyncio
    async def test_index_from_other_model_is_rebuilt(self, cache_store, segments):
        await SemanticMatcher(KeywordEmbedder("embed-a"), cache_store).ensure_index(
            "vid00001", segments
        )
        embedder_b = KeywordEmbedder("embed-b")

        index = await SemanticMatcher(embedder_b, cache_store).ensure_index(
            "vid00001", segments
        )

        assert index.model == "embed-b"
        assert len(embedder_b.calls) == 1
        assert cache_store.read_embeddings("vid00001").model == "embed-b"

    def test_staleness_rules(self):
        item = IndexedSegment(idx=0, start=0.0, duration=1.0, text="x", embedding=(1.0,))

        assert EmbeddingIndex(model="A", dims=1, items=[item]).is_fresh("A")
        assert not EmbeddingIndex(model="A", dims=1, items=[item]).is_fresh("B")
        assert not EmbeddingIndex(model="A", dims=1).is_fresh("A")

    @pytest.mark.asyncio
    async def test_no_segments(self, cache_store):
        matcher = SemanticMatcher(KeywordEmbedder(), cache_store)

        match = await matcher.search("vid00001", [], "anything")

        assert match.to_dict()["method"] == "none"
        assert match.index == -1
