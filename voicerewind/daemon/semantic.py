"""Rank transcript segments against a query for "jump to phrase".

A literal, case-insensitive match is always tried first. Only when no segment
contains the phrase is the query embedded and compared to a per-video
embedding index by cosine similarity.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np

from voicerewind.common.structured_logging import get_logger

if TYPE_CHECKING:
    from .cache import CacheStore
    from .transcripts import TranscriptSegment

logger = get_logger(__name__, service_name="voicerewind")

DEFAULT_TOP_K = 5
EMBEDDING_BATCH_SIZE = 100


class Embedder(Protocol):
    model: str

    async def embed(self, texts: list[str]) -> list[list[float]]: ...


@dataclass(slots=True, frozen=True)
class IndexedSegment:
    idx: int
    start: float
    duration: float
    text: str
    embedding: tuple[float, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "idx": self.idx,
            "start": self.start,
            "duration": self.duration,
            "text": self.text,
            "embedding": list(self.embedding),
        }


@dataclass(slots=True)
class EmbeddingIndex:
    """Embeddings of one video's segments, tagged with the model that made them."""

    model: str
    dims: int
    items: list[IndexedSegment] = field(default_factory=list)

    def is_fresh(self, model: str) -> bool:
        """Only an index built by the configured model with content is usable."""
        return self.model == model and bool(self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "dims": self.dims,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddingIndex:
        items = [
            IndexedSegment(
                idx=int(item["idx"]),
                start=float(item["start"]),
                duration=float(item.get("duration", 0.0)),
                text=str(item.get("text", "")),
                embedding=tuple(float(v) for v in item["embedding"]),
            )
            for item in data.get("items", [])
        ]
        return cls(model=str(data.get("model", "")), dims=int(data.get("dims", 0)), items=items)


@dataclass(slots=True)
class SegmentCandidate:
    index: int
    start: float
    score: float
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "start": self.start, "score": self.score, "text": self.text}


@dataclass(slots=True)
class SemanticMatch:
    """Best segment plus the ranked candidates that produced it."""

    start: float
    score: float
    text: str
    index: int
    candidates: list[SegmentCandidate] = field(default_factory=list)
    method: str = "semantic"

    @classmethod
    def empty(cls) -> SemanticMatch:
        return cls(start=0.0, score=0.0, text="", index=-1, method="none")

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "score": self.score,
            "text": self.text,
            "index": self.index,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "method": self.method,
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity, defined as 0.0 when either vector has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"dimension mismatch: {va.shape} vs {vb.shape}")
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def rank_segments(
    index: EmbeddingIndex, query_vector: Sequence[float], top_k: int = DEFAULT_TOP_K
) -> SemanticMatch:
    """Score every indexed segment; ties keep segment order."""
    if not index.items:
        return SemanticMatch.empty()

    scored = [
        SegmentCandidate(
            index=item.idx,
            start=item.start,
            score=cosine_similarity(item.embedding, query_vector),
            text=item.text,
        )
        for item in index.items
    ]
    # sorted() is stable, so equal scores stay in segment order
    ranked = sorted(scored, key=lambda candidate: candidate.score, reverse=True)
    best = ranked[0]
    return SemanticMatch(
        start=best.start,
        score=best.score,
        text=best.text,
        index=best.index,
        candidates=ranked[: max(top_k, 1)],
    )


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^\w\s']", " ", text.lower())).strip()


def find_literal(
    segments: Sequence[TranscriptSegment], phrase: str
) -> SemanticMatch | None:
    """Return the first segment whose text contains ``phrase``, ignoring case."""
    needle = _normalize_text(phrase)
    if not needle:
        return None
    for position, segment in enumerate(segments):
        if needle in _normalize_text(segment.text):
            candidate = SegmentCandidate(
                index=position, start=segment.start, score=1.0, text=segment.text
            )
            return SemanticMatch(
                start=segment.start,
                score=1.0,
                text=segment.text,
                index=position,
                candidates=[candidate],
                method="literal",
            )
    return None


class SemanticMatcher:
    """Builds, caches and queries per-video embedding indexes."""

    def __init__(self, embedder: Embedder, cache: CacheStore) -> None:
        self._embedder = embedder
        self._cache = cache

    @property
    def model(self) -> str:
        return self._embedder.model

    async def ensure_index(
        self,
        video_id: str,
        segments: Sequence[TranscriptSegment],
        force: bool = False,
    ) -> EmbeddingIndex:
        """Return a fresh index for ``video_id``, rebuilding it when stale."""
        if not force:
            cached = self._cache.read_embeddings(video_id)
            if cached is not None:
                if cached.is_fresh(self.model):
                    return cached
                logger.info(
                    "semantic.index_stale",
                    video_id=video_id,
                    cached_model=cached.model,
                    model=self.model,
                )

        texts = [segment.text for segment in segments]
        vectors: list[list[float]] = []
        for offset in range(0, len(texts), EMBEDDING_BATCH_SIZE):
            vectors.extend(
                await self._embedder.embed(texts[offset : offset + EMBEDDING_BATCH_SIZE])
            )
        if len(vectors) != len(texts):
            raise ValueError(
                f"embedder returned {len(vectors)} vectors for {len(texts)} texts"
            )

        items = [
            IndexedSegment(
                idx=position,
                start=segment.start,
                duration=segment.duration,
                text=segment.text,
                embedding=tuple(vector),
            )
            for position, (segment, vector) in enumerate(zip(segments, vectors))
        ]
        index = EmbeddingIndex(
            model=self.model, dims=len(vectors[0]) if vectors else 0, items=items
        )
        if items:
            self._cache.write_embeddings(video_id, index)
        logger.info(
            "semantic.index_built", video_id=video_id, items=len(items), dims=index.dims
        )
        return index

    async def search(
        self,
        video_id: str,
        segments: Sequence[TranscriptSegment],
        query: str,
        *,
        force: bool = False,
        top_k: int = DEFAULT_TOP_K,
    ) -> SemanticMatch:
        """Literal match first, then embedding similarity."""
        if not segments:
            return SemanticMatch.empty()

        literal = find_literal(segments, query)
        if literal is not None:
            return literal

        index = await self.ensure_index(video_id, segments, force=force)
        if not index.items:
            return SemanticMatch.empty()
        (query_vector,) = await self._embedder.embed([query])
        match = rank_segments(index, query_vector, top_k=top_k)
        logger.info(
            "semantic.search_completed",
            video_id=video_id,
            start=match.start,
            score=round(match.score, 4),
        )
        return match


__all__ = [
    "EmbeddingIndex",
    "Embedder",
    "IndexedSegment",
    "SegmentCandidate",
    "SemanticMatch",
    "SemanticMatcher",
    "cosine_similarity",
    "find_literal",
    "rank_segments",
]
