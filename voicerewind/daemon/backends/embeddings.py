"""Text embeddings through the OpenAI API."""

from __future__ import annotations

import openai
from openai import AsyncOpenAI

from voicerewind.common.structured_logging import get_logger

from ..errors import UpstreamUnavailable

logger = get_logger(__name__, service_name="voicerewind")

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIEmbedder:
    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_EMBEDDING_MODEL) -> None:
        self.model = model
        self._client = client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` in one request, preserving input order."""
        if not texts:
            return []
        try:
            response = await self._client.embeddings.create(model=self.model, input=texts)
        except openai.OpenAIError as exc:
            logger.error(
                "embedder.request_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                batch_size=len(texts),
            )
            raise UpstreamUnavailable("openai_embeddings", str(exc)) from exc

        data = sorted(response.data, key=lambda item: item.index)
        logger.debug("embedder.batch_embedded", batch_size=len(texts), model=self.model)
        return [list(item.embedding) for item in data]


__all__ = ["OpenAIEmbedder"]
