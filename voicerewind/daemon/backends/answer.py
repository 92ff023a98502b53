"""Answer synthesis from web results with an OpenAI chat model.

Without a chat client, or when the call fails, a deterministic summary of the
first result is returned instead so callers always get text back.
"""

from __future__ import annotations

import openai
from openai import AsyncOpenAI

from voicerewind.common.structured_logging import get_logger

from .search import SearchResult

logger = get_logger(__name__, service_name="voicerewind")

DEFAULT_CHAT_MODEL = "gpt-4o-mini"
SUMMARY_CHARS = 200
NO_RESULTS_ANSWER = "I could not find relevant information to answer your question."

SYSTEM_PROMPT = (
    "You are a helpful research assistant. Answer concisely (3-6 sentences). "
    "Use the provided web results and optional video context. Include inline "
    "citations like [1], [2] mapping to the provided sources by index. "
    "If unsure, say so."
)


def fallback_answer(results: list[SearchResult]) -> str:
    if not results:
        return NO_RESULTS_ANSWER
    first = results[0]
    summary = first.content
    if len(summary) > SUMMARY_CHARS:
        summary = summary[:SUMMARY_CHARS] + "..."
    return (
        "Based on my search, here's what I found:\n\n"
        f"{summary}\n\nSource: {first.title} - {first.url}"
    )


def build_user_prompt(
    question: str, results: list[SearchResult], context: str | None = None
) -> str:
    sources = "\n\n".join(
        f"[{position}] {result.title} - {result.url}\n{result.content}"
        for position, result in enumerate(results, start=1)
    )
    video_context = (
        f"Video context:\n{context.strip()}"
        if context and context.strip()
        else "Video context: (none)"
    )
    return f"Question: {question}\n{video_context}\nWeb results:\n{sources}"


class AnswerSynthesizer:
    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str = DEFAULT_CHAT_MODEL,
        temperature: float = 0.2,
        max_tokens: int = 500,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None

    async def synthesize_answer(
        self,
        question: str,
        results: list[SearchResult],
        context: str | None = None,
    ) -> str:
        """Answer ``question`` citing ``results`` by their 1-based position."""
        if self._client is None:
            logger.debug("answer.chat_unavailable")
            return fallback_answer(results)

        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(question, results, context)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as exc:
            logger.error(
                "answer.chat_failed", error=str(exc), error_type=type(exc).__name__
            )
            return fallback_answer(results)

        choices = completion.choices or []
        text = (choices[0].message.content or "").strip() if choices else ""
        if not text:
            logger.warning("answer.empty_completion", model=self.model)
            return fallback_answer(results)

        logger.info(
            "answer.synthesized", model=self.model, sources=len(results), chars=len(text)
        )
        return text


__all__ = [
    "NO_RESULTS_ANSWER",
    "SYSTEM_PROMPT",
    "AnswerSynthesizer",
    "build_user_prompt",
    "fallback_answer",
]
