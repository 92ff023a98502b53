"""Clients for the network services the daemon talks to."""

from .answer import AnswerSynthesizer, fallback_answer
from .conversation import ElevenLabsConnector
from .embeddings import OpenAIEmbedder
from .search import SearchResult, TavilySearch, format_sources
from .speech import ElevenLabsSpeech
from .transcription import OpenAITranscriber

__all__ = [
    "AnswerSynthesizer",
    "ElevenLabsConnector",
    "ElevenLabsSpeech",
    "OpenAIEmbedder",
    "OpenAITranscriber",
    "SearchResult",
    "TavilySearch",
    "fallback_answer",
    "format_sources",
]
