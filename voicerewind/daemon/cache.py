"""On-disk cache for transcripts, embedding indexes and synthesized media.

Layout under the cache root::

    transcripts/<videoId>.json             segments
    transcripts/<videoId>.embeddings.json  embedding index
    agent_media/ans-<millis>.<ext>         audio served at /media/<file>
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from voicerewind.common.structured_logging import get_logger

from .semantic import EmbeddingIndex
from .transcripts import TranscriptSegment

logger = get_logger(__name__, service_name="voicerewind")

MEDIA_ROUTE = "/media"
_EMBEDDINGS_SUFFIX = ".embeddings.json"


class CacheStore:
    """Reads and writes cache files; callers validate video ids first."""

    def __init__(
        self, root: str | Path, clock: Callable[[], float] = time.time
    ) -> None:
        self.root = Path(root)
        self.transcripts_dir = self.root / "transcripts"
        self.media_dir = self.root / "agent_media"
        self._clock = clock

    def ensure_dirs(self) -> None:
        self.transcripts_dir.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)

    def transcript_path(self, video_id: str) -> Path:
        return self.transcripts_dir / f"{video_id}.json"

    def embeddings_path(self, video_id: str) -> Path:
        return self.transcripts_dir / f"{video_id}{_EMBEDDINGS_SUFFIX}"

    def _write_json(self, path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read_json(self, path: Path) -> Any | None:
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("cache.read_failed", path=str(path), error=str(exc))
            return None

    def has_transcript(self, video_id: str) -> bool:
        return self.transcript_path(video_id).exists()

    def read_transcript(self, video_id: str) -> list[TranscriptSegment] | None:
        data = self._read_json(self.transcript_path(video_id))
        if not isinstance(data, list):
            return None
        return [TranscriptSegment.from_dict(item) for item in data]

    def write_transcript(self, video_id: str, segments: list[TranscriptSegment]) -> None:
        self._write_json(
            self.transcript_path(video_id), [segment.to_dict() for segment in segments]
        )

    def read_embeddings(self, video_id: str) -> EmbeddingIndex | None:
        data = self._read_json(self.embeddings_path(video_id))
        if not isinstance(data, dict):
            return None
        try:
            return EmbeddingIndex.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("cache.embeddings_corrupt", video_id=video_id, error=str(exc))
            return None

    def write_embeddings(self, video_id: str, index: EmbeddingIndex) -> None:
        self._write_json(self.embeddings_path(video_id), index.to_dict())

    def clear(self, video_id: str) -> dict[str, bool]:
        """Delete the transcript and embeddings of one video."""
        removed = {}
        for key, path in (
            ("transcript", self.transcript_path(video_id)),
            ("embeddings", self.embeddings_path(video_id)),
        ):
            existed = path.exists()
            path.unlink(missing_ok=True)
            removed[key] = existed
        logger.info("cache.cleared", video_id=video_id, **removed)
        return removed

    def save_media(self, data: bytes, extension: str) -> str:
        """Write ``data`` to the media dir and return its URL path."""
        self.media_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(self._clock() * 1000)
        path = self.media_dir / f"ans-{stamp}.{extension}"
        suffix = 1
        while path.exists():
            path = self.media_dir / f"ans-{stamp}-{suffix}.{extension}"
            suffix += 1
        path.write_bytes(data)
        logger.debug("cache.media_saved", file=path.name, bytes=len(data))
        return f"{MEDIA_ROUTE}/{path.name}"

    def stats(self) -> dict[str, int]:
        transcripts = embeddings = media = 0
        if self.transcripts_dir.exists():
            for entry in self.transcripts_dir.iterdir():
                if entry.name.endswith(_EMBEDDINGS_SUFFIX):
                    embeddings += 1
                elif entry.suffix == ".json":
                    transcripts += 1
        if self.media_dir.exists():
            media = sum(1 for entry in self.media_dir.iterdir() if entry.is_file())
        return {
            "transcriptCount": transcripts,
            "embeddingCount": embeddings,
            "mediaCount": media,
        }


__all__ = ["MEDIA_ROUTE", "CacheStore"]
