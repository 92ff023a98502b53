"""Wake word spotting with openWakeWord.

The spotter is fed one 80 ms frame (1280 samples of 16 kHz int16 PCM) at a
time, which is the chunk size openWakeWord scores natively.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
from openwakeword import Model as WakeWordModel

from voicerewind.common.structured_logging import get_logger

from .pipeline import WakeDetection

if TYPE_CHECKING:
    from voicerewind.common.config import AudioConfig

WAKE_FRAME_SAMPLES = 1280
_INFRASTRUCTURE_MODELS = {"embedding_model", "melspectrogram", "silero_vad"}


class WakeModelUnavailable(RuntimeError):
    """No wake word model could be loaded."""


def filter_wake_word_models(model_files: Iterable[Path]) -> list[Path]:
    """Drop openWakeWord's feature models and prefer ONNX over TFLite per name."""
    onnx_files: dict[str, Path] = {}
    tflite_files: dict[str, Path] = {}
    for path in model_files:
        if path.suffix == ".onnx":
            onnx_files[path.stem] = path
        elif path.suffix == ".tflite":
            tflite_files[path.stem] = path

    selected = []
    for name in sorted(set(onnx_files) | set(tflite_files)):
        if any(pattern in name.lower() for pattern in _INFRASTRUCTURE_MODELS):
            continue
        selected.append(onnx_files.get(name) or tflite_files[name])
    return selected


class OpenWakeWordSpotter:
    """Scores frames against the configured keyword models."""

    frame_length = WAKE_FRAME_SAMPLES

    def __init__(
        self,
        keyword: str = "hey_jarvis",
        model_paths: Iterable[str] = (),
        threshold: float = 0.5,
        inference_framework: str = "onnx",
        model: Any = None,
    ) -> None:
        self.keyword = keyword
        self.threshold = threshold
        self.inference_framework = inference_framework
        self._logger = get_logger(__name__, service_name="voicerewind")
        self._model = model if model is not None else self._load_model(
            [Path(path) for path in model_paths if path]
        )

    @classmethod
    def from_config(cls, config: AudioConfig) -> OpenWakeWordSpotter:
        return cls(
            keyword=config.wake_keyword,
            model_paths=config.model_paths or (),
            threshold=config.sensitivity,
            inference_framework=config.inference_framework,
        )

    def _load_model(self, paths: list[Path]) -> Any:
        """Load user-provided models, else openWakeWord's pre-trained keyword.

        Raises:
            WakeModelUnavailable: neither source produced a model
        """
        model_paths: list[str] = []
        if paths:
            existing = [path for path in paths if path.exists()]
            if not existing:
                self._logger.warning(
                    "wake.user_paths_not_found",
                    provided_paths=[str(path) for path in paths],
                )
            model_paths = [str(path) for path in filter_wake_word_models(existing)]

        wakeword_models = model_paths or [self.keyword]
        try:
            model = WakeWordModel(
                wakeword_models=wakeword_models,
                inference_framework=self.inference_framework,
            )
        except Exception as exc:
            suggestion = "Check that the model files are wake word models."
            if "inference framework" in str(exc).lower():
                suggestion = (
                    "Ensure WAKE_INFERENCE_FRAMEWORK matches the model format "
                    "(onnx or tflite)."
                )
            self._logger.warning(
                "wake.model_load_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                models=[Path(name).name for name in wakeword_models],
                suggestion=suggestion,
            )
            raise WakeModelUnavailable(str(exc)) from exc

        self._logger.info(
            "wake.model_loaded",
            models=[Path(name).name for name in wakeword_models],
            framework=self.inference_framework,
            threshold=self.threshold,
        )
        return model

    def process(self, frame: bytes) -> WakeDetection | None:
        """Score one frame; return a detection when the keyword crosses the threshold."""
        if not frame:
            return None
        samples = np.frombuffer(frame, dtype=np.int16)
        scores = self._model.predict(samples)
        if not isinstance(scores, dict) or not scores:
            return None

        # custom models are named after their files, so only filter when a
        # score key actually mentions the keyword
        relevant = {
            name: score for name, score in scores.items() if self.keyword in str(name)
        } or scores
        keyword, score = max(relevant.items(), key=lambda item: item[1])
        if score is None or float(score) < self.threshold:
            return None

        self._logger.debug(
            "wake.detection_scores", keyword=keyword, score=float(score), threshold=self.threshold
        )
        return WakeDetection(keyword=str(keyword), confidence=float(score))

    def reset(self) -> None:
        """Clear the model's sliding feature buffers after a detection."""
        reset = getattr(self._model, "reset", None)
        if callable(reset):
            reset()


__all__ = [
    "WAKE_FRAME_SAMPLES",
    "OpenWakeWordSpotter",
    "WakeDetection",
    "WakeModelUnavailable",
    "filter_wake_word_models",
]
