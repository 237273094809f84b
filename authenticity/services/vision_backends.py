"""Pluggable image classification and OCR backends.

Real backends need the optional ``vision`` extra (torch, torchvision,
Pillow, pytesseract) and fail fast with CapabilityMissingError when it is
not installed. The ``Unavailable*`` stubs stand in when a backend is
disabled; the analyzer treats their errors as a degraded-confidence signal.
"""

import asyncio
import io
import logging
from abc import ABC, abstractmethod

from authenticity.config import get_settings
from authenticity.errors import (
    CapabilityMissingError,
    ClassifierUnavailableError,
    OcrUnavailableError,
)

logger = logging.getLogger(__name__)


class ImageClassifier(ABC):
    name = "base"

    @abstractmethod
    async def classify(self, image_bytes: bytes, top_k: int = 5) -> list[tuple[str, float]]:
        """Return the top-k (label, probability) predictions."""


class OcrEngine(ABC):
    name = "base"

    @abstractmethod
    async def recognize(self, image_bytes: bytes) -> tuple[str, float]:
        """Return (text, confidence 0-100)."""


class UnavailableClassifier(ImageClassifier):
    name = "none"

    def __init__(self, reason: str = "image classifier disabled"):
        self.reason = reason

    async def classify(self, image_bytes: bytes, top_k: int = 5) -> list[tuple[str, float]]:
        raise ClassifierUnavailableError(self.reason)


class UnavailableOcr(OcrEngine):
    name = "none"

    def __init__(self, reason: str = "OCR engine disabled"):
        self.reason = reason

    async def recognize(self, image_bytes: bytes) -> tuple[str, float]:
        raise OcrUnavailableError(self.reason)


class TorchvisionClassifier(ImageClassifier):
    """MobileNetV2 (ImageNet) scene/object classifier.

    The model is loaded once on first use. Concurrent callers share the
    same in-flight load through an asyncio lock; inference runs in a
    worker thread.
    """

    name = "torchvision"

    def __init__(self):
        try:
            import torch  # noqa: F401
            import torchvision  # noqa: F401
            from PIL import Image  # noqa: F401
        except ImportError as e:
            raise CapabilityMissingError(
                "torchvision classifier requires the 'vision' extra (torch, torchvision, Pillow)"
            ) from e
        self._model = None
        self._preprocess = None
        self._categories: list[str] = []
        self._lock = asyncio.Lock()

    def _load(self):
        from torchvision.models import MobileNet_V2_Weights, mobilenet_v2

        weights = MobileNet_V2_Weights.DEFAULT
        model = mobilenet_v2(weights=weights)
        model.eval()
        logger.info("Loaded MobileNetV2 classifier (%s)", weights)
        return model, weights.transforms(), list(weights.meta["categories"])

    async def _ensure_loaded(self):
        if self._model is not None:
            return
        async with self._lock:
            if self._model is None:
                model, preprocess, categories = await asyncio.to_thread(self._load)
                self._preprocess = preprocess
                self._categories = categories
                self._model = model

    def _predict(self, image_bytes: bytes, top_k: int) -> list[tuple[str, float]]:
        import torch
        from PIL import Image

        image = Image.open(io.BytesIO(image_bytes)).convert("RGB")
        batch = self._preprocess(image).unsqueeze(0)
        with torch.no_grad():
            probabilities = self._model(batch).softmax(dim=1)[0]
        values, indices = probabilities.topk(min(top_k, probabilities.shape[0]))
        return [
            (self._categories[int(i)], float(p))
            for p, i in zip(values.tolist(), indices.tolist())
        ]

    async def classify(self, image_bytes: bytes, top_k: int = 5) -> list[tuple[str, float]]:
        await self._ensure_loaded()
        return await asyncio.to_thread(self._predict, image_bytes, top_k)


class TesseractOcr(OcrEngine):
    name = "tesseract"

    def __init__(self, lang: str = "eng"):
        try:
            import pytesseract  # noqa: F401
            from PIL import Image  # noqa: F401
        except ImportError as e:
            raise CapabilityMissingError(
                "tesseract OCR requires the 'vision' extra (pytesseract, Pillow)"
            ) from e
        self.lang = lang

    def _recognize(self, image_bytes: bytes) -> tuple[str, float]:
        import pytesseract
        from PIL import Image

        image = Image.open(io.BytesIO(image_bytes))
        data = pytesseract.image_to_data(
            image, lang=self.lang, output_type=pytesseract.Output.DICT
        )
        words = [w for w in data["text"] if w and w.strip()]
        confidences = [float(c) for c in data["conf"] if float(c) >= 0]
        text = " ".join(words)
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return text, confidence

    async def recognize(self, image_bytes: bytes) -> tuple[str, float]:
        return await asyncio.to_thread(self._recognize, image_bytes)


def build_classifier(backend: str | None = None) -> ImageClassifier:
    """Build the configured classifier. Raises CapabilityMissingError."""
    backend = backend or get_settings().classifier_backend
    if backend == "torchvision":
        return TorchvisionClassifier()
    if backend == "none":
        return UnavailableClassifier()
    raise ValueError(f"Unknown classifier backend: {backend}")


def build_ocr(backend: str | None = None) -> OcrEngine:
    """Build the configured OCR engine. Raises CapabilityMissingError."""
    backend = backend or get_settings().ocr_backend
    if backend == "tesseract":
        return TesseractOcr()
    if backend == "none":
        return UnavailableOcr()
    raise ValueError(f"Unknown OCR backend: {backend}")
