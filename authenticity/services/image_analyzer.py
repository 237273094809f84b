"""Image evidence analysis: logo/packaging presence, tampering heuristics, OCR.

Every public coroutine degrades to a documented fallback instead of
raising. Fallback results carry ``degraded=True`` so the verdict layer can
tell an optimistic default from a real detection.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from functools import lru_cache

import httpx

from authenticity.config import get_settings
from authenticity.errors import (
    CapabilityMissingError,
    ClassifierUnavailableError,
    OcrUnavailableError,
)
from authenticity.schemas.verification import (
    LogoAnalysis,
    OcrResult,
    TamperingAnalysis,
    VerificationResult,
)
from authenticity.services.vision_backends import (
    ImageClassifier,
    OcrEngine,
    UnavailableClassifier,
    UnavailableOcr,
    build_classifier,
    build_ocr,
)

logger = logging.getLogger(__name__)

LOGO_KEYWORDS = ("packaging", "label", "logo", "brand", "product", "box", "bottle", "container")

# Serial numbers: runs of 6+ uppercase alphanumerics
SERIAL_NUMBER_PATTERN = re.compile(r"[A-Z0-9]{6,}")

# Tampering heuristic increments
INVALID_FORMAT_WEIGHT = 0.3
SMALL_FILE_WEIGHT = 0.15
LARGE_FILE_WEIGHT = 0.1
TAMPERING_THRESHOLD = 0.4

BASE_SCORE = 50


@dataclass(frozen=True)
class FetchedImage:
    """One download of an evidence image, shared by every check."""

    url: str
    content: bytes = b""
    content_type: str | None = None
    size: int = 0
    truncated: bool = False  # body exceeded the byte cap and was not read in full
    reachable: bool = True
    error: str | None = None

    @property
    def usable(self) -> bool:
        return self.error is None and not self.truncated


class ImageFetcher:
    """Streams evidence images over HTTP with a bounded timeout and size."""

    def __init__(self, timeout: float | None = None, client: httpx.AsyncClient | None = None):
        self.timeout = timeout if timeout is not None else get_settings().image_fetch_timeout
        self._client = client

    async def fetch(self, url: str, max_bytes: int) -> FetchedImage:
        """GET the image, reading at most ``max_bytes`` of the body.

        Raises:
            httpx.HTTPError: on transport failures and non-2xx responses.
        """
        if self._client is not None:
            return await self._read(self._client, url, max_bytes)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await self._read(client, url, max_bytes)

    async def _read(self, client: httpx.AsyncClient, url: str, max_bytes: int) -> FetchedImage:
        async with client.stream("GET", url, timeout=self.timeout) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type")

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                return FetchedImage(url, content_type=content_type, size=int(declared), truncated=True)

            chunks: list[bytes] = []
            size = 0
            async for chunk in response.aiter_bytes():
                size += len(chunk)
                if size > max_bytes:
                    return FetchedImage(url, content_type=content_type, size=size, truncated=True)
                chunks.append(chunk)

        return FetchedImage(url, content=b"".join(chunks), content_type=content_type, size=size)


class ImageEvidenceAnalyzer:
    def __init__(
        self,
        fetcher: ImageFetcher | None = None,
        classifier: ImageClassifier | None = None,
        ocr: OcrEngine | None = None,
        settings=None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or ImageFetcher(self.settings.image_fetch_timeout)
        self.classifier = classifier or UnavailableClassifier()
        self.ocr = ocr or UnavailableOcr()

    async def load_image(self, image_url: str) -> FetchedImage:
        """Download the image once; failures are recorded on the result."""
        try:
            image = await self.fetcher.fetch(image_url, self.settings.image_max_bytes)
        except httpx.HTTPStatusError as e:
            logger.warning("Image %s unreachable: HTTP %d", image_url, e.response.status_code)
            return FetchedImage(image_url, reachable=False, error=str(e))
        except httpx.HTTPError as e:
            logger.warning("Image download failed for %s: %s", image_url, e)
            return FetchedImage(image_url, error=str(e) or type(e).__name__)
        if image.truncated:
            logger.warning(
                "Image %s exceeds %d bytes, stopped reading", image_url, self.settings.image_max_bytes
            )
        return image

    async def analyze_logo_packaging(
        self, image_url: str, image: FetchedImage | None = None
    ) -> LogoAnalysis:
        """Classify the image and look for packaging/brand labels."""
        try:
            image = image or await self.load_image(image_url)
            if not image.reachable:
                return LogoAnalysis(
                    confidence=0, detected_objects=[], has_logo=False, score=0.0,
                    degraded=True, source="unreachable",
                )

            try:
                if not image.usable:
                    raise ClassifierUnavailableError(image.error or "image body not fully read")
                predictions = await self.classifier.classify(
                    image.content, self.settings.classifier_top_k
                )
            except Exception as e:
                logger.warning(
                    "Image classifier unavailable, using optimistic fallback for %s: %s",
                    image_url, e,
                )
                return LogoAnalysis(
                    confidence=70,
                    detected_objects=["packaging", "product_label"],
                    has_logo=True,
                    score=0.7,
                    degraded=True,
                    source="fallback",
                )

            detected_objects = [label for label, _ in predictions]
            top_confidence = max(0.0, min(1.0, predictions[0][1])) if predictions else 0.0
            has_logo = any(
                keyword in label.lower()
                for label in detected_objects
                for keyword in LOGO_KEYWORDS
            )
            return LogoAnalysis(
                confidence=round(top_confidence * 100),
                detected_objects=detected_objects,
                has_logo=has_logo,
                score=top_confidence,
            )
        except Exception as e:
            logger.error("Logo packaging analysis failed for %s: %s", image_url, e, exc_info=True)
            return LogoAnalysis(
                confidence=50, detected_objects=[], has_logo=False, score=0.5,
                degraded=True, source="error",
            )

    async def detect_tampering(
        self, image_url: str, image: FetchedImage | None = None
    ) -> TamperingAnalysis:
        """Heuristic tampering check from content type and payload size."""
        try:
            image = image or await self.load_image(image_url)
            if not image.reachable:
                return TamperingAnalysis(
                    tampering_detected=False, confidence=0, defects=[], score=0.0, degraded=True,
                )
            if image.error is not None:
                logger.warning("Could not perform detailed tampering analysis for %s", image_url)
                return TamperingAnalysis(
                    tampering_detected=False, confidence=50, defects=[], score=0.0, degraded=True,
                )

            defects: list[str] = []
            score = 0.0

            if image.content_type and not image.content_type.startswith("image/"):
                defects.append("Invalid image format")
                score += INVALID_FORMAT_WEIGHT

            if image.size < self.settings.image_min_bytes:
                defects.append("Unusually small file size - possible heavy compression")
                score += SMALL_FILE_WEIGHT

            if image.truncated:
                defects.append("Unusually large file size - possible embedded data")
                score += LARGE_FILE_WEIGHT

            score = min(1.0, score)
            tampering_detected = score > TAMPERING_THRESHOLD
            confidence = 80
            if tampering_detected:
                confidence = round(max(60.0, confidence - score * 20))

            return TamperingAnalysis(
                tampering_detected=tampering_detected,
                confidence=confidence,
                defects=defects,
                score=score,
            )
        except Exception as e:
            logger.error("Tampering detection failed for %s: %s", image_url, e, exc_info=True)
            return TamperingAnalysis(
                tampering_detected=False, confidence=50, defects=[], score=0.5, degraded=True,
            )

    async def extract_text_from_image(
        self, image_url: str, image: FetchedImage | None = None
    ) -> OcrResult:
        """OCR the image and pull candidate serial numbers out of the text."""
        try:
            image = image or await self.load_image(image_url)
            if not image.usable:
                raise OcrUnavailableError(image.error or "image body not fully read")
            text, confidence = await self.ocr.recognize(image.content)
        except Exception as e:
            logger.warning("OCR extraction failed for %s: %s", image_url, e)
            return OcrResult(text="", confidence=0.0, serial_numbers=[], engine="none", degraded=True)

        return OcrResult(
            text=text,
            confidence=confidence or 0.0,
            serial_numbers=SERIAL_NUMBER_PATTERN.findall(text),
            engine=self.ocr.name,
        )

    async def verify_image(
        self, image_url: str, expected_product_id: str | None = None
    ) -> VerificationResult:
        """Combine logo, tampering and OCR evidence into one image score."""
        image = await self.load_image(image_url)
        # Independent checks over the same download; each one degrades on its own
        logo, tampering, ocr_result = await asyncio.gather(
            self.analyze_logo_packaging(image_url, image),
            self.detect_tampering(image_url, image),
            self.extract_text_from_image(image_url, image),
        )

        factors: list[str] = []
        overall_score = BASE_SCORE

        logo_match = logo.confidence / 100
        if logo.has_logo:
            overall_score += 20
            factors.append(f"Logo detected ({logo_match * 100:.0f}% confidence)")
        else:
            overall_score -= 15
            factors.append("No logo detected - MEDIUM RISK")
        if logo.source == "fallback":
            factors.append("Logo analysis used fallback defaults - classifier unavailable")

        if tampering.tampering_detected:
            overall_score -= 30
            factors.append(f"Tampering detected ({tampering.confidence}% confidence) - HIGH RISK")
        else:
            overall_score += 10
            factors.append("No tampering detected - LOW RISK")

        text_extracted = len(ocr_result.text) > 0
        if text_extracted:
            overall_score += 10
            factors.append("Text extracted from image")
        else:
            factors.append("No text extracted from image")

        serial_number_match = False
        if expected_product_id and ocr_result.serial_numbers:
            serial_number_match = any(
                sn in expected_product_id or expected_product_id in sn
                for sn in ocr_result.serial_numbers
            )
            if serial_number_match:
                overall_score += 15
                factors.append("Serial number matches product ID")
            else:
                overall_score -= 10
                factors.append("Serial number mismatch - MEDIUM RISK")

        overall_score = max(0, min(100, overall_score))

        return VerificationResult(
            logo_match=logo_match,
            tampering_score=tampering.score,
            text_extracted=text_extracted,
            serial_number_match=serial_number_match,
            overall_score=overall_score,
            factors=factors,
            degraded=logo.degraded or tampering.degraded or ocr_result.degraded,
        )


@lru_cache
def get_image_analyzer() -> ImageEvidenceAnalyzer:
    """Process-wide analyzer built from settings.

    A configured backend whose library is missing is replaced by its
    unavailable stub, which puts image analysis in degraded mode.
    """
    settings = get_settings()
    try:
        classifier = build_classifier(settings.classifier_backend)
    except CapabilityMissingError as e:
        logger.warning("Image classifier disabled: %s", e)
        classifier = UnavailableClassifier(str(e))
    try:
        ocr = build_ocr(settings.ocr_backend)
    except CapabilityMissingError as e:
        logger.warning("OCR engine disabled: %s", e)
        ocr = UnavailableOcr(str(e))
    return ImageEvidenceAnalyzer(ImageFetcher(settings.image_fetch_timeout), classifier, ocr, settings)
