"""Cascading face detection.

A single detector configuration misses faces in real wedding photos (low
light, profile angles, crowded tables). The cascade runs an ordered list of
detector attempts, from most to least restrictive, and stops at the first one
that finds any face. Each attempt's result replaces the previous one; results
are never merged.
"""
from typing import List, Optional, Sequence, Tuple

import numpy as np

from guest_tagger.core.config import Settings, settings as default_settings
from guest_tagger.core.exceptions import DetectionError
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.entities.face import ExtractedFace
from guest_tagger.domain.interfaces.recognition.face_recognition import FaceExtractor
from guest_tagger.domain.value_objects.recognition import DetectionAttempt, DetectorBackend

logger = get_logger(__name__)


def build_detection_cascade(config: Optional[Settings] = None) -> Tuple[DetectionAttempt, ...]:
    """Build the default cascade: accurate detector, then fast, each at two confidences."""
    config = config or default_settings
    max_faces = config.MAX_FACES_PER_IMAGE
    return (
        DetectionAttempt(backend=DetectorBackend.ACCURATE,
                         min_confidence=config.DETECTION_MIN_CONFIDENCE, max_faces=max_faces),
        DetectionAttempt(backend=DetectorBackend.ACCURATE,
                         min_confidence=config.DETECTION_RETRY_MIN_CONFIDENCE, max_faces=max_faces),
        DetectionAttempt(backend=DetectorBackend.FAST,
                         min_confidence=config.FAST_DETECTION_MIN_CONFIDENCE, max_faces=max_faces),
        DetectionAttempt(backend=DetectorBackend.FAST,
                         min_confidence=config.FAST_DETECTION_RETRY_MIN_CONFIDENCE, max_faces=max_faces),
    )


def validate_cascade(attempts: Sequence[DetectionAttempt]) -> None:
    """Check that every attempt is at least as permissive as the ones before it.

    Confidence may never go up along the cascade, and an attempt that reuses a
    backend already tried must lower the confidence.

    Raises:
        ValueError: If the cascade is empty or not monotonic
    """
    if not attempts:
        raise ValueError("Detection cascade needs at least one attempt")

    previous: Optional[DetectionAttempt] = None
    lowest_by_backend = {}
    for attempt in attempts:
        if previous is not None and attempt.min_confidence > previous.min_confidence:
            raise ValueError(
                f"Attempt {attempt} is more restrictive than the attempt before it"
            )
        tried = lowest_by_backend.get(attempt.backend)
        if tried is not None and attempt.min_confidence >= tried:
            raise ValueError(f"Attempt {attempt} repeats an already tried configuration")
        lowest_by_backend[attempt.backend] = attempt.min_confidence
        previous = attempt


class CascadingFaceDetector:
    """Run detector attempts in order until one of them finds a face.

    Example:
        ```python
        detector = CascadingFaceDetector(InsightFaceExtractor())
        faces = await detector.detect(raster)
        ```
    """

    def __init__(
        self,
        extractor: FaceExtractor,
        attempts: Optional[Sequence[DetectionAttempt]] = None,
    ) -> None:
        """Initialize the cascade.

        Args:
            extractor: Face extractor the attempts run against
            attempts: Ordered attempts, most restrictive first (defaults from settings)
        """
        self._extractor = extractor
        self.attempts: Tuple[DetectionAttempt, ...] = tuple(attempts or build_detection_cascade())
        validate_cascade(self.attempts)

    @property
    def primary_attempt(self) -> DetectionAttempt:
        return self.attempts[0]

    async def detect(self, raster: np.ndarray) -> List[ExtractedFace]:
        """Detect faces, retrying with more permissive attempts on empty results.

        Returns:
            Faces of the first attempt that found any, or an empty list

        Raises:
            DetectionError: If the extractor fails on any attempt
        """
        for index, attempt in enumerate(self.attempts, 1):
            try:
                faces = await self._extractor.detect(raster, attempt)
            except DetectionError:
                raise
            except Exception as e:
                raise DetectionError(
                    f"Detector {attempt.backend.value} failed: {str(e)}",
                    details={"attempt": index}
                ) from e

            if faces:
                if index > 1:
                    logger.info(
                        "Faces found after retry",
                        attempt=index,
                        backend=attempt.backend.value,
                        min_confidence=attempt.min_confidence,
                        faces_found=len(faces)
                    )
                return faces

            logger.debug(
                "No faces found, trying next detector attempt",
                attempt=index,
                backend=attempt.backend.value,
                min_confidence=attempt.min_confidence
            )

        return []
