"""
InsightFace-based implementation of face extraction.

This module provides a concrete implementation of the FaceExtractor interface
using the InsightFace library. Two SCRFD detectors are loaded, an accurate one
from the main model pack and a light one from the fast model pack. Faces found
by either detector are embedded with the main pack's ArcFace recognizer, so
every embedding lives in the same space as the guest selfie embeddings.

Example:
    ```python
    extractor = InsightFaceExtractor()
    attempt = DetectionAttempt(backend=DetectorBackend.ACCURATE, min_confidence=0.5)
    faces = await extractor.detect(raster, attempt)
    ```

Note:
    This implementation uses CPU inference by default. For GPU support,
    set EXECUTION_PROVIDERS to include 'CUDAExecutionProvider'.
"""
import asyncio
from typing import Any, Dict, List, Optional

import numpy as np
from insightface.app import FaceAnalysis
from insightface.app.common import Face as InsightFace

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import DetectionError, ModelLoadError
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.entities.face import BoundingBox, ExtractedFace
from guest_tagger.domain.interfaces.recognition.face_recognition import FaceExtractor
from guest_tagger.domain.value_objects.recognition import DetectionAttempt, DetectorBackend

logger = get_logger(__name__)


class InsightFaceExtractor(FaceExtractor):
    """
    InsightFace-based face extractor with an accurate and a fast detector.

    Attributes:
        detection_floor: Confidence the detectors are prepared with; attempts
            filter the detections above it by their own min_confidence
    """

    def __init__(
        self,
        detection_floor: float = settings.FAST_DETECTION_RETRY_MIN_CONFIDENCE,
        model_pack: str = settings.FACE_MODEL_PACK,
        fast_model_pack: str = settings.FAST_FACE_MODEL_PACK,
        model_root: str = settings.MODEL_CACHE_DIR,
        providers: Optional[List[str]] = None,
        embedding_dimension: int = settings.EMBEDDING_DIMENSION,
    ) -> None:
        """Load both detectors and the recognizer.

        Raises:
            ModelLoadError: If any model cannot be loaded
        """
        self.detection_floor = detection_floor
        self.embedding_dimension = embedding_dimension
        providers = providers or settings.execution_providers

        try:
            accurate = FaceAnalysis(
                name=model_pack,
                root=model_root,
                providers=providers,
                allowed_modules=["detection", "recognition"],
            )
            accurate.prepare(
                ctx_id=0,
                det_thresh=detection_floor,
                det_size=(settings.DETECTION_SIZE, settings.DETECTION_SIZE),
            )
            fast = FaceAnalysis(
                name=fast_model_pack,
                root=model_root,
                providers=providers,
                allowed_modules=["detection"],
            )
            fast.prepare(
                ctx_id=0,
                det_thresh=detection_floor,
                det_size=(settings.FAST_DETECTION_SIZE, settings.FAST_DETECTION_SIZE),
            )
        except Exception as e:
            logger.error("Failed to load face models", error=str(e), exc_info=True)
            raise ModelLoadError(f"Failed to load face models: {str(e)}") from e

        if "recognition" not in accurate.models:
            raise ModelLoadError(f"Model pack '{model_pack}' has no recognition model")

        self._detectors: Dict[DetectorBackend, Any] = {
            DetectorBackend.ACCURATE: accurate.det_model,
            DetectorBackend.FAST: fast.det_model,
        }
        self._recognizer = accurate.models["recognition"]

        logger.info(
            "Loaded face models",
            model_pack=model_pack,
            fast_model_pack=fast_model_pack,
            detection_floor=detection_floor,
        )

    async def detect(
        self,
        raster: np.ndarray,
        attempt: DetectionAttempt,
    ) -> List[ExtractedFace]:
        """Detect faces off the event loop."""
        if attempt.min_confidence < self.detection_floor:
            logger.warning(
                "Attempt confidence below detector floor, floor applies",
                min_confidence=attempt.min_confidence,
                detection_floor=self.detection_floor
            )
        try:
            return await asyncio.to_thread(self._detect_sync, raster, attempt)
        except DetectionError:
            raise
        except Exception as e:
            logger.error(
                "Face detection failed",
                error=str(e),
                backend=attempt.backend.value,
                image_shape=getattr(raster, "shape", None),
                exc_info=True
            )
            raise DetectionError(f"Face detection failed: {str(e)}") from e

    def _detect_sync(self, raster: np.ndarray, attempt: DetectionAttempt) -> List[ExtractedFace]:
        det_model = self._detectors[attempt.backend]
        bboxes, kpss = det_model.detect(raster, max_num=attempt.max_faces, metric="default")

        height, width = raster.shape[:2]
        faces: List[ExtractedFace] = []
        for i in range(bboxes.shape[0]):
            det_score = float(bboxes[i, 4])
            if det_score < attempt.min_confidence:
                continue
            face = InsightFace(
                bbox=bboxes[i, 0:4],
                kps=kpss[i] if kpss is not None else None,
                det_score=det_score,
            )
            self._recognizer.get(raster, face)
            faces.append(self._convert_to_face(face, width, height))

        logger.debug(
            "Face detection results",
            backend=attempt.backend.value,
            min_confidence=attempt.min_confidence,
            candidates=int(bboxes.shape[0]),
            faces_found=len(faces)
        )
        return faces

    def _convert_to_face(self, face_data: InsightFace, width: int, height: int) -> ExtractedFace:
        """
        Convert an InsightFace detection to the ExtractedFace domain model.

        Bounding boxes are clipped to the image and made relative (0-1) so they
        do not depend on how far the decoder downscaled the photo.
        """
        x1, y1, x2, y2 = (float(v) for v in face_data.bbox)
        x1, x2 = max(0.0, x1), min(float(width), x2)
        y1, y2 = max(0.0, y1), min(float(height), y2)

        embedding = face_data.normed_embedding
        if embedding is None or embedding.shape[0] != self.embedding_dimension:
            raise DetectionError(
                "Recognizer produced an unexpected embedding",
                details={"expected_dimension": self.embedding_dimension}
            )

        return ExtractedFace(
            confidence=float(face_data.det_score),
            bounding_box=BoundingBox(
                left=x1 / width,
                top=y1 / height,
                width=max(0.0, x2 - x1) / width,
                height=max(0.0, y2 - y1) / height,
            ),
            embedding=embedding,
        )
