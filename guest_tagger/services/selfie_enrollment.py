"""Selfie enrollment: turn a guest selfie into a gallery embedding."""
import asyncio
from typing import Optional

from pydantic import BaseModel

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import (
    DecodeError,
    FetchError,
    GuestNotFoundError,
    NoFaceDetectedError,
    ScanAlreadyRunningError,
    SelfieQualityError,
)
from guest_tagger.core.logging import get_logger
from guest_tagger.core.utils.image import ImageDecoder
from guest_tagger.domain.entities.face import BoundingBox, ExtractedFace
from guest_tagger.domain.entities.guest import Guest
from guest_tagger.domain.interfaces.recognition.face_recognition import FaceExtractor
from guest_tagger.domain.interfaces.storage.image_source import ImageSource
from guest_tagger.domain.interfaces.storage.repositories import GuestRepository
from guest_tagger.domain.value_objects.recognition import DetectionAttempt
from guest_tagger.services.guest_scan import GuestScanCoordinator

logger = get_logger(__name__)


class EnrollmentResult(BaseModel):
    """Outcome of a successful selfie enrollment."""
    guest: Guest
    scan_started: bool


def check_selfie_quality(
    box: BoundingBox,
    min_face_ratio: float = settings.SELFIE_MIN_FACE_RATIO,
    edge_margin: float = settings.SELFIE_EDGE_MARGIN,
) -> None:
    """Reject selfies whose face is too small or too close to an edge.

    Raises:
        SelfieQualityError: If the face fails either check
    """
    if box.width < min_face_ratio or box.height < min_face_ratio:
        raise SelfieQualityError(
            "The face in the selfie is too small, please take a closer photo.",
            details={"width": box.width, "height": box.height}
        )
    if (
        box.left < edge_margin
        or box.top < edge_margin
        or box.left + box.width > 1 - edge_margin
        or box.top + box.height > 1 - edge_margin
    ):
        raise SelfieQualityError(
            "The face is too close to the edge of the selfie, please center it.",
            details=box.model_dump()
        )


class SelfieEnrollmentService:
    """Extract, quality-check and store a guest's selfie embedding.

    A successful enrollment makes the guest gallery-eligible and triggers a
    detached scan of the existing corpus for that guest.
    """

    def __init__(
        self,
        extractor: FaceExtractor,
        attempt: DetectionAttempt,
        image_source: ImageSource,
        decoder: ImageDecoder,
        guest_repository: GuestRepository,
        scan_coordinator: Optional[GuestScanCoordinator] = None,
    ) -> None:
        """Initialize the service.

        Args:
            extractor: Face extractor
            attempt: Detector configuration used for selfies
            image_source: Blob store the selfie is fetched from
            decoder: Image decoder
            guest_repository: Guest persistence
            scan_coordinator: Starts the follow-up guest scan, if given
        """
        self._extractor = extractor
        self._attempt = attempt
        self._image_source = image_source
        self._decoder = decoder
        self._guests = guest_repository
        self._scan_coordinator = scan_coordinator

    async def enroll(self, guest_id: str, selfie_url: str) -> EnrollmentResult:
        """Enroll a guest selfie.

        Raises:
            GuestNotFoundError: If the guest does not exist
            FetchError: If the selfie cannot be retrieved
            DecodeError: If the selfie is not a readable image
            NoFaceDetectedError: If no face is found in the selfie
            SelfieQualityError: If the face fails the quality gate
            DetectionError: If the detector fails
        """
        guest = await self._guests.get_guest(guest_id)
        if guest is None:
            raise GuestNotFoundError(f"Guest not found: {guest_id}")

        face = await self._extract_selfie_face(selfie_url)
        check_selfie_quality(face.bounding_box)

        guest = await self._guests.save_selfie(guest_id, selfie_url, face.embedding.tolist())
        logger.info("Selfie enrolled", guest_id=guest_id, detection_confidence=face.confidence)

        scan_started = False
        if self._scan_coordinator is not None:
            try:
                self._scan_coordinator.start(guest_id, face.embedding)
                scan_started = True
            except ScanAlreadyRunningError:
                logger.warning("Guest scan already running, not starting another", guest_id=guest_id)

        return EnrollmentResult(guest=guest, scan_started=scan_started)

    async def _extract_selfie_face(self, selfie_url: str) -> ExtractedFace:
        try:
            image_bytes = await self._image_source.fetch(selfie_url)
            raster = await asyncio.to_thread(self._decoder.decode, image_bytes)
        except (FetchError, DecodeError) as e:
            logger.warning("Selfie could not be read", selfie_url=selfie_url, error=str(e))
            raise

        faces = await self._extractor.detect(raster, self._attempt)
        if not faces:
            raise NoFaceDetectedError(
                "No face was found in the selfie, please upload a clearer photo of your face."
            )
        return max(faces, key=lambda f: f.confidence)
