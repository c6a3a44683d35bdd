"""Photo matching engine: tag guests in the wedding photo corpus."""
import asyncio
from typing import AsyncIterator, Callable, List, Optional, Sequence, Tuple

import numpy as np

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import (
    DecodeError,
    DetectionError,
    FetchError,
    GalleryLoadError,
    PersistError,
)
from guest_tagger.core.logging import get_logger
from guest_tagger.core.utils.image import ImageDecoder
from guest_tagger.domain.entities.face import DetectedFace, ExtractedFace
from guest_tagger.domain.entities.guest import GalleryEntry
from guest_tagger.domain.entities.photo import Photo
from guest_tagger.domain.interfaces.storage.image_source import ImageSource
from guest_tagger.domain.interfaces.storage.repositories import GuestRepository, PhotoRepository
from guest_tagger.domain.value_objects.scan import (
    BatchReport,
    FailureStage,
    GuestScanResult,
    MatchDetail,
    PhotoFailure,
    PhotoOutcome,
)
from guest_tagger.services.gallery_matcher import GalleryMatcher
from guest_tagger.services.recognition.face_detection import CascadingFaceDetector

logger = get_logger(__name__)


class CancellationToken:
    """Cooperative cancellation flag, checked before each photo starts."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class PhotoStageError(Exception):
    """Internal wrapper tagging a per-photo error with its pipeline stage."""

    def __init__(self, stage: FailureStage, error: Exception) -> None:
        super().__init__(str(error))
        self.stage = stage
        self.error = error


def _batched(photos: Sequence[Photo], size: int) -> List[Sequence[Photo]]:
    return [photos[i:i + size] for i in range(0, len(photos), size)]


class PhotoMatchEngine:
    """Detect faces in photos and match them against the guest gallery.

    For every photo: fetch -> decode -> detect -> match -> persist. A full
    rescan runs photos in fixed-size batches, concurrently inside a batch and
    strictly one batch after another. A failing photo never affects the rest.

    Example:
        ```python
        engine = PhotoMatchEngine(detector, fetcher, decoder, photos, guests)
        report = await engine.rescan_corpus()
        print(report.message)
        ```
    """

    def __init__(
        self,
        detector: CascadingFaceDetector,
        image_source: ImageSource,
        decoder: ImageDecoder,
        photo_repository: PhotoRepository,
        guest_repository: GuestRepository,
        match_threshold: float = settings.MATCH_DISTANCE_THRESHOLD,
        batch_size: int = settings.BATCH_SIZE,
    ) -> None:
        """Initialize the engine.

        Args:
            detector: Cascading face detector
            image_source: Blob store the photo bytes are fetched from
            decoder: Image decoder
            photo_repository: Photo persistence
            guest_repository: Guest persistence, source of the gallery
            match_threshold: Distance threshold of every matcher the engine builds
            batch_size: Photos processed concurrently during a full rescan
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._detector = detector
        self._image_source = image_source
        self._decoder = decoder
        self._photos = photo_repository
        self._guests = guest_repository
        self.match_threshold = match_threshold
        self.batch_size = batch_size

    async def load_gallery(self) -> List[GalleryEntry]:
        """Load gallery entries of every gallery-eligible guest.

        Raises:
            GalleryLoadError: If the guests cannot be read
        """
        try:
            return await self._guests.list_gallery_eligible_guests()
        except GalleryLoadError:
            raise
        except Exception as e:
            logger.error("Failed to load guest gallery", error=str(e), exc_info=True)
            raise GalleryLoadError(f"Failed to load guest gallery: {str(e)}") from e

    async def rescan_corpus(
        self,
        rescan_all: bool = settings.RESCAN_ALL,
        cancel_token: Optional[CancellationToken] = None,
        on_photo: Optional[Callable[[PhotoOutcome], None]] = None,
    ) -> BatchReport:
        """Load the gallery and the corpus, then process the corpus.

        Args:
            rescan_all: Revisit already processed photos too
            cancel_token: Optional token to abandon the rescan between photos
            on_photo: Optional callback invoked with each photo outcome

        Raises:
            GalleryLoadError: If the gallery cannot be loaded
        """
        gallery = await self.load_gallery()
        if not gallery:
            logger.info("No gallery-eligible guests, skipping rescan")
            return BatchReport.empty_gallery()

        photos = await self._photos.list_photos(unprocessed_only=not rescan_all)
        return await self.process_corpus(photos, gallery, cancel_token=cancel_token, on_photo=on_photo)

    async def process_corpus(
        self,
        photos: Sequence[Photo],
        gallery: Sequence[GalleryEntry],
        cancel_token: Optional[CancellationToken] = None,
        on_photo: Optional[Callable[[PhotoOutcome], None]] = None,
    ) -> BatchReport:
        """Detect and match faces in every photo, replacing their detected faces.

        Returns:
            BatchReport with counts, match details and per-photo failures
        """
        if not gallery:
            return BatchReport.empty_gallery(total_photos=len(photos))

        matcher = GalleryMatcher(gallery, threshold=self.match_threshold)
        report = BatchReport(total_photos=len(photos))
        batches = _batched(list(photos), self.batch_size)

        logger.info(
            "Starting corpus rescan",
            photos=len(photos),
            guests=len(matcher),
            batches=len(batches),
            batch_size=self.batch_size
        )

        for batch_number, batch in enumerate(batches, 1):
            results = await asyncio.gather(
                *(self._process_photo(photo, matcher, cancel_token) for photo in batch),
                return_exceptions=True,
            )
            for photo, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    logger.error(
                        "Unhandled error processing photo",
                        photo_id=photo.id,
                        error=str(result)
                    )
                    result = PhotoOutcome(
                        photo_id=photo.id,
                        failure=PhotoFailure(
                            photo_id=photo.id,
                            stage=FailureStage.UNEXPECTED,
                            error=str(result),
                        ),
                    )
                report.add(result)
                if on_photo is not None:
                    try:
                        on_photo(result)
                    except Exception as e:
                        logger.error(
                            "Photo callback failed",
                            photo_id=result.photo_id,
                            error=str(e),
                            exc_info=True
                        )
            logger.info(
                "Completed batch",
                batch=batch_number,
                batches=len(batches),
                processed=report.photos_processed,
                failed=report.photos_failed
            )

        report.cancelled = bool(cancel_token and cancel_token.cancelled)
        logger.info(
            "Corpus rescan finished",
            processed=report.photos_processed,
            failed=report.photos_failed,
            skipped=report.photos_skipped,
            faces_detected=report.faces_detected,
            faces_matched=report.faces_matched
        )
        return report

    async def process_for_single_guest(
        self,
        guest_id: str,
        embedding: np.ndarray,
        photos: Sequence[Photo],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[GuestScanResult]:
        """Tag one guest across the corpus, one photo at a time.

        Matches are appended to the photos' existing detected faces; nothing
        already stored is removed. Each photo's result is yielded as soon as
        it is known.
        """
        matcher = GalleryMatcher(
            [GalleryEntry(guest_id=guest_id, embeddings=[embedding])],
            threshold=self.match_threshold,
        )
        for photo in photos:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Guest scan cancelled", guest_id=guest_id)
                return
            yield await self._scan_photo_for_guest(photo, guest_id, matcher)

    async def _process_photo(
        self,
        photo: Photo,
        matcher: GalleryMatcher,
        cancel_token: Optional[CancellationToken],
    ) -> PhotoOutcome:
        if cancel_token is not None and cancel_token.cancelled:
            return PhotoOutcome(photo_id=photo.id, skipped=True)

        try:
            faces = await self._extract_faces(photo)
            detected_faces: List[DetectedFace] = []
            matches: List[MatchDetail] = []
            for face in faces:
                detected, match = self._match_face(photo.id, face, matcher)
                detected_faces.append(detected)
                if match is not None:
                    matches.append(match)

            updated = photo.model_copy(update={"detected_faces": detected_faces, "is_processed": True})
            await self._save(updated)
        except PhotoStageError as e:
            log = logger.warning if e.stage in (FailureStage.FETCH, FailureStage.DECODE) else logger.error
            log(
                "Photo processing failed",
                photo_id=photo.id,
                stage=e.stage.value,
                error=str(e.error)
            )
            return PhotoOutcome(
                photo_id=photo.id,
                failure=PhotoFailure(photo_id=photo.id, stage=e.stage, error=str(e.error)),
            )

        logger.debug(
            "Photo processed",
            photo_id=photo.id,
            faces_detected=len(detected_faces),
            faces_matched=len(matches)
        )
        return PhotoOutcome(photo_id=photo.id, faces_detected=len(detected_faces), matches=matches)

    async def _scan_photo_for_guest(
        self,
        photo: Photo,
        guest_id: str,
        matcher: GalleryMatcher,
    ) -> GuestScanResult:
        try:
            faces = await self._extract_faces(photo)
            best = None
            for face in faces:
                result = matcher.find_best_match(face.embedding)
                if result.is_match and (best is None or result.distance < best[1].distance):
                    best = (face, result)

            if best is None:
                return GuestScanResult(photo_id=photo.id)

            face, result = best
            current = await self._reload(photo)
            if current.has_match_for(guest_id):
                logger.debug("Guest already tagged in photo", photo_id=photo.id, guest_id=guest_id)
                return GuestScanResult(photo_id=photo.id, matched=True, distance=result.distance)

            new_face = DetectedFace(
                bounding_box=face.bounding_box,
                embedding=face.embedding,
                matched_guest_id=guest_id,
                match_confidence=result.confidence,
            )
            updated = current.model_copy(update={
                "detected_faces": [*current.detected_faces, new_face],
                "is_processed": True,
            })
            await self._save(updated)
        except PhotoStageError as e:
            logger.warning(
                "Guest scan failed for photo",
                photo_id=photo.id,
                guest_id=guest_id,
                stage=e.stage.value,
                error=str(e.error)
            )
            return GuestScanResult(
                photo_id=photo.id,
                failure=PhotoFailure(photo_id=photo.id, stage=e.stage, error=str(e.error)),
            )
        except Exception as e:
            logger.error(
                "Unexpected error scanning photo for guest",
                photo_id=photo.id,
                guest_id=guest_id,
                error=str(e),
                exc_info=True
            )
            return GuestScanResult(
                photo_id=photo.id,
                failure=PhotoFailure(photo_id=photo.id, stage=FailureStage.UNEXPECTED, error=str(e)),
            )

        logger.info(
            "Tagged guest in photo",
            photo_id=photo.id,
            guest_id=guest_id,
            distance=result.distance
        )
        return GuestScanResult(photo_id=photo.id, matched=True, added=True, distance=result.distance)

    async def _extract_faces(self, photo: Photo) -> List[ExtractedFace]:
        """Fetch, decode and detect, tagging failures with their stage."""
        try:
            image_bytes = await self._image_source.fetch(photo.image_ref)
        except FetchError as e:
            raise PhotoStageError(FailureStage.FETCH, e) from e
        except Exception as e:
            raise PhotoStageError(FailureStage.FETCH, FetchError(str(e))) from e

        try:
            raster = await asyncio.to_thread(self._decoder.decode, image_bytes)
        except DecodeError as e:
            raise PhotoStageError(FailureStage.DECODE, e) from e

        try:
            return await self._detector.detect(raster)
        except DetectionError as e:
            raise PhotoStageError(FailureStage.DETECT, e) from e

    def _match_face(
        self,
        photo_id: str,
        face: ExtractedFace,
        matcher: GalleryMatcher,
    ) -> Tuple[DetectedFace, Optional[MatchDetail]]:
        result = matcher.find_best_match(face.embedding)
        if not result.is_match:
            logger.debug("No match for face", photo_id=photo_id, distance=round(result.distance, 4))
            return DetectedFace(bounding_box=face.bounding_box, embedding=face.embedding), None

        logger.debug(
            "Match found for face",
            photo_id=photo_id,
            guest_id=result.guest_id,
            distance=round(result.distance, 4)
        )
        detected = DetectedFace(
            bounding_box=face.bounding_box,
            embedding=face.embedding,
            matched_guest_id=result.guest_id,
            match_confidence=result.confidence,
        )
        detail = MatchDetail(
            photo_id=photo_id,
            guest_id=result.guest_id,
            guest_name=matcher.guest_name(result.guest_id),
            confidence=result.confidence,
            distance=result.distance,
        )
        return detected, detail

    async def _reload(self, photo: Photo) -> Photo:
        """Re-read a photo so appends build on its latest stored faces."""
        try:
            current = await self._photos.get_photo_by_id(photo.id)
        except Exception as e:
            raise PhotoStageError(FailureStage.PERSIST, PersistError(str(e))) from e
        return current or photo

    async def _save(self, photo: Photo) -> None:
        try:
            await self._photos.save_photo(photo)
        except PersistError as e:
            raise PhotoStageError(FailureStage.PERSIST, e) from e
        except Exception as e:
            raise PhotoStageError(FailureStage.PERSIST, PersistError(str(e))) from e
