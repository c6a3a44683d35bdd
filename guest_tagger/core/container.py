"""Service container for dependency injection."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from guest_tagger.core.config import settings
from guest_tagger.core.utils.image import ImageDecoder
from guest_tagger.domain.interfaces.recognition.face_recognition import FaceExtractor
from guest_tagger.domain.interfaces.storage.image_source import ImageSource
from guest_tagger.domain.interfaces.storage.repositories import GuestRepository, PhotoRepository
from guest_tagger.infrastructure.database.repositories import (
    SqlAlchemyGuestRepository,
    SqlAlchemyPhotoRepository,
)
from guest_tagger.infrastructure.database.session import (
    async_session_factory,
    create_tables,
    engine as default_engine,
)
from guest_tagger.services.aws.s3 import S3Service
from guest_tagger.services.guest_scan import GuestScanCoordinator
from guest_tagger.services.image_fetcher import ImageFetcher
from guest_tagger.services.photo_matching import PhotoMatchEngine
from guest_tagger.services.progress import ProgressRegistry
from guest_tagger.services.recognition.face_detection import CascadingFaceDetector, build_detection_cascade
from guest_tagger.services.recognition.insight_face import InsightFaceExtractor
from guest_tagger.services.selfie_enrollment import SelfieEnrollmentService


class ServiceContainer:
    """Container for application services.

    This container manages the lifecycle and dependencies of all services in the application.
    It ensures proper initialization order and provides a single source of truth for service instances.
    Any service passed to the constructor is used as is instead of the default implementation.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        # Get services from container
        engine = container.photo_match_engine
        coordinator = container.guest_scan_coordinator
        ```
    """

    def __init__(
        self,
        extractor: Optional[FaceExtractor] = None,
        image_source: Optional[ImageSource] = None,
        photo_repository: Optional[PhotoRepository] = None,
        guest_repository: Optional[GuestRepository] = None,
        db_engine: Optional[AsyncEngine] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        embedding_dimension: int = settings.EMBEDDING_DIMENSION,
    ) -> None:
        """Initialize empty container."""
        self._embedding_dimension = embedding_dimension
        self._db_engine = db_engine or default_engine
        self._session_factory = session_factory or async_session_factory

        # Core services - Use interface type hints
        self.face_extractor: Optional[FaceExtractor] = extractor
        self.image_source: Optional[ImageSource] = image_source
        self.photo_repository: Optional[PhotoRepository] = photo_repository
        self.guest_repository: Optional[GuestRepository] = guest_repository
        self.decoder: Optional[ImageDecoder] = None
        self.detector: Optional[CascadingFaceDetector] = None

        # Domain services (depend on interfaces)
        self.photo_match_engine: Optional[PhotoMatchEngine] = None
        self.progress_registry: Optional[ProgressRegistry] = None
        self.guest_scan_coordinator: Optional[GuestScanCoordinator] = None
        self.selfie_enrollment_service: Optional[SelfieEnrollmentService] = None

    @property
    def is_initialized(self) -> bool:
        return self.photo_match_engine is not None

    async def initialize(self) -> None:
        """Initialize all services in the correct order."""
        if self.is_initialized:
            return

        if settings.CREATE_TABLES_ON_STARTUP and self.photo_repository is None:
            await create_tables(self._db_engine)

        # Instantiate concrete implementations
        cascade = build_detection_cascade()
        if self.face_extractor is None:
            self.face_extractor = InsightFaceExtractor(
                detection_floor=min(attempt.min_confidence for attempt in cascade)
            )
        if self.image_source is None:
            self.image_source = ImageFetcher(
                s3_service=S3Service() if settings.AWS_S3_BUCKET else None
            )
        if self.photo_repository is None:
            self.photo_repository = SqlAlchemyPhotoRepository(self._session_factory)
        if self.guest_repository is None:
            self.guest_repository = SqlAlchemyGuestRepository(
                self._session_factory, embedding_dimension=self._embedding_dimension
            )

        self.decoder = ImageDecoder()
        self.detector = CascadingFaceDetector(self.face_extractor, cascade)
        self.photo_match_engine = PhotoMatchEngine(
            detector=self.detector,
            image_source=self.image_source,
            decoder=self.decoder,
            photo_repository=self.photo_repository,
            guest_repository=self.guest_repository,
        )
        self.progress_registry = ProgressRegistry()
        self.guest_scan_coordinator = GuestScanCoordinator(
            engine=self.photo_match_engine,
            registry=self.progress_registry,
            photo_repository=self.photo_repository,
            guest_repository=self.guest_repository,
            embedding_dimension=self._embedding_dimension,
        )
        self.selfie_enrollment_service = SelfieEnrollmentService(
            extractor=self.face_extractor,
            attempt=self.detector.primary_attempt,
            image_source=self.image_source,
            decoder=self.decoder,
            guest_repository=self.guest_repository,
            scan_coordinator=self.guest_scan_coordinator,
        )

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        # Stop running guest scans before their dependencies go away
        if self.guest_scan_coordinator:
            await self.guest_scan_coordinator.shutdown()

        # Cleanup domain services
        self.selfie_enrollment_service = None
        self.guest_scan_coordinator = None
        self.progress_registry = None
        self.photo_match_engine = None

        # Cleanup core services
        self.detector = None
        self.face_extractor = None

        if isinstance(self.image_source, ImageFetcher):
            await self.image_source.aclose()
        self.image_source = None

        await self._db_engine.dispose()


# Global container instance
container = ServiceContainer()
