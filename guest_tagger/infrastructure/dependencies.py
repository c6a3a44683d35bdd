"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends

from guest_tagger.core.container import ServiceContainer, container
from guest_tagger.core.exceptions import ServiceNotInitializedError
from guest_tagger.services.guest_scan import GuestScanCoordinator
from guest_tagger.services.photo_matching import PhotoMatchEngine
from guest_tagger.services.progress import ProgressRegistry
from guest_tagger.services.selfie_enrollment import SelfieEnrollmentService


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.is_initialized:
        # Attempt to initialize if not already done (e.g., during testing)
        try:
            await container.initialize()
        except Exception as e:
            # Raise specific error if container is needed but fails init
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}")
    return container


async def get_photo_match_engine(
    container: ServiceContainer = Depends(get_container)
) -> AsyncGenerator[PhotoMatchEngine, None]:
    """Provide the photo matching engine.

    Raises:
        ServiceNotInitializedError: If the engine is not initialized
    """
    if container.photo_match_engine is None:
        raise ServiceNotInitializedError("PhotoMatchEngine not found in initialized container")
    yield container.photo_match_engine


async def get_progress_registry(
    container: ServiceContainer = Depends(get_container)
) -> AsyncGenerator[ProgressRegistry, None]:
    """Provide the guest scan progress registry."""
    if container.progress_registry is None:
        raise ServiceNotInitializedError("ProgressRegistry not found in initialized container")
    yield container.progress_registry


async def get_guest_scan_coordinator(
    container: ServiceContainer = Depends(get_container)
) -> AsyncGenerator[GuestScanCoordinator, None]:
    """Provide the guest scan coordinator."""
    if container.guest_scan_coordinator is None:
        raise ServiceNotInitializedError("GuestScanCoordinator not found in initialized container")
    yield container.guest_scan_coordinator


async def get_selfie_enrollment_service(
    container: ServiceContainer = Depends(get_container)
) -> AsyncGenerator[SelfieEnrollmentService, None]:
    """Provide the selfie enrollment service."""
    if container.selfie_enrollment_service is None:
        raise ServiceNotInitializedError("SelfieEnrollmentService not found in initialized container")
    yield container.selfie_enrollment_service
