"""Guest selfie and guest scan API endpoints."""
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from guest_tagger.api.models.scan import (
    ScanProgressResponse,
    ScanStartedResponse,
    SelfieRequest,
    SelfieResponse,
)
from guest_tagger.core.exceptions import (
    DecodeError,
    DetectionError,
    FetchError,
    GuestNotFoundError,
    NoFaceDetectedError,
    PersistError,
    ScanAlreadyRunningError,
    SelfieQualityError,
    SubscriberAlreadyAttachedError,
)
from guest_tagger.core.logging import get_logger
from guest_tagger.infrastructure.dependencies import (
    get_guest_scan_coordinator,
    get_progress_registry,
    get_selfie_enrollment_service,
)
from guest_tagger.services.guest_scan import GuestScanCoordinator
from guest_tagger.services.progress import ProgressRegistry, ScanSession
from guest_tagger.services.selfie_enrollment import SelfieEnrollmentService

logger = get_logger(__name__)
router = APIRouter(
    responses={
        404: {"description": "Guest not found"},
        500: {"description": "Internal server error"}
    }
)


@router.post(
    "/{guest_id}/selfie",
    response_model=SelfieResponse,
    summary="Enroll a guest selfie",
    description="Extracts the selfie face embedding, stores it and starts a scan of existing photos.",
)
async def enroll_selfie(
    guest_id: str,
    request: SelfieRequest,
    service: SelfieEnrollmentService = Depends(get_selfie_enrollment_service)
) -> SelfieResponse:
    """Enroll a guest selfie.

    Raises:
        HTTPException: If the guest is unknown, the selfie is unusable or processing fails
    """
    try:
        result = await service.enroll(guest_id, request.selfie_url)
        return SelfieResponse.from_result(result)

    except GuestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (NoFaceDetectedError, SelfieQualityError) as e:
        logger.warning("Selfie rejected", guest_id=guest_id, error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except (FetchError, DecodeError) as e:
        logger.warning("Selfie could not be read", guest_id=guest_id, error=str(e))
        raise HTTPException(status_code=400, detail="Selfie image could not be read")
    except (DetectionError, PersistError) as e:
        logger.error("Failed to enroll selfie", guest_id=guest_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to process selfie")
    except Exception as e:
        logger.error("Unexpected error during selfie enrollment",
                     error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred.")


@router.post(
    "/{guest_id}/scan",
    response_model=ScanStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Scan existing photos for a guest",
    responses={409: {"description": "A scan is already running for this guest"}},
)
async def start_guest_scan(
    guest_id: str,
    coordinator: GuestScanCoordinator = Depends(get_guest_scan_coordinator)
) -> ScanStartedResponse:
    """Start a detached scan; follow it on the events stream."""
    try:
        await coordinator.start_for_guest(guest_id)
    except GuestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ScanAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ScanStartedResponse(guest_id=guest_id)


@router.delete(
    "/{guest_id}/scan",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel a running guest scan",
)
async def cancel_guest_scan(
    guest_id: str,
    coordinator: GuestScanCoordinator = Depends(get_guest_scan_coordinator)
) -> dict:
    if not coordinator.cancel(guest_id):
        raise HTTPException(status_code=404, detail=f"No running scan for guest {guest_id}")
    return {"guest_id": guest_id, "status": "cancelling"}


@router.get(
    "/{guest_id}/scan/progress",
    response_model=ScanProgressResponse,
    summary="Poll guest scan progress",
)
async def get_guest_scan_progress(
    guest_id: str,
    registry: ProgressRegistry = Depends(get_progress_registry)
) -> ScanProgressResponse:
    return ScanProgressResponse.from_session(registry.get(guest_id))


@router.get(
    "/{guest_id}/scan/events",
    summary="Stream guest scan progress",
    description="Server-Sent Events stream of a guest scan. May be opened before the scan starts.",
    responses={409: {"description": "A client is already subscribed for this guest"}},
)
async def stream_guest_scan_events(
    guest_id: str,
    registry: ProgressRegistry = Depends(get_progress_registry)
) -> StreamingResponse:
    try:
        session = registry.subscribe(guest_id)
    except SubscriberAlreadyAttachedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return StreamingResponse(
        _event_stream(registry, session),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _event_stream(registry: ProgressRegistry, session: ScanSession) -> AsyncIterator[str]:
    try:
        async for frame in session.stream():
            yield frame
    finally:
        registry.unsubscribe(session)
        logger.debug("Progress stream closed", guest_id=session.guest_id)
