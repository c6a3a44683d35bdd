"""Photo corpus API endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from guest_tagger.api.models.scan import RescanRequest, RescanResponse
from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import GalleryLoadError
from guest_tagger.core.logging import get_logger
from guest_tagger.infrastructure.dependencies import get_photo_match_engine
from guest_tagger.services.photo_matching import PhotoMatchEngine

logger = get_logger(__name__)
router = APIRouter(
    responses={
        500: {"description": "Internal server error"}
    }
)


@router.post(
    "/rescan",
    response_model=RescanResponse,
    summary="Rescan the photo corpus",
    description="Detects faces in every photo and matches them against all guests with a verified selfie.",
)
async def rescan_photos(
    request: Optional[RescanRequest] = None,
    engine: PhotoMatchEngine = Depends(get_photo_match_engine)
) -> RescanResponse:
    """Run a full corpus rescan and report its outcome.

    Per-photo failures are part of the report; only a failure to load the
    guest gallery fails the request.
    """
    rescan_all = settings.RESCAN_ALL
    if request is not None and request.rescan_all is not None:
        rescan_all = request.rescan_all

    try:
        report = await engine.rescan_corpus(rescan_all=rescan_all)
    except GalleryLoadError as e:
        logger.error("Failed to load guest gallery", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load guest gallery")
    except Exception as e:
        logger.error("Unexpected error during photo rescan", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while processing the request"
        )

    return RescanResponse.from_report(report)
