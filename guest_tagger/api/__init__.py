"""API v1 router initialization."""
from fastapi import APIRouter

from .guests import router as guests_router
from .photos import router as photos_router

# Create v1 router
router = APIRouter()

# Photo corpus endpoints
router.include_router(
    photos_router,
    prefix="/photos",
    tags=["photos"]
)

# Guest selfie and scan endpoints
router.include_router(
    guests_router,
    prefix="/guests",
    tags=["guests"]
)
