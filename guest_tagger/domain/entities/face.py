"""Core face domain entities."""
from typing import List, Optional, Sequence, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def as_embedding(values: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
    """Convert a sequence of numbers to a 1-D float32 embedding vector.

    Raises:
        ValueError: If the values are not a non-empty, finite, one-dimensional vector
    """
    vector = np.asarray(values, dtype=np.float32)
    if vector.ndim != 1 or vector.size == 0:
        raise ValueError(f"Embedding must be a non-empty 1-D vector, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise ValueError("Embedding contains non-finite values")
    return vector


class BoundingBox(BaseModel):
    """Face bounding box, relative to image size (0-1)."""
    left: float = Field(..., description="Left coordinate of the bounding box")
    top: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., description="Width of the bounding box")
    height: float = Field(..., description="Height of the bounding box")


class ExtractedFace(BaseModel):
    """A face found by the extractor: where it is and who it looks like."""
    confidence: float = Field(..., description="Detector confidence score (0-1)")
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    embedding: np.ndarray = Field(..., description="Face embedding vector")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("embedding", mode="before")
    @classmethod
    def validate_embedding(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Validate and convert embedding to a float32 numpy array."""
        return as_embedding(v)


class DetectedFace(BaseModel):
    """A face stored on a photo, with its match against the guest gallery."""
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    embedding: List[float] = Field(..., description="Face embedding found in the photo")
    matched_guest_id: Optional[str] = Field(None, description="Guest the face was matched to")
    match_confidence: float = Field(0.0, ge=0.0, le=1.0, description="clamp(1 - distance, 0, 1)")

    @field_validator("embedding", mode="before")
    @classmethod
    def validate_embedding(cls, v: Union[np.ndarray, list]) -> List[float]:
        return as_embedding(v).tolist()

    @model_validator(mode="after")
    def unmatched_faces_have_zero_confidence(self) -> "DetectedFace":
        if self.matched_guest_id is None and self.match_confidence != 0.0:
            raise ValueError("match_confidence must be 0 when no guest is matched")
        return self

    @property
    def is_matched(self) -> bool:
        return self.matched_guest_id is not None
