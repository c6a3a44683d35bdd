"""Guest domain entities."""
from enum import Enum
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from guest_tagger.domain.entities.face import as_embedding


class UserType(str, Enum):
    """Kind of account a person holds in the wedding app."""
    GUEST = "guest"
    COUPLE = "bride/groom"


class Guest(BaseModel):
    """A person who may appear in the wedding photos."""
    id: str = Field(..., description="Guest identifier")
    name: str = Field("", description="Display name")
    user_type: UserType = Field(UserType.GUEST, description="Account type")
    selfie_url: Optional[str] = Field(None, description="Reference of the verified selfie")
    face_encoding: Optional[List[float]] = Field(None, description="Selfie face embedding")
    is_verified: bool = Field(False, description="Whether the selfie passed the quality gate")

    @property
    def is_gallery_eligible(self) -> bool:
        return (
            self.user_type == UserType.GUEST
            and bool(self.face_encoding)
            and self.is_verified
        )


class GalleryEntry(BaseModel):
    """Reference embeddings for one guest, used as match targets."""
    guest_id: str = Field(..., description="Guest identifier")
    name: Optional[str] = Field(None, description="Guest display name, for reporting")
    embeddings: List[np.ndarray] = Field(..., description="One or more reference embeddings")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("embeddings", mode="before")
    @classmethod
    def validate_embeddings(cls, v: list) -> List[np.ndarray]:
        """Require at least one embedding and a single dimension across them."""
        vectors = [as_embedding(e) for e in v]
        if not vectors:
            raise ValueError("A gallery entry needs at least one embedding")
        if len({vector.shape[0] for vector in vectors}) != 1:
            raise ValueError("All embeddings of a gallery entry must share one dimension")
        return vectors

    @classmethod
    def from_guest(cls, guest: Guest) -> "GalleryEntry":
        return cls(guest_id=guest.id, name=guest.name, embeddings=[guest.face_encoding])
