"""Progress events streamed to a client waiting on a guest scan."""
import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# SSE comment frame, ignored by EventSource clients
KEEPALIVE_FRAME = ": keep-alive\n\n"


class ProgressEventType(str, Enum):
    """Kinds of progress events."""
    CONNECTED = "connected"
    PHOTO_PROCESSED = "photoProcessed"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """A single progress frame for a guest scan."""
    type: ProgressEventType
    guest_id: str
    photo_id: Optional[str] = None
    matched: Optional[bool] = None
    current: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    matched_photos: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @property
    def is_terminal(self) -> bool:
        return self.type in (ProgressEventType.COMPLETE, ProgressEventType.ERROR)

    def to_sse(self) -> str:
        """Render the event as a Server-Sent Events data frame."""
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return f"data: {json.dumps(payload)}\n\n"
