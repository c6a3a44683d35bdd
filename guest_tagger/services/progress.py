"""Progress tracking and streaming for single-guest scans.

Each guest has at most one ScanSession. A session goes
Idle -> Streaming -> Complete | Errored. Events are queued so a client that
connects after the scan started, or shortly after it finished, still receives
every frame including the terminal one.
"""
import asyncio
import time
from enum import Enum
from typing import AsyncIterator, Dict, Optional

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import ScanAlreadyRunningError, SubscriberAlreadyAttachedError
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.value_objects.progress import (
    KEEPALIVE_FRAME,
    ProgressEvent,
    ProgressEventType,
)
from guest_tagger.services.photo_matching import CancellationToken

logger = get_logger(__name__)


class ScanState(str, Enum):
    """Lifecycle states of a guest scan session."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"


class ScanSession:
    """Progress state and event queue of one guest's scan."""

    def __init__(self, guest_id: str) -> None:
        self.guest_id = guest_id
        self.state = ScanState.IDLE
        self.current = 0
        self.total = 0
        self.matched_photos = 0
        self.cancel_token = CancellationToken()
        self.subscribed = False
        self._queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()

    @property
    def is_terminal(self) -> bool:
        return self.state in (ScanState.COMPLETE, ScanState.ERRORED)

    def mark_streaming(self) -> None:
        if self.state != ScanState.IDLE:
            raise ScanAlreadyRunningError(
                f"A scan is already {self.state.value} for guest {self.guest_id}"
            )
        self.state = ScanState.STREAMING

    def begin(self, total: int) -> None:
        """Record the corpus size and acknowledge the client."""
        self.total = total
        self._publish(ProgressEvent(
            type=ProgressEventType.CONNECTED,
            guest_id=self.guest_id,
            current=0,
            total=total,
        ))

    def record_photo(self, photo_id: str, matched: bool, error: Optional[str] = None) -> ProgressEvent:
        """Advance the counter by one photo and publish it.

        No await between reading and writing the counter, so the update is
        atomic on the event loop.
        """
        self.current += 1
        if matched:
            self.matched_photos += 1
        event = ProgressEvent(
            type=ProgressEventType.PHOTO_PROCESSED,
            guest_id=self.guest_id,
            photo_id=photo_id,
            matched=matched,
            current=self.current,
            total=self.total,
            error=error,
        )
        self._publish(event)
        return event

    def complete(self, message: Optional[str] = None) -> None:
        self.state = ScanState.COMPLETE
        self._publish(ProgressEvent(
            type=ProgressEventType.COMPLETE,
            guest_id=self.guest_id,
            current=self.current,
            total=self.total,
            matched_photos=self.matched_photos,
            message=message,
        ))

    def fail(self, message: str) -> None:
        self.state = ScanState.ERRORED
        self._publish(ProgressEvent(
            type=ProgressEventType.ERROR,
            guest_id=self.guest_id,
            current=self.current,
            total=self.total,
            error=message,
        ))

    def _publish(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    async def next_event(self) -> ProgressEvent:
        return await self._queue.get()

    async def stream(
        self,
        keepalive_interval: float = settings.PROGRESS_KEEPALIVE_SECONDS,
    ) -> AsyncIterator[str]:
        """Yield SSE frames until the terminal event, with keep-alive comments when idle."""
        while True:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=keepalive_interval)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            yield event.to_sse()
            if event.is_terminal:
                return


class ProgressRegistry:
    """Process-wide registry of guest scan sessions.

    A scan that finishes while no client is attached stays registered for
    ``retention_seconds`` so a late subscriber still replays its frames and
    terminal event.

    Example:
        ```python
        registry = ProgressRegistry()
        session = registry.start("guest-1")
        session.begin(total=3)
        ...
        session.complete()
        registry.finish(session)
        ```
    """

    def __init__(self, retention_seconds: float = settings.PROGRESS_RETENTION_SECONDS) -> None:
        self._sessions: Dict[str, ScanSession] = {}
        self._retained_until: Dict[str, float] = {}
        self._retention_seconds = retention_seconds

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, guest_id: str) -> Optional[ScanSession]:
        self._drop_if_expired(guest_id)
        return self._sessions.get(guest_id)

    def start(self, guest_id: str) -> ScanSession:
        """Move the guest's session to Streaming, creating it if needed.

        A retained session of a finished scan is replaced.

        Raises:
            ScanAlreadyRunningError: If the guest already has a streaming session
        """
        session = self.get(guest_id)
        if session is not None and session.is_terminal and not session.subscribed:
            self.release(session)
            session = None
        if session is None:
            session = ScanSession(guest_id)
            self._sessions[guest_id] = session
        session.mark_streaming()
        logger.info("Guest scan session started", guest_id=guest_id)
        return session

    def subscribe(self, guest_id: str) -> ScanSession:
        """Attach the single client of a guest's session, creating an Idle one if needed.

        Attaching to a retained finished scan replays its queued frames.

        Raises:
            SubscriberAlreadyAttachedError: If a client is already attached
        """
        session = self.get(guest_id)
        if session is None:
            session = ScanSession(guest_id)
            self._sessions[guest_id] = session
        if session.subscribed:
            raise SubscriberAlreadyAttachedError(
                f"A client is already subscribed to guest {guest_id}"
            )
        session.subscribed = True
        self._retained_until.pop(guest_id, None)
        logger.debug("Progress subscriber attached", guest_id=guest_id, state=session.state.value)
        return session

    def unsubscribe(self, session: ScanSession) -> None:
        """Detach the client and release what the session holds.

        An in-flight scan is cancelled; it stops at its next photo boundary
        and its runner finishes the session after the terminal event.
        """
        session.subscribed = False
        if session.state == ScanState.STREAMING:
            session.cancel_token.cancel()
            logger.info("Subscriber left, cancelling guest scan", guest_id=session.guest_id)
            return
        self.release(session)

    def finish(self, session: ScanSession) -> None:
        """Called by a scan runner once its session is terminal.

        Without a subscriber the session is kept for replay until the
        retention window passes; otherwise it is released.
        """
        if session.subscribed or self._sessions.get(session.guest_id) is not session:
            self.release(session)
            return
        self._retained_until[session.guest_id] = time.monotonic() + self._retention_seconds
        logger.debug(
            "Guest scan session retained for replay",
            guest_id=session.guest_id,
            retention_seconds=self._retention_seconds
        )

    def release(self, session: ScanSession) -> None:
        """Drop the session if it is still the one registered for its guest."""
        if self._sessions.get(session.guest_id) is session:
            del self._sessions[session.guest_id]
            self._retained_until.pop(session.guest_id, None)
            logger.debug("Guest scan session released", guest_id=session.guest_id)

    def _drop_if_expired(self, guest_id: str) -> None:
        expires_at = self._retained_until.get(guest_id)
        if expires_at is None or time.monotonic() < expires_at:
            return
        session = self._sessions.get(guest_id)
        if session is None:
            self._retained_until.pop(guest_id, None)
            return
        self.release(session)
