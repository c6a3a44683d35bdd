"""Detached single-guest scans reporting through the progress registry."""
import asyncio
from typing import Optional, Sequence, Set

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import GuestNotFoundError
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.entities.face import as_embedding
from guest_tagger.domain.interfaces.storage.repositories import GuestRepository, PhotoRepository
from guest_tagger.services.photo_matching import PhotoMatchEngine
from guest_tagger.services.progress import ProgressRegistry, ScanSession

logger = get_logger(__name__)


class GuestScanCoordinator:
    """Start single-guest scans in the background and stream their progress.

    A scan runs detached from the request that triggered it and reports only
    through its ScanSession. Starting a scan for a guest that already has one
    streaming is rejected.

    Example:
        ```python
        coordinator = GuestScanCoordinator(engine, registry, photos, guests)
        session = await coordinator.start_for_guest("guest-1")
        ```
    """

    def __init__(
        self,
        engine: PhotoMatchEngine,
        registry: ProgressRegistry,
        photo_repository: PhotoRepository,
        guest_repository: GuestRepository,
        embedding_dimension: int = settings.EMBEDDING_DIMENSION,
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._photos = photo_repository
        self._guests = guest_repository
        self._embedding_dimension = embedding_dimension
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def registry(self) -> ProgressRegistry:
        return self._registry

    async def start_for_guest(self, guest_id: str) -> ScanSession:
        """Start a scan from the guest's stored selfie embedding.

        Raises:
            GuestNotFoundError: If the guest is missing, not gallery-eligible or
                has a stored embedding of the wrong dimension
            ScanAlreadyRunningError: If a scan is already streaming for the guest
        """
        guest = await self._guests.get_guest(guest_id)
        if guest is None or not guest.is_gallery_eligible:
            raise GuestNotFoundError(f"Guest {guest_id} has no verified selfie")
        if len(guest.face_encoding) != self._embedding_dimension:
            logger.warning(
                "Stored selfie embedding has unexpected dimension",
                guest_id=guest_id,
                dimension=len(guest.face_encoding),
                expected=self._embedding_dimension
            )
            raise GuestNotFoundError(
                f"Guest {guest_id} has no usable selfie embedding",
                details={"dimension": len(guest.face_encoding), "expected": self._embedding_dimension}
            )
        return self.start(guest_id, guest.face_encoding)

    def start(self, guest_id: str, embedding: Sequence[float]) -> ScanSession:
        """Reserve the guest's session and launch the scan task.

        Raises:
            ScanAlreadyRunningError: If a scan is already streaming for the guest
        """
        vector = as_embedding(embedding)
        session = self._registry.start(guest_id)
        task = asyncio.create_task(self._run(session, vector), name=f"guest-scan-{guest_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session

    def cancel(self, guest_id: str) -> bool:
        """Ask a running scan to stop at its next photo boundary."""
        session = self._registry.get(guest_id)
        if session is None or session.is_terminal or session.cancel_token.cancelled:
            return False
        session.cancel_token.cancel()
        logger.info("Guest scan cancellation requested", guest_id=guest_id)
        return True

    async def wait(self, guest_id: Optional[str] = None) -> None:
        """Wait for running scans (all of them, or the given guest's) to finish."""
        tasks = [
            task for task in self._tasks
            if guest_id is None or task.get_name() == f"guest-scan-{guest_id}"
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running scan task."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait()

    async def _run(self, session: ScanSession, embedding) -> None:
        guest_id = session.guest_id
        try:
            photos = await self._photos.list_photos()
            session.begin(total=len(photos))
            logger.info("Guest scan started", guest_id=guest_id, photos=len(photos))

            async for result in self._engine.process_for_single_guest(
                guest_id, embedding, photos, cancel_token=session.cancel_token
            ):
                session.record_photo(
                    result.photo_id,
                    matched=result.matched,
                    error=result.failure.error if result.failure else None,
                )

            if session.cancel_token.cancelled:
                session.fail("Scan cancelled")
            else:
                session.complete(
                    message=f"Found guest in {session.matched_photos} of {session.total} photos."
                )
            logger.info(
                "Guest scan finished",
                guest_id=guest_id,
                processed=session.current,
                matched_photos=session.matched_photos,
                cancelled=session.cancel_token.cancelled
            )
        except asyncio.CancelledError:
            session.fail("Scan interrupted")
            raise
        except Exception as e:
            logger.error("Guest scan failed", guest_id=guest_id, error=str(e), exc_info=True)
            session.fail(str(e))
        finally:
            self._registry.finish(session)
