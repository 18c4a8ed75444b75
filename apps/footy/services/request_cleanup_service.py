"""
Request cleanup service: expires stale player requests and lifts finished suspensions.

Background worker that polls every REQUEST_CLEANUP_INTERVAL_SECONDS (default
5 minutes). Each expired request is handled in its own transaction so one
failure does not stop the sweep.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from footy.database import db
from footy.services.player_request_service import PlayerRequestBroker
from footy.services.sanction_service import SanctionEngine

logger = logging.getLogger(__name__)

# How often the worker sweeps (seconds)
POLL_INTERVAL_SECONDS = int(os.getenv("REQUEST_CLEANUP_INTERVAL_SECONDS", "300"))


@dataclass
class SweepResult:
    """Outcome of one sweep."""

    expired_requests: int = 0
    lifted_suspensions: int = 0
    failed_request_ids: List[int] = field(default_factory=list)


class RequestCleanupService:
    """Background service that expires player requests and lifts elapsed suspensions."""

    def __init__(
        self,
        session_factory=None,
        broker: Optional[PlayerRequestBroker] = None,
        sanction_engine: Optional[SanctionEngine] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.session_factory = session_factory or db.AsyncSessionLocal
        self.broker = broker or PlayerRequestBroker()
        self.sanction_engine = sanction_engine or SanctionEngine()
        self.poll_interval = poll_interval
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def start(self) -> None:
        """Start the background cleanup worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Request cleanup worker started")

    def stop(self) -> None:
        """Stop the background cleanup worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Request cleanup worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: sweep, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error in request cleanup worker: {e}", exc_info=True)

            # Wait for poll interval or until stop is signalled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                break
            except asyncio.TimeoutError:
                pass

    async def sweep(self) -> SweepResult:
        """Run one cleanup pass."""
        result = SweepResult()

        async with self.session_factory() as session:
            due_ids = await self.broker.due_request_ids(session)

        if due_ids:
            logger.info(f"Found {len(due_ids)} expired player request(s) to clean up")

        for request_id in due_ids:
            async with self.session_factory() as session:
                try:
                    if await self.broker.expire_request(session, request_id):
                        result.expired_requests += 1
                    await session.commit()
                except Exception as e:
                    logger.error(f"Error expiring request {request_id}: {e}", exc_info=True)
                    result.failed_request_ids.append(request_id)
                    await session.rollback()

        async with self.session_factory() as session:
            try:
                result.lifted_suspensions = await self.sanction_engine.lift_expired_suspensions(session)
                await session.commit()
            except Exception as e:
                logger.error(f"Error lifting expired suspensions: {e}", exc_info=True)
                await session.rollback()

        if result.expired_requests or result.lifted_suspensions or result.failed_request_ids:
            logger.info(
                f"Cleanup sweep: {result.expired_requests} request(s) expired, "
                f"{result.lifted_suspensions} suspension(s) lifted, "
                f"{len(result.failed_request_ids)} failure(s)"
            )
        return result


_cleanup_service: Optional[RequestCleanupService] = None


def get_request_cleanup_service() -> RequestCleanupService:
    """Get the process-wide request cleanup worker, created on first use."""
    global _cleanup_service
    if _cleanup_service is None:
        _cleanup_service = RequestCleanupService()
    return _cleanup_service
