"""
Progress Monitor

Background task that periodically reconciles stored campaign progress.
"""

import asyncio
import logging
from typing import Optional

from .models import ReconciliationReport
from .status_reconciler import StatusReconciler

logger = logging.getLogger(__name__)


class ProgressMonitor:
    """Runs reconciliation passes on a fixed interval"""

    def __init__(self, reconciler: StatusReconciler, interval_minutes: float = 5):
        self.reconciler = reconciler
        self.interval_seconds = max(0.0, float(interval_minutes) * 60)
        self._task: Optional[asyncio.Task] = None
        self._user_id: Optional[str] = None
        self.last_report: Optional[ReconciliationReport] = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, user_id: Optional[str] = None) -> None:
        """Start the background loop (no-op when already running)"""
        if self.is_active:
            logger.debug("Progress monitor already running")
            return
        self._user_id = user_id
        self._task = asyncio.create_task(self._run(), name="progress-monitor")
        logger.info(
            f"Progress monitor started, interval {self.interval_seconds:.0f}s"
            + (f", user {user_id}" if user_id else "")
        )

    async def stop(self) -> None:
        """Stop the background loop"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Progress monitor stopped")

    async def run_manual(self, user_id: Optional[str] = None) -> ReconciliationReport:
        """Run one reconciliation pass now"""
        report = await self.reconciler.reconcile_all(user_id=user_id)
        self.last_report = report
        return report

    async def _run(self) -> None:
        while True:
            try:
                await self.run_manual(self._user_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Progress monitor pass failed: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)


__all__ = ["ProgressMonitor"]
