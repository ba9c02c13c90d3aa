"""
Campaign Progress Service Business Logic

Engine facade: on-demand progress pulls, real-time subscriptions, batch
re-derivation and status reconciliation.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from core.config import ProgressConfig, get_settings

from .change_coordinator import ChangeCoordinator
from .models import (
    CoordinatorState,
    ProgressOutcome,
    ProgressResult,
    ProgressSnapshot,
    RecalculationReport,
    ReconciliationReport,
    ReconciliationResult,
)
from .progress_calculator import ProgressCalculator
from .progress_monitor import ProgressMonitor
from .protocols import (
    ChangeFeedProtocol,
    ProgressRepositoryProtocol,
    SnapshotCallback,
    Unsubscribe,
    UpstreamUnavailableError,
)
from .status_reconciler import StatusReconciler

logger = logging.getLogger(__name__)


class CampaignProgressService:
    """Campaign progress service business logic layer"""

    def __init__(
        self,
        repository: ProgressRepositoryProtocol,
        change_feed: Optional[ChangeFeedProtocol] = None,
        config: Optional[ProgressConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.config = config or get_settings().progress
        self.calculator = ProgressCalculator(repository, config=self.config, clock=clock)
        self.coordinator = ChangeCoordinator(self.calculator, repository, change_feed)
        self.reconciler = StatusReconciler(repository, self.calculator, self.coordinator, clock=clock)
        self.monitor = ProgressMonitor(self.reconciler, self.config.monitor_interval_minutes)

    # ====================
    # Lifecycle
    # ====================

    def start(self) -> None:
        """Start reacting to change events (and the monitor when enabled)"""
        self.coordinator.start()
        if self.config.monitor_enabled:
            self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        await self.coordinator.stop()

    # ====================
    # Progress
    # ====================

    async def compute_progress(self, campaign_id: str) -> ProgressResult:
        """
        Compute a campaign's progress on demand.

        The snapshot is offered through the coordinator, so subscribers see
        it too and it can never overwrite a newer published snapshot.
        """
        generation = self.coordinator.next_generation(campaign_id)
        try:
            snapshot = await self.calculator.compute(campaign_id, generation)
            if snapshot is None:
                self.coordinator.forget(campaign_id)
                return ProgressResult(
                    outcome=ProgressOutcome.NOT_FOUND,
                    error=f"Campaign not found: {campaign_id}",
                )
            await self.coordinator.offer(snapshot)
        except UpstreamUnavailableError as e:
            logger.warning(f"Progress for {campaign_id} unavailable: {e.message}")
            return ProgressResult(outcome=ProgressOutcome.UPSTREAM_UNAVAILABLE, error=e.message)

        return ProgressResult(outcome=ProgressOutcome.OK, snapshot=snapshot)

    def subscribe(self, campaign_id: str, on_snapshot: SnapshotCallback) -> Unsubscribe:
        """Push accepted snapshots of a campaign to ``on_snapshot``"""
        return self.coordinator.subscribe(campaign_id, on_snapshot)

    def subscribe_all(self, on_snapshot: SnapshotCallback) -> Unsubscribe:
        return self.coordinator.subscribe_all(on_snapshot)

    def latest_snapshot(self, campaign_id: str) -> Optional[ProgressSnapshot]:
        """Last published snapshot, if any"""
        return self.coordinator.latest_snapshot(campaign_id)

    def state_of(self, campaign_id: str) -> CoordinatorState:
        return self.coordinator.state_of(campaign_id)

    def retry(self, campaign_id: Optional[str] = None) -> int:
        """Restart recomputation of campaigns stalled by an upstream failure"""
        return self.coordinator.retry(campaign_id)

    async def recalculate_all(self, user_id: Optional[str] = None) -> RecalculationReport:
        """
        Re-derive progress for every active campaign matching the filter.

        Each campaign goes through ``compute_progress`` and publishes
        independently; concurrency is bounded by
        ``ProgressConfig.recalculate_concurrency``.
        """
        report = RecalculationReport()
        try:
            campaign_ids = await self.repository.list_campaign_ids(user_id=user_id)
        except UpstreamUnavailableError as e:
            report.errors.append(f"Failed to list campaigns: {e.message}")
            return report

        report.total = len(campaign_ids)
        semaphore = asyncio.Semaphore(self.config.recalculate_concurrency)

        async def recalculate(campaign_id: str) -> ProgressResult:
            async with semaphore:
                return await self.compute_progress(campaign_id)

        results = await asyncio.gather(
            *(recalculate(cid) for cid in campaign_ids), return_exceptions=True
        )

        for campaign_id, result in zip(campaign_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Recalculation of {campaign_id} raised: {result!r}", exc_info=result)
                report.failed += 1
                report.errors.append(f"{campaign_id}: {result}")
            elif result.outcome == ProgressOutcome.OK:
                report.computed += 1
            elif result.outcome == ProgressOutcome.NOT_FOUND:
                report.not_found += 1
            else:
                report.failed += 1
                report.errors.append(f"{campaign_id}: {result.error}")

        logger.info(
            f"Recalculated {report.computed}/{report.total} campaign(s)"
            + (f" for user {user_id}" if user_id else "")
            + (f", {report.failed} failed" if report.failed else "")
        )
        return report

    # ====================
    # Reconciliation
    # ====================

    async def reconcile_campaign(self, campaign_id: str) -> ReconciliationResult:
        """Validate one campaign's stored progress and correct drift"""
        return await self.reconciler.reconcile(campaign_id)

    async def reconcile_all(self, user_id: Optional[str] = None) -> ReconciliationReport:
        return await self.reconciler.reconcile_all(user_id=user_id)


__all__ = ["CampaignProgressService"]
