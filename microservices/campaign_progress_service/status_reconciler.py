"""
Status Reconciler

Writes the engine's derived state back onto stored campaigns: refreshes the
stored value and percentage, moves campaigns between active/completed as they
cross their target, and cancels expired ones. Also detects stored campaigns
whose persisted numbers drifted from what the engine computes.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, List, Optional

from .models import (
    Campaign,
    CampaignProgressUpdate,
    CampaignStatus,
    ProgressOutcome,
    ProgressSnapshot,
    ReconciliationReport,
    ReconciliationResult,
)
from .progress_calculator import ProgressCalculator, as_utc
from .protocols import ProgressRepositoryProtocol, UpstreamUnavailableError

if TYPE_CHECKING:
    from .change_coordinator import ChangeCoordinator

logger = logging.getLogger(__name__)

PERCENTAGE_TOLERANCE = Decimal("0.01")

# Statuses the reconciler never moves a campaign out of
TERMINAL_STATUSES = (CampaignStatus.PENDING, CampaignStatus.CANCELLED)

# Statuses covered by a full reconciliation pass
RECONCILED_STATUSES = [CampaignStatus.ACTIVE, CampaignStatus.COMPLETED]


def derive_status_update(
    campaign: Campaign, snapshot: ProgressSnapshot, now: datetime
) -> CampaignProgressUpdate:
    """
    Derive the stored state a campaign should have given a fresh snapshot.

    - complete and not stored as completed: completed, achievement recorded
    - stored as completed but no longer complete: back to active, achievement cleared
    - active, incomplete and past its end date: cancelled
    - pending and cancelled campaigns keep their status; only numbers refresh
    """
    update = CampaignProgressUpdate(
        current_value=snapshot.current_value,
        progress_percentage=snapshot.percentage,
    )

    if campaign.status in TERMINAL_STATUSES:
        return update

    if snapshot.is_completed:
        if campaign.status != CampaignStatus.COMPLETED:
            update.status = CampaignStatus.COMPLETED
            update.achieved_at = now
            update.achieved_value = snapshot.current_value
        return update

    if campaign.status == CampaignStatus.COMPLETED:
        update.status = CampaignStatus.ACTIVE
        update.clear_achievement = True
        return update

    if campaign.end_date is not None and as_utc(campaign.end_date) < as_utc(now):
        update.status = CampaignStatus.CANCELLED

    return update


def find_drift(
    campaign: Campaign, snapshot: ProgressSnapshot, update: CampaignProgressUpdate
) -> List[str]:
    """Differences between the stored campaign and the derived state"""
    issues: List[str] = []

    if campaign.current_value != snapshot.current_value:
        issues.append(
            f"current_value stored {campaign.current_value} != computed {snapshot.current_value}"
        )

    if abs(campaign.progress_percentage - snapshot.percentage) > PERCENTAGE_TOLERANCE:
        issues.append(
            f"progress_percentage stored {campaign.progress_percentage} != computed {snapshot.percentage}"
        )

    if update.changes_status:
        issues.append(f"status stored {campaign.status.value} != derived {update.status.value}")

    return issues


class StatusReconciler:
    """Validates stored campaign progress and corrects drift"""

    def __init__(
        self,
        repository: ProgressRepositoryProtocol,
        calculator: ProgressCalculator,
        coordinator: Optional["ChangeCoordinator"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.calculator = calculator
        self.coordinator = coordinator
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def reconcile(self, campaign_id: str, apply: bool = True) -> ReconciliationResult:
        """
        Validate one campaign and, when drifted and ``apply`` is set, write
        the derived state back.
        """
        try:
            campaign = await self.repository.get_campaign(campaign_id)
            if campaign is None or not campaign.is_active:
                return ReconciliationResult(campaign_id=campaign_id, outcome=ProgressOutcome.NOT_FOUND)
            linked = await self.repository.list_active_links(campaign_id)
        except UpstreamUnavailableError as e:
            return ReconciliationResult(
                campaign_id=campaign_id,
                outcome=ProgressOutcome.UPSTREAM_UNAVAILABLE,
                error=e.message,
            )

        generation = self.coordinator.next_generation(campaign_id) if self.coordinator else 0
        snapshot = self.calculator.compute_from(campaign, linked, generation)
        update = derive_status_update(campaign, snapshot, self.clock())
        issues = find_drift(campaign, snapshot, update)

        result = ReconciliationResult(
            campaign_id=campaign_id,
            outcome=ProgressOutcome.OK,
            drifted=bool(issues),
            issues=issues,
            previous_status=campaign.status,
            new_status=update.status or campaign.status,
            snapshot=snapshot,
        )

        if issues and apply:
            try:
                result.corrected = await self.repository.update_campaign_progress(campaign_id, update)
            except UpstreamUnavailableError as e:
                result.outcome = ProgressOutcome.UPSTREAM_UNAVAILABLE
                result.error = e.message
                return result
            if result.corrected:
                logger.info(f"Corrected campaign {campaign_id}: {'; '.join(issues)}")
            else:
                logger.warning(f"Campaign {campaign_id} drifted but update was not applied")

        if self.coordinator is not None:
            try:
                await self.coordinator.offer(snapshot)
            except UpstreamUnavailableError as e:
                logger.warning(f"Could not publish reconciled snapshot for {campaign_id}: {e.message}")

        return result

    async def reconcile_all(self, user_id: Optional[str] = None) -> ReconciliationReport:
        """Validate every active/completed campaign matching the filter"""
        report = ReconciliationReport()

        try:
            campaign_ids = await self.repository.list_campaign_ids(
                user_id=user_id, statuses=RECONCILED_STATUSES
            )
        except UpstreamUnavailableError as e:
            report.errors.append(f"Failed to list campaigns: {e.message}")
            report.finished_at = self.clock()
            return report

        logger.info(f"Reconciling {len(campaign_ids)} campaign(s)" + (f" for user {user_id}" if user_id else ""))

        for campaign_id in campaign_ids:
            result = await self.reconcile(campaign_id)
            report.results.append(result)
            if result.outcome == ProgressOutcome.OK:
                report.validated += 1
                if result.corrected:
                    report.corrected += 1
            elif result.outcome == ProgressOutcome.UPSTREAM_UNAVAILABLE:
                report.errors.append(f"{campaign_id}: {result.error}")

        report.finished_at = self.clock()
        logger.info(
            f"Reconciliation finished: {report.validated} validated, "
            f"{report.corrected} corrected, {len(report.errors)} error(s)"
        )
        return report


__all__ = [
    "StatusReconciler",
    "derive_status_update",
    "find_drift",
    "PERCENTAGE_TOLERANCE",
]
