"""
Campaign Progress Event Publishers

Publishes accepted progress snapshots to NATS JetStream.
"""

import logging
from typing import Any, Dict, Optional

from core.nats_client import Event, ServiceSource

from .models import (
    CampaignProgressCompletedEventData,
    CampaignProgressEventType,
    CampaignProgressUpdatedEventData,
    CriterionProgressEventData,
)
from ..models import ProgressSnapshot

logger = logging.getLogger(__name__)


class ProgressEventPublisher:
    """Publisher for campaign progress service events"""

    def __init__(self, event_bus=None):
        self.event_bus = event_bus
        self.source = ServiceSource.CAMPAIGN_PROGRESS_SERVICE
        # Last completion flag seen per campaign
        self._completed: Dict[str, bool] = {}

    async def publish(
        self,
        event_type: CampaignProgressEventType,
        data: Dict[str, Any],
    ) -> bool:
        """
        Publish an event to NATS.

        Args:
            event_type: The event type enum
            data: Event data payload

        Returns:
            True if published successfully, False otherwise
        """
        if not self.event_bus:
            logger.debug(f"Event bus not configured, skipping publish: {event_type.value}")
            return False

        try:
            event = Event(
                event_type=event_type.value,
                source=self.source,
                data=data,
                subject=data.get("campaign_id"),
            )
            published = await self.event_bus.publish_event(event)
            logger.debug(f"Published event: {event_type.value}")
            return bool(published)

        except Exception as e:
            logger.error(f"Failed to publish event {event_type.value}: {e}")
            return False

    async def on_snapshot(self, snapshot: ProgressSnapshot) -> None:
        """Coordinator listener: publish every accepted snapshot"""
        await self.publish_progress_updated(snapshot)

        was_completed = self._completed.get(snapshot.campaign_id)
        self._completed[snapshot.campaign_id] = snapshot.is_completed
        if snapshot.is_completed and not was_completed:
            await self.publish_progress_completed(snapshot)

    async def publish_progress_updated(self, snapshot: ProgressSnapshot) -> bool:
        """Publish campaign.progress.updated event"""
        data = CampaignProgressUpdatedEventData(
            campaign_id=snapshot.campaign_id,
            kind=snapshot.kind.value,
            current_value=float(snapshot.current_value),
            percentage=float(snapshot.percentage),
            is_completed=snapshot.is_completed,
            generation=snapshot.generation,
            total_transactions=snapshot.total_transactions,
            fallback_used=snapshot.fallback_used,
            criteria=[
                CriterionProgressEventData(
                    policy_type=c.policy_type,
                    target_type=c.target_type.value,
                    target_value=float(c.target_value),
                    current_value=float(c.current_value),
                    percentage=float(c.percentage),
                    is_completed=c.is_completed,
                )
                for c in snapshot.criteria_breakdown
            ],
            computed_at=snapshot.computed_at,
        )
        return await self.publish(
            CampaignProgressEventType.PROGRESS_UPDATED, data.model_dump(mode="json")
        )

    async def publish_progress_completed(self, snapshot: ProgressSnapshot) -> bool:
        """Publish campaign.progress.completed event"""
        data = CampaignProgressCompletedEventData(
            campaign_id=snapshot.campaign_id,
            current_value=float(snapshot.current_value),
            generation=snapshot.generation,
            completed_at=snapshot.computed_at,
        )
        logger.info(f"Campaign {snapshot.campaign_id} reached its target")
        return await self.publish(
            CampaignProgressEventType.PROGRESS_COMPLETED, data.model_dump(mode="json")
        )


__all__ = ["ProgressEventPublisher"]
