"""
Campaign Progress Event Handlers

Turns incoming NATS events into change notifications on the three change
topics (campaign definitions, links, transactions). Acts as the change feed
the coordinator subscribes to.
"""

import inspect
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from core.nats_client import Event

from .models import (
    SUBJECT_TOPICS,
    CampaignChangedEventData,
    CampaignProgressSubscribedEventType,
    LinkChangedEventData,
    PolicyChangedEventData,
)
from ..models import ChangeEvent, ChangeTopic
from ..protocols import ChangeHandler, Unsubscribe

logger = logging.getLogger(__name__)

_Subscription = Tuple[ChangeHandler, Optional[Dict[str, str]]]


class ProgressEventHandler:
    """Handler for campaign progress service subscribed events"""

    def __init__(self):
        self._subscriptions: Dict[ChangeTopic, Tuple[_Subscription, ...]] = {
            topic: () for topic in ChangeTopic
        }

    # ====================
    # Change feed
    # ====================

    def subscribe_changes(
        self,
        topic: ChangeTopic,
        handler: ChangeHandler,
        filter: Optional[Dict[str, str]] = None,
    ) -> Unsubscribe:
        """Register a handler for one topic, optionally filtered by campaign_id/transaction_id"""
        entry: _Subscription = (handler, dict(filter) if filter else None)
        self._subscriptions[topic] = self._subscriptions[topic] + (entry,)

        def unsubscribe() -> None:
            self._subscriptions[topic] = tuple(
                existing for existing in self._subscriptions[topic] if existing is not entry
            )

        return unsubscribe

    def subscriber_count(self, topic: ChangeTopic) -> int:
        return len(self._subscriptions[topic])

    async def publish_change(self, change: ChangeEvent) -> None:
        """Deliver a change to every matching subscriber of its topic"""
        for handler, change_filter in self._subscriptions[change.topic]:
            if change_filter and not self._matches(change_filter, change):
                continue
            try:
                result = handler(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Change handler failed for {change.topic.value}/{change.action}: {e}", exc_info=True)

    @staticmethod
    def _matches(change_filter: Dict[str, str], change: ChangeEvent) -> bool:
        for key, expected in change_filter.items():
            if getattr(change, key, None) != expected:
                return False
        return True

    # ====================
    # NATS intake
    # ====================

    def get_event_handler_map(self) -> Dict[str, Callable]:
        """Subject pattern -> bus callback, for event bus subscription"""
        return {
            CampaignProgressSubscribedEventType.CAMPAIGN_UPDATED.value: self.on_bus_event,
            CampaignProgressSubscribedEventType.CAMPAIGN_ACCEPTED.value: self.on_bus_event,
            CampaignProgressSubscribedEventType.CAMPAIGN_DEACTIVATED.value: self.on_bus_event,
            "campaign.link.*": self.on_bus_event,
            "policy.*": self.on_bus_event,
        }

    async def on_bus_event(self, event: Event) -> None:
        """Event bus callback"""
        await self.handle_event(event.type, event.data or {})

    async def handle_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Route event to appropriate handler"""
        handlers = {
            CampaignProgressSubscribedEventType.CAMPAIGN_UPDATED.value: self.handle_campaign_changed,
            CampaignProgressSubscribedEventType.CAMPAIGN_ACCEPTED.value: self.handle_campaign_changed,
            CampaignProgressSubscribedEventType.CAMPAIGN_DEACTIVATED.value: self.handle_campaign_changed,
            CampaignProgressSubscribedEventType.LINK_CREATED.value: self.handle_link_changed,
            CampaignProgressSubscribedEventType.LINK_UPDATED.value: self.handle_link_changed,
            CampaignProgressSubscribedEventType.LINK_REMOVED.value: self.handle_link_changed,
            CampaignProgressSubscribedEventType.POLICY_CREATED.value: self.handle_policy_changed,
            CampaignProgressSubscribedEventType.POLICY_UPDATED.value: self.handle_policy_changed,
            CampaignProgressSubscribedEventType.POLICY_DELETED.value: self.handle_policy_changed,
        }

        handler = handlers.get(event_type)
        if handler:
            try:
                await handler(event_type, data)
            except Exception as e:
                logger.error(f"Error handling event {event_type}: {e}", exc_info=True)
        else:
            logger.debug(f"No handler for event type: {event_type}")

    async def handle_campaign_changed(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Handle campaign.updated / campaign.accepted / campaign.deactivated

        Target, criteria, acceptance and active flag all feed the computation.
        """
        event_data = CampaignChangedEventData(**data)
        await self.publish_change(
            ChangeEvent(
                topic=SUBJECT_TOPICS[event_type],
                action=event_type,
                campaign_id=event_data.campaign_id,
            )
        )

    async def handle_link_changed(self, event_type: str, data: Dict[str, Any]) -> None:
        """Handle campaign.link.created / updated / removed"""
        event_data = LinkChangedEventData(**data)
        await self.publish_change(
            ChangeEvent(
                topic=ChangeTopic.LINKS,
                action=event_type,
                campaign_id=event_data.campaign_id,
                transaction_id=event_data.policy_id,
            )
        )

    async def handle_policy_changed(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Handle policy.created / updated / deleted

        The affected campaigns are resolved by the subscriber from the policy id.
        """
        event_data = PolicyChangedEventData(**data)
        await self.publish_change(
            ChangeEvent(
                topic=ChangeTopic.TRANSACTIONS,
                action=event_type,
                campaign_id=event_data.campaign_id,
                transaction_id=event_data.policy_id,
            )
        )


__all__ = ["ProgressEventHandler"]
