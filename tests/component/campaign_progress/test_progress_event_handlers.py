"""
Component Tests for Event Handlers

Tests NATS event intake: routing of subscribed subjects onto the three
change topics.
"""

import pytest

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from core.nats_client import Event, ServiceSource
from microservices.campaign_progress_service.events.handlers import ProgressEventHandler
from microservices.campaign_progress_service.events.models import (
    CampaignProgressSubscribedEventType,
)
from microservices.campaign_progress_service.models import ChangeTopic


@pytest.fixture
def handler():
    return ProgressEventHandler()


@pytest.fixture
def changes(handler):
    """Every change published, across all topics"""
    collected = []
    for topic in ChangeTopic:
        handler.subscribe_changes(topic, collected.append)
    return collected


class TestCampaignEvents:
    """campaign.updated / accepted / deactivated"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event_type",
        [
            CampaignProgressSubscribedEventType.CAMPAIGN_UPDATED.value,
            CampaignProgressSubscribedEventType.CAMPAIGN_ACCEPTED.value,
            CampaignProgressSubscribedEventType.CAMPAIGN_DEACTIVATED.value,
        ],
    )
    async def test_routes_to_campaign_definitions(self, handler, changes, event_type):
        await handler.handle_event(event_type, {"campaign_id": "cmp_1", "user_id": "usr_1"})

        assert len(changes) == 1
        assert changes[0].topic == ChangeTopic.CAMPAIGN_DEFINITIONS
        assert changes[0].action == event_type
        assert changes[0].campaign_id == "cmp_1"

    @pytest.mark.asyncio
    async def test_accepts_id_alias(self, handler, changes):
        await handler.handle_event("campaign.updated", {"id": "cmp_2"})

        assert changes[0].campaign_id == "cmp_2"


class TestLinkEvents:
    """campaign.link.*"""

    @pytest.mark.asyncio
    async def test_routes_to_links(self, handler, changes):
        await handler.handle_event(
            "campaign.link.removed", {"campaign_id": "cmp_1", "policy_id": "pol_1", "is_active": False}
        )

        assert changes[0].topic == ChangeTopic.LINKS
        assert changes[0].campaign_id == "cmp_1"
        assert changes[0].transaction_id == "pol_1"

    @pytest.mark.asyncio
    async def test_accepts_transaction_alias(self, handler, changes):
        await handler.handle_event("campaign.link.created", {"campaign_id": "cmp_1", "transaction_id": "pol_9"})

        assert changes[0].transaction_id == "pol_9"


class TestPolicyEvents:
    """policy.*"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["policy.created", "policy.updated", "policy.deleted"])
    async def test_routes_to_transactions(self, handler, changes, event_type):
        await handler.handle_event(event_type, {"id": "pol_1", "user_id": "usr_1"})

        assert changes[0].topic == ChangeTopic.TRANSACTIONS
        assert changes[0].transaction_id == "pol_1"
        assert changes[0].campaign_id is None


class TestRoutingEdgeCases:
    """Unknown subjects, bad payloads, filters and handler failures"""

    @pytest.mark.asyncio
    async def test_unknown_event_is_ignored(self, handler, changes):
        await handler.handle_event("billing.invoice.created", {"campaign_id": "cmp_1"})

        assert changes == []

    @pytest.mark.asyncio
    async def test_invalid_payload_is_logged_not_raised(self, handler, changes):
        await handler.handle_event("campaign.updated", {"user_id": "usr_1"})

        assert changes == []

    @pytest.mark.asyncio
    async def test_filter_by_campaign(self, handler):
        matched = []
        handler.subscribe_changes(ChangeTopic.LINKS, matched.append, filter={"campaign_id": "cmp_1"})

        await handler.handle_event("campaign.link.created", {"campaign_id": "cmp_2", "policy_id": "pol_1"})
        await handler.handle_event("campaign.link.created", {"campaign_id": "cmp_1", "policy_id": "pol_1"})

        assert [c.campaign_id for c in matched] == ["cmp_1"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, handler):
        seen = []

        def broken(change):
            raise RuntimeError("boom")

        handler.subscribe_changes(ChangeTopic.CAMPAIGN_DEFINITIONS, broken)
        handler.subscribe_changes(ChangeTopic.CAMPAIGN_DEFINITIONS, seen.append)

        await handler.handle_event("campaign.accepted", {"campaign_id": "cmp_1"})

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, handler):
        seen = []
        unsubscribe = handler.subscribe_changes(ChangeTopic.TRANSACTIONS, seen.append)
        unsubscribe()

        await handler.handle_event("policy.created", {"policy_id": "pol_1"})

        assert seen == []
        assert handler.subscriber_count(ChangeTopic.TRANSACTIONS) == 0


class TestBusIntake:
    """NATS callback and subscription map"""

    @pytest.mark.asyncio
    async def test_on_bus_event_dispatches(self, handler, changes):
        event = Event(
            event_type="campaign.link.updated",
            source=ServiceSource.CAMPAIGN_SERVICE,
            data={"campaign_id": "cmp_1", "policy_id": "pol_1"},
        )

        await handler.on_bus_event(event)

        assert changes[0].topic == ChangeTopic.LINKS

    def test_handler_map_covers_subscribed_subjects(self, handler):
        patterns = handler.get_event_handler_map()

        assert "campaign.updated" in patterns
        assert "campaign.accepted" in patterns
        assert "campaign.deactivated" in patterns
        assert "campaign.link.*" in patterns
        assert "policy.*" in patterns
