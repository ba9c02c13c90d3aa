"""
Component Test Fixtures for Campaign Progress Service

Provides an in-memory repository and event bus so the engine can be driven
end to end without PostgreSQL or NATS.
Uses FastAPI TestClient for API testing.
"""

import asyncio
import pytest
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from core.config import AcceptanceGate, ProgressConfig
from microservices.campaign_progress_service.models import (
    Campaign,
    CampaignProgressUpdate,
    CampaignStatus,
    LinkedTransaction,
)
from microservices.campaign_progress_service.protocols import UpstreamUnavailableError
from tests.contracts.campaign_progress.data_contract import (
    BASE_TIME,
    CampaignProgressTestDataFactory,
)


# ====================
# Mock Repository
# ====================


class MockProgressRepository:
    """In-memory repository with failure injection for component testing"""

    def __init__(self):
        self.campaigns: Dict[str, Campaign] = {}
        self.links: Dict[str, List[LinkedTransaction]] = {}
        self.updates: List[tuple] = []
        self.healthy = True

        # Failure injection: method names that raise UpstreamUnavailableError
        self.failing: Set[str] = set()
        # When set, list_active_links waits for it before answering
        self.links_gate: Optional[asyncio.Event] = None

        # Call counters
        self.get_campaign_calls = 0
        self.list_links_calls = 0
        self.list_links_started = 0

    def _maybe_fail(self, method: str) -> None:
        if method in self.failing:
            raise UpstreamUnavailableError(f"{method} failed: connection refused")

    async def initialize(self):
        pass

    async def close(self):
        pass

    async def health_check(self) -> bool:
        return self.healthy

    # Test helpers
    def save_campaign(self, campaign: Campaign) -> Campaign:
        self.campaigns[campaign.campaign_id] = campaign
        self.links.setdefault(campaign.campaign_id, [])
        return campaign

    def set_links(self, campaign_id: str, links: List[LinkedTransaction]) -> None:
        self.links[campaign_id] = list(links)

    def add_link(self, linked: LinkedTransaction) -> None:
        self.links.setdefault(linked.link.campaign_id, []).append(linked)

    def deactivate(self, campaign_id: str) -> None:
        self.campaigns[campaign_id] = self.campaigns[campaign_id].model_copy(update={"is_active": False})

    # Repository protocol
    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        self.get_campaign_calls += 1
        self._maybe_fail("get_campaign")
        return self.campaigns.get(campaign_id)

    async def list_active_links(self, campaign_id: str) -> List[LinkedTransaction]:
        self.list_links_started += 1
        if self.links_gate is not None:
            await self.links_gate.wait()
        self.list_links_calls += 1
        self._maybe_fail("list_active_links")
        return [item for item in self.links.get(campaign_id, []) if item.link.is_active]

    async def list_campaign_ids_for_transaction(self, transaction_id: str) -> List[str]:
        self._maybe_fail("list_campaign_ids_for_transaction")
        return sorted(
            campaign_id
            for campaign_id, items in self.links.items()
            if any(item.link.transaction_id == transaction_id for item in items)
        )

    async def list_campaign_ids(
        self,
        user_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[str]:
        self._maybe_fail("list_campaign_ids")
        results = [c for c in self.campaigns.values() if c.is_active]
        if user_id:
            results = [c for c in results if c.user_id == user_id]
        if statuses:
            results = [c for c in results if c.status in statuses]
        return [c.campaign_id for c in results]

    async def update_campaign_progress(
        self, campaign_id: str, update: CampaignProgressUpdate
    ) -> bool:
        self._maybe_fail("update_campaign_progress")
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            return False

        changes: Dict[str, Any] = {
            "current_value": update.current_value,
            "progress_percentage": update.progress_percentage,
        }
        if update.status is not None:
            changes["status"] = update.status
        if update.achieved_at is not None:
            changes["achieved_at"] = update.achieved_at
            changes["achieved_value"] = update.achieved_value
        if update.clear_achievement:
            changes["achieved_at"] = None
            changes["achieved_value"] = None

        self.campaigns[campaign_id] = campaign.model_copy(update=changes)
        self.updates.append((campaign_id, update))
        return True


# ====================
# Mock Event Bus
# ====================


class MockEventBus:
    """Mock event bus for component testing"""

    def __init__(self):
        self.published_events: List[Dict[str, Any]] = []
        self.subscriptions: Dict[str, Any] = {}
        self.is_connected = True

    async def publish_event(self, event) -> bool:
        self.published_events.append(
            {
                "event_type": event.type,
                "source": event.source,
                "subject": event.subject,
                "data": event.data,
            }
        )
        return True

    async def subscribe_to_events(self, pattern: str, handler, durable: str = None) -> Optional[str]:
        self.subscriptions[pattern] = {"handler": handler, "durable": durable}
        return pattern

    async def close(self) -> None:
        self.is_connected = False

    def get_events_by_type(self, event_type: str) -> List[Dict]:
        return [e for e in self.published_events if e["event_type"] == event_type]

    def clear_events(self):
        self.published_events = []


# ====================
# Fixtures
# ====================


@pytest.fixture
def factory():
    """Provide CampaignProgressTestDataFactory"""
    return CampaignProgressTestDataFactory


@pytest.fixture
def mock_repository():
    """Fresh in-memory repository for each test"""
    return MockProgressRepository()


@pytest.fixture
def mock_event_bus():
    """Fresh mock event bus for each test"""
    return MockEventBus()


@pytest.fixture
def progress_config():
    """Engine config with the acceptance gate on for every campaign kind"""
    return ProgressConfig(
        acceptance_gate=AcceptanceGate.ALL,
        recalculate_concurrency=4,
        monitor_enabled=False,
        monitor_interval_minutes=5,
        publish_events=True,
    )


@pytest.fixture
def fixed_clock():
    """Clock pinned to the contract base time"""
    return lambda: BASE_TIME


@pytest.fixture
def simple_campaign(mock_repository, factory):
    """Active simple campaign: target 100,000 with 75,000 linked"""
    campaign = mock_repository.save_campaign(factory.make_campaign(target=Decimal("100000")))
    mock_repository.set_links(
        campaign.campaign_id,
        factory.make_links(
            campaign.campaign_id,
            [
                factory.make_transaction(value=Decimal("50000")),
                factory.make_transaction(value=Decimal("25000")),
            ],
        ),
    )
    return campaign


@pytest.fixture
def progress_service(mock_repository, progress_config, fixed_clock):
    """Engine facade wired to the in-memory repository (not started)"""
    from microservices.campaign_progress_service.progress_service import CampaignProgressService

    return CampaignProgressService(
        repository=mock_repository,
        config=progress_config,
        clock=fixed_clock,
    )


@pytest.fixture
def client(mock_repository, mock_event_bus, progress_service):
    """Create FastAPI test client with mocked dependencies"""
    from types import SimpleNamespace
    from unittest.mock import patch
    from fastapi.testclient import TestClient

    stub_factory = SimpleNamespace(
        repository=mock_repository,
        service=progress_service,
        nats_client=mock_event_bus,
    )

    # Patch the factory global; the lifespan is skipped by not entering the client
    with patch("microservices.campaign_progress_service.main.factory", stub_factory):
        from microservices.campaign_progress_service.main import app

        yield TestClient(app, raise_server_exceptions=False)
