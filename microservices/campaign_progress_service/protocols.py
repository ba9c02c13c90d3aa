"""
Campaign Progress Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from .models import (
    Campaign,
    CampaignProgressUpdate,
    CampaignStatus,
    ChangeEvent,
    ChangeTopic,
    LinkedTransaction,
    ProgressSnapshot,
)


# ====================
# Callback Types
# ====================

ChangeHandler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
SnapshotCallback = Callable[[ProgressSnapshot], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


# ====================
# Repository Protocol
# ====================


class ProgressRepositoryProtocol(Protocol):
    """Protocol for the campaign/policy persistence collaborator"""

    async def initialize(self) -> None:
        """Initialize repository connection"""
        ...

    async def close(self) -> None:
        """Close repository connection"""
        ...

    async def health_check(self) -> bool:
        """Check repository health"""
        ...

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID, None when absent"""
        ...

    async def list_active_links(self, campaign_id: str) -> List[LinkedTransaction]:
        """Active links of a campaign, each with its resolved transaction"""
        ...

    async def list_campaign_ids_for_transaction(self, transaction_id: str) -> List[str]:
        """Campaigns a transaction is (or was) linked to"""
        ...

    async def list_campaign_ids(
        self,
        user_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[str]:
        """IDs of active campaigns matching the filter"""
        ...

    async def update_campaign_progress(
        self, campaign_id: str, update: CampaignProgressUpdate
    ) -> bool:
        """Write derived progress and status back onto the campaign"""
        ...


# ====================
# Change Feed Protocol
# ====================


class ChangeFeedProtocol(Protocol):
    """Protocol for the three change streams"""

    def subscribe_changes(
        self,
        topic: ChangeTopic,
        handler: ChangeHandler,
        filter: Optional[Dict[str, str]] = None,
    ) -> Unsubscribe:
        """Register a handler for a topic; returns a callable that removes it"""
        ...


# ====================
# Event Bus Protocol
# ====================


class EventBusProtocol(Protocol):
    """Protocol for event bus (NATS)"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event"""
        ...

    async def subscribe_to_events(
        self, pattern: str, handler: Callable, durable: Optional[str] = None
    ) -> Optional[str]:
        """Subscribe to events matching a subject pattern"""
        ...

    async def close(self) -> None:
        """Close the connection"""
        ...


# ====================
# Custom Exceptions
# ====================


class CampaignProgressError(Exception):
    """Base exception for campaign progress service"""

    def __init__(self, message: str, error_code: str = "CAMPAIGN_PROGRESS_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class CampaignNotFoundError(CampaignProgressError):
    """Campaign not found (raised at the HTTP edge only)"""

    def __init__(self, campaign_id: str):
        super().__init__(f"Campaign not found: {campaign_id}", "CAMPAIGN_NOT_FOUND")
        self.campaign_id = campaign_id


class MalformedCriteriaError(CampaignProgressError):
    """Stored composite criteria could not be parsed"""

    def __init__(self, message: str):
        super().__init__(message, "MALFORMED_CRITERIA")


class UpstreamUnavailableError(CampaignProgressError):
    """Persistence collaborator failed to answer"""

    def __init__(self, message: str = "Persistence layer unavailable"):
        super().__init__(message, "UPSTREAM_UNAVAILABLE")


__all__ = [
    # Callback types
    "ChangeHandler",
    "SnapshotCallback",
    "Unsubscribe",
    # Protocols
    "ProgressRepositoryProtocol",
    "ChangeFeedProtocol",
    "EventBusProtocol",
    # Exceptions
    "CampaignProgressError",
    "CampaignNotFoundError",
    "MalformedCriteriaError",
    "UpstreamUnavailableError",
]
