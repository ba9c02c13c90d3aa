"""
Campaign Progress Event Data Models

Event type definitions and data structures for campaign progress events.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models import ChangeTopic


# =============================================================================
# Event Type Definitions
# =============================================================================


class CampaignProgressEventType(str, Enum):
    """
    Events published by campaign_progress_service.

    These are the authoritative event types for this service.
    Other services should reference these when subscribing.
    """
    PROGRESS_UPDATED = "campaign.progress.updated"
    PROGRESS_COMPLETED = "campaign.progress.completed"


class CampaignProgressSubscribedEventType(str, Enum):
    """
    Events that campaign_progress_service subscribes to from other services.
    """
    # Campaign definition events (from campaign authoring)
    CAMPAIGN_UPDATED = "campaign.updated"
    CAMPAIGN_ACCEPTED = "campaign.accepted"
    CAMPAIGN_DEACTIVATED = "campaign.deactivated"

    # Link events
    LINK_CREATED = "campaign.link.created"
    LINK_UPDATED = "campaign.link.updated"
    LINK_REMOVED = "campaign.link.removed"

    # Policy events (from policy registration)
    POLICY_CREATED = "policy.created"
    POLICY_UPDATED = "policy.updated"
    POLICY_DELETED = "policy.deleted"


# Change topic each subscribed subject feeds
SUBJECT_TOPICS: Dict[str, ChangeTopic] = {
    CampaignProgressSubscribedEventType.CAMPAIGN_UPDATED.value: ChangeTopic.CAMPAIGN_DEFINITIONS,
    CampaignProgressSubscribedEventType.CAMPAIGN_ACCEPTED.value: ChangeTopic.CAMPAIGN_DEFINITIONS,
    CampaignProgressSubscribedEventType.CAMPAIGN_DEACTIVATED.value: ChangeTopic.CAMPAIGN_DEFINITIONS,
    CampaignProgressSubscribedEventType.LINK_CREATED.value: ChangeTopic.LINKS,
    CampaignProgressSubscribedEventType.LINK_UPDATED.value: ChangeTopic.LINKS,
    CampaignProgressSubscribedEventType.LINK_REMOVED.value: ChangeTopic.LINKS,
    CampaignProgressSubscribedEventType.POLICY_CREATED.value: ChangeTopic.TRANSACTIONS,
    CampaignProgressSubscribedEventType.POLICY_UPDATED.value: ChangeTopic.TRANSACTIONS,
    CampaignProgressSubscribedEventType.POLICY_DELETED.value: ChangeTopic.TRANSACTIONS,
}


class CampaignProgressStreamConfig:
    """Stream configuration for campaign_progress_service"""
    STREAM_NAME = "campaign-stream"
    SUBJECTS = ["campaign.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "campaign-progress"


# =============================================================================
# Event Data Models - Subscribed Events
# =============================================================================


class CampaignChangedEventData(BaseModel):
    """campaign.updated / campaign.accepted / campaign.deactivated event data"""
    campaign_id: str = Field(..., description="Campaign ID")
    user_id: Optional[str] = Field(None, description="Broker the campaign belongs to")
    changed_fields: List[str] = Field(default_factory=list, description="Changed field names")
    timestamp: Optional[datetime] = Field(None, description="Event timestamp")

    @model_validator(mode="before")
    @classmethod
    def accept_id_alias(cls, data: Any):
        if isinstance(data, dict) and "campaign_id" not in data and "id" in data:
            data = {**data, "campaign_id": data["id"]}
        return data


class LinkChangedEventData(BaseModel):
    """campaign.link.* event data"""
    campaign_id: str = Field(..., description="Campaign ID")
    policy_id: Optional[str] = Field(None, description="Linked policy ID")
    is_active: Optional[bool] = Field(None, description="Link active flag after the change")
    timestamp: Optional[datetime] = Field(None, description="Event timestamp")

    @model_validator(mode="before")
    @classmethod
    def accept_transaction_alias(cls, data: Any):
        if isinstance(data, dict) and "policy_id" not in data and "transaction_id" in data:
            data = {**data, "policy_id": data["transaction_id"]}
        return data


class PolicyChangedEventData(BaseModel):
    """policy.* event data"""
    policy_id: str = Field(..., description="Policy ID")
    campaign_id: Optional[str] = Field(None, description="Campaign ID, when the producer knows it")
    user_id: Optional[str] = Field(None, description="Broker who owns the policy")
    timestamp: Optional[datetime] = Field(None, description="Event timestamp")

    @model_validator(mode="before")
    @classmethod
    def accept_id_alias(cls, data: Any):
        if isinstance(data, dict) and "policy_id" not in data:
            for key in ("transaction_id", "id"):
                if key in data:
                    return {**data, "policy_id": data[key]}
        return data


# =============================================================================
# Event Data Models - Published Events
# =============================================================================


class CriterionProgressEventData(BaseModel):
    """Per-criterion entry of a progress event"""
    policy_type: str
    target_type: str
    target_value: float
    current_value: float
    percentage: float
    is_completed: bool


class CampaignProgressUpdatedEventData(BaseModel):
    """campaign.progress.updated event data"""
    campaign_id: str = Field(..., description="Campaign ID")
    kind: str = Field(..., description="simple or composite")
    current_value: float = Field(..., description="Aggregate value")
    percentage: float = Field(..., description="Completion percentage (0-100)")
    is_completed: bool = Field(..., description="Whether the target is reached")
    generation: int = Field(..., description="Monotonic computation counter")
    total_transactions: int = Field(0, description="Transactions counted")
    fallback_used: bool = Field(False, description="Malformed criteria, simple ratio used")
    criteria: List[CriterionProgressEventData] = Field(default_factory=list)
    computed_at: datetime = Field(..., description="Computation time")


class CampaignProgressCompletedEventData(BaseModel):
    """campaign.progress.completed event data"""
    campaign_id: str = Field(..., description="Campaign ID")
    current_value: float = Field(..., description="Value when the target was reached")
    generation: int = Field(..., description="Generation of the completing snapshot")
    completed_at: datetime = Field(..., description="Computation time of the completing snapshot")


__all__ = [
    "CampaignProgressEventType",
    "CampaignProgressSubscribedEventType",
    "CampaignProgressStreamConfig",
    "SUBJECT_TOPICS",
    "CampaignChangedEventData",
    "LinkChangedEventData",
    "PolicyChangedEventData",
    "CriterionProgressEventData",
    "CampaignProgressUpdatedEventData",
    "CampaignProgressCompletedEventData",
]
