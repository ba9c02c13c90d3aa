"""
Campaign Progress Service Events

Event handlers and publishers for campaign progress service.
"""

from .models import (
    CampaignProgressEventType,
    CampaignProgressSubscribedEventType,
    CampaignProgressStreamConfig,
    SUBJECT_TOPICS,
    CampaignChangedEventData,
    LinkChangedEventData,
    PolicyChangedEventData,
    CriterionProgressEventData,
    CampaignProgressUpdatedEventData,
    CampaignProgressCompletedEventData,
)
from .handlers import ProgressEventHandler
from .publishers import ProgressEventPublisher

__all__ = [
    # Event Types
    "CampaignProgressEventType",
    "CampaignProgressSubscribedEventType",
    "CampaignProgressStreamConfig",
    "SUBJECT_TOPICS",
    # Event Data Models
    "CampaignChangedEventData",
    "LinkChangedEventData",
    "PolicyChangedEventData",
    "CriterionProgressEventData",
    "CampaignProgressUpdatedEventData",
    "CampaignProgressCompletedEventData",
    # Handler and Publisher
    "ProgressEventHandler",
    "ProgressEventPublisher",
]
