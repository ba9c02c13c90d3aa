"""
Unit Test Fixtures for Campaign Progress Service

Pure-logic fixtures; nothing here touches I/O.
Uses CampaignProgressTestDataFactory from the data contract.
"""

import pytest

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from microservices.campaign_progress_service.composite_aggregator import CompositeAggregator
from microservices.campaign_progress_service.criterion_evaluator import CriterionEvaluator
from tests.contracts.campaign_progress.data_contract import CampaignProgressTestDataFactory


@pytest.fixture
def factory():
    """Provide CampaignProgressTestDataFactory"""
    return CampaignProgressTestDataFactory


@pytest.fixture
def evaluator():
    return CriterionEvaluator()


@pytest.fixture
def aggregator():
    return CompositeAggregator()
