"""
Unit Tests for Status Derivation and Drift Detection

Covers the active/completed/cancelled transitions applied when stored
campaigns are reconciled against freshly computed progress.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from microservices.campaign_progress_service.models import (
    CampaignKind,
    CampaignStatus,
    ProgressSnapshot,
)
from microservices.campaign_progress_service.status_reconciler import (
    derive_status_update,
    find_drift,
)
from tests.contracts.campaign_progress.data_contract import BASE_TIME


def make_snapshot(campaign_id, current, percentage, completed=False):
    return ProgressSnapshot(
        campaign_id=campaign_id,
        kind=CampaignKind.SIMPLE,
        current_value=Decimal(str(current)),
        percentage=Decimal(str(percentage)),
        is_completed=completed,
        computed_at=BASE_TIME,
        generation=1,
    )


class TestDeriveStatusUpdate:
    """Tests for derive_status_update"""

    def test_active_reaching_target_completes(self, factory):
        campaign = factory.make_campaign(target="1000")
        snapshot = make_snapshot(campaign.campaign_id, "1200", "100", completed=True)

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status == CampaignStatus.COMPLETED
        assert update.achieved_at == BASE_TIME
        assert update.achieved_value == Decimal("1200")
        assert update.current_value == Decimal("1200")

    def test_completed_still_complete_keeps_status(self, factory):
        campaign = factory.make_campaign(status=CampaignStatus.COMPLETED)
        snapshot = make_snapshot(campaign.campaign_id, "100000", "100", completed=True)

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status is None
        assert update.changes_status is False

    def test_completed_below_target_reverts_to_active(self, factory):
        campaign = factory.make_campaign(status=CampaignStatus.COMPLETED)
        snapshot = make_snapshot(campaign.campaign_id, "50000", "50")

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status == CampaignStatus.ACTIVE
        assert update.clear_achievement is True

    def test_expired_incomplete_active_is_cancelled(self, factory):
        campaign = factory.make_campaign(end_date=BASE_TIME - timedelta(days=1))
        snapshot = make_snapshot(campaign.campaign_id, "10", "1")

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status == CampaignStatus.CANCELLED

    def test_expired_but_complete_is_completed(self, factory):
        campaign = factory.make_campaign(end_date=BASE_TIME - timedelta(days=1))
        snapshot = make_snapshot(campaign.campaign_id, "100000", "100", completed=True)

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status == CampaignStatus.COMPLETED

    def test_naive_end_date_compared_as_utc(self, factory):
        naive_end = (BASE_TIME + timedelta(hours=1)).replace(tzinfo=None)
        campaign = factory.make_campaign(end_date=naive_end)
        snapshot = make_snapshot(campaign.campaign_id, "10", "1")

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status is None

    @pytest.mark.parametrize("status", [CampaignStatus.PENDING, CampaignStatus.CANCELLED])
    def test_terminal_statuses_only_refresh_numbers(self, factory, status):
        campaign = factory.make_campaign(status=status, end_date=BASE_TIME - timedelta(days=1))
        snapshot = make_snapshot(campaign.campaign_id, "100000", "100", completed=True)

        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert update.status is None
        assert update.current_value == Decimal("100000")
        assert update.progress_percentage == Decimal("100")


class TestFindDrift:
    """Tests for find_drift"""

    def test_in_sync_has_no_issues(self, factory):
        campaign = factory.make_campaign(
            current_value=Decimal("500"), progress_percentage=Decimal("50")
        )
        snapshot = make_snapshot(campaign.campaign_id, "500", "50")
        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert find_drift(campaign, snapshot, update) == []

    def test_percentage_within_tolerance_is_not_drift(self, factory):
        campaign = factory.make_campaign(
            current_value=Decimal("500"), progress_percentage=Decimal("33.33")
        )
        snapshot = make_snapshot(campaign.campaign_id, "500", "33.333333")
        update = derive_status_update(campaign, snapshot, BASE_TIME)

        assert find_drift(campaign, snapshot, update) == []

    def test_value_and_percentage_drift_reported(self, factory):
        campaign = factory.make_campaign(
            current_value=Decimal("100"), progress_percentage=Decimal("10")
        )
        snapshot = make_snapshot(campaign.campaign_id, "500", "50")
        update = derive_status_update(campaign, snapshot, BASE_TIME)

        issues = find_drift(campaign, snapshot, update)

        assert len(issues) == 2
        assert issues[0].startswith("current_value")
        assert issues[1].startswith("progress_percentage")

    def test_status_change_reported(self, factory):
        campaign = factory.make_campaign(
            target="100", current_value=Decimal("100"), progress_percentage=Decimal("100")
        )
        snapshot = make_snapshot(campaign.campaign_id, "100", "100", completed=True)
        update = derive_status_update(campaign, snapshot, BASE_TIME)

        issues = find_drift(campaign, snapshot, update)

        assert issues == ["status stored active != derived completed"]
