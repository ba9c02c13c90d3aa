"""
Unit Tests for Campaign Progress Models

Tests alias normalisation and model defaults.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

import sys
import os

from pydantic import ValidationError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from microservices.campaign_progress_service.models import (
    ANY_POLICY_TYPE,
    Campaign,
    CampaignKind,
    CampaignProgressUpdate,
    CampaignStatus,
    ContractType,
    ContractTypeFilter,
    Criterion,
    ProgressOutcome,
    ProgressResult,
    TargetType,
    Transaction,
    normalize_category,
    normalize_contract_type,
    normalize_target_type,
)


class TestAliasNormalisation:
    """Tests for the alias helpers"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("auto", "Seguro Auto"),
            ("  Auto ", "Seguro Auto"),
            ("residencial", "Seguro Residencial"),
            ("geral", ANY_POLICY_TYPE),
            ("Seguro Vida", "Seguro Vida"),
            (None, ""),
        ],
    )
    def test_normalize_category(self, raw, expected):
        assert normalize_category(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("novo", "new"),
            ("renovacao_bradesco", "renewal"),
            ("ambos", "either"),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize_contract_type(self, raw, expected):
        assert normalize_contract_type(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [("valor", "value"), ("apolices", "quantity"), ("QUANTITY", "quantity")],
    )
    def test_normalize_target_type(self, raw, expected):
        assert normalize_target_type(raw) == expected


class TestCriterionModel:
    """Tests for Criterion"""

    def test_defaults(self):
        criterion = Criterion(target_type="value", target_value=10)

        assert criterion.policy_type == ANY_POLICY_TYPE
        assert criterion.contract_type == ContractTypeFilter.EITHER
        assert criterion.min_value_per_policy is None

    def test_blank_policy_type_means_any(self):
        criterion = Criterion(policy_type="", target_type="apolices", target_value=3)

        assert criterion.accepts_any_policy_type
        assert criterion.target_type == TargetType.QUANTITY

    def test_is_immutable(self):
        criterion = Criterion(target_type="value", target_value=10)

        with pytest.raises(ValidationError):
            criterion.target_value = Decimal("20")


class TestTransactionModel:
    """Tests for Transaction"""

    def test_unknown_contract_type_is_none(self):
        transaction = Transaction(
            transaction_id="pol_1",
            category="auto",
            value="1500.00",
            contract_type="ambos",
            registered_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

        assert transaction.category == "Seguro Auto"
        assert transaction.contract_type is None
        assert transaction.value == Decimal("1500.00")

    def test_renewal_alias(self):
        transaction = Transaction(
            transaction_id="pol_2",
            contract_type="Renovação Bradesco",
            value=None,
            registered_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

        assert transaction.contract_type == ContractType.RENEWAL
        assert transaction.value == Decimal("0")


class TestCampaignModel:
    """Tests for Campaign"""

    def test_defaults(self):
        campaign = Campaign(campaign_id="cmp_1")

        assert campaign.kind == CampaignKind.SIMPLE
        assert campaign.target_type == TargetType.VALUE
        assert campaign.status == CampaignStatus.ACTIVE
        assert campaign.is_composite is False
        assert campaign.has_malformed_criteria is False

    def test_malformed_criteria_flag(self):
        campaign = Campaign(
            campaign_id="cmp_1", kind=CampaignKind.COMPOSITE, criteria_error="bad json"
        )

        assert campaign.is_composite
        assert campaign.has_malformed_criteria

    def test_legacy_target_type_alias(self):
        campaign = Campaign(campaign_id="cmp_1", target_type="apolices")

        assert campaign.target_type == TargetType.QUANTITY


class TestResultModels:
    """Tests for result/update helpers"""

    def test_progress_result_ok(self):
        assert ProgressResult(outcome=ProgressOutcome.OK).ok
        assert not ProgressResult(outcome=ProgressOutcome.NOT_FOUND).ok

    def test_update_changes_status(self):
        update = CampaignProgressUpdate(current_value=1, progress_percentage=1)
        assert update.changes_status is False

        update.status = CampaignStatus.COMPLETED
        assert update.changes_status is True
