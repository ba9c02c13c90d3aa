"""
Progress Calculator

Loads a campaign and its linked transactions and produces a ProgressSnapshot,
dispatching to the simple ratio or the composite criteria strategy.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from core.config import AcceptanceGate, ProgressConfig, get_settings

from .composite_aggregator import CompositeAggregator
from .criterion_evaluator import HUNDRED, CriterionEvaluator, measure, ratio_percentage
from .models import (
    Campaign,
    CampaignKind,
    LinkedTransaction,
    ProgressSnapshot,
    Transaction,
)
from .protocols import ProgressRepositoryProtocol, UpstreamUnavailableError

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProgressCalculator:
    """
    Campaign progress orchestrator.

    ``compute`` performs the I/O; ``compute_from`` is the pure step and can be
    used directly by callers that already hold the campaign and its links.
    """

    def __init__(
        self,
        repository: ProgressRepositoryProtocol,
        evaluator: Optional[CriterionEvaluator] = None,
        aggregator: Optional[CompositeAggregator] = None,
        config: Optional[ProgressConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.evaluator = evaluator or CriterionEvaluator()
        self.aggregator = aggregator or CompositeAggregator()
        self.config = config or get_settings().progress
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def compute(self, campaign_id: str, generation: int = 0) -> Optional[ProgressSnapshot]:
        """
        Compute a fresh snapshot for a campaign.

        Returns:
            The snapshot, or None when the campaign does not exist or has
            been deactivated

        Raises:
            UpstreamUnavailableError: persistence failed to answer
        """
        try:
            campaign = await self.repository.get_campaign(campaign_id)
            if campaign is None:
                logger.debug(f"Campaign {campaign_id} not found")
                return None
            if not campaign.is_active:
                logger.debug(f"Campaign {campaign_id} is deactivated")
                return None

            linked = await self.repository.list_active_links(campaign_id)
        except UpstreamUnavailableError:
            raise
        except (OSError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailableError(f"Failed to load campaign {campaign_id}: {e}") from e

        return self.compute_from(campaign, linked, generation)

    def compute_from(
        self,
        campaign: Campaign,
        linked: Sequence[LinkedTransaction],
        generation: int = 0,
    ) -> ProgressSnapshot:
        """Pure computation over already loaded data"""
        transactions = self._resolve_transactions(campaign.campaign_id, linked)
        transactions = self._apply_acceptance_gate(campaign, transactions)

        if campaign.is_composite and campaign.criteria is not None:
            breakdown = tuple(
                self.evaluator.evaluate(criterion, transactions)
                for criterion in campaign.criteria
            )
            result = self.aggregator.aggregate(breakdown)
            return ProgressSnapshot(
                campaign_id=campaign.campaign_id,
                kind=CampaignKind.COMPOSITE,
                current_value=result.current_value,
                percentage=result.percentage,
                is_completed=result.is_completed,
                criteria_breakdown=breakdown,
                total_transactions=len(transactions),
                computed_at=self.clock(),
                generation=generation,
            )

        fallback_used = campaign.is_composite and campaign.has_malformed_criteria
        if fallback_used:
            logger.warning(
                f"Campaign {campaign.campaign_id} has malformed criteria "
                f"({campaign.criteria_error}); using simple ratio over target {campaign.target}"
            )

        current_value = measure(transactions, campaign.target_type)
        percentage = ratio_percentage(current_value, campaign.target)
        return ProgressSnapshot(
            campaign_id=campaign.campaign_id,
            kind=campaign.kind,
            current_value=current_value,
            percentage=percentage,
            is_completed=percentage >= HUNDRED,
            total_transactions=len(transactions),
            fallback_used=fallback_used,
            computed_at=self.clock(),
            generation=generation,
        )

    def _resolve_transactions(
        self, campaign_id: str, linked: Sequence[LinkedTransaction]
    ) -> List[Transaction]:
        transactions: List[Transaction] = []
        seen = set()
        for item in linked:
            if not item.link.is_active:
                continue
            if item.transaction is None:
                logger.info(
                    f"Dropping link {campaign_id}/{item.link.transaction_id}: transaction could not be resolved"
                )
                continue
            # A transaction counts once even if linked twice
            if item.transaction.transaction_id in seen:
                continue
            seen.add(item.transaction.transaction_id)
            transactions.append(item.transaction)
        return transactions

    def _gate_applies(self, campaign: Campaign) -> bool:
        gate = self.config.acceptance_gate
        if gate == AcceptanceGate.DISABLED:
            return False
        if gate == AcceptanceGate.COMPOSITE_ONLY:
            return campaign.is_composite
        return True

    def _apply_acceptance_gate(
        self, campaign: Campaign, transactions: List[Transaction]
    ) -> List[Transaction]:
        if campaign.accepted_at is None or not self._gate_applies(campaign):
            return transactions

        accepted_at = as_utc(campaign.accepted_at)
        kept = [t for t in transactions if as_utc(t.registered_at) >= accepted_at]
        if len(kept) != len(transactions):
            logger.debug(
                f"Campaign {campaign.campaign_id}: {len(transactions) - len(kept)} transaction(s) "
                f"registered before acceptance excluded"
            )
        return kept


__all__ = ["ProgressCalculator"]
