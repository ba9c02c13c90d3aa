"""
Composite Aggregator

Combines per-criterion progress into one campaign-level result. A composite
campaign is an AND of its criteria, so the campaign is only as far along as
its weakest criterion.
"""

from decimal import Decimal
from typing import Sequence

from .criterion_evaluator import HUNDRED, ZERO
from .models import CompositeResult, CriterionProgress, TargetType


class CompositeAggregator:
    """All-or-min aggregation of criteria"""

    def aggregate(self, criteria_progress: Sequence[CriterionProgress]) -> CompositeResult:
        """
        Aggregate criterion results.

        - empty set: 0%, not completed
        - every criterion completed: exactly 100%, completed
        - otherwise: the minimum criterion percentage

        ``current_value`` sums value-typed criteria only; quantity criteria
        count toward completion but not toward the monetary aggregate.
        """
        if not criteria_progress:
            return CompositeResult(percentage=ZERO, is_completed=False, current_value=ZERO)

        current_value = sum(
            (p.current_value for p in criteria_progress if p.target_type == TargetType.VALUE),
            ZERO,
        )

        if all(p.is_completed for p in criteria_progress):
            return CompositeResult(percentage=HUNDRED, is_completed=True, current_value=current_value)

        percentage = min(p.percentage for p in criteria_progress)
        percentage = max(ZERO, min(HUNDRED, Decimal(percentage)))
        return CompositeResult(percentage=percentage, is_completed=False, current_value=current_value)


__all__ = ["CompositeAggregator"]
