"""
Criterion Evaluator

Matches transactions against a single criterion and computes that
criterion's contribution. Pure: no I/O, no clock, no shared state.
"""

from decimal import Decimal
from typing import Iterable, List

from .models import (
    ContractTypeFilter,
    Criterion,
    CriterionProgress,
    TargetType,
    Transaction,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def ratio_percentage(current: Decimal, target: Decimal) -> Decimal:
    """current/target as a percentage clamped to [0, 100]; 0 for target <= 0"""
    if target is None or target <= ZERO:
        return ZERO
    percentage = Decimal(current) / Decimal(target) * HUNDRED
    if percentage > HUNDRED:
        return HUNDRED
    if percentage < ZERO:
        return ZERO
    return percentage


def measure(transactions: Iterable[Transaction], target_type: TargetType) -> Decimal:
    """Sum of values for value targets, count for quantity targets"""
    if target_type == TargetType.QUANTITY:
        return Decimal(sum(1 for _ in transactions))
    return sum((t.value for t in transactions), ZERO)


class CriterionEvaluator:
    """Evaluates one criterion of a composite campaign"""

    def matches(self, criterion: Criterion, transaction: Transaction) -> bool:
        if not criterion.accepts_any_policy_type:
            if transaction.category.casefold() != criterion.policy_type.casefold():
                return False

        if criterion.min_value_per_policy is not None:
            if transaction.value < criterion.min_value_per_policy:
                return False

        if criterion.contract_type != ContractTypeFilter.EITHER:
            if transaction.contract_type is None:
                return False
            if transaction.contract_type.value != criterion.contract_type.value:
                return False

        return True

    def evaluate(self, criterion: Criterion, transactions: Iterable[Transaction]) -> CriterionProgress:
        """
        Compute a criterion's progress over a set of transactions.

        Args:
            criterion: The clause to evaluate
            transactions: Candidate transactions (already gated by the caller)

        Returns:
            CriterionProgress with the percentage clamped to [0, 100]
        """
        matching: List[Transaction] = [t for t in transactions if self.matches(criterion, t)]
        current_value = measure(matching, criterion.target_type)
        percentage = ratio_percentage(current_value, criterion.target_value)

        return CriterionProgress(
            policy_type=criterion.policy_type,
            target_type=criterion.target_type,
            target_value=criterion.target_value,
            current_value=current_value,
            percentage=percentage,
            is_completed=percentage >= HUNDRED,
            matching_transactions=len(matching),
            order_index=criterion.order_index,
        )


__all__ = ["CriterionEvaluator", "ratio_percentage", "measure"]
