"""
Composite criteria parsing

Stored criteria arrive either as a JSON-encoded string or as a native list of
objects. They are validated once, when the campaign is loaded, into an ordered
list of immutable Criterion values.
"""

import json
import logging
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from .models import Criterion
from .protocols import MalformedCriteriaError

logger = logging.getLogger(__name__)


def parse_criteria(payload: Any) -> Optional[List[Criterion]]:
    """
    Parse a raw criteria payload.

    Returns None when no payload is stored, otherwise the criteria ordered by
    ``order_index`` (stable for equal indexes).

    Raises:
        MalformedCriteriaError: payload is not valid JSON, not a list, or an
            entry fails validation
    """
    if payload is None:
        return None

    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        if not payload.strip():
            return None
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedCriteriaError(f"Criteria is not valid JSON: {e.msg}")
        if payload is None:
            return None

    if not isinstance(payload, (list, tuple)):
        raise MalformedCriteriaError(
            f"Criteria must be a list, got {type(payload).__name__}"
        )

    criteria: List[Criterion] = []
    for position, item in enumerate(payload):
        if isinstance(item, Criterion):
            criteria.append(item)
            continue
        if not isinstance(item, dict):
            raise MalformedCriteriaError(
                f"Criterion #{position} must be an object, got {type(item).__name__}"
            )
        data = dict(item)
        data.setdefault("order_index", position)
        try:
            criteria.append(Criterion.model_validate(data))
        except ValidationError as e:
            raise MalformedCriteriaError(f"Criterion #{position} is invalid: {e.error_count()} error(s)") from e

    return sorted(criteria, key=lambda c: c.order_index)


def load_criteria(payload: Any, campaign_id: Optional[str] = None) -> Tuple[Optional[List[Criterion]], Optional[str]]:
    """
    Parse criteria at load time without raising.

    Returns ``(criteria, error)``; ``error`` is set, and ``criteria`` is None,
    when the payload is malformed.
    """
    try:
        return parse_criteria(payload), None
    except MalformedCriteriaError as e:
        logger.warning(f"Malformed criteria for campaign {campaign_id}: {e.message}")
        return None, e.message


__all__ = ["parse_criteria", "load_criteria"]
