"""Status condition bookkeeping for tenants and triggers."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from ..apis import Condition, ConditionStatus, get_condition, utcnow


def update_condition_if_transitioned(
    conditions: List[Condition],
    desired: Condition,
    now: Optional[datetime] = None,
) -> Condition:
    """Merge ``desired`` into ``conditions`` keyed by type.

    The transition time only moves when the status changes; reason and
    message always follow ``desired``.
    """
    current = get_condition(conditions, desired.type)
    if current is None:
        current = desired.model_copy()
        current.last_transition_time = now or utcnow()
        conditions.append(current)
        return current

    if current.status != desired.status:
        current.status = desired.status
        current.last_transition_time = now or utcnow()
    current.reason = desired.reason
    current.message = desired.message
    return current


def aggregate(statuses: Iterable[ConditionStatus]) -> ConditionStatus:
    """True if every status is True, False if any is False, else Unknown."""
    result = ConditionStatus.TRUE
    for status in statuses:
        if status == ConditionStatus.FALSE:
            return ConditionStatus.FALSE
        if status != ConditionStatus.TRUE:
            result = ConditionStatus.UNKNOWN
    return result
