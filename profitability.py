"""
Profitability recalculation.

Pure functions over a client's hourly rate, target hours, committed spent
hours and the seconds of the timer currently running, plus the
edge-triggered budget threshold policy used while a timer ticks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600


@dataclass
class ProfitabilitySnapshot:
    """Committed profitability figures for one client, as fetched from the API."""
    hourly_rate: float = 0.0
    target_hours: float = 0.0
    spent_hours: float = 0.0
    monthly_budget: float = 0.0
    client_name: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ProfitabilitySnapshot":
        return cls(
            hourly_rate=float(record.get("hourly_rate") or 0),
            target_hours=float(record.get("target_hours") or 0),
            spent_hours=float(record.get("spent_hours") or 0),
            monthly_budget=float(record.get("monthly_budget") or 0),
            client_name=record.get("client_name"),
        )


@dataclass
class Projection:
    current_hours_spent: float
    remaining_hours: float
    percentage_used: float
    effective_hourly_rate: float

    @property
    def is_over_budget(self) -> bool:
        return self.remaining_hours < 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "current_hours_spent": self.current_hours_spent,
            "remaining_hours": self.remaining_hours,
            "percentage_used": self.percentage_used,
            "effective_hourly_rate": self.effective_hourly_rate,
            "is_over_budget": self.is_over_budget,
        }


def project(snapshot: ProfitabilitySnapshot, running_seconds: float) -> Projection:
    """Project the client's budget as if the running timer were committed now."""
    current = snapshot.spent_hours + running_seconds / SECONDS_PER_HOUR
    remaining = snapshot.target_hours - current

    if snapshot.target_hours > 0:
        percentage = current / snapshot.target_hours * 100
    else:
        percentage = 0.0

    if snapshot.monthly_budget and current > 0:
        rate = snapshot.monthly_budget / current
    else:
        rate = snapshot.hourly_rate

    return Projection(
        current_hours_spent=current,
        remaining_hours=remaining,
        percentage_used=percentage,
        effective_hourly_rate=rate,
    )


def derive_metrics(hourly_rate: float, target_hours: float, spent_hours: float) -> Dict[str, float]:
    """Stored figures recomputed whenever a profitability record changes."""
    revenue = hourly_rate * spent_hours
    if target_hours > 0 and hourly_rate > 0:
        percentage = (revenue / (target_hours * hourly_rate) - 1) * 100
    else:
        percentage = 0.0
    return {
        "revenue": revenue,
        "profitability_percentage": percentage,
        "remaining_hours": target_hours - spent_hours,
    }


class BudgetLevel(Enum):
    BELOW_THRESHOLD = "below_threshold"
    AT_THRESHOLD = "at_threshold"
    OVER_BUDGET = "over_budget"


def budget_level(remaining_hours: float) -> BudgetLevel:
    if remaining_hours <= 0:
        return BudgetLevel.OVER_BUDGET
    if remaining_hours <= 1:
        return BudgetLevel.AT_THRESHOLD
    return BudgetLevel.BELOW_THRESHOLD


@dataclass
class Notification:
    message: str
    type: str = "info"  # success | info | warning | error

    def as_dict(self) -> Dict[str, str]:
        return {"message": self.message, "type": self.type}


class ThresholdWatcher:
    """
    Tracks the budget level across ticks and reports only crossings.

    A notification is produced on the tick where the level changes into
    AT_THRESHOLD or OVER_BUDGET; staying at a level is silent. Each notice fires
    at most once per session. A session that is already over budget when it
    starts never warns; one that starts with less than an hour left gets the
    info notice on its first tick. Clients with no target hours never notify.
    """

    def __init__(self, snapshot: Optional[ProfitabilitySnapshot] = None) -> None:
        self.level: Optional[BudgetLevel] = None
        self.client_name: Optional[str] = None
        if snapshot is not None:
            self.reset(snapshot)

    def reset(self, snapshot: ProfitabilitySnapshot, running_seconds: float = 0) -> None:
        """Seed the level from the committed figures. Only OVER_BUDGET is taken as already seen."""
        self.client_name = snapshot.client_name
        if snapshot.target_hours <= 0:
            self.level = None
        elif budget_level(project(snapshot, running_seconds).remaining_hours) is BudgetLevel.OVER_BUDGET:
            self.level = BudgetLevel.OVER_BUDGET
        else:
            self.level = BudgetLevel.BELOW_THRESHOLD

    def update(self, projection: Projection) -> Optional[Notification]:
        if self.level is None:
            return None
        level = budget_level(projection.remaining_hours)
        previous, self.level = self.level, level
        if level == previous:
            return None

        name = self.client_name or "this client"
        if level is BudgetLevel.OVER_BUDGET:
            logger.info("Budget exceeded for %s", name)
            return Notification(f"Budget exceeded for {name}", "warning")
        if level is BudgetLevel.AT_THRESHOLD and previous is BudgetLevel.BELOW_THRESHOLD:
            return Notification(f"Less than one hour of budget remaining for {name}", "info")
        return None
