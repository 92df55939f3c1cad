from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol, Sequence

from aggregation import percent_of

OVER = "over"
AT_70 = "at_70"


class AlertSource(Protocol):
    id: int
    category: str
    amount_cents: int
    alert_thresholds: Sequence[int]

    def last_sent_at(self, threshold: int) -> Optional[datetime]: ...


@dataclass(frozen=True)
class BudgetStatus:
    budget_cents: int
    spent_cents: int
    remaining_cents: int
    percent: float
    alert: Optional[str]

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class BudgetAlertNotice:
    budget_id: int
    category: str
    threshold: int
    percent: float
    spent_cents: int
    budget_cents: int
    message: str

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


def alert_tier(percent: float) -> Optional[str]:
    # Highest applicable tier wins.
    if percent >= 100:
        return OVER
    if percent >= 70:
        return AT_70
    return None


def budget_status(budget_cents: int, spent_cents: int) -> BudgetStatus:
    percent = percent_of(spent_cents, budget_cents)
    return BudgetStatus(
        budget_cents=budget_cents,
        spent_cents=spent_cents,
        remaining_cents=max(budget_cents - spent_cents, 0),
        percent=percent,
        alert=alert_tier(percent),
    )


def rollover_carry(amount_cents: int, spent_cents: int) -> int:
    return max(amount_cents - spent_cents, 0)


def normalize_thresholds(thresholds: Sequence[float]) -> list[int]:
    return sorted({int(t) for t in thresholds})


def _alert_message(category: str, threshold: int, percent: float) -> str:
    if percent >= 100:
        return (
            f"You have exceeded your {category} budget "
            f"({percent:.0f}% spent, {threshold}% threshold)."
        )
    return f"You have used {percent:.0f}% of your {category} budget ({threshold}% threshold)."


def due_alerts(
    budget: AlertSource,
    spent_cents: int,
    *,
    now: datetime,
    cooldown: timedelta,
) -> list[BudgetAlertNotice]:
    """Alerts for every crossed threshold not already sent within ``cooldown``."""
    percent = percent_of(spent_cents, budget.amount_cents)
    notices: list[BudgetAlertNotice] = []
    for threshold in normalize_thresholds(budget.alert_thresholds):
        if percent < threshold:
            continue
        last = budget.last_sent_at(threshold)
        if last is not None and now - last <= cooldown:
            continue
        notices.append(
            BudgetAlertNotice(
                budget_id=budget.id,
                category=budget.category,
                threshold=threshold,
                percent=percent,
                spent_cents=spent_cents,
                budget_cents=budget.amount_cents,
                message=_alert_message(budget.category, threshold, percent),
            )
        )
    return notices
