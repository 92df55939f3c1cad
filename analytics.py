from __future__ import annotations

from datetime import date
from typing import Iterable, Mapping, Optional, Sequence

from aggregation import (
    WEEKDAY_NAMES,
    Dated,
    day_bucket,
    percent_of,
    sum_by_date_bucket,
    sum_by_key,
    weekday_bucket,
)
from periods import days_in_month

FORECAST_UPLIFT = 1.05
FORECAST_MAX_CONFIDENCE = 85
CATEGORY_SPIKE_RATIO = 1.2
TOP_CATEGORY_SHARE = 40
HIGH_DAY_MULTIPLIER = 3


def day_of_week_trends(expenses: Sequence[Dated]) -> dict[str, object]:
    totals = sum_by_date_bucket(expenses, weekday_bucket)
    counts: dict[str, int] = {}
    for txn in expenses:
        name = weekday_bucket(txn.date)
        counts[name] = counts.get(name, 0) + 1

    rows = [
        {
            "day": name,
            "total_cents": totals[name],
            "count": counts[name],
            "average_cents": round(totals[name] / counts[name]),
        }
        for name in WEEKDAY_NAMES
        if name in totals
    ]
    if not rows:
        return {
            "day_of_week": [],
            "insights": {
                "highest_spending_day": None,
                "percent_difference": 0.0,
                "message": "Not enough spending data to detect weekday trends.",
            },
        }

    highest = rows[0]
    for row in rows[1:]:
        if row["total_cents"] > highest["total_cents"]:
            highest = row
    mean_total = sum(r["total_cents"] for r in rows) / len(rows)
    difference = (
        (highest["total_cents"] - mean_total) / mean_total * 100 if mean_total else 0.0
    )
    direction = "more" if difference > 0 else "less"
    return {
        "day_of_week": rows,
        "insights": {
            "highest_spending_day": highest["day"],
            "percent_difference": round(difference, 1),
            "message": (
                f"You spend {abs(difference):.1f}% {direction} "
                f"on {highest['day']}s"
            ),
        },
    }


def forecast_next_month(monthly_totals: Sequence[int]) -> dict[str, object]:
    """Project next month's spend from chronologically ordered monthly totals."""
    if not monthly_totals:
        return {
            "forecast_cents": 0,
            "trend": "stable",
            "confidence": 0,
            "previous_months": [],
            "average_cents": 0,
        }
    average = sum(monthly_totals) / len(monthly_totals)
    recent = list(monthly_totals[-2:])
    recent_average = sum(recent) / len(recent)
    if recent_average > average:
        trend = "increasing"
    elif recent_average < average:
        trend = "decreasing"
    else:
        trend = "stable"
    return {
        "forecast_cents": round(recent_average * FORECAST_UPLIFT),
        "trend": trend,
        "confidence": min(FORECAST_MAX_CONFIDENCE, len(monthly_totals) * 20),
        "previous_months": list(monthly_totals),
        "average_cents": round(average),
    }


def spending_velocity(total_spent_cents: int, today: date) -> dict[str, int]:
    days_elapsed = today.day
    month_days = days_in_month(today.year, today.month)
    daily_rate = total_spent_cents / days_elapsed
    return {
        "daily_rate_cents": round(daily_rate),
        "weekly_rate_cents": round(daily_rate * 7),
        "projected_monthly_cents": round(daily_rate * month_days),
        "current_spending_cents": total_spent_cents,
        "days_elapsed": days_elapsed,
        "days_remaining": month_days - days_elapsed,
    }


def category_change(current_cents: int, previous_cents: int) -> float:
    if previous_cents > 0:
        return (current_cents - previous_cents) / previous_cents * 100
    return 100.0 if current_cents > 0 else 0.0


def _trend(change: float) -> str:
    if change > 0:
        return "up"
    if change < 0:
        return "down"
    return "stable"


def compare_categories(
    current: Mapping[str, int], previous: Mapping[str, int]
) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for category in sorted(set(current) | set(previous)):
        cur = current.get(category, 0)
        prev = previous.get(category, 0)
        change = category_change(cur, prev)
        rows.append(
            {
                "category": category,
                "current_cents": cur,
                "previous_cents": prev,
                "change": round(change, 1),
                "trend": _trend(change),
            }
        )
    return rows


def spending_heatmap(expenses: Iterable[Dated], year: int) -> dict[str, object]:
    daily = sum_by_date_bucket(expenses, day_bucket)
    peak = max([*daily.values(), 1])
    data = [
        {
            "date": day.isoformat(),
            "amount_cents": amount,
            "intensity": min(100.0, amount / peak * 100),
        }
        for day, amount in sorted(daily.items())
    ]
    return {
        "year": year,
        "data": data,
        "max_spending_cents": peak,
        "total_days": len(data),
    }


def _category_of(txn) -> str:
    return txn.category


def spending_insights(
    current_month: Sequence[Dated],
    last_month: Sequence[Dated],
    today: date,
) -> list[dict[str, object]]:
    current_by_category = sum_by_key(current_month, _category_of)
    last_by_category = sum_by_key(last_month, _category_of)
    insights: list[dict[str, object]] = []

    for category, cur in current_by_category.items():
        prev = last_by_category.get(category, 0)
        if prev > 0 and cur > prev * CATEGORY_SPIKE_RATIO:
            increase = (cur - prev) / prev * 100
            insights.append(
                {
                    "type": "warning",
                    "category": category,
                    "message": (
                        f"Your spending on {category} has increased by "
                        f"{increase:.0f}% compared to last month. "
                        "Consider reviewing these expenses."
                    ),
                    "current_cents": cur,
                    "previous_cents": prev,
                    "percent_increase": increase,
                }
            )

    month_total = sum(current_by_category.values())
    top: Optional[tuple[str, int]] = None
    for category, amount in current_by_category.items():
        if top is None or amount > top[1]:
            top = (category, amount)
    if top is not None:
        share = percent_of(top[1], month_total)
        if share > TOP_CATEGORY_SHARE:
            insights.append(
                {
                    "type": "info",
                    "category": top[0],
                    "message": (
                        f"{top[0]} accounts for {share:.0f}% of your spending "
                        "this month. Consider if this aligns with your priorities."
                    ),
                    "amount_cents": top[1],
                    "percentage": share,
                }
            )

    average_daily = month_total / today.day
    daily = sum_by_date_bucket(current_month, day_bucket)
    threshold = average_daily * HIGH_DAY_MULTIPLIER
    high_days = sorted(day for day, amount in daily.items() if amount > threshold)
    if high_days:
        insights.append(
            {
                "type": "warning",
                "message": (
                    f"You have {len(high_days)} day(s) with unusually high spending. "
                    "Review these transactions."
                ),
                "days": [d.isoformat() for d in high_days],
            }
        )
    return insights
