"""Recurring-pattern detection over a user's transaction history.

Transactions are clustered by case-insensitive description plus exact amount.
A cluster with at least ``MIN_OCCURRENCES`` members is proposed as a recurring
entry whose frequency is inferred from the mean gap between occurrences.
Nothing here touches the database; accepting a candidate is a separate step.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Protocol

from models import Frequency, TransactionType

MIN_OCCURRENCES = 3

# Upper bounds (inclusive) on the mean interval in days, checked in order.
_FREQUENCY_BOUNDS: tuple[tuple[float, Frequency], ...] = (
    (1, Frequency.daily),
    (7, Frequency.weekly),
    (14, Frequency.biweekly),
    (31, Frequency.monthly),
    (93, Frequency.quarterly),
)


class DetectableTransaction(Protocol):
    description: str
    amount_cents: int
    category: str
    type: TransactionType
    date: date


@dataclass(frozen=True)
class RecurringCandidate:
    description: str
    amount_cents: int
    category: str
    type: TransactionType
    frequency: Frequency
    start_date: date
    next_due_date: date
    occurrences: int
    average_interval_days: float
    confidence: float

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass
class _Cluster:
    description: str
    amount_cents: int
    category: str
    type: TransactionType
    dates: list[date] = field(default_factory=list)


def pattern_key(description: str, amount_cents: int) -> str:
    return f"{description.lower()}_{amount_cents}"


def classify_interval(average_days: float) -> Frequency:
    for bound, frequency in _FREQUENCY_BOUNDS:
        if average_days <= bound:
            return frequency
    return Frequency.yearly


def detection_confidence(occurrences: int) -> float:
    return min(100.0, occurrences / 3 * 30)


def detect_recurring(
    transactions: Iterable[DetectableTransaction],
    *,
    min_occurrences: int = MIN_OCCURRENCES,
) -> list[RecurringCandidate]:
    clusters: dict[str, _Cluster] = {}
    for txn in sorted(transactions, key=lambda t: t.date):
        key = pattern_key(txn.description, txn.amount_cents)
        cluster = clusters.get(key)
        if cluster is None:
            cluster = _Cluster(
                description=txn.description,
                amount_cents=txn.amount_cents,
                category=txn.category,
                type=txn.type,
            )
            clusters[key] = cluster
        cluster.dates.append(txn.date)

    candidates: list[RecurringCandidate] = []
    for cluster in clusters.values():
        if len(cluster.dates) < min_occurrences:
            continue
        gaps = [
            (later - earlier).days
            for earlier, later in zip(cluster.dates, cluster.dates[1:])
        ]
        average = sum(gaps) / len(gaps)
        last = datetime.combine(cluster.dates[-1], time.min)
        next_due = (last + timedelta(days=average)).date()
        candidates.append(
            RecurringCandidate(
                description=cluster.description,
                amount_cents=cluster.amount_cents,
                category=cluster.category,
                type=cluster.type,
                frequency=classify_interval(average),
                start_date=cluster.dates[0],
                next_due_date=next_due,
                occurrences=len(cluster.dates),
                average_interval_days=average,
                confidence=detection_confidence(len(cluster.dates)),
            )
        )
    return candidates
