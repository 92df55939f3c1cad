"""Grouping and summation helpers shared by the budget and analytics code.

Records are anything exposing ``amount_cents``; keys and buckets are chosen by
the caller. Everything here is pure.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Hashable, Iterable, Protocol, TypeVar

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


class Amounted(Protocol):
    amount_cents: int


class Dated(Amounted, Protocol):
    date: date


R = TypeVar("R", bound=Amounted)
D = TypeVar("D", bound=Dated)
K = TypeVar("K", bound=Hashable)


def sum_by_key(records: Iterable[R], key_fn: Callable[[R], K]) -> dict[K, int]:
    totals: dict[K, int] = {}
    for record in records:
        key = key_fn(record)
        totals[key] = totals.get(key, 0) + record.amount_cents
    return totals


def sum_by_date_bucket(
    records: Iterable[D], bucket_fn: Callable[[date], K]
) -> dict[K, int]:
    return sum_by_key(records, lambda r: bucket_fn(r.date))


def day_bucket(day: date) -> date:
    return day


def month_bucket(day: date) -> tuple[int, int]:
    return (day.year, day.month)


def weekday_bucket(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def total(records: Iterable[Amounted]) -> int:
    return sum(r.amount_cents for r in records)


def percent_of(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100
