from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from errors import ValidationError


@dataclass(frozen=True)
class Split:
    user_id: int
    amount_cents: int
    percentage: Optional[float] = None


def split_equally(total_cents: int, member_ids: Sequence[int]) -> list[Split]:
    """Divide ``total_cents`` across members so the parts add up to the cent.

    Leftover cents go one each to the first members, so 10000 over three
    members becomes 3334/3333/3333.
    """
    if total_cents < 0:
        raise ValidationError("Total amount must not be negative")
    if not member_ids:
        raise ValidationError("At least one member is required to split an expense")
    if len(set(member_ids)) != len(member_ids):
        raise ValidationError("Members must be unique")

    count = len(member_ids)
    base, remainder = divmod(total_cents, count)
    percentage = round(100 / count, 2)
    return [
        Split(
            user_id=member_id,
            amount_cents=base + (1 if index < remainder else 0),
            percentage=percentage,
        )
        for index, member_id in enumerate(member_ids)
    ]


def split_total(splits: Iterable[Split]) -> int:
    return sum(s.amount_cents for s in splits)


def is_balanced(total_cents: int, splits: Iterable[Split]) -> bool:
    return split_total(splits) == total_cents
