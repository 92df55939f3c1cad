from datetime import date, timedelta

import pytest
from sqlalchemy.orm import Session

from detection import classify_interval, detect_recurring, detection_confidence
from models import Frequency, Transaction, TransactionType
from services import RecurringService


def _txn(description: str, amount: int, day: date) -> Transaction:
    return Transaction(
        user_id=1,
        type=TransactionType.expense,
        description=description,
        amount_cents=amount,
        category="Entertainment",
        date=day,
    )


def _series(description: str, amount: int, start: date, count: int, step: int):
    return [_txn(description, amount, start + timedelta(days=step * i)) for i in range(count)]


def test_monthly_pattern_detected() -> None:
    txns = _series("Netflix", 1500, date(2025, 1, 1), 4, 30)
    [candidate] = detect_recurring(txns)
    assert candidate.frequency == Frequency.monthly
    assert candidate.occurrences == 4
    assert candidate.average_interval_days == 30
    assert candidate.start_date == date(2025, 1, 1)
    assert candidate.next_due_date == date(2025, 5, 1)
    assert candidate.confidence == pytest.approx(40)


def test_confidence_caps_at_ten_occurrences() -> None:
    assert detection_confidence(3) == 30
    assert detection_confidence(10) == 100
    assert detection_confidence(25) == 100
    [candidate] = detect_recurring(_series("Gym", 2500, date(2024, 1, 1), 10, 7))
    assert candidate.frequency == Frequency.weekly
    assert candidate.confidence == 100


def test_groups_by_case_insensitive_description_and_exact_amount() -> None:
    txns = [
        _txn("Spotify", 999, date(2025, 1, 5)),
        _txn("SPOTIFY", 999, date(2025, 2, 5)),
        _txn("spotify", 999, date(2025, 3, 5)),
        _txn("Spotify", 1099, date(2025, 4, 5)),
        _txn("Coffee", 350, date(2025, 1, 1)),
        _txn("Coffee", 350, date(2025, 1, 2)),
    ]
    [candidate] = detect_recurring(txns)
    assert candidate.amount_cents == 999
    assert candidate.occurrences == 3


def test_fractional_interval_truncates_to_day() -> None:
    txns = [
        _txn("Paper", 500, date(2025, 1, 1)),
        _txn("Paper", 500, date(2025, 1, 8)),
        _txn("Paper", 500, date(2025, 1, 16)),
    ]
    [candidate] = detect_recurring(txns)
    assert candidate.average_interval_days == 7.5
    assert candidate.frequency == Frequency.biweekly
    assert candidate.next_due_date == date(2025, 1, 23)


def test_classify_interval_thresholds() -> None:
    assert classify_interval(1) == Frequency.daily
    assert classify_interval(7) == Frequency.weekly
    assert classify_interval(14) == Frequency.biweekly
    assert classify_interval(31) == Frequency.monthly
    assert classify_interval(93) == Frequency.quarterly
    assert classify_interval(94) == Frequency.yearly


def test_service_detect_uses_trailing_window(session: Session, user) -> None:
    today = date(2025, 6, 30)
    old = _series("Insurance", 4000, today - timedelta(days=400), 3, 30)
    recent = _series("Phone", 2000, today - timedelta(days=60), 3, 30)
    for txn in old + recent:
        txn.user_id = user.id
    session.add_all(old + recent)
    session.commit()

    candidates = RecurringService(session, user.id).detect(90, today=today)
    assert [c.description for c in candidates] == ["Phone"]
