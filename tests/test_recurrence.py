from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models import (
    BillingCycle,
    Frequency,
    RecurringTransaction,
    Subscription,
    Transaction,
    TransactionType,
)
from recurrence import RecurringEngine, advance, calculate_next_date
from schemas import RecurringTransactionIn, RecurringTransactionUpdate
from services import RecurringService


def test_month_end_snaps_to_last_day_of_february() -> None:
    assert calculate_next_date(Frequency.monthly, date(2024, 1, 31)) == date(2024, 2, 29)
    assert calculate_next_date(Frequency.monthly, date(2025, 1, 31)) == date(2025, 2, 28)


def test_calendar_steps() -> None:
    start = date(2025, 11, 30)
    assert calculate_next_date(Frequency.daily, start) == date(2025, 12, 1)
    assert calculate_next_date(Frequency.weekly, start) == date(2025, 12, 7)
    assert calculate_next_date(Frequency.biweekly, start) == date(2025, 12, 14)
    assert calculate_next_date(Frequency.quarterly, start) == date(2026, 2, 28)
    assert calculate_next_date(Frequency.yearly, date(2024, 2, 29)) == date(2025, 2, 28)
    assert calculate_next_date(BillingCycle.quarterly, start) == date(2026, 2, 28)


def test_advance_subscription_ends_trial() -> None:
    sub = Subscription(
        name="Streaming",
        amount_cents=1299,
        billing_cycle=BillingCycle.monthly,
        start_date=date(2025, 1, 10),
        next_billing_date=date(2025, 1, 10),
        is_trial=True,
        trial_end_date=date(2025, 2, 1),
    )
    assert advance(sub) == date(2025, 2, 10)
    assert sub.is_trial is False


def _entry(service: RecurringService, **overrides) -> RecurringTransaction:
    fields = dict(
        type=TransactionType.expense,
        description="Rent",
        amount_cents=95000,
        category="Housing",
        frequency=Frequency.monthly,
        start_date=date(2025, 1, 31),
    )
    fields.update(overrides)
    return service.create(RecurringTransactionIn(**fields))


def test_materialize_creates_transaction_and_advances(session: Session, user) -> None:
    service = RecurringService(session, user.id)
    entry = _entry(service, end_date=date(2025, 2, 28))
    assert entry.next_due_date == date(2025, 1, 31)

    txn, entry = service.materialize(entry.id)
    assert txn.date == date(2025, 1, 31)
    assert txn.is_recurring is True
    assert txn.origin_recurring_id == entry.id
    assert txn.amount_cents == 95000
    assert entry.next_due_date == date(2025, 2, 28)
    assert entry.is_active is True

    _, entry = service.materialize(entry.id)
    assert entry.next_due_date == date(2025, 3, 28)
    assert entry.is_active is False

    with pytest.raises(ValidationError):
        service.materialize(entry.id)


def test_materialize_same_occurrence_twice_creates_one_transaction(
    session: Session, user
) -> None:
    service = RecurringService(session, user.id)
    entry = _entry(service)
    service.materialize(entry.id)

    # Rewind as if a concurrent request read the entry before it advanced.
    service.update(entry.id, RecurringTransactionUpdate(next_due_date=date(2025, 1, 31)))
    txn, entry = service.materialize(entry.id)

    rows = session.scalars(
        select(Transaction).where(Transaction.origin_recurring_id == entry.id)
    ).all()
    assert len(rows) == 1
    assert rows[0].id == txn.id
    assert entry.next_due_date == date(2025, 2, 28)


def test_post_due_catches_up_auto_create_entries(session: Session, user) -> None:
    service = RecurringService(session, user.id)
    auto = _entry(
        service,
        description="Gym",
        amount_cents=3000,
        frequency=Frequency.weekly,
        start_date=date(2025, 3, 1),
        auto_create=True,
    )
    _entry(service, description="Manual", start_date=date(2025, 3, 1))
    session.add(
        Subscription(
            user_id=user.id,
            name="Music",
            amount_cents=999,
            start_date=date(2025, 1, 5),
            next_billing_date=date(2025, 2, 5),
        )
    )
    session.commit()

    result = service.post_due(date(2025, 3, 20))
    assert result == {"transactions_posted": 3, "subscriptions_advanced": 1}
    assert service.get(auto.id).next_due_date == date(2025, 3, 22)
    posted = session.scalars(
        select(Transaction.date).where(Transaction.origin_recurring_id == auto.id)
    ).all()
    assert sorted(posted) == [date(2025, 3, 1), date(2025, 3, 8), date(2025, 3, 15)]

    sub = session.scalar(select(Subscription).where(Subscription.name == "Music"))
    assert sub.next_billing_date == date(2025, 4, 5)

    assert service.post_due(date(2025, 3, 20)) == {
        "transactions_posted": 0,
        "subscriptions_advanced": 0,
    }


def test_engine_posts_across_users(session: Session, make_user) -> None:
    first = make_user("First")
    second = make_user("Second")
    for owner in (first, second):
        RecurringService(session, owner.id).create(
            RecurringTransactionIn(
                type=TransactionType.income,
                description="Salary",
                amount_cents=250000,
                category="Salary",
                frequency=Frequency.monthly,
                start_date=date(2025, 5, 1),
                auto_create=True,
            )
        )
    posted = RecurringEngine(session).post_due_entries(date(2025, 5, 1))
    session.commit()
    assert posted == 2


def test_create_rejects_end_before_start(session: Session, user) -> None:
    service = RecurringService(session, user.id)
    with pytest.raises(ValidationError):
        _entry(service, end_date=date(2025, 1, 1))


def test_entries_are_user_scoped(session: Session, make_user) -> None:
    owner = make_user("Owner")
    other = make_user("Other")
    entry = _entry(RecurringService(session, owner.id))
    with pytest.raises(NotFound):
        RecurringService(session, other.id).materialize(entry.id)


def test_rejected_update_leaves_entry_untouched(session: Session, user) -> None:
    service = RecurringService(session, user.id)
    entry = _entry(service)

    with pytest.raises(ValidationError):
        service.update(entry.id, RecurringTransactionUpdate(end_date=date(2024, 1, 1)))

    # A later commit on the same session must not carry the rejected change.
    session.add(
        Transaction(
            user_id=user.id,
            type=TransactionType.expense,
            description="Coffee",
            amount_cents=350,
            category="Food",
            date=date(2025, 2, 1),
        )
    )
    session.commit()
    session.expire_all()
    assert service.get(entry.id).end_date is None


def test_due_date_past_end_date_is_rejected(session: Session, user) -> None:
    service = RecurringService(session, user.id)
    with pytest.raises(ValidationError):
        _entry(service, end_date=date(2025, 3, 1), next_due_date=date(2025, 5, 10))

    entry = _entry(service, end_date=date(2025, 3, 1))
    with pytest.raises(ValidationError):
        service.update(entry.id, RecurringTransactionUpdate(next_due_date=date(2025, 5, 10)))

    assert service.materialize(entry.id)[0].date == date(2025, 1, 31)

    stored = service.get(entry.id)
    stored.next_due_date = date(2025, 5, 10)
    session.commit()
    with pytest.raises(ValidationError):
        service.materialize(entry.id)
    assert session.scalars(
        select(Transaction).where(Transaction.date > date(2025, 3, 1))
    ).all() == []
