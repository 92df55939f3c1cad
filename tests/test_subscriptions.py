from datetime import date

import pytest
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models import BillingCycle
from schemas import SubscriptionIn, SubscriptionUpdate
from services import SubscriptionService

TODAY = date(2025, 6, 10)


def _sub(
    service: SubscriptionService,
    name: str,
    amount: int,
    cycle: BillingCycle,
    next_billing: date,
    **extra,
):
    return service.create(
        SubscriptionIn(
            name=name,
            amount_cents=amount,
            billing_cycle=cycle,
            start_date=date(2025, 1, 1),
            next_billing_date=next_billing,
            **extra,
        )
    )


def test_insights_totals_and_windows(session: Session, user) -> None:
    service = SubscriptionService(session, user.id)
    _sub(service, "Video", 1200, BillingCycle.monthly, date(2025, 6, 12))
    _sub(service, "Cloud", 3000, BillingCycle.quarterly, date(2025, 8, 1))
    _sub(
        service,
        "News",
        12000,
        BillingCycle.yearly,
        date(2025, 6, 17),
        is_trial=True,
        trial_end_date=date(2025, 6, 15),
    )
    _sub(service, "Old", 500, BillingCycle.monthly, date(2025, 6, 11), is_active=False)

    insights = service.insights(TODAY)
    assert insights["total"] == 3
    assert insights["monthly_total_cents"] == 1200
    assert insights["monthly_equivalent_cents"] == 1200 + 1000 + 1000
    assert insights["yearly_equivalent_cents"] == 1200 * 12 + 3000 * 4 + 12000
    assert insights["upcoming_renewals"] == 2
    assert insights["trial_ending"] == 1
    days = {s["name"]: s["days_until_renewal"] for s in insights["subscriptions"]}
    assert days == {"Video": 2, "News": 7, "Cloud": 52}


def test_reminders_within_cancel_window(session: Session, user) -> None:
    service = SubscriptionService(session, user.id)
    _sub(service, "Video", 1200, BillingCycle.monthly, date(2025, 6, 11))
    _sub(service, "Music", 999, BillingCycle.monthly, date(2025, 6, 13))
    _sub(service, "Gym", 4000, BillingCycle.monthly, date(2025, 6, 14))
    _sub(service, "Today", 100, BillingCycle.monthly, TODAY)

    reminders = service.reminders(TODAY)
    assert [(r["name"], r["days_until"]) for r in reminders] == [("Video", 1), ("Music", 3)]
    assert reminders[0]["message"] == "Video will renew in 1 day"
    assert reminders[1]["message"] == "Music will renew in 3 days"


def test_renew_advances_one_cycle(session: Session, user) -> None:
    service = SubscriptionService(session, user.id)
    sub = _sub(service, "Cloud", 3000, BillingCycle.quarterly, date(2025, 11, 30))
    renewed = service.renew(sub.id)
    assert renewed.next_billing_date == date(2026, 2, 28)


def test_update_and_delete_scoped(session: Session, make_user) -> None:
    owner = make_user("Owner")
    other = make_user("Other")
    owned = SubscriptionService(session, owner.id)
    sub = _sub(owned, "Video", 1200, BillingCycle.monthly, TODAY)

    with pytest.raises(NotFound):
        SubscriptionService(session, other.id).update(
            sub.id, SubscriptionUpdate(amount_cents=1)
        )

    updated = SubscriptionService(session, owner.id).update(
        sub.id, SubscriptionUpdate(amount_cents=1500, is_active=False)
    )
    assert updated.amount_cents == 1500
    assert updated.is_active is False

    SubscriptionService(session, owner.id).delete(sub.id)
    assert SubscriptionService(session, owner.id).list() == []


def test_create_rejects_billing_before_start(session: Session, user) -> None:
    with pytest.raises(ValidationError):
        _sub(
            SubscriptionService(session, user.id),
            "Bad",
            100,
            BillingCycle.monthly,
            date(2024, 12, 1),
        )
