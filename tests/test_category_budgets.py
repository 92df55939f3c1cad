from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models import BudgetPeriod, Transaction, TransactionType
from schemas import CategoryBudgetIn
from services import BudgetTemplateService, CategoryBudgetService, seed_default_templates


def _spend(session: Session, user_id: int, amount: int, day: date, category: str) -> None:
    session.add(
        Transaction(
            user_id=user_id,
            type=TransactionType.expense,
            description=f"{category} purchase",
            amount_cents=amount,
            category=category,
            date=day,
        )
    )
    session.commit()


def test_upsert_replaces_same_period_record(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    ref = date(2025, 3, 10)
    first = service.upsert(
        CategoryBudgetIn(category="Food", amount_cents=30000), reference_date=ref
    )
    second = service.upsert(
        CategoryBudgetIn(category="Food", amount_cents=35000, rollover=True),
        reference_date=ref,
    )
    assert first.id == second.id
    assert second.amount_cents == 35000
    assert second.rollover is True
    assert (second.year, second.month) == (2025, 3)

    yearly = service.upsert(
        CategoryBudgetIn(category="Food", amount_cents=400000, period=BudgetPeriod.yearly),
        reference_date=ref,
    )
    assert yearly.id != first.id
    assert yearly.month is None


def test_upsert_rejects_negative_amount(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    with pytest.raises(ValidationError):
        service.upsert(CategoryBudgetIn(category="Food", amount_cents=-5))


def test_list_for_period_reports_spending(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    ref = date(2025, 3, 10)
    service.upsert(CategoryBudgetIn(category="Food", amount_cents=20000), reference_date=ref)
    service.upsert(CategoryBudgetIn(category="Fun", amount_cents=5000), reference_date=ref)
    _spend(session, user.id, 15000, date(2025, 3, 4), "Food")
    _spend(session, user.id, 9000, date(2025, 2, 27), "Fun")

    rows = {r["category"]: r for r in service.list_for_period(reference_date=ref)}
    assert rows["Food"]["spent_cents"] == 15000
    assert rows["Food"]["remaining_cents"] == 5000
    assert rows["Food"]["percent"] == 75
    assert rows["Fun"]["spent_cents"] == 0
    assert rows["Fun"]["remaining_cents"] == 5000


def test_delete_is_scoped_to_owner(session: Session, make_user) -> None:
    owner = make_user("Owner")
    intruder = make_user("Intruder")
    budget = CategoryBudgetService(session, owner.id).upsert(
        CategoryBudgetIn(category="Food", amount_cents=100)
    )
    with pytest.raises(NotFound):
        CategoryBudgetService(session, intruder.id).delete(budget.id)
    CategoryBudgetService(session, owner.id).delete(budget.id)
    with pytest.raises(NotFound):
        CategoryBudgetService(session, owner.id).get(budget.id)


def test_rollover_credits_once_per_month_pair(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    service.upsert(
        CategoryBudgetIn(category="Food", amount_cents=30000, rollover=True),
        reference_date=date(2025, 1, 5),
    )
    service.upsert(
        CategoryBudgetIn(category="Fun", amount_cents=5000, rollover=False),
        reference_date=date(2025, 1, 5),
    )
    service.upsert(
        CategoryBudgetIn(category="Food", amount_cents=30000, rollover=True),
        reference_date=date(2025, 2, 5),
    )
    _spend(session, user.id, 22000, date(2025, 1, 20), "Food")
    _spend(session, user.id, 1000, date(2025, 1, 20), "Fun")

    touched = service.rollover(date(2025, 2, 5))
    assert [b.category for b in touched] == ["Food"]
    assert touched[0].amount_cents == 38000
    assert touched[0].rolled_over_from == "2025-01"

    again = service.rollover(date(2025, 2, 5))
    assert again == []
    rows = service.list_for_period(reference_date=date(2025, 2, 5))
    assert rows[0]["amount_cents"] == 38000


def test_rollover_creates_missing_destination(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    service.upsert(
        CategoryBudgetIn(category="Books", amount_cents=4000, rollover=True),
        reference_date=date(2024, 12, 1),
    )
    created = service.rollover(date(2025, 1, 3))
    assert len(created) == 1
    assert (created[0].year, created[0].month) == (2025, 1)
    assert created[0].amount_cents == 4000
    assert created[0].rollover is True


def test_alerts_respect_cooldown(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    ref = date(2025, 3, 10)
    budget = service.upsert(
        CategoryBudgetIn(category="Food", amount_cents=10000, alert_thresholds=[50, 90]),
        reference_date=ref,
    )
    _spend(session, user.id, 6000, date(2025, 3, 2), "Food")

    now = datetime(2025, 3, 10, 12, 0)
    notices = service.alerts(ref, now=now)
    assert [n.threshold for n in notices] == [50]
    assert notices[0].percent == 60

    service.mark_alert_sent(budget.id, 50, now=now)
    assert service.alerts(ref, now=now + timedelta(hours=23)) == []
    assert [n.threshold for n in service.alerts(ref, now=now + timedelta(hours=25))] == [50]

    refreshed = service.get(budget.id)
    assert refreshed.alerts_sent == {50: [now]}


def test_mark_alert_sent_unknown_threshold(session: Session, user) -> None:
    service = CategoryBudgetService(session, user.id)
    budget = service.upsert(CategoryBudgetIn(category="Food", amount_cents=100))
    with pytest.raises(ValidationError):
        service.mark_alert_sent(budget.id, 42)


def test_apply_template_upserts_current_month(session: Session, user) -> None:
    assert seed_default_templates(session) == 4
    assert seed_default_templates(session) == 0

    templates = BudgetTemplateService(session, user.id)
    student = next(t for t in templates.list() if t.name == "Student")
    applied = templates.apply(student.id, reference_date=date(2025, 9, 1))
    assert {b.category for b in applied} == {i.category for i in student.budgets}
    assert all((b.year, b.month) == (2025, 9) for b in applied)

    rows = CategoryBudgetService(session, user.id).list_for_period(
        reference_date=date(2025, 9, 1)
    )
    assert len(rows) == len(student.budgets)
