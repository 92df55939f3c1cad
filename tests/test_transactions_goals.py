from datetime import date

import pytest
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models import TransactionType
from schemas import SavingsGoalIn, SavingsGoalUpdate, TransactionIn, UserIn
from services import SavingsGoalService, TransactionFilters, TransactionService, UserService


def _txn(description: str, amount: int, category: str, kind=TransactionType.expense):
    return TransactionIn(
        type=kind,
        description=description,
        amount_cents=amount,
        category=category,
        date=date(2025, 2, 14),
    )


def test_user_email_is_unique(session: Session) -> None:
    users = UserService(session)
    created = users.create(UserIn(name="Robin", email="Robin@Example.com"))
    assert created.email == "robin@example.com"
    with pytest.raises(ValidationError):
        users.create(UserIn(name="Other Robin", email="robin@example.com"))
    assert users.by_email("ROBIN@example.com").id == created.id


def test_transaction_filters(session: Session, user) -> None:
    service = TransactionService(session, user.id)
    service.create(_txn("Corner shop", 1250, "Food"))
    service.create(_txn("Bus pass", 4900, "Transport"))
    service.create(_txn("Salary", 320000, "Salary", TransactionType.income))

    assert len(service.list()) == 3
    assert [t.description for t in service.list(TransactionFilters(category="Food"))] == [
        "Corner shop"
    ]
    incomes = service.list(TransactionFilters(type=TransactionType.income))
    assert [t.category for t in incomes] == ["Salary"]
    assert [t.description for t in service.list(TransactionFilters(query="PASS"))] == [
        "Bus pass"
    ]


def test_transaction_update_and_delete_are_scoped(session: Session, make_user) -> None:
    owner = make_user("Owner")
    other = make_user("Other")
    txn = TransactionService(session, owner.id).create(_txn("Lunch", 900, "Food"))

    with pytest.raises(NotFound):
        TransactionService(session, other.id).delete(txn.id)

    updated = TransactionService(session, owner.id).update(
        txn.id, _txn("Lunch with team", 2400, "Food")
    )
    assert updated.amount_cents == 2400
    TransactionService(session, owner.id).delete(txn.id)
    assert TransactionService(session, owner.id).list() == []


def test_savings_goal_progress_and_contributions(session: Session, user) -> None:
    service = SavingsGoalService(session, user.id)
    goal = service.create(
        SavingsGoalIn(name="Bike", target_amount_cents=80000, current_amount_cents=20000)
    )
    [row] = service.list()
    assert row["progress_percent"] == 25

    service.contribute(goal.id, 20000)
    assert service.list()[0]["progress_percent"] == 50
    with pytest.raises(ValidationError):
        service.contribute(goal.id, 0)

    service.update(goal.id, SavingsGoalUpdate(target_amount_cents=0))
    assert service.list()[0]["progress_percent"] == 0

    service.delete(goal.id)
    with pytest.raises(NotFound):
        service.get(goal.id)
