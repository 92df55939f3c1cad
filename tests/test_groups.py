from datetime import date

import pytest
from sqlalchemy.orm import Session

from errors import NotFound, PermissionDenied, ValidationError
from models import GroupRole
from schemas import (
    GroupBudgetIn,
    GroupIn,
    GroupUpdate,
    MemberIn,
    SharedExpenseIn,
    SharedExpenseUpdate,
    SplitIn,
)
from services import GroupService, SharedExpenseService
from splitting import is_balanced, split_equally, split_total


def test_split_equally_distributes_remainder() -> None:
    splits = split_equally(10000, [1, 2, 3])
    assert [s.amount_cents for s in splits] == [3334, 3333, 3333]
    assert split_total(splits) == 10000
    assert all(s.percentage == pytest.approx(33.33) for s in splits)
    assert is_balanced(10000, splits)


def test_split_equally_rejects_bad_input() -> None:
    with pytest.raises(ValidationError):
        split_equally(100, [])
    with pytest.raises(ValidationError):
        split_equally(-1, [1])
    with pytest.raises(ValidationError):
        split_equally(100, [1, 1])


@pytest.fixture
def household(session: Session, make_user):
    admin = make_user("Admin")
    editor = make_user("Editor")
    viewer = make_user("Viewer")
    groups = GroupService(session, admin.id)
    group = groups.create(
        GroupIn(
            name="Flat 3B",
            budgets=[GroupBudgetIn(category="Groceries", amount_cents=60000)],
        )
    )
    groups.add_member(group.id, MemberIn(email="editor@example.com", role=GroupRole.editor))
    groups.add_member(group.id, MemberIn(email="viewer@example.com"))
    return group, admin, editor, viewer


def test_create_group_makes_creator_admin(household) -> None:
    group, admin, editor, viewer = household
    roles = {m.user_id: m.role for m in group.members}
    assert roles == {
        admin.id: GroupRole.admin,
        editor.id: GroupRole.editor,
        viewer.id: GroupRole.viewer,
    }
    assert [b.category for b in group.budgets] == ["Groceries"]


def test_viewer_cannot_add_members(session: Session, make_user, household) -> None:
    group, _, _, viewer = household
    make_user("Newcomer")
    with pytest.raises(PermissionDenied):
        GroupService(session, viewer.id).add_member(
            group.id, MemberIn(email="newcomer@example.com")
        )


def test_outsider_sees_not_found(session: Session, make_user, household) -> None:
    group = household[0]
    outsider = make_user("Outsider")
    with pytest.raises(NotFound):
        GroupService(session, outsider.id).get(group.id)
    with pytest.raises(NotFound):
        SharedExpenseService(session, outsider.id).list(group.id)
    assert GroupService(session, outsider.id).list() == []


def test_duplicate_member_rejected(session: Session, household) -> None:
    group, admin, _, _ = household
    with pytest.raises(ValidationError):
        GroupService(session, admin.id).add_member(
            group.id, MemberIn(email="viewer@example.com")
        )


def test_member_role_changes_are_admin_only(session: Session, household) -> None:
    group, admin, editor, viewer = household
    viewer_member = group.member(viewer.id)
    with pytest.raises(PermissionDenied):
        GroupService(session, editor.id).update_member(
            group.id, viewer_member.id, GroupRole.editor
        )
    updated = GroupService(session, admin.id).update_member(
        group.id, viewer_member.id, GroupRole.editor
    )
    assert updated.member(viewer.id).role == GroupRole.editor

    creator_member = updated.member(admin.id)
    with pytest.raises(ValidationError):
        GroupService(session, admin.id).remove_member(group.id, creator_member.id)


def test_update_group_replaces_budgets(session: Session, household) -> None:
    group, admin, editor, _ = household
    with pytest.raises(PermissionDenied):
        GroupService(session, editor.id).update(group.id, GroupUpdate(name="Renamed"))
    updated = GroupService(session, admin.id).update(
        group.id,
        GroupUpdate(
            name="Renamed",
            budgets=[
                GroupBudgetIn(category="Utilities", amount_cents=12000),
                GroupBudgetIn(category="Cleaning", amount_cents=3000),
            ],
        ),
    )
    assert updated.name == "Renamed"
    assert [b.category for b in updated.budgets] == ["Utilities", "Cleaning"]


def test_equal_split_expense_is_balanced(session: Session, household) -> None:
    group, admin, editor, viewer = household
    expense = SharedExpenseService(session, editor.id).create(
        group.id,
        SharedExpenseIn(
            description="Weekly shop",
            total_amount_cents=10000,
            category="Groceries",
            date=date(2025, 4, 12),
        ),
    )
    assert [s.amount_cents for s in expense.splits] == [3334, 3333, 3333]
    assert [s.user_id for s in expense.splits] == [admin.id, editor.id, viewer.id]
    assert expense.is_balanced is True


def test_explicit_unbalanced_split_is_flagged(session: Session, household) -> None:
    group, admin, editor, _ = household
    expense = SharedExpenseService(session, admin.id).create(
        group.id,
        SharedExpenseIn(
            description="Dinner",
            total_amount_cents=9000,
            category="Food",
            date=date(2025, 4, 13),
            splits=[
                SplitIn(user_id=admin.id, amount_cents=5000),
                SplitIn(user_id=editor.id, amount_cents=3000),
            ],
        ),
    )
    assert expense.is_balanced is False

    fixed = SharedExpenseService(session, admin.id).update(
        group.id,
        expense.id,
        SharedExpenseUpdate(
            splits=[
                SplitIn(user_id=admin.id, amount_cents=5000),
                SplitIn(user_id=editor.id, amount_cents=4000),
            ]
        ),
    )
    assert fixed.is_balanced is True


def test_split_users_must_be_members(session: Session, make_user, household) -> None:
    group, admin, _, _ = household
    outsider = make_user("Outsider")
    with pytest.raises(ValidationError):
        SharedExpenseService(session, admin.id).create(
            group.id,
            SharedExpenseIn(
                description="Taxi",
                total_amount_cents=2000,
                category="Transport",
                date=date(2025, 4, 14),
                splits=[SplitIn(user_id=outsider.id, amount_cents=2000)],
            ),
        )


def test_viewer_cannot_create_but_creator_settles(session: Session, household) -> None:
    group, admin, editor, viewer = household
    payload = SharedExpenseIn(
        description="Internet",
        total_amount_cents=4500,
        category="Utilities",
        date=date(2025, 4, 1),
    )
    with pytest.raises(PermissionDenied):
        SharedExpenseService(session, viewer.id).create(group.id, payload)

    expense = SharedExpenseService(session, editor.id).create(group.id, payload)
    with pytest.raises(PermissionDenied):
        SharedExpenseService(session, viewer.id).settle(group.id, expense.id)
    with pytest.raises(NotFound):
        SharedExpenseService(session, admin.id).delete(group.id, expense.id)

    settled = SharedExpenseService(session, editor.id).settle(group.id, expense.id)
    assert settled.is_settled is True
    listed = SharedExpenseService(session, viewer.id).list(group.id)
    assert [e.id for e in listed] == [expense.id]


def test_total_change_keeps_equal_split_equal(session: Session, household) -> None:
    group, admin, editor, viewer = household
    service = SharedExpenseService(session, editor.id)
    expense = service.create(
        group.id,
        SharedExpenseIn(
            description="Cleaning kit",
            total_amount_cents=9000,
            category="Household",
            date=date(2025, 4, 14),
        ),
    )

    updated = service.update(
        group.id, expense.id, SharedExpenseUpdate(total_amount_cents=10000)
    )
    assert [s.amount_cents for s in updated.splits] == [3334, 3333, 3333]
    assert [s.user_id for s in updated.splits] == [admin.id, editor.id, viewer.id]
    assert updated.is_balanced is True


def test_total_change_on_custom_split_is_logged(
    session: Session, household, caplog
) -> None:
    group, admin, editor, _ = household
    service = SharedExpenseService(session, admin.id)
    expense = service.create(
        group.id,
        SharedExpenseIn(
            description="Dinner",
            total_amount_cents=9000,
            category="Food",
            date=date(2025, 4, 13),
            splits=[
                SplitIn(user_id=admin.id, amount_cents=6000),
                SplitIn(user_id=editor.id, amount_cents=3000),
            ],
        ),
    )

    with caplog.at_level("WARNING", logger="services"):
        updated = service.update(
            group.id, expense.id, SharedExpenseUpdate(total_amount_cents=9500)
        )
    assert [s.amount_cents for s in updated.splits] == [6000, 3000]
    assert updated.is_balanced is False
    assert "shared_expense_unbalanced" in caplog.text


def test_rejected_split_update_keeps_expense(
    session: Session, make_user, household
) -> None:
    group, admin, _, _ = household
    outsider = make_user("Outsider")
    service = SharedExpenseService(session, admin.id)
    expense = service.create(
        group.id,
        SharedExpenseIn(
            description="Internet",
            total_amount_cents=4500,
            category="Utilities",
            date=date(2025, 4, 1),
        ),
    )

    with pytest.raises(ValidationError):
        service.update(
            group.id,
            expense.id,
            SharedExpenseUpdate(
                description="Internet and TV",
                splits=[SplitIn(user_id=outsider.id, amount_cents=4500)],
            ),
        )
    service.settle(group.id, expense.id)

    session.expire_all()
    [stored] = service.list(group.id)
    assert stored.description == "Internet"
    assert stored.is_settled is True
