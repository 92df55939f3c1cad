from datetime import date
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import Transaction, TransactionType
from periods import Period


class TransactionStore:
    """Read-only, user-scoped queries over transaction records."""

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def between(
        self,
        start: date,
        end: date,
        *,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
    ) -> Sequence[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        if type is not None:
            stmt = stmt.where(Transaction.type == type)
        if category is not None:
            stmt = stmt.where(Transaction.category == category)
        return self.session.scalars(stmt).all()

    def expenses_in(
        self, period: Period, *, category: Optional[str] = None
    ) -> Sequence[Transaction]:
        return self.between(
            period.start, period.end, type=TransactionType.expense, category=category
        )

    def expense_total(self, period: Period, *, category: Optional[str] = None) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == TransactionType.expense,
            Transaction.date.between(period.start, period.end),
        )
        if category is not None:
            stmt = stmt.where(Transaction.category == category)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def expense_totals_by_category(self, period: Period) -> dict[str, int]:
        stmt = (
            select(
                Transaction.category,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category)
        )
        return {row.category: int(row.total or 0) for row in self.session.execute(stmt)}
