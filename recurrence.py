import logging
from datetime import date, timedelta
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    BillingCycle,
    Frequency,
    RecurringTransaction,
    Subscription,
    Transaction,
)
from periods import add_months, local_today

logger = logging.getLogger(__name__)

_DAY_STEPS = {
    Frequency.daily: 1,
    Frequency.weekly: 7,
    Frequency.biweekly: 14,
}
_MONTH_STEPS = {
    Frequency.monthly: 1,
    Frequency.quarterly: 3,
    Frequency.yearly: 12,
}

MAX_CATCH_UP = 365


def calculate_next_date(
    frequency: Union[Frequency, BillingCycle], from_date: date
) -> date:
    step = Frequency(frequency.value)
    if step in _DAY_STEPS:
        return from_date + timedelta(days=_DAY_STEPS[step])
    return add_months(from_date, _MONTH_STEPS[step])


def advance(entry: Union[RecurringTransaction, Subscription]) -> date:
    """Move a recurring entry or subscription one step forward and return the new date."""
    if isinstance(entry, Subscription):
        entry.next_billing_date = calculate_next_date(
            entry.billing_cycle, entry.next_billing_date
        )
        if (
            entry.is_trial
            and entry.trial_end_date is not None
            and entry.trial_end_date < entry.next_billing_date
        ):
            entry.is_trial = False
        return entry.next_billing_date

    entry.next_due_date = calculate_next_date(entry.frequency, entry.next_due_date)
    if entry.end_date and entry.next_due_date > entry.end_date:
        entry.is_active = False
    return entry.next_due_date


class RecurringEngine:
    def __init__(self, session: Session) -> None:
        self.session = session

    def materialize(self, entry: RecurringTransaction) -> Transaction:
        occurrence_date = entry.next_due_date
        existing = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == entry.user_id,
                Transaction.origin_recurring_id == entry.id,
                Transaction.occurrence_date == occurrence_date,
            )
        )
        if existing is not None:
            logger.info(
                f"recurring_materialize_skipped: entry_id={entry.id} "
                f"occurrence={occurrence_date.isoformat()}"
            )
            txn = existing
        else:
            txn = Transaction(
                user_id=entry.user_id,
                type=entry.type,
                description=entry.description,
                amount_cents=entry.amount_cents,
                category=entry.category,
                date=occurrence_date,
                is_recurring=True,
                origin_recurring_id=entry.id,
                occurrence_date=occurrence_date,
            )
            self.session.add(txn)
            self.session.flush()
            logger.info(
                f"recurring_materialized: entry_id={entry.id} "
                f"occurrence={occurrence_date.isoformat()} transaction_id={txn.id}"
            )
        advance(entry)
        return txn

    def catch_up(
        self, entry: RecurringTransaction, today: Optional[date] = None
    ) -> int:
        today = today or local_today()
        posted = 0
        while (
            entry.is_active
            and entry.next_due_date <= today
            and posted < MAX_CATCH_UP
        ):
            if entry.end_date and entry.next_due_date > entry.end_date:
                entry.is_active = False
                break
            self.materialize(entry)
            posted += 1
        return posted

    def post_due_entries(
        self, today: Optional[date] = None, *, user_id: Optional[int] = None
    ) -> int:
        today = today or local_today()
        stmt = (
            select(RecurringTransaction)
            .where(
                RecurringTransaction.auto_create.is_(True),
                RecurringTransaction.is_active.is_(True),
                RecurringTransaction.next_due_date <= today,
            )
            .order_by(RecurringTransaction.next_due_date)
        )
        if user_id is not None:
            stmt = stmt.where(RecurringTransaction.user_id == user_id)
        count = 0
        for entry in self.session.scalars(stmt).all():
            count += self.catch_up(entry, today)
        return count

    def roll_subscriptions(
        self, today: Optional[date] = None, *, user_id: Optional[int] = None
    ) -> int:
        today = today or local_today()
        stmt = select(Subscription).where(
            Subscription.is_active.is_(True),
            Subscription.next_billing_date < today,
        )
        if user_id is not None:
            stmt = stmt.where(Subscription.user_id == user_id)
        rolled = 0
        for sub in self.session.scalars(stmt).all():
            steps = 0
            while sub.next_billing_date < today and steps < MAX_CATCH_UP:
                advance(sub)
                steps += 1
            rolled += 1
        return rolled
