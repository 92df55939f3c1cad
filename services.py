from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from aggregation import month_bucket, percent_of, sum_by_date_bucket
from analytics import (
    compare_categories,
    day_of_week_trends,
    forecast_next_month,
    spending_heatmap,
    spending_insights,
    spending_velocity,
)
from budgeting import (
    BudgetAlertNotice,
    BudgetStatus,
    budget_status,
    due_alerts,
    rollover_carry,
)
from config import get_settings
from database import store_operation
from detection import RecurringCandidate, detect_recurring
from errors import NotFound, PermissionDenied, ValidationError
from models import (
    DEFAULT_ALERT_THRESHOLDS,
    BillingCycle,
    Budget,
    BudgetPeriod,
    BudgetTemplate,
    BudgetTemplateItem,
    ExpenseSplit,
    Group,
    GroupBudget,
    GroupMember,
    GroupRole,
    Lifestyle,
    RecurringTransaction,
    SavingsGoal,
    SharedExpense,
    Subscription,
    Transaction,
    TransactionType,
    User,
)
from periods import (
    Period,
    add_months,
    budget_window,
    local_now,
    local_today,
    month_of,
    previous_month_of,
    trailing_days,
    year_period,
)
from recurrence import RecurringEngine, advance
from schemas import (
    BudgetTemplateIn,
    CategoryBudgetIn,
    GroupIn,
    GroupUpdate,
    MemberIn,
    RecurringTransactionIn,
    RecurringTransactionUpdate,
    SavingsGoalIn,
    SavingsGoalUpdate,
    SharedExpenseIn,
    SharedExpenseUpdate,
    SplitIn,
    SubscriptionIn,
    SubscriptionOut,
    SubscriptionUpdate,
    TransactionIn,
    UserIn,
)
from splitting import Split, split_equally
from store import TransactionStore

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    @store_operation
    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    @store_operation
    def by_email(self, email: str) -> User:
        user = self.session.scalar(
            select(User).where(User.email == email.strip().lower())
        )
        if not user:
            raise NotFound("User not found")
        return user

    @store_operation
    def create(self, data: UserIn) -> User:
        user = User(
            name=data.name.strip(),
            email=data.email.strip().lower(),
            monthly_budget_cents=data.monthly_budget_cents,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationError("Email is already registered") from exc
        self.session.refresh(user)
        return user


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    query: Optional[str] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @store_operation
    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(user_id=self.user_id, **data.model_dump())
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    @store_operation
    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFound("Transaction not found")
        return txn

    @store_operation
    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category:
            stmt = stmt.where(Transaction.category == filters.category)
        if filters.query:
            stmt = stmt.where(Transaction.description.ilike(f"%{filters.query}%"))
        return list(self.session.scalars(stmt).all())

    @store_operation
    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        for field, value in data.model_dump().items():
            setattr(txn, field, value)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    @store_operation
    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class BudgetService:
    """The single whole-account monthly cap stored on the user."""

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(session, user_id)

    def _user(self) -> User:
        user = self.session.get(User, self.user_id)
        if not user:
            raise NotFound("User not found")
        return user

    @store_operation
    def status(self, reference_date: Optional[date] = None) -> BudgetStatus:
        reference_date = reference_date or local_today()
        user = self._user()
        spent = self.store.expense_total(month_of(reference_date))
        return budget_status(user.monthly_budget_cents, spent)

    @store_operation
    def set_monthly_budget(
        self, amount_cents: int, reference_date: Optional[date] = None
    ) -> BudgetStatus:
        if amount_cents < 0:
            raise ValidationError("Budget amount must not be negative")
        user = self._user()
        user.monthly_budget_cents = amount_cents
        self.session.commit()
        return self.status(reference_date)


class CategoryBudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(session, user_id)

    def _find(
        self, category: str, period: BudgetPeriod, year: int, month: Optional[int]
    ) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == self.user_id,
            Budget.category == category,
            Budget.period == period,
            Budget.year == year,
            Budget.month.is_(None) if month is None else Budget.month == month,
        )
        return self.session.scalar(stmt)

    def _window(self, budget: Budget) -> Period:
        return budget_window(
            budget.year, budget.month, yearly=budget.period == BudgetPeriod.yearly
        )

    def _spent(self, budget: Budget) -> int:
        return self.store.expense_total(self._window(budget), category=budget.category)

    def _current_budgets(self, reference_date: date) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(selectinload(Budget.alert_log))
            .where(
                Budget.user_id == self.user_id,
                or_(
                    (Budget.period == BudgetPeriod.monthly)
                    & (Budget.year == reference_date.year)
                    & (Budget.month == reference_date.month),
                    (Budget.period == BudgetPeriod.yearly)
                    & (Budget.year == reference_date.year),
                ),
            )
            .order_by(Budget.period, Budget.category)
        )
        return list(self.session.scalars(stmt).all())

    def _upsert(
        self, data: CategoryBudgetIn, reference_date: date
    ) -> Budget:
        if data.amount_cents < 0:
            raise ValidationError("Budget amount must not be negative")
        year = data.year or reference_date.year
        if data.period == BudgetPeriod.monthly:
            month: Optional[int] = data.month or reference_date.month
        else:
            month = None
        category = data.category.strip()

        existing = self._find(category, data.period, year, month)
        if existing:
            existing.amount_cents = data.amount_cents
            existing.rollover = data.rollover
            existing.alert_thresholds = list(data.alert_thresholds)
            existing.rolled_over_from = None
            return existing

        budget = Budget(
            user_id=self.user_id,
            category=category,
            amount_cents=data.amount_cents,
            period=data.period,
            year=year,
            month=month,
            rollover=data.rollover,
            alert_thresholds=list(data.alert_thresholds),
        )
        self.session.add(budget)
        return budget

    @store_operation
    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFound("Budget not found")
        return budget

    @store_operation
    def list_for_period(
        self,
        period: BudgetPeriod = BudgetPeriod.monthly,
        year: Optional[int] = None,
        month: Optional[int] = None,
        *,
        reference_date: Optional[date] = None,
    ) -> list[dict[str, object]]:
        reference_date = reference_date or local_today()
        year = year or reference_date.year
        stmt = select(Budget).where(
            Budget.user_id == self.user_id,
            Budget.period == period,
            Budget.year == year,
        )
        if period == BudgetPeriod.monthly:
            stmt = stmt.where(Budget.month == (month or reference_date.month))
        stmt = stmt.order_by(Budget.category)

        rows: list[dict[str, object]] = []
        for budget in self.session.scalars(stmt).all():
            status = budget_status(budget.amount_cents, self._spent(budget))
            rows.append(
                {
                    "id": budget.id,
                    "category": budget.category,
                    "amount_cents": budget.amount_cents,
                    "period": budget.period,
                    "year": budget.year,
                    "month": budget.month,
                    "rollover": budget.rollover,
                    "alert_thresholds": list(budget.alert_thresholds),
                    "rolled_over_from": budget.rolled_over_from,
                    "spent_cents": status.spent_cents,
                    "remaining_cents": status.remaining_cents,
                    "percent": status.percent,
                }
            )
        return rows

    @store_operation
    def upsert(
        self, data: CategoryBudgetIn, *, reference_date: Optional[date] = None
    ) -> Budget:
        budget = self._upsert(data, reference_date or local_today())
        self.session.commit()
        self.session.refresh(budget)
        return budget

    @store_operation
    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    @store_operation
    def rollover(self, reference_date: Optional[date] = None) -> list[Budget]:
        """Carry last month's unspent amounts into this month's budgets.

        A destination already credited from the same source month is left
        alone, so repeated runs for one month pair credit once.
        """
        reference_date = reference_date or local_today()
        source = previous_month_of(reference_date)
        target = month_of(reference_date)
        sources = self.session.scalars(
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.period == BudgetPeriod.monthly,
                Budget.year == source.start.year,
                Budget.month == source.start.month,
                Budget.rollover.is_(True),
            )
            .order_by(Budget.category)
        ).all()

        touched: list[Budget] = []
        for src in sources:
            spent = self.store.expense_total(source, category=src.category)
            carry = rollover_carry(src.amount_cents, spent)
            if carry == 0:
                continue
            dest = self._find(
                src.category, BudgetPeriod.monthly, target.start.year, target.start.month
            )
            if dest is not None and dest.rolled_over_from == source.slug:
                logger.info(
                    f"rollover_skipped: user_id={self.user_id} "
                    f"category={src.category} source={source.slug}"
                )
                continue
            if dest is None:
                dest = Budget(
                    user_id=self.user_id,
                    category=src.category,
                    amount_cents=carry,
                    period=BudgetPeriod.monthly,
                    year=target.start.year,
                    month=target.start.month,
                    rollover=src.rollover,
                    alert_thresholds=list(src.alert_thresholds),
                )
                self.session.add(dest)
            else:
                dest.amount_cents += carry
            dest.rolled_over_from = source.slug
            touched.append(dest)
            logger.info(
                f"rollover_credited: user_id={self.user_id} category={src.category} "
                f"source={source.slug} carry_cents={carry}"
            )

        self.session.commit()
        for budget in touched:
            self.session.refresh(budget)
        return touched

    @store_operation
    def alerts(
        self,
        reference_date: Optional[date] = None,
        *,
        now: Optional[datetime] = None,
    ) -> list[BudgetAlertNotice]:
        reference_date = reference_date or local_today()
        now = now or local_now()
        cooldown = timedelta(hours=get_settings().alert_cooldown_hours)
        notices: list[BudgetAlertNotice] = []
        for budget in self._current_budgets(reference_date):
            notices.extend(
                due_alerts(budget, self._spent(budget), now=now, cooldown=cooldown)
            )
        return notices

    @store_operation
    def mark_alert_sent(
        self, budget_id: int, threshold: int, *, now: Optional[datetime] = None
    ) -> Budget:
        budget = self.get(budget_id)
        if int(threshold) not in {int(t) for t in budget.alert_thresholds}:
            raise ValidationError(f"{threshold}% is not an alert threshold of this budget")
        budget.record_sent(threshold, now or local_now())
        self.session.commit()
        logger.info(f"alert_marked: budget_id={budget.id} threshold={threshold}")
        self.session.refresh(budget)
        return budget


DEFAULT_TEMPLATES: list[dict[str, object]] = [
    {
        "name": "Student",
        "description": "Tight monthly plan for studying on a small income.",
        "lifestyle": Lifestyle.student,
        "budgets": [
            ("Rent", 45_000, 45.0),
            ("Food", 20_000, 20.0),
            ("Transport", 5_000, 5.0),
            ("Books & Supplies", 5_000, 5.0),
            ("Entertainment", 5_000, 5.0),
        ],
    },
    {
        "name": "Young Professional",
        "description": "Balanced plan with room for savings.",
        "lifestyle": Lifestyle.professional,
        "budgets": [
            ("Housing", 120_000, 30.0),
            ("Food", 50_000, 12.5),
            ("Transport", 25_000, 6.25),
            ("Entertainment", 20_000, 5.0),
            ("Savings", 80_000, 20.0),
        ],
    },
    {
        "name": "Family",
        "description": "Household plan covering children and shared costs.",
        "lifestyle": Lifestyle.family,
        "budgets": [
            ("Housing", 160_000, 32.0),
            ("Groceries", 90_000, 18.0),
            ("Childcare", 60_000, 12.0),
            ("Utilities", 30_000, 6.0),
            ("Transport", 40_000, 8.0),
        ],
    },
    {
        "name": "Retired",
        "description": "Fixed-income plan weighted towards health and leisure.",
        "lifestyle": Lifestyle.retired,
        "budgets": [
            ("Housing", 70_000, 28.0),
            ("Food", 40_000, 16.0),
            ("Healthcare", 35_000, 14.0),
            ("Travel", 25_000, 10.0),
            ("Utilities", 20_000, 8.0),
        ],
    },
]


def seed_default_templates(session: Session) -> int:
    existing = set(session.scalars(select(BudgetTemplate.name)).all())
    created = 0
    for preset in DEFAULT_TEMPLATES:
        if preset["name"] in existing:
            continue
        template = BudgetTemplate(
            name=preset["name"],
            description=preset["description"],
            lifestyle=preset["lifestyle"],
            is_default=True,
            budgets=[
                BudgetTemplateItem(category=c, amount_cents=a, percentage=p)
                for c, a, p in preset["budgets"]
            ],
        )
        session.add(template)
        created += 1
    session.commit()
    return created


class BudgetTemplateService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @store_operation
    def seed_defaults(self) -> int:
        return seed_default_templates(self.session)

    @store_operation
    def list(self) -> list[BudgetTemplate]:
        stmt = (
            select(BudgetTemplate)
            .options(selectinload(BudgetTemplate.budgets))
            .order_by(BudgetTemplate.is_default.desc(), BudgetTemplate.name)
        )
        return list(self.session.scalars(stmt).all())

    @store_operation
    def get(self, template_id: int) -> BudgetTemplate:
        template = self.session.get(BudgetTemplate, template_id)
        if not template:
            raise NotFound("Template not found")
        return template

    @store_operation
    def create(self, data: BudgetTemplateIn) -> BudgetTemplate:
        template = BudgetTemplate(
            name=data.name.strip(),
            description=data.description,
            lifestyle=data.lifestyle,
            is_default=data.is_default,
            budgets=[
                BudgetTemplateItem(
                    category=item.category.strip(),
                    amount_cents=item.amount_cents,
                    percentage=item.percentage,
                )
                for item in data.budgets
            ],
        )
        self.session.add(template)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationError("A template with this name already exists") from exc
        self.session.refresh(template)
        return template

    @store_operation
    def apply(
        self, template_id: int, *, reference_date: Optional[date] = None
    ) -> list[Budget]:
        reference_date = reference_date or local_today()
        template = self.get(template_id)
        budgets_service = CategoryBudgetService(self.session, self.user_id)
        applied: list[Budget] = []
        for item in template.budgets:
            existing = budgets_service._find(
                item.category,
                BudgetPeriod.monthly,
                reference_date.year,
                reference_date.month,
            )
            data = CategoryBudgetIn(
                category=item.category,
                amount_cents=item.amount_cents,
                period=BudgetPeriod.monthly,
                year=reference_date.year,
                month=reference_date.month,
                rollover=existing.rollover if existing else False,
                alert_thresholds=list(
                    existing.alert_thresholds if existing else DEFAULT_ALERT_THRESHOLDS
                ),
            )
            applied.append(budgets_service._upsert(data, reference_date))
        self.session.commit()
        for budget in applied:
            self.session.refresh(budget)
        logger.info(
            f"template_applied: user_id={self.user_id} template_id={template.id} "
            f"budgets={len(applied)}"
        )
        return applied


class SavingsGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def progress(goal: SavingsGoal) -> dict[str, object]:
        return {
            "id": goal.id,
            "name": goal.name,
            "target_amount_cents": goal.target_amount_cents,
            "current_amount_cents": goal.current_amount_cents,
            "target_date": goal.target_date,
            "description": goal.description,
            "progress_percent": percent_of(
                goal.current_amount_cents, goal.target_amount_cents
            ),
        }

    @store_operation
    def list(self) -> list[dict[str, object]]:
        goals = self.session.scalars(
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.target_date.is_(None), SavingsGoal.target_date)
        ).all()
        return [self.progress(g) for g in goals]

    @store_operation
    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFound("Savings goal not found")
        return goal

    @store_operation
    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        goal = SavingsGoal(user_id=self.user_id, **data.model_dump())
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    @store_operation
    def update(self, goal_id: int, data: SavingsGoalUpdate) -> SavingsGoal:
        goal = self.get(goal_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(goal, field, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    @store_operation
    def contribute(self, goal_id: int, amount_cents: int) -> SavingsGoal:
        if amount_cents <= 0:
            raise ValidationError("Contribution must be positive")
        goal = self.get(goal_id)
        goal.current_amount_cents += amount_cents
        self.session.commit()
        self.session.refresh(goal)
        return goal

    @store_operation
    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()


class RecurringService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_dates(self, entry: RecurringTransaction) -> None:
        if entry.end_date and entry.end_date < entry.start_date:
            raise ValidationError("End date must not be before start date")
        if entry.next_due_date < entry.start_date:
            raise ValidationError("Next due date must not be before start date")
        if entry.is_active and entry.end_date and entry.next_due_date > entry.end_date:
            raise ValidationError("Next due date must not be after end date")

    def _check_budget(self, budget_id: Optional[int]) -> None:
        if budget_id is None:
            return
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFound("Budget not found")

    @store_operation
    def list(self) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .where(RecurringTransaction.user_id == self.user_id)
            .order_by(RecurringTransaction.next_due_date, RecurringTransaction.id)
        )
        return list(self.session.scalars(stmt).all())

    @store_operation
    def get(self, entry_id: int) -> RecurringTransaction:
        entry = self.session.get(RecurringTransaction, entry_id)
        if not entry or entry.user_id != self.user_id:
            raise NotFound("Recurring transaction not found")
        return entry

    @store_operation
    def create(self, data: RecurringTransactionIn) -> RecurringTransaction:
        self._check_budget(data.budget_id)
        values = data.model_dump()
        values["next_due_date"] = data.next_due_date or data.start_date
        entry = RecurringTransaction(user_id=self.user_id, **values)
        self._check_dates(entry)
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    @store_operation
    def update(
        self, entry_id: int, data: RecurringTransactionUpdate
    ) -> RecurringTransaction:
        entry = self.get(entry_id)
        changes = data.model_dump(exclude_unset=True)
        if "budget_id" in changes:
            self._check_budget(changes["budget_id"])
        for field, value in changes.items():
            if value is None and field not in {"end_date", "budget_id"}:
                continue
            setattr(entry, field, value)
        self._check_dates(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    @store_operation
    def delete(self, entry_id: int) -> None:
        entry = self.get(entry_id)
        self.session.delete(entry)
        self.session.commit()

    @store_operation
    def detect(
        self, window_days: int = 90, *, today: Optional[date] = None
    ) -> list[RecurringCandidate]:
        window = trailing_days(window_days, today=today)
        store = TransactionStore(self.session, self.user_id)
        return detect_recurring(store.between(window.start, window.end))

    @store_operation
    def materialize(
        self, entry_id: int
    ) -> tuple[Transaction, RecurringTransaction]:
        entry = self.get(entry_id)
        if not entry.is_active:
            raise ValidationError("Recurring transaction is no longer active")
        if entry.end_date and entry.next_due_date > entry.end_date:
            raise ValidationError("Recurring transaction has passed its end date")
        txn = RecurringEngine(self.session).materialize(entry)
        self.session.commit()
        self.session.refresh(txn)
        self.session.refresh(entry)
        return txn, entry

    @store_operation
    def post_due(self, today: Optional[date] = None) -> dict[str, int]:
        engine = RecurringEngine(self.session)
        posted = engine.post_due_entries(today, user_id=self.user_id)
        rolled = engine.roll_subscriptions(today, user_id=self.user_id)
        self.session.commit()
        return {"transactions_posted": posted, "subscriptions_advanced": rolled}


_CYCLE_MONTHS = {
    BillingCycle.monthly: 1,
    BillingCycle.quarterly: 3,
    BillingCycle.yearly: 12,
}


class SubscriptionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _active(self) -> list[Subscription]:
        return list(
            self.session.scalars(
                select(Subscription)
                .where(
                    Subscription.user_id == self.user_id,
                    Subscription.is_active.is_(True),
                )
                .order_by(Subscription.next_billing_date, Subscription.id)
            ).all()
        )

    @store_operation
    def list(self) -> list[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == self.user_id)
            .order_by(Subscription.next_billing_date, Subscription.id)
        )
        return list(self.session.scalars(stmt).all())

    @store_operation
    def get(self, subscription_id: int) -> Subscription:
        sub = self.session.get(Subscription, subscription_id)
        if not sub or sub.user_id != self.user_id:
            raise NotFound("Subscription not found")
        return sub

    @store_operation
    def create(self, data: SubscriptionIn) -> Subscription:
        if data.next_billing_date < data.start_date:
            raise ValidationError("Next billing date must not be before start date")
        sub = Subscription(user_id=self.user_id, **data.model_dump())
        self.session.add(sub)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    @store_operation
    def update(self, subscription_id: int, data: SubscriptionUpdate) -> Subscription:
        sub = self.get(subscription_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field not in {"trial_end_date", "description"}:
                continue
            setattr(sub, field, value)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    @store_operation
    def delete(self, subscription_id: int) -> None:
        sub = self.get(subscription_id)
        self.session.delete(sub)
        self.session.commit()

    @store_operation
    def renew(self, subscription_id: int) -> Subscription:
        sub = self.get(subscription_id)
        advance(sub)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    @store_operation
    def insights(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        horizon = today + timedelta(days=get_settings().renewal_window_days)
        subs = self._active()

        by_cycle = {cycle: 0 for cycle in _CYCLE_MONTHS}
        for sub in subs:
            by_cycle[sub.billing_cycle] += sub.amount_cents
        monthly = by_cycle[BillingCycle.monthly]
        quarterly = by_cycle[BillingCycle.quarterly]
        yearly = by_cycle[BillingCycle.yearly]

        upcoming = [s for s in subs if today <= s.next_billing_date <= horizon]
        trial_ending = [
            s
            for s in subs
            if s.is_trial and s.trial_end_date and today <= s.trial_end_date <= horizon
        ]
        return {
            "total": len(subs),
            "monthly_total_cents": monthly,
            "monthly_equivalent_cents": round(monthly + quarterly / 3 + yearly / 12),
            "yearly_equivalent_cents": monthly * 12 + quarterly * 4 + yearly,
            "upcoming_renewals": len(upcoming),
            "trial_ending": len(trial_ending),
            "subscriptions": [
                {
                    **SubscriptionOut.model_validate(s).model_dump(),
                    "days_until_renewal": (s.next_billing_date - today).days,
                }
                for s in subs
            ],
        }

    @store_operation
    def reminders(self, today: Optional[date] = None) -> list[dict[str, object]]:
        today = today or local_today()
        out: list[dict[str, object]] = []
        for sub in self._active():
            days_until = (sub.next_billing_date - today).days
            if 0 < days_until <= sub.cancel_reminder_days:
                plural = "" if days_until == 1 else "s"
                out.append(
                    {
                        "subscription_id": sub.id,
                        "name": sub.name,
                        "days_until": days_until,
                        "message": f"{sub.name} will renew in {days_until} day{plural}",
                    }
                )
        return out


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(session, user_id)

    @store_operation
    def trends(
        self, days: int = 90, *, today: Optional[date] = None
    ) -> dict[str, object]:
        window = trailing_days(days, today=today)
        return day_of_week_trends(self.store.expenses_in(window))

    @store_operation
    def forecast(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        start = add_months(today.replace(day=1), -3)
        expenses = self.store.expenses_in(Period("forecast", start, today))
        by_month = sum_by_date_bucket(expenses, month_bucket)
        return forecast_next_month([by_month[k] for k in sorted(by_month)])

    @store_operation
    def velocity(self, today: Optional[date] = None) -> dict[str, int]:
        today = today or local_today()
        spent = self.store.expense_total(Period("mtd", today.replace(day=1), today))
        return spending_velocity(spent, today)

    @store_operation
    def category_comparison(
        self, period: str = "month", *, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        today = today or local_today()
        if period == "month":
            current, previous = month_of(today), previous_month_of(today)
        elif period == "year":
            current, previous = year_period(today.year), year_period(today.year - 1)
        else:
            raise ValidationError("Period must be 'month' or 'year'")
        return compare_categories(
            self.store.expense_totals_by_category(current),
            self.store.expense_totals_by_category(previous),
        )

    @store_operation
    def heatmap(self, year: Optional[int] = None) -> dict[str, object]:
        year = year or local_today().year
        return spending_heatmap(self.store.expenses_in(year_period(year)), year)

    @store_operation
    def insights(self, today: Optional[date] = None) -> list[dict[str, object]]:
        today = today or local_today()
        current = self.store.expenses_in(Period("mtd", today.replace(day=1), today))
        last = self.store.expenses_in(previous_month_of(today))
        return spending_insights(current, last, today)


_MANAGERS = {GroupRole.admin, GroupRole.editor}


class GroupService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _load(self, group_id: int) -> Group:
        group = self.session.get(Group, group_id)
        if not group or (
            group.created_by != self.user_id and group.member(self.user_id) is None
        ):
            raise NotFound("Group not found")
        return group

    def _require_role(self, group: Group, roles: set[GroupRole]) -> GroupMember:
        member = group.member(self.user_id)
        if member is None or member.role not in roles:
            raise PermissionDenied("Insufficient group permissions")
        return member

    def _member_by_id(self, group: Group, member_id: int) -> GroupMember:
        for member in group.members:
            if member.id == member_id:
                return member
        raise NotFound("Member not found")

    @store_operation
    def list(self) -> list[Group]:
        stmt = (
            select(Group)
            .options(selectinload(Group.members), selectinload(Group.budgets))
            .where(
                or_(
                    Group.created_by == self.user_id,
                    Group.members.any(GroupMember.user_id == self.user_id),
                )
            )
            .order_by(Group.id)
        )
        return list(self.session.scalars(stmt).all())

    @store_operation
    def get(self, group_id: int) -> Group:
        return self._load(group_id)

    @store_operation
    def create(self, data: GroupIn) -> Group:
        group = Group(
            name=data.name.strip(),
            description=data.description,
            created_by=self.user_id,
            members=[GroupMember(user_id=self.user_id, role=GroupRole.admin)],
            budgets=[GroupBudget(**b.model_dump()) for b in data.budgets],
        )
        self.session.add(group)
        self.session.commit()
        self.session.refresh(group)
        return group

    @store_operation
    def update(self, group_id: int, data: GroupUpdate) -> Group:
        group = self._load(group_id)
        self._require_role(group, {GroupRole.admin})
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            group.name = changes["name"].strip()
        if "description" in changes:
            group.description = changes["description"]
        if changes.get("is_active") is not None:
            group.is_active = changes["is_active"]
        if data.budgets is not None:
            group.budgets = [GroupBudget(**b.model_dump()) for b in data.budgets]
        self.session.commit()
        self.session.refresh(group)
        return group

    @store_operation
    def delete(self, group_id: int) -> None:
        group = self._load(group_id)
        self._require_role(group, {GroupRole.admin})
        self.session.delete(group)
        self.session.commit()

    @store_operation
    def add_member(self, group_id: int, data: MemberIn) -> Group:
        group = self._load(group_id)
        self._require_role(group, _MANAGERS)
        user = UserService(self.session).by_email(data.email)
        if group.member(user.id) is not None:
            raise ValidationError("User is already a member")
        group.members.append(GroupMember(user_id=user.id, role=data.role))
        self.session.commit()
        self.session.refresh(group)
        return group

    @store_operation
    def update_member(self, group_id: int, member_id: int, role: GroupRole) -> Group:
        group = self._load(group_id)
        self._require_role(group, {GroupRole.admin})
        member = self._member_by_id(group, member_id)
        if member.user_id == group.created_by and role != GroupRole.admin:
            raise ValidationError("The group creator must remain an admin")
        member.role = role
        self.session.commit()
        self.session.refresh(group)
        return group

    @store_operation
    def remove_member(self, group_id: int, member_id: int) -> Group:
        group = self._load(group_id)
        self._require_role(group, _MANAGERS)
        member = self._member_by_id(group, member_id)
        if member.user_id == group.created_by:
            raise ValidationError("The group creator cannot be removed")
        group.members.remove(member)
        self.session.commit()
        self.session.refresh(group)
        return group


class SharedExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.groups = GroupService(session, user_id)

    def _splits(
        self, group: Group, total_cents: int, splits: Optional[list[SplitIn]]
    ) -> list[ExpenseSplit]:
        if splits is None:
            planned = split_equally(total_cents, [m.user_id for m in group.members])
        else:
            member_ids = {m.user_id for m in group.members}
            seen: set[int] = set()
            planned = []
            for item in splits:
                if item.user_id not in member_ids:
                    raise ValidationError(f"User {item.user_id} is not a group member")
                if item.user_id in seen:
                    raise ValidationError(f"User {item.user_id} appears twice in splits")
                seen.add(item.user_id)
                planned.append(
                    Split(
                        user_id=item.user_id,
                        amount_cents=item.amount_cents,
                        percentage=item.percentage,
                    )
                )
        return [
            ExpenseSplit(
                user_id=s.user_id, amount_cents=s.amount_cents, percentage=s.percentage
            )
            for s in planned
        ]

    @staticmethod
    def _is_equal_split(expense: SharedExpense) -> bool:
        if not expense.splits:
            return False
        expected = split_equally(
            expense.total_amount_cents, [s.user_id for s in expense.splits]
        )
        return [s.amount_cents for s in expense.splits] == [
            s.amount_cents for s in expected
        ]

    @staticmethod
    def _warn_if_unbalanced(expense: SharedExpense) -> None:
        if not expense.is_balanced:
            logger.warning(
                f"shared_expense_unbalanced: expense_id={expense.id} "
                f"total_cents={expense.total_amount_cents}"
            )

    def _own_expense(self, group: Group, expense_id: int) -> SharedExpense:
        expense = self.session.get(SharedExpense, expense_id)
        if (
            not expense
            or expense.group_id != group.id
            or expense.created_by != self.user_id
        ):
            raise NotFound("Expense not found")
        return expense

    @store_operation
    def list(self, group_id: int) -> list[SharedExpense]:
        group = self.groups._load(group_id)
        stmt = (
            select(SharedExpense)
            .options(selectinload(SharedExpense.splits))
            .where(SharedExpense.group_id == group.id)
            .order_by(SharedExpense.date.desc(), SharedExpense.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    @store_operation
    def create(self, group_id: int, data: SharedExpenseIn) -> SharedExpense:
        group = self.groups._load(group_id)
        self.groups._require_role(group, _MANAGERS)
        expense = SharedExpense(
            group_id=group.id,
            created_by=self.user_id,
            description=data.description,
            total_amount_cents=data.total_amount_cents,
            category=data.category,
            date=data.date,
            is_settled=data.is_settled,
            splits=self._splits(group, data.total_amount_cents, data.splits),
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        self._warn_if_unbalanced(expense)
        return expense

    @store_operation
    def update(
        self, group_id: int, expense_id: int, data: SharedExpenseUpdate
    ) -> SharedExpense:
        group = self.groups._load(group_id)
        expense = self._own_expense(group, expense_id)
        changes = data.model_dump(exclude_unset=True, exclude={"splits"})
        old_total = expense.total_amount_cents
        resplit = data.splits is None and self._is_equal_split(expense)
        for field, value in changes.items():
            if value is None:
                continue
            setattr(expense, field, value)
        if data.splits is not None:
            expense.splits = self._splits(
                group, expense.total_amount_cents, data.splits
            )
        elif resplit and expense.total_amount_cents != old_total:
            # Keep an equal split equal across the same people when the total moves.
            planned = split_equally(
                expense.total_amount_cents, [s.user_id for s in expense.splits]
            )
            expense.splits = [
                ExpenseSplit(
                    user_id=s.user_id,
                    amount_cents=s.amount_cents,
                    percentage=s.percentage,
                )
                for s in planned
            ]
        self.session.commit()
        self.session.refresh(expense)
        self._warn_if_unbalanced(expense)
        return expense

    @store_operation
    def delete(self, group_id: int, expense_id: int) -> None:
        group = self.groups._load(group_id)
        expense = self._own_expense(group, expense_id)
        self.session.delete(expense)
        self.session.commit()

    @store_operation
    def settle(self, group_id: int, expense_id: int) -> SharedExpense:
        group = self.groups._load(group_id)
        expense = self.session.get(SharedExpense, expense_id)
        if not expense or expense.group_id != group.id:
            raise NotFound("Expense not found")
        if expense.created_by != self.user_id:
            self.groups._require_role(group, {GroupRole.admin})
        expense.is_settled = True
        self.session.commit()
        self.session.refresh(expense)
        return expense
