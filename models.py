from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

DEFAULT_ALERT_THRESHOLDS = [50, 75, 90, 100]


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class BudgetPeriod(str, Enum):
    monthly = "monthly"
    yearly = "yearly"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class BillingCycle(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class GroupRole(str, Enum):
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


class Lifestyle(str, Enum):
    student = "student"
    professional = "professional"
    family = "family"
    retired = "retired"
    custom = "custom"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    monthly_budget_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    __table_args__ = (
        CheckConstraint("monthly_budget_cents >= 0", name="ck_user_budget_positive"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    origin_recurring_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_transactions.id", ondelete="SET NULL")
    )
    occurrence_date: Mapped[Optional[date]] = mapped_column(Date)

    origin_recurring: Mapped[Optional["RecurringTransaction"]] = relationship(
        "RecurringTransaction", back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "origin_recurring_id",
            "occurrence_date",
            name="uq_txn_origin_occurrence",
        ),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(
        SAEnum(BudgetPeriod), nullable=False, default=BudgetPeriod.monthly
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[Optional[int]] = mapped_column(Integer)
    rollover: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    alert_thresholds: Mapped[list[int]] = mapped_column(
        JSON, nullable=False, default=lambda: list(DEFAULT_ALERT_THRESHOLDS)
    )
    rolled_over_from: Mapped[Optional[str]] = mapped_column(String(7))

    alert_log: Mapped[list["BudgetAlert"]] = relationship(
        "BudgetAlert",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetAlert.sent_at",
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
        UniqueConstraint(
            "user_id",
            "category",
            "period",
            "year",
            "month",
            name="uq_budget_user_category_period",
        ),
        Index("ix_budget_user_period", "user_id", "period", "year", "month"),
    )

    @property
    def period_key(self) -> str:
        if self.period == BudgetPeriod.yearly:
            return f"{self.year:04d}"
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def alerts_sent(self) -> dict[int, list[datetime]]:
        out: dict[int, list[datetime]] = {}
        for entry in self.alert_log:
            out.setdefault(entry.threshold, []).append(entry.sent_at)
        return out

    def last_sent_at(self, threshold: int) -> Optional[datetime]:
        sent = [e.sent_at for e in self.alert_log if e.threshold == int(threshold)]
        return max(sent) if sent else None

    def record_sent(self, threshold: int, when: datetime) -> "BudgetAlert":
        entry = BudgetAlert(threshold=int(threshold), sent_at=when)
        self.alert_log.append(entry)
        return entry


class BudgetAlert(Base):
    __tablename__ = "budget_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    budget: Mapped["Budget"] = relationship("Budget", back_populates="alert_log")

    __table_args__ = (Index("ix_budget_alert_budget_threshold", "budget_id", "threshold"),)


class RecurringTransaction(Base, TimestampMixin):
    __tablename__ = "recurring_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    next_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    budget_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("budgets.id", ondelete="SET NULL")
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="origin_recurring"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_recurring_amount_positive"),
        Index("ix_recurring_user_active_due", "user_id", "is_active", "next_due_date"),
    )


class Subscription(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Subscriptions"
    )
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        SAEnum(BillingCycle), nullable=False, default=BillingCycle.monthly
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_billing_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_trial: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    trial_end_date: Mapped[Optional[date]] = mapped_column(Date)
    cancel_reminder_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3
    )
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_subscription_amount_positive"),
        CheckConstraint(
            "cancel_reminder_days >= 0", name="ck_subscription_reminder_positive"
        ),
        Index(
            "ix_subscription_user_active_billing",
            "user_id",
            "is_active",
            "next_billing_date",
        ),
    )


class Group(Base, TimestampMixin):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    members: Mapped[list["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupMember.id",
    )
    budgets: Mapped[list["GroupBudget"]] = relationship(
        "GroupBudget",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupBudget.id",
    )
    expenses: Mapped[list["SharedExpense"]] = relationship(
        "SharedExpense", back_populates="group", cascade="all, delete-orphan"
    )

    def member(self, user_id: int) -> Optional["GroupMember"]:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None


class GroupMember(Base):
    __tablename__ = "group_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[GroupRole] = mapped_column(
        SAEnum(GroupRole), nullable=False, default=GroupRole.viewer
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    group: Mapped["Group"] = relationship("Group", back_populates="members")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member_user"),
    )


class GroupBudget(Base):
    __tablename__ = "group_budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(
        SAEnum(BudgetPeriod), nullable=False, default=BudgetPeriod.monthly
    )

    group: Mapped["Group"] = relationship("Group", back_populates="budgets")


class SharedExpense(Base, TimestampMixin):
    __tablename__ = "shared_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    is_settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    group: Mapped["Group"] = relationship("Group", back_populates="expenses")
    splits: Mapped[list["ExpenseSplit"]] = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.id",
    )

    __table_args__ = (
        CheckConstraint(
            "total_amount_cents >= 0", name="ck_shared_expense_amount_positive"
        ),
        Index("ix_shared_expense_group_date", "group_id", "date"),
    )

    @property
    def is_balanced(self) -> bool:
        return sum(s.amount_cents for s in self.splits) == self.total_amount_cents


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expense_id: Mapped[int] = mapped_column(
        ForeignKey("shared_expenses.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage: Mapped[Optional[float]] = mapped_column(Float)

    expense: Mapped["SharedExpense"] = relationship(
        "SharedExpense", back_populates="splits"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_split_amount_positive"),
    )


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("target_amount_cents >= 0", name="ck_goal_target_positive"),
        CheckConstraint("current_amount_cents >= 0", name="ck_goal_current_positive"),
    )


class BudgetTemplate(Base, TimestampMixin):
    __tablename__ = "budget_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    lifestyle: Mapped[Lifestyle] = mapped_column(
        SAEnum(Lifestyle), nullable=False, default=Lifestyle.custom
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    budgets: Mapped[list["BudgetTemplateItem"]] = relationship(
        "BudgetTemplateItem",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="BudgetTemplateItem.id",
    )


class BudgetTemplateItem(Base):
    __tablename__ = "budget_template_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("budget_templates.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage: Mapped[Optional[float]] = mapped_column(Float)

    template: Mapped["BudgetTemplate"] = relationship(
        "BudgetTemplate", back_populates="budgets"
    )
