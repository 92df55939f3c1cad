import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import (
    DEFAULT_ALERT_THRESHOLDS,
    BillingCycle,
    BudgetPeriod,
    Frequency,
    GroupRole,
    Lifestyle,
    TransactionType,
)


class UserIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=255)
    monthly_budget_cents: int = Field(default=0, ge=0)


class MonthlyBudgetIn(BaseModel):
    monthly_budget_cents: int = Field(..., ge=0)


class TransactionIn(BaseModel):
    type: TransactionType
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    date: date
    is_recurring: bool = False


class CategoryBudgetIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    # Sign is checked by the service so callers get the domain error.
    amount_cents: int
    period: BudgetPeriod = BudgetPeriod.monthly
    year: Optional[int] = Field(default=None, ge=1970, le=3000)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    rollover: bool = False
    alert_thresholds: list[int] = Field(
        default_factory=lambda: list(DEFAULT_ALERT_THRESHOLDS)
    )

    @field_validator("alert_thresholds")
    @classmethod
    def _thresholds_positive(cls, value: list[int]) -> list[int]:
        if any(t <= 0 for t in value):
            raise ValueError("Alert thresholds must be positive percentages")
        return sorted(set(value))


class RecurringTransactionIn(BaseModel):
    type: TransactionType
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    next_due_date: Optional[date] = None
    is_active: bool = True
    auto_create: bool = False
    budget_id: Optional[int] = None


class RecurringTransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    frequency: Optional[Frequency] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    next_due_date: Optional[date] = None
    is_active: Optional[bool] = None
    auto_create: Optional[bool] = None
    budget_id: Optional[int] = None


class DetectIn(BaseModel):
    days: int = Field(default=90, ge=1, le=3660)


class SubscriptionIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    category: str = Field(default="Subscriptions", min_length=1, max_length=100)
    billing_cycle: BillingCycle = BillingCycle.monthly
    start_date: date
    next_billing_date: date
    is_active: bool = True
    is_trial: bool = False
    trial_end_date: Optional[date] = None
    cancel_reminder_days: int = Field(default=3, ge=0)
    description: Optional[str] = None


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    billing_cycle: Optional[BillingCycle] = None
    start_date: Optional[date] = None
    next_billing_date: Optional[date] = None
    is_active: Optional[bool] = None
    is_trial: Optional[bool] = None
    trial_end_date: Optional[date] = None
    cancel_reminder_days: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class GroupBudgetIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., ge=0)
    period: BudgetPeriod = BudgetPeriod.monthly


class GroupIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    budgets: list[GroupBudgetIn] = Field(default_factory=list)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    budgets: Optional[list[GroupBudgetIn]] = None
    is_active: Optional[bool] = None


class MemberIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: GroupRole = GroupRole.viewer


class MemberRoleIn(BaseModel):
    role: GroupRole


class SplitIn(BaseModel):
    user_id: int
    amount_cents: int = Field(..., ge=0)
    percentage: Optional[float] = Field(default=None, ge=0, le=100)


class SharedExpenseIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    total_amount_cents: int = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    date: date
    # None means "split equally across current members".
    splits: Optional[list[SplitIn]] = None
    is_settled: bool = False


class SharedExpenseUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    total_amount_cents: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[dt.date] = None
    splits: Optional[list[SplitIn]] = None
    is_settled: Optional[bool] = None


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., ge=0)
    current_amount_cents: int = Field(default=0, ge=0)
    target_date: Optional[date] = None
    description: Optional[str] = None


class SavingsGoalUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount_cents: Optional[int] = Field(default=None, ge=0)
    current_amount_cents: Optional[int] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    description: Optional[str] = None


class ContributionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)


class BudgetTemplateItemIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., ge=0)
    percentage: Optional[float] = Field(default=None, ge=0, le=100)


class BudgetTemplateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    lifestyle: Lifestyle = Lifestyle.custom
    budgets: list[BudgetTemplateItemIn] = Field(..., min_length=1)
    is_default: bool = False


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    monthly_budget_cents: int


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    description: str
    amount_cents: int
    category: str
    date: date
    is_recurring: bool
    origin_recurring_id: Optional[int] = None


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    amount_cents: int
    period: BudgetPeriod
    year: int
    month: Optional[int]
    rollover: bool
    alert_thresholds: list[int]
    alerts_sent: dict[int, list[datetime]]
    rolled_over_from: Optional[str] = None


class RecurringTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    description: str
    amount_cents: int
    category: str
    frequency: Frequency
    start_date: date
    end_date: Optional[date]
    next_due_date: date
    is_active: bool
    auto_create: bool
    budget_id: Optional[int]


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_cents: int
    category: str
    billing_cycle: BillingCycle
    start_date: date
    next_billing_date: date
    is_active: bool
    is_trial: bool
    trial_end_date: Optional[date]
    cancel_reminder_days: int
    description: Optional[str]


class GroupMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    role: GroupRole
    joined_at: datetime


class GroupBudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    amount_cents: int
    period: BudgetPeriod


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    created_by: int
    is_active: bool
    members: list[GroupMemberOut]
    budgets: list[GroupBudgetOut]


class ExpenseSplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    amount_cents: int
    percentage: Optional[float]


class SharedExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    group_id: int
    created_by: int
    description: str
    total_amount_cents: int
    category: str
    date: date
    is_settled: bool
    is_balanced: bool
    splits: list[ExpenseSplitOut]


class SavingsGoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    target_amount_cents: int
    current_amount_cents: int
    target_date: Optional[date]
    description: Optional[str]


class BudgetTemplateItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    amount_cents: int
    percentage: Optional[float]


class BudgetTemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    lifestyle: Lifestyle
    is_default: bool
    budgets: list[BudgetTemplateItemOut]
