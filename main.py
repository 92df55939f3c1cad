import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import FinanceError, NotFound, PermissionDenied, StoreTimeout, ValidationError
from models import BudgetPeriod, TransactionType
from scheduler import SchedulerManager
from schemas import (
    BudgetOut,
    BudgetTemplateIn,
    BudgetTemplateOut,
    CategoryBudgetIn,
    ContributionIn,
    DetectIn,
    GroupIn,
    GroupOut,
    GroupUpdate,
    MemberIn,
    MemberRoleIn,
    MonthlyBudgetIn,
    RecurringTransactionIn,
    RecurringTransactionOut,
    RecurringTransactionUpdate,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalUpdate,
    SharedExpenseIn,
    SharedExpenseOut,
    SharedExpenseUpdate,
    SubscriptionIn,
    SubscriptionOut,
    SubscriptionUpdate,
    TransactionIn,
    TransactionOut,
    UserIn,
    UserOut,
)
from services import (
    AnalyticsService,
    BudgetService,
    BudgetTemplateService,
    CategoryBudgetService,
    GroupService,
    RecurringService,
    SavingsGoalService,
    SharedExpenseService,
    SubscriptionService,
    TransactionFilters,
    TransactionService,
    UserService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> int:
    # Identity comes from the auth layer in front of this service.
    if x_user_id is None:
        raise NotFound("User not found")
    return UserService(db).get(x_user_id).id


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def on_startup() -> None:
    scheduler_manager.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    scheduler_manager.stop()


_STATUS_CODES = (
    (ValidationError, 400),
    (PermissionDenied, 403),
    (NotFound, 404),
    (StoreTimeout, 504),
)


@app.exception_handler(FinanceError)
def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"request_failed: path={request.url.path} error={exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Users


@app.post("/api/users", response_model=UserOut, status_code=201)
def api_create_user(payload: UserIn, db: Session = Depends(get_db)):
    return UserService(db).create(payload)


@app.get("/api/users/me", response_model=UserOut)
def api_me(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return UserService(db).get(user_id)


# Transactions


@app.get("/api/transactions", response_model=list[TransactionOut])
def api_transactions(
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    filters = TransactionFilters(type=type, category=category, query=q)
    return TransactionService(db, user_id).list(filters)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def api_create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).create(payload)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).update(transaction_id, payload)


@app.delete("/api/transactions/{transaction_id}")
def api_delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return {"success": True}


# Whole-account budget


@app.get("/api/budget")
def api_budget_status(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return BudgetService(db, user_id).status().as_dict()


@app.put("/api/budget")
def api_set_budget(
    payload: MonthlyBudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = BudgetService(db, user_id)
    return service.set_monthly_budget(payload.monthly_budget_cents).as_dict()


# Category budgets


@app.get("/api/budget/categories")
def api_category_budgets(
    period: BudgetPeriod = BudgetPeriod.monthly,
    year: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryBudgetService(db, user_id).list_for_period(period, year, month)


@app.post("/api/budget/categories", response_model=BudgetOut)
def api_upsert_category_budget(
    payload: CategoryBudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryBudgetService(db, user_id).upsert(payload)


@app.delete("/api/budget/categories/{budget_id}")
def api_delete_category_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryBudgetService(db, user_id).delete(budget_id)
    return {"success": True}


@app.post("/api/budget/rollover", response_model=list[BudgetOut])
def api_rollover(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return CategoryBudgetService(db, user_id).rollover()


@app.get("/api/budget/alerts")
def api_budget_alerts(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [notice.as_dict() for notice in CategoryBudgetService(db, user_id).alerts()]


@app.post("/api/budget/alerts/{budget_id}/{threshold}/sent")
def api_mark_alert_sent(
    budget_id: int,
    threshold: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryBudgetService(db, user_id).mark_alert_sent(budget_id, threshold)
    return {"success": True}


# Budget templates


@app.get("/api/budget/templates", response_model=list[BudgetTemplateOut])
def api_templates(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return BudgetTemplateService(db, user_id).list()


@app.post("/api/budget/templates", response_model=BudgetTemplateOut, status_code=201)
def api_create_template(
    payload: BudgetTemplateIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetTemplateService(db, user_id).create(payload)


@app.post("/api/budget/templates/seed")
def api_seed_templates(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return {"created": BudgetTemplateService(db, user_id).seed_defaults()}


@app.post(
    "/api/budget/templates/{template_id}/apply", response_model=list[BudgetOut]
)
def api_apply_template(
    template_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetTemplateService(db, user_id).apply(template_id)


# Savings goals


@app.get("/api/budget/savings-goals")
def api_savings_goals(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return SavingsGoalService(db, user_id).list()


@app.post("/api/budget/savings-goals", response_model=SavingsGoalOut, status_code=201)
def api_create_savings_goal(
    payload: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).create(payload)


@app.put("/api/budget/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def api_update_savings_goal(
    goal_id: int,
    payload: SavingsGoalUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).update(goal_id, payload)


@app.post(
    "/api/budget/savings-goals/{goal_id}/contribute", response_model=SavingsGoalOut
)
def api_contribute(
    goal_id: int,
    payload: ContributionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).contribute(goal_id, payload.amount_cents)


@app.delete("/api/budget/savings-goals/{goal_id}")
def api_delete_savings_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SavingsGoalService(db, user_id).delete(goal_id)
    return {"success": True}


# Recurring transactions


@app.get("/api/recurring", response_model=list[RecurringTransactionOut])
def api_recurring(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return RecurringService(db, user_id).list()


@app.post("/api/recurring", response_model=RecurringTransactionOut, status_code=201)
def api_create_recurring(
    payload: RecurringTransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return RecurringService(db, user_id).create(payload)


@app.post("/api/recurring/detect")
def api_detect_recurring(
    payload: DetectIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    candidates = RecurringService(db, user_id).detect(payload.days)
    return [candidate.as_dict() for candidate in candidates]


@app.post("/api/recurring/post-due")
def api_post_due(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return RecurringService(db, user_id).post_due()


@app.put("/api/recurring/{entry_id}", response_model=RecurringTransactionOut)
def api_update_recurring(
    entry_id: int,
    payload: RecurringTransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return RecurringService(db, user_id).update(entry_id, payload)


@app.delete("/api/recurring/{entry_id}")
def api_delete_recurring(
    entry_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    RecurringService(db, user_id).delete(entry_id)
    return {"success": True}


@app.post("/api/recurring/{entry_id}/create-transaction")
def api_materialize(
    entry_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn, entry = RecurringService(db, user_id).materialize(entry_id)
    return {
        "transaction": TransactionOut.model_validate(txn).model_dump(mode="json"),
        "recurring": RecurringTransactionOut.model_validate(entry).model_dump(
            mode="json"
        ),
    }


# Subscriptions


@app.get("/api/subscriptions", response_model=list[SubscriptionOut])
def api_subscriptions(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return SubscriptionService(db, user_id).list()


@app.post("/api/subscriptions", response_model=SubscriptionOut, status_code=201)
def api_create_subscription(
    payload: SubscriptionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SubscriptionService(db, user_id).create(payload)


@app.get("/api/subscriptions/insights")
def api_subscription_insights(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return SubscriptionService(db, user_id).insights()


@app.get("/api/subscriptions/reminders")
def api_subscription_reminders(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return SubscriptionService(db, user_id).reminders()


@app.put("/api/subscriptions/{subscription_id}", response_model=SubscriptionOut)
def api_update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SubscriptionService(db, user_id).update(subscription_id, payload)


@app.post(
    "/api/subscriptions/{subscription_id}/renew", response_model=SubscriptionOut
)
def api_renew_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SubscriptionService(db, user_id).renew(subscription_id)


@app.delete("/api/subscriptions/{subscription_id}")
def api_delete_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SubscriptionService(db, user_id).delete(subscription_id)
    return {"success": True}


# Analytics


@app.get("/api/analytics/trends")
def api_trends(
    days: int = Query(default=90, ge=1, le=3660),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AnalyticsService(db, user_id).trends(days)


@app.get("/api/analytics/forecast")
def api_forecast(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).forecast()


@app.get("/api/analytics/velocity")
def api_velocity(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).velocity()


@app.get("/api/analytics/category-comparison")
def api_category_comparison(
    period: str = "month",
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AnalyticsService(db, user_id).category_comparison(period)


@app.get("/api/analytics/heatmap")
def api_heatmap(
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AnalyticsService(db, user_id).heatmap(year)


@app.get("/api/analytics/insights")
def api_insights(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).insights()


# Groups


@app.get("/api/groups", response_model=list[GroupOut])
def api_groups(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return GroupService(db, user_id).list()


@app.post("/api/groups", response_model=GroupOut, status_code=201)
def api_create_group(
    payload: GroupIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return GroupService(db, user_id).create(payload)


@app.get("/api/groups/{group_id}", response_model=GroupOut)
def api_group(
    group_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return GroupService(db, user_id).get(group_id)


@app.put("/api/groups/{group_id}", response_model=GroupOut)
def api_update_group(
    group_id: int,
    payload: GroupUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return GroupService(db, user_id).update(group_id, payload)


@app.delete("/api/groups/{group_id}")
def api_delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    GroupService(db, user_id).delete(group_id)
    return {"success": True}


@app.post("/api/groups/{group_id}/members", response_model=GroupOut)
def api_add_member(
    group_id: int,
    payload: MemberIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return GroupService(db, user_id).add_member(group_id, payload)


@app.put("/api/groups/{group_id}/members/{member_id}", response_model=GroupOut)
def api_update_member(
    group_id: int,
    member_id: int,
    payload: MemberRoleIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return GroupService(db, user_id).update_member(group_id, member_id, payload.role)


@app.delete("/api/groups/{group_id}/members/{member_id}", response_model=GroupOut)
def api_remove_member(
    group_id: int,
    member_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return GroupService(db, user_id).remove_member(group_id, member_id)


@app.get("/api/groups/{group_id}/expenses", response_model=list[SharedExpenseOut])
def api_group_expenses(
    group_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SharedExpenseService(db, user_id).list(group_id)


@app.post(
    "/api/groups/{group_id}/expenses",
    response_model=SharedExpenseOut,
    status_code=201,
)
def api_create_group_expense(
    group_id: int,
    payload: SharedExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SharedExpenseService(db, user_id).create(group_id, payload)


@app.put(
    "/api/groups/{group_id}/expenses/{expense_id}", response_model=SharedExpenseOut
)
def api_update_group_expense(
    group_id: int,
    expense_id: int,
    payload: SharedExpenseUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SharedExpenseService(db, user_id).update(group_id, expense_id, payload)


@app.post(
    "/api/groups/{group_id}/expenses/{expense_id}/settle",
    response_model=SharedExpenseOut,
)
def api_settle_group_expense(
    group_id: int,
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SharedExpenseService(db, user_id).settle(group_id, expense_id)


@app.delete("/api/groups/{group_id}/expenses/{expense_id}")
def api_delete_group_expense(
    group_id: int,
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SharedExpenseService(db, user_id).delete(group_id, expense_id)
    return {"success": True}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
