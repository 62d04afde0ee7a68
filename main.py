import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from auth import InvalidSessionToken, Principal, is_email_allowed, read_session_token
from config import Settings, get_settings
from database import get_db, init_db
from models import CategoryType, User
from scheduler import SchedulerManager
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetUpdateIn,
    BulkDeleteIn,
    CategoryIn,
    CategoryOut,
    CategoryUpdateIn,
    ContributionIn,
    CopyBudgetsIn,
    RecurringTransactionIn,
    RecurringTransactionOut,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalUpdateIn,
    TransactionIn,
    TransactionOut,
    UserOut,
    UserUpdateIn,
)
from services import (
    BudgetProgress,
    BudgetService,
    CategoryService,
    Conflict,
    NotFound,
    PreconditionFailed,
    RecurringTransactionService,
    ReportService,
    SavingsGoalService,
    ServiceError,
    TransactionService,
    Unauthorized,
    UserService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Tracker")
scheduler_manager = SchedulerManager()

ERROR_STATUS: dict[type[ServiceError], int] = {
    NotFound: 404,
    Conflict: 409,
    PreconditionFailed: 412,
    Unauthorized: 401,
}


class AccessDenied(Exception):
    pass


@app.on_event("startup")
def startup_event():
    init_db()
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(AccessDenied)
def access_denied_handler(request: Request, exc: AccessDenied):
    return RedirectResponse(url="/unauthorized", status_code=303)


def http_error(exc: ServiceError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def session_token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get("session")


def get_principal(
    request: Request, settings: Settings = Depends(get_settings)
) -> Principal:
    token = session_token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        principal = read_session_token(
            token,
            secret=settings.session_secret,
            max_age_secs=settings.session_max_age_secs,
        )
    except InvalidSessionToken as exc:
        logger.warning(f"session_rejected: reason={exc}")
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    if not is_email_allowed(principal.email, settings.allowed_emails):
        logger.warning(f"access_denied: subject={principal.external_id}")
        raise AccessDenied(principal.external_id)
    return principal


def get_current_user(
    principal: Principal = Depends(get_principal), db: Session = Depends(get_db)
) -> User:
    return UserService(db).provision(principal)


def budget_progress_json(row: BudgetProgress) -> dict[str, object]:
    payload = BudgetOut.model_validate(row.budget).model_dump()
    payload["spent_cents"] = row.spent_cents
    payload["remaining_cents"] = row.remaining_cents
    payload["percent_used"] = row.percent_used
    return payload


@app.get("/unauthorized", response_class=HTMLResponse)
def unauthorized_page():
    return HTMLResponse(
        "<!doctype html><html><head><title>Access denied</title></head><body>"
        "<h1>Access denied</h1>"
        "<p>Your account is not authorized to use this application.</p>"
        "</body></html>",
        status_code=403,
    )


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/api/user")
def api_current_user(user: User = Depends(get_current_user)):
    return UserOut.model_validate(user)


@app.patch("/api/user")
def api_update_user(
    data: UserUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        updated = UserService(db).update_profile(user.id, data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return UserOut.model_validate(updated)


@app.get("/api/transactions/monthly")
def api_transactions_monthly(
    year: int = Query(..., ge=1970, le=3000),
    month: int = Query(..., ge=0, le=11),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = ReportService(db, user.id).monthly(year, month)
    return {
        "transactions": [TransactionOut.model_validate(t) for t in data["transactions"]],
        "summary": data["summary"],
    }


@app.get("/api/transactions/stats")
def api_transactions_stats(
    year: Optional[int] = Query(None, ge=1970, le=3000),
    month: Optional[int] = Query(None, ge=0, le=11),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ReportService(db, user.id).stats(year, month)


@app.get("/api/transactions")
def api_transactions(
    limit: int = Query(50, ge=1, le=100),
    cursor: Optional[int] = None,
    category_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        items, next_cursor = TransactionService(db, user.id).list(
            limit=limit,
            cursor=cursor,
            category_id=category_id,
            start_date=start_date,
            end_date=end_date,
        )
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {
        "transactions": [TransactionOut.model_validate(t) for t in items],
        "next_cursor": next_cursor,
    }


@app.post("/api/transactions", status_code=201)
def api_create_transaction(
    data: TransactionIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).create(data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.post("/api/transactions/bulk-delete")
def api_bulk_delete_transactions(
    data: BulkDeleteIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        count = TransactionService(db, user.id).bulk_delete(data.ids)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {"success": True, "count": count}


@app.get("/api/transactions/{transaction_id}")
def api_get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).get(transaction_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).update(transaction_id, data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}")
def api_delete_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user.id).delete(transaction_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {"success": True}


@app.get("/api/budgets")
def api_budgets(
    month: date,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [budget_progress_json(row) for row in BudgetService(db, user.id).monthly(month)]


@app.post("/api/budgets", status_code=201)
def api_create_budget(
    data: BudgetIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user.id).create(data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return BudgetOut.model_validate(budget)


@app.post("/api/budgets/copy-previous")
def api_copy_budgets(
    data: CopyBudgetsIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        count = BudgetService(db, user.id).copy_from_previous_month(data.target_month)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {"count": count}


@app.patch("/api/budgets/{budget_id}")
def api_update_budget(
    budget_id: int,
    data: BudgetUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user.id).update(budget_id, data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return BudgetOut.model_validate(budget)


@app.delete("/api/budgets/{budget_id}")
def api_delete_budget(
    budget_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user.id).delete(budget_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return BudgetOut.model_validate(budget)


@app.get("/api/categories")
def api_categories(
    type: Optional[CategoryType] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = CategoryService(db, user.id).list_all(type)
    return [
        {**CategoryOut.model_validate(category).model_dump(), "transaction_count": count}
        for category, count in rows
    ]


@app.post("/api/categories", status_code=201)
def api_create_category(
    data: CategoryIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CategoryOut.model_validate(CategoryService(db, user.id).create(data))


@app.patch("/api/categories/{category_id}")
def api_update_category(
    category_id: int,
    data: CategoryUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).update(category_id, data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}")
def api_delete_category(
    category_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user.id).delete(category_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.get("/api/savings-goals")
def api_savings_goals(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return [
        SavingsGoalOut.model_validate(g)
        for g in SavingsGoalService(db, user.id).list_all()
    ]


@app.post("/api/savings-goals", status_code=201)
def api_create_savings_goal(
    data: SavingsGoalIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return SavingsGoalOut.model_validate(SavingsGoalService(db, user.id).create(data))


@app.patch("/api/savings-goals/{goal_id}")
def api_update_savings_goal(
    goal_id: int,
    data: SavingsGoalUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingsGoalService(db, user.id).update(goal_id, data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return SavingsGoalOut.model_validate(goal)


@app.post("/api/savings-goals/{goal_id}/contribute")
def api_contribute_savings_goal(
    goal_id: int,
    data: ContributionIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingsGoalService(db, user.id).contribute(goal_id, data.amount_cents)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return SavingsGoalOut.model_validate(goal)


@app.delete("/api/savings-goals/{goal_id}")
def api_delete_savings_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        goal = SavingsGoalService(db, user.id).delete(goal_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return SavingsGoalOut.model_validate(goal)


@app.get("/api/recurring")
def api_recurring(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [
        RecurringTransactionOut.model_validate(t)
        for t in RecurringTransactionService(db, user.id).list_all()
    ]


@app.post("/api/recurring", status_code=201)
def api_create_recurring(
    data: RecurringTransactionIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        template = RecurringTransactionService(db, user.id).create(data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return RecurringTransactionOut.model_validate(template)


@app.put("/api/recurring/{template_id}")
def api_update_recurring(
    template_id: int,
    data: RecurringTransactionIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        template = RecurringTransactionService(db, user.id).update(template_id, data)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return RecurringTransactionOut.model_validate(template)


@app.delete("/api/recurring/{template_id}")
def api_delete_recurring(
    template_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        RecurringTransactionService(db, user.id).delete(template_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {"success": True}


def main():
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
