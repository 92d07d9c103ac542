import logging
import tomllib
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from auth import resolve_user_id
from database import get_db
from models import TransactionType
from periods import MONTH_PATTERN
from schemas import (
    AllTimeSummaryOut,
    BudgetIn,
    BudgetOut,
    CategoryAmountOut,
    CategoryIn,
    CategoryOut,
    CategoryUpdateIn,
    MonthlySummaryOut,
    PreferencesIn,
    PreferencesOut,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalProgressIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdateIn,
    YearlySummaryOut,
)
from services import (
    BudgetService,
    CategoryService,
    DuplicateBudget,
    FinanceError,
    InvalidCategory,
    NotFoundOrUnauthorized,
    PreferencesService,
    ProtectedDefault,
    SavingsGoalService,
    SummaryService,
    TransactionFilters,
    TransactionService,
    Unauthenticated,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()

app = FastAPI(title="Finance Tracker", version=APP_VERSION)

ERROR_STATUS: dict[type, int] = {
    Unauthenticated: 401,
    NotFoundOrUnauthorized: 404,
    InvalidCategory: 400,
    ProtectedDefault: 409,
    DuplicateBudget: 409,
}


@app.exception_handler(FinanceError)
async def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.info(
        f"request_rejected: path={request.url.path} status={status_code} reason={exc}"
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
) -> Optional[int]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return resolve_user_id(token.strip())


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


# Categories


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return CategoryService(db, user_id).list_all(type)


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return CategoryService(db, user_id).create(data)


@app.post("/api/categories/defaults")
def initialize_default_categories(
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    created = CategoryService(db, user_id).ensure_defaults()
    return {"created": created}


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryUpdateIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return CategoryService(db, user_id).update(category_id, data)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


# Transactions


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    filters = TransactionFilters(
        type=type,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return TransactionService(db, user_id).list(filters)


@app.get("/api/transactions/recent", response_model=list[TransactionOut])
def recent_transactions(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return TransactionService(db, user_id).recent(limit)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return TransactionService(db, user_id).create(data)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdateIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return TransactionService(db, user_id).update(transaction_id, data)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return Response(status_code=204)


# Summaries


@app.get("/api/summary/monthly", response_model=MonthlySummaryOut)
def monthly_summary(
    month: str = Query(..., pattern=MONTH_PATTERN),
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SummaryService(db, user_id).monthly_summary(month)


@app.get("/api/summary/yearly", response_model=YearlySummaryOut)
def yearly_summary(
    year: int = Query(..., ge=1970, le=3000),
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SummaryService(db, user_id).yearly_summary(year)


@app.get("/api/summary/all-time", response_model=AllTimeSummaryOut)
def all_time_summary(
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SummaryService(db, user_id).all_time_summary()


@app.get("/api/summary/by-category", response_model=list[CategoryAmountOut])
def spending_by_category(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SummaryService(db, user_id).spending_by_category(start_date, end_date, type)


# Budgets


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    month: str = Query(..., pattern=MONTH_PATTERN),
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return BudgetService(db, user_id).list_for_month(month)


@app.post("/api/budgets")
def set_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    budget = BudgetService(db, user_id).set_budget(data)
    return {"id": budget.id}


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    BudgetService(db, user_id).delete(budget_id)
    return Response(status_code=204)


# Savings goals


@app.get("/api/savings-goals", response_model=list[SavingsGoalOut])
def list_savings_goals(
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SavingsGoalService(db, user_id).list_all()


@app.post("/api/savings-goals", response_model=SavingsGoalOut, status_code=201)
def create_savings_goal(
    data: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SavingsGoalService(db, user_id).create(data)


@app.put("/api/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def update_savings_goal(
    goal_id: int,
    data: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SavingsGoalService(db, user_id).update(goal_id, data)


@app.post("/api/savings-goals/{goal_id}/progress", response_model=SavingsGoalOut)
def update_savings_goal_progress(
    goal_id: int,
    data: SavingsGoalProgressIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return SavingsGoalService(db, user_id).update_progress(goal_id, data.amount)


@app.delete("/api/savings-goals/{goal_id}", status_code=204)
def delete_savings_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    SavingsGoalService(db, user_id).delete(goal_id)
    return Response(status_code=204)


# Preferences


@app.get("/api/preferences", response_model=PreferencesOut)
def get_preferences(
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return PreferencesService(db, user_id).get()


@app.patch("/api/preferences", response_model=PreferencesOut)
def update_preferences(
    data: PreferencesIn,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Depends(get_current_user_id),
):
    return PreferencesService(db, user_id).update(data)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
