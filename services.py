from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from models import (
    Budget,
    Category,
    SavingsGoal,
    Transaction,
    TransactionType,
    UserPreferences,
)
from periods import (
    Period,
    format_month,
    local_today,
    month_period,
    next_month,
    parse_month,
    year_period,
)
from schemas import (
    BudgetIn,
    CategoryIn,
    CategoryUpdateIn,
    PreferencesIn,
    SavingsGoalIn,
    TransactionIn,
    TransactionUpdateIn,
)

logger = logging.getLogger(__name__)


class FinanceError(ValueError):
    pass


class Unauthenticated(FinanceError):
    pass


class NotFoundOrUnauthorized(FinanceError):
    pass


class InvalidCategory(FinanceError):
    pass


class ProtectedDefault(FinanceError):
    pass


class DuplicateBudget(FinanceError):
    pass


def require_user_id(user_id: Optional[int]) -> int:
    if user_id is None:
        raise Unauthenticated("Not authenticated")
    return user_id


DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str, str]] = [
    ("Salary", TransactionType.income, "#10B981", "💼"),
    ("Freelance", TransactionType.income, "#3B82F6", "💻"),
    ("Investment", TransactionType.income, "#8B5CF6", "📈"),
    ("Other Income", TransactionType.income, "#06B6D4", "💰"),
    ("Food & Dining", TransactionType.expense, "#EF4444", "🍽️"),
    ("Transportation", TransactionType.expense, "#F59E0B", "🚗"),
    ("Shopping", TransactionType.expense, "#EC4899", "🛍️"),
    ("Entertainment", TransactionType.expense, "#8B5CF6", "🎬"),
    ("Bills & Utilities", TransactionType.expense, "#6B7280", "📄"),
    ("Healthcare", TransactionType.expense, "#10B981", "🏥"),
    ("Education", TransactionType.expense, "#3B82F6", "📚"),
    ("Travel", TransactionType.expense, "#06B6D4", "✈️"),
    ("Other Expenses", TransactionType.expense, "#6B7280", "📦"),
]


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: Optional[int] = None


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = require_user_id(user_id)

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name, Category.id)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundOrUnauthorized("Category not found or unauthorized")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            icon=data.icon,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        category.name = data.name.strip()
        category.color = data.color
        category.icon = data.icon
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ProtectedDefault("Cannot delete default category")

        # Transactions keep their history without a category; budgets scoped
        # to the category have nothing left to measure.
        detached = self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category_id,
            )
            .values(category_id=None)
        ).rowcount
        dropped = self.session.execute(
            delete(Budget).where(
                Budget.user_id == self.user_id, Budget.category_id == category_id
            )
        ).rowcount
        self.session.delete(category)
        self.session.commit()
        logger.info(
            f"category_deleted: user={self.user_id} category={category_id} "
            f"transactions_detached={detached} budgets_dropped={dropped}"
        )

    def ensure_defaults(self) -> int:
        """Seed the default categories once per user.

        Does nothing when the user already owns any category, so calling it
        again after the user customised their list is harmless.
        """
        existing = self.session.execute(
            select(func.count(Category.id)).where(Category.user_id == self.user_id)
        ).scalar_one()
        if existing:
            return 0
        for name, type_, color, icon in DEFAULT_CATEGORIES:
            self.session.add(
                Category(
                    user_id=self.user_id,
                    name=name,
                    type=type_,
                    color=color,
                    icon=icon,
                    is_default=True,
                )
            )
        self.session.commit()
        logger.info(
            f"default_categories_seeded: user={self.user_id} "
            f"count={len(DEFAULT_CATEGORIES)}"
        )
        return len(DEFAULT_CATEGORIES)


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = require_user_id(user_id)

    def _owned_category(
        self, category_id: int, txn_type: TransactionType
    ) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise InvalidCategory("Invalid category")
        if category.type != txn_type:
            raise InvalidCategory("Category type mismatch")
        return category

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.id == transaction_id)
        )
        txn = self.session.scalar(stmt)
        if not txn or txn.user_id != self.user_id:
            raise NotFoundOrUnauthorized("Transaction not found or unauthorized")
        return txn

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.start_date:
            stmt = stmt.where(Transaction.date >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(Transaction.date <= filters.end_date)
        if filters.limit:
            stmt = stmt.limit(filters.limit)
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 10) -> list[Transaction]:
        return self.list(TransactionFilters(limit=limit))

    def create(self, data: TransactionIn) -> Transaction:
        self._owned_category(data.category_id, data.type)
        txn = Transaction(
            user_id=self.user_id,
            amount=data.amount,
            type=data.type,
            category_id=data.category_id,
            date=data.date,
            description=data.description,
            is_recurring=data.is_recurring,
            recurring_frequency=data.recurring_frequency if data.is_recurring else None,
            recurring_end_date=data.recurring_end_date if data.is_recurring else None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    add = create

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        txn = self.get(transaction_id)
        self._owned_category(data.category_id, txn.type)
        txn.amount = data.amount
        txn.category_id = data.category_id
        txn.date = data.date
        txn.description = data.description
        if data.is_recurring is not None:
            txn.is_recurring = data.is_recurring
            txn.recurring_frequency = (
                data.recurring_frequency if data.is_recurring else None
            )
            txn.recurring_end_date = (
                data.recurring_end_date if data.is_recurring else None
            )
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class SummaryService:
    """Income/expense aggregates over a user's transactions.

    Amounts are summed as floats without any rounding, so totals may carry
    binary floating point noise; present them rounded.

    Transactions whose category has been deleted stay in every total and are
    reported under a ``category_id=None`` breakdown entry.
    """

    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = require_user_id(user_id)

    def _transactions(
        self,
        period: Optional[Period] = None,
        transaction_type: Optional[TransactionType] = None,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date, Transaction.id)
        )
        if period:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if start_date:
            stmt = stmt.where(Transaction.date >= start_date)
        if end_date:
            stmt = stmt.where(Transaction.date <= end_date)
        if transaction_type:
            stmt = stmt.where(Transaction.type == transaction_type)
        return self.session.scalars(stmt).all()

    @staticmethod
    def _totals(transactions: list[Transaction]) -> dict[str, float]:
        income = 0.0
        expenses = 0.0
        for txn in transactions:
            if txn.type == TransactionType.income:
                income += txn.amount
            else:
                expenses += txn.amount
        return {"income": income, "expenses": expenses, "balance": income - expenses}

    @staticmethod
    def _category_breakdown(
        transactions: list[Transaction],
    ) -> list[dict[str, object]]:
        grouped: dict[Optional[int], dict[str, object]] = {}
        for txn in transactions:
            entry = grouped.get(txn.category_id)
            if entry is None:
                entry = {
                    "category_id": txn.category_id,
                    "category": txn.category,
                    "amount": 0.0,
                    "count": 0,
                    "percentage": 0.0,
                }
                grouped[txn.category_id] = entry
            entry["amount"] += txn.amount
            entry["count"] += 1

        total = sum(entry["amount"] for entry in grouped.values())
        breakdown = sorted(
            grouped.values(),
            key=lambda e: (
                -e["amount"],
                -1 if e["category_id"] is None else e["category_id"],
            ),
        )
        for entry in breakdown:
            entry["percentage"] = (entry["amount"] / total * 100) if total else 0
        return breakdown

    def monthly_summary(self, month: str) -> dict[str, object]:
        transactions = self._transactions(month_period(month))
        expenses = [t for t in transactions if t.type == TransactionType.expense]
        return {
            "month": month,
            **self._totals(transactions),
            "transaction_count": len(transactions),
            "breakdown": self._category_breakdown(expenses),
        }

    def yearly_summary(self, year: int) -> dict[str, object]:
        transactions = self._transactions(year_period(year))
        by_month: dict[int, list[Transaction]] = {m: [] for m in range(1, 13)}
        for txn in transactions:
            by_month[txn.date.month].append(txn)
        return {
            "year": year,
            **self._totals(transactions),
            "transaction_count": len(transactions),
            "breakdown": [
                {"month": format_month(year, m), **self._totals(rows)}
                for m, rows in by_month.items()
            ],
        }

    def all_time_summary(self) -> dict[str, object]:
        transactions = self._transactions()
        by_year: dict[int, list[Transaction]] = {}
        for txn in transactions:
            by_year.setdefault(txn.date.year, []).append(txn)
        return {
            **self._totals(transactions),
            "transaction_count": len(transactions),
            "breakdown": [
                {"year": year, **self._totals(by_year[year])}
                for year in sorted(by_year, reverse=True)
            ],
        }

    def spending_by_category(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[dict[str, object]]:
        if transaction_type is None:
            transaction_type = TransactionType.expense
        transactions = self._transactions(
            transaction_type=transaction_type,
            start_date=start_date,
            end_date=end_date,
        )
        return self._category_breakdown(transactions)


@dataclass(frozen=True)
class BudgetProgress:
    id: int
    category_id: Optional[int]
    category: Optional[Category]
    amount: float
    month: str
    spent: float
    remaining: float
    percentage: float
    is_recurring: bool


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = require_user_id(user_id)

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise InvalidCategory("Invalid category")
        if category.type != TransactionType.expense:
            raise InvalidCategory("Budgets can only be set for expense categories")

    def _find(self, category_id: Optional[int], month: str) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == self.user_id,
            Budget.month == month,
            Budget.category_id.is_(None)
            if category_id is None
            else Budget.category_id == category_id,
        )
        return self.session.scalar(stmt)

    @staticmethod
    def horizon_months(month: str, today: date) -> Iterator[str]:
        """Months after ``month`` up to December of the horizon year."""
        horizon_year = today.year + get_settings().budget_horizon_years
        current = next_month(month)
        while parse_month(current)[0] <= horizon_year:
            yield current
            current = next_month(current)

    def _propagate(
        self, category_id: Optional[int], amount: float, month: str, today: date
    ) -> int:
        touched = 0
        for future in self.horizon_months(month, today):
            budget = self._find(category_id, future)
            if budget:
                budget.amount = amount
            else:
                self.session.add(
                    Budget(
                        user_id=self.user_id,
                        category_id=category_id,
                        amount=amount,
                        month=future,
                    )
                )
                self.session.flush()
            touched += 1
        return touched

    def _clear_future(
        self, category_id: Optional[int], month: str, today: date
    ) -> int:
        removed = 0
        for future in self.horizon_months(month, today):
            budget = self._find(category_id, future)
            if budget:
                self.session.delete(budget)
                self.session.flush()
                removed += 1
        return removed

    def set_budget(self, data: BudgetIn, today: Optional[date] = None) -> Budget:
        """Create or update the budget for a month.

        ``apply_to_future_months=True`` copies the amount into every later
        month up to the horizon. ``False`` on an existing budget removes the
        later months instead; ``None`` leaves them alone.
        """
        today = today or local_today()
        self._check_category(data.category_id)
        parse_month(data.month)

        propagated = 0
        removed = 0
        try:
            budget = self._find(data.category_id, data.month)
            if budget:
                budget.amount = data.amount
                if data.apply_to_future_months is False:
                    removed = self._clear_future(data.category_id, data.month, today)
                elif data.apply_to_future_months:
                    propagated = self._propagate(
                        data.category_id, data.amount, data.month, today
                    )
            else:
                budget = Budget(
                    user_id=self.user_id,
                    category_id=data.category_id,
                    amount=data.amount,
                    month=data.month,
                )
                self.session.add(budget)
                self.session.flush()
                if data.apply_to_future_months:
                    propagated = self._propagate(
                        data.category_id, data.amount, data.month, today
                    )

            self.session.commit()
        except IntegrityError as exc:
            # Another request created a row for the same scope and month first.
            self.session.rollback()
            raise DuplicateBudget("Budget already exists for this month") from exc
        self.session.refresh(budget)
        if propagated or removed:
            logger.info(
                f"budget_set: user={self.user_id} month={data.month} "
                f"category={data.category_id} propagated={propagated} "
                f"removed={removed}"
            )
        return budget

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFoundOrUnauthorized("Budget not found or unauthorized")
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def spent_by_category_for_month(self, month: str) -> dict[Optional[int], float]:
        period = month_period(month)
        stmt = (
            select(
                Transaction.category_id,
                func.coalesce(func.sum(Transaction.amount), 0).label("spent"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category_id)
        )
        spent_by_category: dict[Optional[int], float] = {
            row.category_id: float(row.spent or 0) for row in self.session.execute(stmt)
        }
        # The None key is the overall budget's scope: every expense counts.
        spent_by_category[None] = sum(spent_by_category.values())
        return spent_by_category

    def list_for_month(self, month: str) -> list[BudgetProgress]:
        budgets = self.session.scalars(
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id, Budget.month == month)
            .order_by(
                Budget.category_id.is_(None).desc(), Budget.category_id, Budget.id
            )
        ).all()
        spent_by_scope = self.spent_by_category_for_month(month)
        following_scopes = set(
            self.session.scalars(
                select(Budget.category_id).where(
                    Budget.user_id == self.user_id,
                    Budget.month == next_month(month),
                )
            ).all()
        )

        progress: list[BudgetProgress] = []
        for budget in budgets:
            spent = spent_by_scope.get(budget.category_id, 0.0)
            percentage = (spent / budget.amount * 100) if budget.amount > 0 else 0
            progress.append(
                BudgetProgress(
                    id=budget.id,
                    category_id=budget.category_id,
                    category=budget.category,
                    amount=budget.amount,
                    month=budget.month,
                    spent=spent,
                    remaining=budget.amount - spent,
                    percentage=percentage,
                    is_recurring=budget.category_id in following_scopes,
                )
            )
        return progress


class SavingsGoalService:
    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = require_user_id(user_id)

    def list_all(self) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at.desc(), SavingsGoal.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFoundOrUnauthorized("Savings goal not found or unauthorized")
        return goal

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        goal = SavingsGoal(
            user_id=self.user_id,
            name=data.name.strip(),
            target_amount=data.target_amount,
            current_amount=0,
            target_date=data.target_date,
            description=data.description,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: SavingsGoalIn) -> SavingsGoal:
        goal = self.get(goal_id)
        goal.name = data.name.strip()
        goal.target_amount = data.target_amount
        goal.target_date = data.target_date
        goal.description = data.description
        self.session.commit()
        return goal

    def update_progress(self, goal_id: int, amount: float) -> SavingsGoal:
        goal = self.get(goal_id)
        goal.current_amount = max(0.0, amount)
        self.session.commit()
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()


class PreferencesService:
    def __init__(self, session: Session, user_id: Optional[int]) -> None:
        self.session = session
        self.user_id = require_user_id(user_id)

    def _find(self) -> Optional[UserPreferences]:
        return self.session.scalar(
            select(UserPreferences).where(UserPreferences.user_id == self.user_id)
        )

    def _create_default(self) -> UserPreferences:
        prefs = UserPreferences(
            user_id=self.user_id,
            dark_mode=False,
            currency=get_settings().default_currency,
            default_view="dashboard",
        )
        self.session.add(prefs)
        self.session.flush()
        return prefs

    def get(self) -> UserPreferences:
        prefs = self._find()
        if prefs:
            return prefs
        prefs = self._create_default()
        self.session.commit()
        return prefs

    def update(self, data: PreferencesIn) -> UserPreferences:
        prefs = self._find() or self._create_default()
        if data.dark_mode is not None:
            prefs.dark_mode = data.dark_mode
        if data.currency is not None:
            prefs.currency = data.currency
        if data.default_view is not None:
            prefs.default_view = data.default_view
        self.session.commit()
        return prefs
