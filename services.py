from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from auth import Principal
from defaults import DEFAULT_CATEGORIES
from models import (
    Budget,
    Category,
    CategoryType,
    RecurringTransaction,
    SavingsGoal,
    Transaction,
    User,
)
from periods import (
    Period,
    month_key,
    month_period,
    period_for_date,
    previous_month_key,
    shift_month,
)
from recurrence import RecurringEngine, local_today
from schemas import (
    BudgetIn,
    BudgetUpdateIn,
    CategoryIn,
    CategoryUpdateIn,
    RecurringTransactionIn,
    SavingsGoalIn,
    SavingsGoalUpdateIn,
    TransactionIn,
    UserUpdateIn,
)

logger = logging.getLogger(__name__)


class ServiceError(ValueError):
    pass


class NotFound(ServiceError):
    pass


class Conflict(ServiceError):
    pass


class PreconditionFailed(ServiceError):
    pass


class Unauthorized(ServiceError):
    pass


def recalculate_budget_spent(
    session: Session, user_id: int, category_id: int, on_date: date
) -> None:
    """Re-derive the cached spent total of the budget for ``on_date``'s month.

    Sums every transaction of the category inside the month and writes the
    result onto the matching budget row. Months without a budget are left
    alone.
    """
    period = period_for_date(on_date)
    spent = int(
        session.execute(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                Transaction.user_id == user_id,
                Transaction.category_id == category_id,
                Transaction.date.between(period.start, period.end),
            )
        ).scalar_one()
        or 0
    )
    result = session.execute(
        update(Budget)
        .where(
            Budget.user_id == user_id,
            Budget.category_id == category_id,
            Budget.month == period.start,
        )
        .values(spent_cents=spent)
    )
    logger.debug(
        f"budget_recalculated: user={user_id} category={category_id} "
        f"month={period.start.isoformat()} spent_cents={spent} rows={result.rowcount}"
    )


def percent_used(spent_cents: int, limit_cents: int) -> float:
    if limit_cents <= 0:
        return 0.0
    return spent_cents * 100 / limit_cents


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def find(self, external_id: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.external_id == external_id))

    def provision(self, principal: Principal) -> User:
        """Return the user for ``principal``, creating it on first sight.

        A new user gets the default category set. Calling this again for the
        same principal returns the existing row untouched.
        """
        user = self.find(principal.external_id)
        if user:
            return user

        email = principal.email
        name = principal.name or (email.split("@")[0] if email else None)
        user = User(external_id=principal.external_id, email=email, name=name)
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError:
            # Another request provisioned the same principal first.
            self.session.rollback()
            existing = self.find(principal.external_id)
            if existing is None:
                raise
            return existing

        for entry in DEFAULT_CATEGORIES:
            self.session.add(Category(user_id=user.id, **entry))
        self.session.commit()
        self.session.refresh(user)
        logger.info(
            f"user_provisioned: user={user.id} categories={len(DEFAULT_CATEGORIES)}"
        )
        return user

    def update_profile(self, user_id: int, data: UserUpdateIn) -> User:
        user = self.get(user_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)
        self.session.commit()
        self.session.refresh(user)
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def list_all(
        self, category_type: Optional[CategoryType] = None
    ) -> list[tuple[Category, int]]:
        stmt = (
            select(Category, func.count(Transaction.id).label("transaction_count"))
            .outerjoin(Transaction, Transaction.category_id == Category.id)
            .where(Category.user_id == self.user_id)
            .group_by(Category.id)
            .order_by(Category.name, Category.id)
        )
        if category_type:
            stmt = stmt.where(Category.type == category_type)
        return [(row[0], int(row[1] or 0)) for row in self.session.execute(stmt)]

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            icon=data.icon,
            budget_limit_cents=data.budget_limit_cents,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] is not None:
            changes["name"] = changes["name"].strip()
        for field, value in changes.items():
            if value is None and field in ("name", "type", "color"):
                continue
            setattr(category, field, value)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> Category:
        category = self.get(category_id)
        in_use = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category.id
                )
            ).scalar_one()
            or 0
        )
        if in_use:
            raise PreconditionFailed(
                f"Cannot delete category with {in_use} existing transactions"
            )
        self.session.delete(category)
        self.session.commit()
        return category


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _recalculate(self, keys: list[tuple[int, date]]) -> None:
        for category_id, on_date in dict.fromkeys(keys):
            recalculate_budget_spent(self.session, self.user_id, category_id, on_date)

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def list(
        self,
        *,
        limit: int = 50,
        cursor: Optional[int] = None,
        category_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> tuple[list[Transaction], Optional[int]]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit + 1)
        )
        if category_id:
            stmt = stmt.where(Transaction.category_id == category_id)
        if start_date and end_date:
            stmt = stmt.where(Transaction.date.between(start_date, end_date))
        if cursor is not None:
            anchor = self.get(cursor)
            stmt = stmt.where(
                or_(
                    Transaction.date < anchor.date,
                    and_(Transaction.date == anchor.date, Transaction.id <= anchor.id),
                )
            )
        items = list(self.session.scalars(stmt).all())
        next_cursor = None
        if len(items) > limit:
            next_cursor = items.pop().id
        return items, next_cursor

    def create(self, data: TransactionIn) -> Transaction:
        category = self.session.get(Category, data.category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        txn = Transaction(
            user_id=self.user_id,
            category_id=category.id,
            amount_cents=data.amount_cents,
            description=data.description,
            date=data.date,
            is_recurring=data.is_recurring,
        )
        self.session.add(txn)
        self.session.flush()
        self._recalculate([(category.id, month_key(data.date))])
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        old_key = (txn.category_id, month_key(txn.date))
        if data.category_id != txn.category_id:
            category = self.session.get(Category, data.category_id)
            if not category or category.user_id != self.user_id:
                raise NotFound("Category not found")
            txn.category = category

        txn.category_id = data.category_id
        txn.amount_cents = data.amount_cents
        txn.description = data.description
        txn.date = data.date
        txn.is_recurring = data.is_recurring
        self.session.flush()

        # Both months need fixing when the date or category moved.
        self._recalculate([old_key, (txn.category_id, month_key(txn.date))])
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFound("Transaction not found")
        key = (txn.category_id, month_key(txn.date))
        self.session.delete(txn)
        self.session.flush()
        self._recalculate([key])
        self.session.commit()

    def bulk_delete(self, transaction_ids: list[int]) -> int:
        ids = set(transaction_ids)
        owned = self.session.scalars(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id.in_(sorted(ids))
            )
        ).all()
        if len(owned) != len(ids):
            raise Unauthorized("Some transactions not found or unauthorized")

        keys = [(txn.category_id, month_key(txn.date)) for txn in owned]
        self.session.execute(
            delete(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id.in_(sorted(ids))
            )
        )
        self._recalculate(keys)
        self.session.commit()
        logger.info(
            f"transactions_bulk_deleted: user={self.user_id} count={len(owned)} "
            f"budget_keys={len(dict.fromkeys(keys))}"
        )
        return len(owned)


@dataclass(frozen=True)
class MonthlySummary:
    income: int
    expenses: int
    net: int
    transaction_count: int


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def transactions_for_period(self, period: Period) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    @staticmethod
    def summarize(transactions: list[Transaction]) -> MonthlySummary:
        income = sum(
            t.amount_cents for t in transactions if t.category.type == CategoryType.income
        )
        expenses = sum(
            t.amount_cents
            for t in transactions
            if t.category.type == CategoryType.expense
        )
        return MonthlySummary(
            income=income,
            expenses=expenses,
            net=income - expenses,
            transaction_count=len(transactions),
        )

    @staticmethod
    def category_breakdown(transactions: list[Transaction]) -> list[dict[str, object]]:
        totals: dict[str, dict[str, object]] = {}
        for txn in transactions:
            category = txn.category
            entry = totals.setdefault(
                category.name,
                {
                    "name": category.name,
                    "total": 0,
                    "count": 0,
                    "type": category.type,
                    "color": category.color,
                    "icon": category.icon,
                },
            )
            entry["total"] += txn.amount_cents
            entry["count"] += 1
        return sorted(totals.values(), key=lambda row: row["total"], reverse=True)

    def monthly(self, year: int, month: int) -> dict[str, object]:
        """Transactions and totals for one month; ``month`` is 0-11."""
        transactions = self.transactions_for_period(month_period(year, month + 1))
        return {
            "transactions": transactions,
            "summary": self.summarize(transactions),
        }

    def stats(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        year = today.year if year is None else year
        month = today.month - 1 if month is None else month

        current_txns = self.transactions_for_period(month_period(year, month + 1))
        prev_year, prev_month = shift_month(year, month + 1, -1)
        previous_txns = self.transactions_for_period(month_period(prev_year, prev_month))

        current = self.summarize(current_txns)
        previous = self.summarize(previous_txns)
        return {
            "current_month": current,
            "previous_month": previous,
            "comparison": {
                "income_change": current.income - previous.income,
                "expenses_change": current.expenses - previous.expenses,
                "net_change": current.net - previous.net,
            },
            "category_breakdown": self.category_breakdown(current_txns),
        }


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    spent_cents: int
    remaining_cents: int
    percent_used: float


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, budget_id: int) -> Budget:
        budget = self.session.scalar(
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id, Budget.id == budget_id)
        )
        if not budget:
            raise NotFound("Budget not found")
        return budget

    def list_for_month(self, month: date) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id, Budget.month == month_key(month))
            .order_by(Budget.id)
        )
        return list(self.session.scalars(stmt).all())

    def spent_by_category_for_month(self, month: date) -> dict[int, int]:
        period = period_for_date(month)
        stmt = (
            select(
                Transaction.category_id,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("spent"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category_id)
        )
        return {
            row.category_id: int(row.spent or 0) for row in self.session.execute(stmt)
        }

    def monthly(self, month: date) -> list[BudgetProgress]:
        budgets = self.list_for_month(month)
        spent_by_category = self.spent_by_category_for_month(month)
        progress: list[BudgetProgress] = []
        for budget in budgets:
            spent = spent_by_category.get(budget.category_id, 0)
            progress.append(
                BudgetProgress(
                    budget=budget,
                    spent_cents=spent,
                    remaining_cents=budget.limit_cents - spent,
                    percent_used=percent_used(spent, budget.limit_cents),
                )
            )
        return progress

    def create(self, data: BudgetIn) -> Budget:
        category = self.session.get(Category, data.category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        month = month_key(data.month)
        existing = self.session.scalar(
            select(Budget.id).where(
                Budget.user_id == self.user_id,
                Budget.category_id == category.id,
                Budget.month == month,
            )
        )
        if existing:
            raise Conflict("Budget already exists for this category and month")

        budget = Budget(
            user_id=self.user_id,
            category_id=category.id,
            month=month,
            limit_cents=data.limit_cents,
            spent_cents=0,
        )
        self.session.add(budget)
        self.session.flush()
        recalculate_budget_spent(self.session, self.user_id, category.id, month)
        self.session.commit()
        self.session.refresh(budget)
        return self.get(budget.id)

    def update(self, budget_id: int, data: BudgetUpdateIn) -> Budget:
        budget = self.get(budget_id)
        if data.limit_cents is not None:
            budget.limit_cents = data.limit_cents
        self.session.commit()
        return self.get(budget_id)

    def delete(self, budget_id: int) -> Budget:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()
        return budget

    def copy_from_previous_month(self, target_month: date) -> int:
        target = month_key(target_month)
        source = previous_month_key(target)
        previous = self.list_for_month(source)
        if not previous:
            raise NotFound("No budgets found for the previous month")
        already = int(
            self.session.execute(
                select(func.count(Budget.id)).where(
                    Budget.user_id == self.user_id, Budget.month == target
                )
            ).scalar_one()
            or 0
        )
        if already:
            raise Conflict("Budgets already exist for this month")

        for budget in previous:
            self.session.add(
                Budget(
                    user_id=self.user_id,
                    category_id=budget.category_id,
                    month=target,
                    limit_cents=budget.limit_cents,
                    spent_cents=0,
                )
            )
        self.session.commit()
        logger.info(
            f"budgets_copied: user={self.user_id} from={source.isoformat()} "
            f"to={target.isoformat()} count={len(previous)}"
        )
        return len(previous)


class SavingsGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFound("Savings goal not found")
        return goal

    def list_all(self) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.deadline.is_(None), SavingsGoal.deadline, SavingsGoal.id)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        goal = SavingsGoal(user_id=self.user_id, **data.model_dump())
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: SavingsGoalUpdateIn) -> SavingsGoal:
        goal = self.get(goal_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field != "deadline":
                continue
            setattr(goal, field, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def contribute(self, goal_id: int, amount_cents: int) -> SavingsGoal:
        goal = self.get(goal_id)
        if goal.current_cents + amount_cents < 0:
            raise PreconditionFailed("Contribution would make the saved amount negative")
        goal.current_cents += amount_cents
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> SavingsGoal:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()
        return goal


class RecurringTransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned_category(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def get(self, template_id: int) -> RecurringTransaction:
        template = self.session.get(RecurringTransaction, template_id)
        if not template or template.user_id != self.user_id:
            raise NotFound("Recurring transaction not found")
        return template

    def list_all(self) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .where(RecurringTransaction.user_id == self.user_id)
            .order_by(RecurringTransaction.next_date, RecurringTransaction.id)
        )
        return list(self.session.scalars(stmt).all())

    def create(self, data: RecurringTransactionIn) -> RecurringTransaction:
        self._owned_category(data.category_id)
        template = RecurringTransaction(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            description=data.description,
            interval_unit=data.interval_unit,
            interval_count=data.interval_count,
            anchor_date=data.anchor_date,
            next_date=data.next_date or data.anchor_date,
            end_date=data.end_date,
            active=data.active,
        )
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)
        return template

    def update(
        self, template_id: int, data: RecurringTransactionIn
    ) -> RecurringTransaction:
        template = self.get(template_id)
        if data.category_id != template.category_id:
            self._owned_category(data.category_id)
        values = data.model_dump()
        values["next_date"] = data.next_date or template.next_date
        for field, value in values.items():
            setattr(template, field, value)
        self.session.commit()
        self.session.refresh(template)
        return template

    def delete(self, template_id: int) -> None:
        template = self.get(template_id)
        self.session.delete(template)
        self.session.commit()

    def post_due(self, today: Optional[date] = None) -> int:
        return RecurringEngine(self.session).post_due(today, user_id=self.user_id)
