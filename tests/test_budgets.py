from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from auth import Principal
from database import Base
from models import Budget, Category
from schemas import BudgetIn, BudgetUpdateIn, TransactionIn
from services import (
    BudgetService,
    Conflict,
    NotFound,
    TransactionService,
    UserService,
    percent_used,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def category_named(session, user_id: int, name: str) -> Category:
    return session.scalar(
        select(Category).where(Category.user_id == user_id, Category.name == name)
    )


def test_monthly_reports_remaining_and_percent_used() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    budgets = BudgetService(session, user.id)
    budgets.create(
        BudgetIn(category_id=groceries.id, limit_cents=50_000, month=date(2024, 3, 1))
    )
    TransactionService(session, user.id).create(
        TransactionIn(
            amount_cents=20_000,
            description="Groceries",
            date=date(2024, 3, 20),
            category_id=groceries.id,
        )
    )

    rows = budgets.monthly(date(2024, 3, 1))

    assert len(rows) == 1
    row = rows[0]
    assert row.budget.category.name == "Groceries"
    assert row.spent_cents == 20_000
    assert row.remaining_cents == 30_000
    assert row.percent_used == 40.0


def test_monthly_spent_is_fresh_not_cached() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    budgets = BudgetService(session, user.id)
    budget = budgets.create(
        BudgetIn(category_id=groceries.id, limit_cents=10_000, month=date(2024, 3, 1))
    )
    TransactionService(session, user.id).create(
        TransactionIn(
            amount_cents=2_000,
            description="Groceries",
            date=date(2024, 3, 2),
            category_id=groceries.id,
        )
    )
    budget.spent_cents = 0
    session.commit()

    [row] = budgets.monthly(date(2024, 3, 15))

    assert row.spent_cents == 2_000
    assert row.remaining_cents == 8_000


def test_percent_used_guards_non_positive_limit() -> None:
    assert percent_used(500, 0) == 0.0
    assert percent_used(500, -10) == 0.0
    assert percent_used(750, 500) == 150.0


def test_create_duplicate_budget_conflicts() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    budgets = BudgetService(session, user.id)
    budgets.create(
        BudgetIn(category_id=groceries.id, limit_cents=10_000, month=date(2024, 3, 1))
    )

    with pytest.raises(Conflict):
        budgets.create(
            BudgetIn(category_id=groceries.id, limit_cents=20_000, month=date(2024, 3, 9))
        )


def test_create_for_foreign_category_not_found() -> None:
    session = make_session()
    users = UserService(session)
    alice = users.provision(Principal("alice"))
    bob = users.provision(Principal("bob"))
    bob_groceries = category_named(session, bob.id, "Groceries")

    with pytest.raises(NotFound):
        BudgetService(session, alice.id).create(
            BudgetIn(category_id=bob_groceries.id, limit_cents=1_000, month=date(2024, 3, 1))
        )


def test_update_and_delete_budget() -> None:
    session = make_session()
    users = UserService(session)
    alice = users.provision(Principal("alice"))
    bob = users.provision(Principal("bob"))
    groceries = category_named(session, alice.id, "Groceries")
    budgets = BudgetService(session, alice.id)
    budget = budgets.create(
        BudgetIn(category_id=groceries.id, limit_cents=10_000, month=date(2024, 3, 1))
    )

    updated = budgets.update(budget.id, BudgetUpdateIn(limit_cents=12_500))
    assert updated.limit_cents == 12_500
    unchanged = budgets.update(budget.id, BudgetUpdateIn())
    assert unchanged.limit_cents == 12_500

    with pytest.raises(NotFound):
        BudgetService(session, bob.id).update(budget.id, BudgetUpdateIn(limit_cents=1))
    with pytest.raises(NotFound):
        BudgetService(session, bob.id).delete(budget.id)

    deleted = budgets.delete(budget.id)
    assert deleted.category.name == "Groceries"
    assert session.scalars(select(Budget)).all() == []


def test_copy_from_previous_month_resets_spent() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    fuel = category_named(session, user.id, "Gas/Fuel")
    budgets = BudgetService(session, user.id)
    budgets.create(
        BudgetIn(category_id=groceries.id, limit_cents=40_000, month=date(2023, 12, 1))
    )
    budgets.create(
        BudgetIn(category_id=fuel.id, limit_cents=15_000, month=date(2023, 12, 1))
    )
    TransactionService(session, user.id).create(
        TransactionIn(
            amount_cents=9_000,
            description="Fuel",
            date=date(2023, 12, 4),
            category_id=fuel.id,
        )
    )

    count = budgets.copy_from_previous_month(date(2024, 1, 1))

    assert count == 2
    copied = budgets.list_for_month(date(2024, 1, 1))
    assert sorted((b.category_id, b.limit_cents, b.spent_cents) for b in copied) == sorted(
        [(groceries.id, 40_000, 0), (fuel.id, 15_000, 0)]
    )

    with pytest.raises(Conflict):
        budgets.copy_from_previous_month(date(2024, 1, 1))


def test_copy_without_previous_budgets_not_found() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))

    with pytest.raises(NotFound):
        BudgetService(session, user.id).copy_from_previous_month(date(2024, 5, 1))
