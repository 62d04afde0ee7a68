from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from auth import Principal
from database import Base
from models import Budget, Category, CategoryType, IntervalUnit, RecurringTransaction
from schemas import (
    BudgetIn,
    CategoryIn,
    CategoryUpdateIn,
    RecurringTransactionIn,
    TransactionIn,
)
from services import (
    BudgetService,
    CategoryService,
    NotFound,
    PreconditionFailed,
    RecurringTransactionService,
    TransactionService,
    UserService,
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


def test_list_includes_transaction_counts_sorted_by_name() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    txns = TransactionService(session, user.id)
    for day in (1, 2):
        txns.create(
            TransactionIn(
                amount_cents=100,
                description="Shop",
                date=date(2024, 3, day),
                category_id=groceries.id,
            )
        )

    rows = CategoryService(session, user.id).list_all()

    names = [category.name for category, _ in rows]
    assert names == sorted(names)
    counts = {category.name: count for category, count in rows}
    assert counts["Groceries"] == 2
    assert counts["Rent/Mortgage"] == 0


def test_list_filters_by_type() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))

    income = CategoryService(session, user.id).list_all(CategoryType.income)

    assert len(income) == 8
    assert {category.type for category, _ in income} == {CategoryType.income}


def test_create_and_update_category() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    categories = CategoryService(session, user.id)

    created = categories.create(
        CategoryIn(name="  Crafts ", type=CategoryType.expense, color="#123abc", icon="🎨")
    )
    assert created.name == "Crafts"
    assert created.user_id == user.id

    updated = categories.update(
        created.id, CategoryUpdateIn(color="#abcdef", budget_limit_cents=5_000)
    )
    assert updated.name == "Crafts"
    assert updated.color == "#abcdef"
    assert updated.budget_limit_cents == 5_000


def test_update_or_delete_foreign_category_not_found() -> None:
    session = make_session()
    users = UserService(session)
    alice = users.provision(Principal("alice"))
    bob = users.provision(Principal("bob"))
    bob_rent = category_named(session, bob.id, "Rent/Mortgage")
    categories = CategoryService(session, alice.id)

    with pytest.raises(NotFound):
        categories.update(bob_rent.id, CategoryUpdateIn(name="Mine now"))
    with pytest.raises(NotFound):
        categories.delete(bob_rent.id)


def test_delete_blocked_while_transactions_reference_category() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    txns = TransactionService(session, user.id)
    txn = txns.create(
        TransactionIn(
            amount_cents=100,
            description="Shop",
            date=date(2024, 3, 1),
            category_id=groceries.id,
        )
    )
    categories = CategoryService(session, user.id)

    with pytest.raises(PreconditionFailed):
        categories.delete(groceries.id)

    txns.delete(txn.id)
    deleted = categories.delete(groceries.id)
    assert deleted.name == "Groceries"
    assert category_named(session, user.id, "Groceries") is None


def test_delete_removes_budgets_and_recurring_templates() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    gym = category_named(session, user.id, "Fitness & Wellness")
    BudgetService(session, user.id).create(
        BudgetIn(category_id=gym.id, limit_cents=4_000, month=date(2024, 3, 1))
    )
    RecurringTransactionService(session, user.id).create(
        RecurringTransactionIn(
            amount_cents=3_500,
            description="Membership",
            category_id=gym.id,
            interval_unit=IntervalUnit.month,
            anchor_date=date(2030, 1, 1),
        )
    )

    CategoryService(session, user.id).delete(gym.id)

    assert session.scalar(select(func.count(Budget.id))) == 0
    assert session.scalar(select(func.count(RecurringTransaction.id))) == 0
