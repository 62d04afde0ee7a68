from datetime import date

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from auth import Principal
from database import Base
from models import Budget, Category
from schemas import BudgetIn, TransactionIn
from services import (
    BudgetService,
    TransactionService,
    UserService,
    recalculate_budget_spent,
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


def expense(category_id: int, amount_cents: int, on: date, text: str = "Shop"):
    return TransactionIn(
        amount_cents=amount_cents, description=text, date=on, category_id=category_id
    )


def test_recalculation_without_budget_is_a_noop() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1", "a@example.com"))
    groceries = category_named(session, user.id, "Groceries")

    TransactionService(session, user.id).create(
        expense(groceries.id, 1_500, date(2024, 3, 2))
    )
    recalculate_budget_spent(session, user.id, groceries.id, date(2024, 3, 2))

    assert session.scalars(select(Budget)).all() == []


def test_spent_matches_sum_of_category_transactions_in_month() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1", "a@example.com"))
    groceries = category_named(session, user.id, "Groceries")
    dining = category_named(session, user.id, "Restaurants")

    budget = BudgetService(session, user.id).create(
        BudgetIn(category_id=groceries.id, limit_cents=50_000, month=date(2024, 3, 1))
    )

    txns = TransactionService(session, user.id)
    txns.create(expense(groceries.id, 20_000, date(2024, 3, 20)))
    txns.create(expense(groceries.id, 5_000, date(2024, 3, 1)))
    txns.create(expense(groceries.id, 7_500, date(2024, 3, 31)))
    txns.create(expense(groceries.id, 9_999, date(2024, 4, 1)))
    txns.create(expense(groceries.id, 1_111, date(2024, 2, 29)))
    txns.create(expense(dining.id, 4_200, date(2024, 3, 10)))

    session.refresh(budget)
    assert budget.spent_cents == 32_500


def test_budget_created_after_transactions_starts_with_their_total() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1", "a@example.com"))
    groceries = category_named(session, user.id, "Groceries")

    TransactionService(session, user.id).create(
        expense(groceries.id, 3_000, date(2024, 5, 4))
    )
    budget = BudgetService(session, user.id).create(
        BudgetIn(category_id=groceries.id, limit_cents=10_000, month=date(2024, 5, 17))
    )

    assert budget.month == date(2024, 5, 1)
    assert budget.spent_cents == 3_000


def test_other_users_transactions_do_not_count() -> None:
    session = make_session()
    users = UserService(session)
    alice = users.provision(Principal("alice", "alice@example.com"))
    bob = users.provision(Principal("bob", "bob@example.com"))
    alice_groceries = category_named(session, alice.id, "Groceries")
    bob_groceries = category_named(session, bob.id, "Groceries")

    budget = BudgetService(session, alice.id).create(
        BudgetIn(category_id=alice_groceries.id, limit_cents=10_000, month=date(2024, 3, 1))
    )
    TransactionService(session, alice.id).create(
        expense(alice_groceries.id, 2_000, date(2024, 3, 5))
    )
    TransactionService(session, bob.id).create(
        expense(bob_groceries.id, 8_000, date(2024, 3, 5))
    )

    session.refresh(budget)
    assert budget.spent_cents == 2_000


def test_recalculation_overwrites_stale_cached_spent() -> None:
    session = make_session()
    user = UserService(session).provision(Principal("ext-1"))
    groceries = category_named(session, user.id, "Groceries")
    budget = BudgetService(session, user.id).create(
        BudgetIn(category_id=groceries.id, limit_cents=10_000, month=date(2024, 3, 1))
    )
    TransactionService(session, user.id).create(
        expense(groceries.id, 2_500, date(2024, 3, 5))
    )

    budget.spent_cents = 99_999
    session.commit()

    recalculate_budget_spent(session, user.id, groceries.id, date(2024, 3, 28))
    session.commit()
    session.refresh(budget)
    assert budget.spent_cents == 2_500
