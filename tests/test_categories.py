from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Budget, Category, Transaction, TransactionType
from schemas import BudgetIn, CategoryIn, CategoryUpdateIn, TransactionIn
from services import (
    DEFAULT_CATEGORIES,
    BudgetService,
    CategoryService,
    NotFoundOrUnauthorized,
    ProtectedDefault,
    TransactionService,
    Unauthenticated,
)


def test_ensure_defaults_seeds_once() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, 1)
        assert categories.ensure_defaults() == len(DEFAULT_CATEGORIES)
        assert categories.ensure_defaults() == 0

        seeded = categories.list_all()
        assert len(seeded) == len(DEFAULT_CATEGORIES)
        assert all(c.is_default for c in seeded)
        assert {c.name for c in categories.list_all(TransactionType.income)} == {
            "Salary",
            "Freelance",
            "Investment",
            "Other Income",
        }


def test_ensure_defaults_skips_user_with_custom_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, 1)
        categories.create(CategoryIn(name="Pets", type=TransactionType.expense))

        assert categories.ensure_defaults() == 0
        assert [c.name for c in categories.list_all()] == ["Pets"]

        # Another user still gets the defaults.
        assert CategoryService(session, 2).ensure_defaults() == len(DEFAULT_CATEGORIES)


def test_default_category_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, 1)
        categories.ensure_defaults()
        salary = categories.list_all(TransactionType.income)[0]

        with pytest.raises(ProtectedDefault):
            categories.delete(salary.id)
        assert session.get(Category, salary.id) is not None


def test_delete_owned_category_removes_it_from_listing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, 1)
        pets = categories.create(
            CategoryIn(name="Pets", type=TransactionType.expense, icon="🐶")
        )
        assert not pets.is_default

        categories.delete(pets.id)

        assert categories.list_all() == []


def test_delete_category_detaches_transactions_and_drops_budgets() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        pets = CategoryService(session, 1).create(
            CategoryIn(name="Pets", type=TransactionType.expense)
        )
        txn = TransactionService(session, 1).create(
            TransactionIn(
                amount=30,
                type=TransactionType.expense,
                category_id=pets.id,
                date=date(2025, 3, 2),
                description="Food",
            )
        )
        BudgetService(session, 1).set_budget(
            BudgetIn(category_id=pets.id, amount=100, month="2025-03")
        )

        CategoryService(session, 1).delete(pets.id)

        session.expire_all()
        assert session.get(Transaction, txn.id).category_id is None
        assert session.scalars(select(Budget)).all() == []


def test_update_keeps_type_and_checks_owner() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        pets = CategoryService(session, 1).create(
            CategoryIn(name="Pets", type=TransactionType.expense)
        )

        updated = CategoryService(session, 1).update(
            pets.id, CategoryUpdateIn(name=" Animals ", color="#123456", icon="🐱")
        )
        assert updated.name == "Animals"
        assert updated.color == "#123456"
        assert updated.type == TransactionType.expense

        with pytest.raises(NotFoundOrUnauthorized):
            CategoryService(session, 2).update(
                pets.id, CategoryUpdateIn(name="Mine", color="#000000", icon="")
            )
        with pytest.raises(NotFoundOrUnauthorized):
            CategoryService(session, 2).delete(pets.id)


def test_services_require_a_caller() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(Unauthenticated):
            CategoryService(session, None)
