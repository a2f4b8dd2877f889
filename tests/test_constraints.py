from datetime import date

import pytest
from pydantic import ValidationError

from database import create_db_engine, create_session_factory, init_db
from errors import (
    ConstraintViolation,
    DuplicateKey,
    InvalidArgument,
    InvalidOperation,
)
from models import CategoryType, TransactionType
from schemas import (
    CategoryIn,
    CategoryUpdate,
    SavingsBucketIn,
    TransactionIn,
    TransactionUpdate,
    WalletIn,
    WalletUpdate,
)
from seed import DEFAULT_CATEGORIES, seed_default_categories
from services import (
    CategoryService,
    SavingsBucketService,
    TransactionService,
    WalletService,
)


def make_session():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    return create_session_factory(engine)()


def test_wallet_with_rows_cannot_be_deleted_until_rows_are_gone() -> None:
    session = make_session()
    wallets = WalletService(session)
    txns = TransactionService(session)
    wallet = wallets.create(WalletIn(name="  Checking  "))
    assert wallet.name == "Checking"
    income = txns.create(
        TransactionIn(
            type=TransactionType.income,
            amount=1_000,
            date=date(2024, 1, 1),
            wallet_id=wallet.id,
        )
    )

    with pytest.raises(ConstraintViolation, match="existing transactions"):
        wallets.delete(wallet.id)
    assert wallets.exists(wallet.id)

    assert txns.delete(income.id) is True
    assert wallets.delete(wallet.id) is True
    assert wallets.get(wallet.id) is None
    assert wallets.delete(wallet.id) is False


def test_category_with_rows_cannot_be_deleted() -> None:
    session = make_session()
    wallet = WalletService(session).create(WalletIn(name="Main"))
    categories = CategoryService(session)
    food = categories.create(CategoryIn(name="Food", type=CategoryType.expense))
    txns = TransactionService(session)
    lunch = txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=1_250,
            date=date(2024, 1, 2),
            wallet_id=wallet.id,
            category_id=food.id,
        )
    )

    with pytest.raises(ConstraintViolation):
        categories.delete(food.id)

    txns.delete(lunch.id)
    assert categories.delete(food.id) is True
    assert categories.count() == 0


def test_savings_bucket_with_rows_cannot_be_deleted() -> None:
    session = make_session()
    wallet = WalletService(session).create(WalletIn(name="Main"))
    buckets = SavingsBucketService(session)
    bucket = buckets.create(SavingsBucketIn(name="Emergency"))
    txns = TransactionService(session)
    allocation = txns.create(
        TransactionIn(
            type=TransactionType.savings,
            amount=5_000,
            date=date(2024, 1, 3),
            wallet_id=wallet.id,
            savings_bucket_id=bucket.id,
        )
    )
    assert [(b.name, b.balance) for b in buckets.list_with_balances()] == [
        ("Emergency", 5_000)
    ]

    with pytest.raises(ConstraintViolation):
        buckets.delete(bucket.id)

    txns.delete(allocation.id)
    assert buckets.delete(bucket.id) is True
    assert buckets.count() == 0


def test_category_name_is_unique_per_type() -> None:
    session = make_session()
    categories = CategoryService(session)
    categories.create(CategoryIn(name="Other", type=CategoryType.expense))
    categories.create(CategoryIn(name="Other", type=CategoryType.income))

    with pytest.raises(DuplicateKey):
        categories.create(CategoryIn(name="Other", type=CategoryType.expense))

    assert categories.count() == 2
    assert categories.count(CategoryType.income) == 1
    found = categories.get_by_name_and_type("Other", CategoryType.income)
    assert found is not None and found.type == CategoryType.income


def test_category_update_rejects_collisions() -> None:
    session = make_session()
    categories = CategoryService(session)
    food = categories.create(CategoryIn(name="Food", type=CategoryType.expense))
    categories.create(CategoryIn(name="Dining", type=CategoryType.expense))

    with pytest.raises(DuplicateKey):
        categories.update(food.id, CategoryUpdate(name="Dining"))

    renamed = categories.update(food.id, CategoryUpdate(name="Groceries"))
    assert renamed is not None and renamed.name == "Groceries"
    assert categories.update(999, CategoryUpdate(name="Nope")) is None
    assert [c.name for c in categories.list_all(CategoryType.expense)] == [
        "Dining",
        "Groceries",
    ]


def test_wallet_names_are_unique() -> None:
    session = make_session()
    wallets = WalletService(session)
    wallets.create(WalletIn(name="Cash"))
    savings = wallets.create(WalletIn(name="Savings"))

    with pytest.raises(DuplicateKey):
        wallets.create(WalletIn(name="Cash"))
    with pytest.raises(DuplicateKey):
        wallets.update(savings.id, WalletUpdate(name="Cash"))

    assert wallets.count() == 2
    assert wallets.get_by_name("Savings") is not None
    assert wallets.update(999, WalletUpdate(name="Ghost")) is None


def test_wallet_name_must_not_be_blank() -> None:
    with pytest.raises(ValidationError):
        WalletIn(name="   ")
    with pytest.raises(ValidationError):
        WalletIn(name="x" * 101)


def test_transaction_references_are_validated() -> None:
    session = make_session()
    wallet = WalletService(session).create(WalletIn(name="Main"))
    categories = CategoryService(session)
    salary = categories.create(CategoryIn(name="Salary", type=CategoryType.income))
    txns = TransactionService(session)

    with pytest.raises(InvalidArgument, match="Invalid wallet ID"):
        txns.create(
            TransactionIn(
                type=TransactionType.income, amount=1, date=date(2024, 1, 1), wallet_id=77
            )
        )
    with pytest.raises(InvalidArgument, match="Category type mismatch"):
        txns.create(
            TransactionIn(
                type=TransactionType.expense,
                amount=1,
                date=date(2024, 1, 1),
                wallet_id=wallet.id,
                category_id=salary.id,
            )
        )
    with pytest.raises(InvalidArgument, match="Invalid savings bucket ID"):
        txns.create(
            TransactionIn(
                type=TransactionType.savings,
                amount=1,
                date=date(2024, 1, 1),
                wallet_id=wallet.id,
                savings_bucket_id=5,
            )
        )
    with pytest.raises(ValidationError):
        TransactionIn(
            type=TransactionType.expense,
            amount=1,
            date=date(2024, 1, 1),
            wallet_id=wallet.id,
        )
    assert txns.count() == 0


def test_transaction_update_applies_only_supplied_fields() -> None:
    session = make_session()
    wallet = WalletService(session).create(WalletIn(name="Main"))
    food = CategoryService(session).create(
        CategoryIn(name="Food", type=CategoryType.expense)
    )
    txns = TransactionService(session)
    lunch = txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=1_000,
            date=date(2024, 1, 5),
            note="lunch",
            wallet_id=wallet.id,
            category_id=food.id,
        )
    )
    created_at = lunch.created_at

    updated = txns.update(lunch.id, TransactionUpdate(amount=1_200.4))

    assert updated is not None
    assert updated.amount == 1_200
    assert updated.note == "lunch"
    assert updated.date == date(2024, 1, 5)
    assert updated.created_at == created_at
    assert updated.updated_at >= created_at

    with pytest.raises(InvalidArgument, match="Category ID is required"):
        txns.update(lunch.id, TransactionUpdate(category_id=None))

    assert txns.update(9_999, TransactionUpdate(amount=1)) is None
    assert txns.delete(9_999) is False


def test_seeding_default_categories_is_idempotent() -> None:
    session = make_session()
    CategoryService(session).create(CategoryIn(name="Salary", type=CategoryType.income))

    added = seed_default_categories(session)

    assert added == len(DEFAULT_CATEGORIES) - 1
    assert seed_default_categories(session) == 0
    assert CategoryService(session).count(CategoryType.expense) == 8
    assert CategoryService(session).count(CategoryType.income) == 5


def test_category_type_is_fixed_once_in_use() -> None:
    session = make_session()
    wallet = WalletService(session).create(WalletIn(name="Main"))
    categories = CategoryService(session)
    gifts = categories.create(CategoryIn(name="Gifts", type=CategoryType.expense))
    spare = categories.create(CategoryIn(name="Spare", type=CategoryType.expense))
    TransactionService(session).create(
        TransactionIn(
            type=TransactionType.expense,
            amount=2_000,
            date=date(2024, 1, 8),
            wallet_id=wallet.id,
            category_id=gifts.id,
        )
    )

    with pytest.raises(InvalidOperation):
        categories.update(gifts.id, CategoryUpdate(type=CategoryType.income))

    moved = categories.update(spare.id, CategoryUpdate(type=CategoryType.income))
    assert moved is not None and moved.type == CategoryType.income
