from datetime import date

import pytest

from database import create_db_engine, create_session_factory, init_db
from errors import ConstraintViolation, DuplicateKey, translate_storage_errors
from models import Transaction, TransactionType, Wallet


def make_session():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    return create_session_factory(engine)()


def test_unique_failure_becomes_duplicate_key() -> None:
    session = make_session()
    session.add(Wallet(name="Cash"))
    session.commit()

    with pytest.raises(DuplicateKey, match="Wallet exists"):
        with translate_storage_errors(session, unique_message="Wallet exists"):
            session.add(Wallet(name="Cash"))
            session.commit()

    assert session.query(Wallet).count() == 1


def test_foreign_key_failure_becomes_constraint_violation() -> None:
    session = make_session()

    with pytest.raises(ConstraintViolation, match="Unknown wallet") as caught:
        with translate_storage_errors(session, foreign_key_message="Unknown wallet"):
            session.add(
                Transaction(
                    type=TransactionType.income,
                    amount=100,
                    date=date(2024, 1, 1),
                    wallet_id=999,
                )
            )
            session.commit()

    assert not isinstance(caught.value, DuplicateKey)
    assert session.query(Transaction).count() == 0


def test_other_integrity_failures_keep_the_driver_message() -> None:
    session = make_session()
    wallet = Wallet(name="Main")
    session.add(wallet)
    session.commit()

    with pytest.raises(ConstraintViolation, match="CHECK constraint failed") as caught:
        with translate_storage_errors(session):
            session.add(
                Transaction(
                    type=TransactionType.expense,
                    amount=0,
                    date=date(2024, 1, 1),
                    wallet_id=wallet.id,
                )
            )
            session.commit()

    assert not isinstance(caught.value, DuplicateKey)
