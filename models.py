from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    expense = "expense"
    income = "income"
    transfer = "transfer"
    savings = "savings"


class CategoryType(str, Enum):
    expense = "expense"
    income = "income"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Wallet(Base, TimestampMixin):
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(SAEnum(CategoryType), nullable=False)

    __table_args__ = (UniqueConstraint("name", "type", name="uq_category_name_type"),)


class SavingsBucket(Base, TimestampMixin):
    __tablename__ = "savings_buckets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Transaction(Base, TimestampMixin):
    """One ledger row.

    Transfer legs carry a signed ``amount`` (outgoing negative, incoming
    positive) and share a ``transfer_id``; every other row stores the
    positive amount it was created with.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    wallet_id: Mapped[int] = mapped_column(
        ForeignKey("wallets.id", ondelete="RESTRICT"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT")
    )
    transfer_id: Mapped[Optional[str]] = mapped_column(String(36))
    savings_bucket_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("savings_buckets.id", ondelete="RESTRICT")
    )

    wallet: Mapped["Wallet"] = relationship("Wallet")
    category: Mapped[Optional["Category"]] = relationship("Category")
    savings_bucket: Mapped[Optional["SavingsBucket"]] = relationship("SavingsBucket")

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_wallet_id", "wallet_id"),
        Index("ix_transactions_category_id", "category_id"),
        Index("ix_transactions_type", "type"),
        Index("ix_transactions_transfer_id", "transfer_id"),
        CheckConstraint(
            "(type = 'transfer') = (transfer_id IS NOT NULL)",
            name="ck_transactions_transfer_link",
        ),
        CheckConstraint(
            "type = 'transfer' OR amount > 0",
            name="ck_transactions_amount_positive",
        ),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    limit_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        UniqueConstraint("month", "category_id", name="uq_budget_month_category"),
        Index("ix_budgets_month", "month"),
        Index("ix_budgets_category_id", "category_id"),
        CheckConstraint("limit_amount >= 0", name="ck_budgets_limit_positive"),
    )
