from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import and_, case, delete, func, select
from sqlalchemy.orm import Session, joinedload

from errors import (
    DuplicateKey,
    InvalidArgument,
    InvalidOperation,
    translate_storage_errors,
)
from models import (
    Budget,
    Category,
    CategoryType,
    SavingsBucket,
    Transaction,
    TransactionType,
    Wallet,
    utcnow,
)
from periods import DateRange, month_range
from schemas import (
    BudgetIn,
    BudgetUpdate,
    BudgetWithActual,
    CategoryIn,
    CategorySpending,
    CategoryUpdate,
    CategoryWithSpent,
    DashboardBreakdown,
    DashboardMetrics,
    DashboardSummary,
    DashboardTotals,
    PeriodOut,
    SavingsBucketIn,
    SavingsBucketUpdate,
    SavingsBucketWithBalance,
    SpendingReport,
    SpendingShare,
    TransactionIn,
    TransactionUpdate,
    TransferIn,
    WalletBalance,
    WalletIn,
    WalletUpdate,
    WalletWithBalance,
)

logger = logging.getLogger(__name__)

# How each ledger row type moves spendable money. Transfer legs are stored
# already signed, so they count as-is.
SIGN_BY_TYPE: dict[TransactionType, int] = {
    TransactionType.income: 1,
    TransactionType.expense: -1,
    TransactionType.transfer: 1,
    TransactionType.savings: -1,
}


def signed_amount(txn_type: TransactionType, amount: int) -> int:
    return SIGN_BY_TYPE[txn_type] * amount


def signed_amount_expr():
    """SQL counterpart of :func:`signed_amount` for aggregate queries."""
    return case(
        *[
            (Transaction.type == txn_type, Transaction.amount * sign)
            for txn_type, sign in SIGN_BY_TYPE.items()
        ],
        else_=0,
    )


def _signed_total():
    return func.coalesce(func.sum(signed_amount_expr()), 0)


def _in_range(column, period: DateRange):
    return and_(column >= period.start, column < period.end)


def _percentage(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


@dataclass
class TransactionFilter:
    type: Optional[TransactionType] = None
    wallet_id: Optional[int] = None
    category_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def predicates(self) -> list:
        conditions = []
        if self.type is not None:
            conditions.append(Transaction.type == self.type)
        if self.wallet_id is not None:
            conditions.append(Transaction.wallet_id == self.wallet_id)
        if self.category_id is not None:
            conditions.append(Transaction.category_id == self.category_id)
        if self.start_date is not None:
            conditions.append(Transaction.date >= self.start_date)
        if self.end_date is not None:
            conditions.append(Transaction.date < self.end_date)
        return conditions


@dataclass
class Transfer:
    id: str
    from_transaction: Transaction
    to_transaction: Transaction


class WalletService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Wallet]:
        return self.session.scalars(select(Wallet).order_by(Wallet.name)).all()

    def get(self, wallet_id: int) -> Optional[Wallet]:
        return self.session.get(Wallet, wallet_id)

    def get_by_name(self, name: str) -> Optional[Wallet]:
        return self.session.scalar(select(Wallet).where(Wallet.name == name))

    def exists(self, wallet_id: int) -> bool:
        return self.session.scalar(
            select(Wallet.id).where(Wallet.id == wallet_id).limit(1)
        ) is not None

    def count(self) -> int:
        return int(self.session.execute(select(func.count(Wallet.id))).scalar_one())

    def create(self, data: WalletIn) -> Wallet:
        if self.get_by_name(data.name):
            raise DuplicateKey("Wallet with this name already exists")
        wallet = Wallet(name=data.name)
        self.session.add(wallet)
        with translate_storage_errors(
            self.session, unique_message="Wallet with this name already exists"
        ):
            self.session.commit()
        self.session.refresh(wallet)
        logger.info(f"wallet_created: id={wallet.id}")
        return wallet

    def update(self, wallet_id: int, data: WalletUpdate) -> Optional[Wallet]:
        wallet = self.get(wallet_id)
        if not wallet:
            return None
        if data.name is not None and data.name != wallet.name:
            clash = self.get_by_name(data.name)
            if clash and clash.id != wallet.id:
                raise DuplicateKey("Wallet with this name already exists")
            wallet.name = data.name
        wallet.updated_at = utcnow()
        with translate_storage_errors(
            self.session, unique_message="Wallet with this name already exists"
        ):
            self.session.commit()
        self.session.refresh(wallet)
        return wallet

    def delete(self, wallet_id: int) -> bool:
        if not self.exists(wallet_id):
            return False
        with translate_storage_errors(
            self.session,
            foreign_key_message="Cannot delete wallet with existing transactions",
        ):
            self.session.execute(delete(Wallet).where(Wallet.id == wallet_id))
            self.session.commit()
        logger.info(f"wallet_deleted: id={wallet_id}")
        return True


class SavingsBucketService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[SavingsBucket]:
        return self.session.scalars(
            select(SavingsBucket).order_by(SavingsBucket.name)
        ).all()

    def get(self, bucket_id: int) -> Optional[SavingsBucket]:
        return self.session.get(SavingsBucket, bucket_id)

    def get_by_name(self, name: str) -> Optional[SavingsBucket]:
        return self.session.scalar(
            select(SavingsBucket).where(SavingsBucket.name == name)
        )

    def exists(self, bucket_id: int) -> bool:
        return self.session.scalar(
            select(SavingsBucket.id).where(SavingsBucket.id == bucket_id).limit(1)
        ) is not None

    def count(self) -> int:
        return int(
            self.session.execute(select(func.count(SavingsBucket.id))).scalar_one()
        )

    def create(self, data: SavingsBucketIn) -> SavingsBucket:
        if self.get_by_name(data.name):
            raise DuplicateKey("Savings bucket with this name already exists")
        bucket = SavingsBucket(name=data.name)
        self.session.add(bucket)
        with translate_storage_errors(
            self.session, unique_message="Savings bucket with this name already exists"
        ):
            self.session.commit()
        self.session.refresh(bucket)
        logger.info(f"savings_bucket_created: id={bucket.id}")
        return bucket

    def update(
        self, bucket_id: int, data: SavingsBucketUpdate
    ) -> Optional[SavingsBucket]:
        bucket = self.get(bucket_id)
        if not bucket:
            return None
        if data.name is not None and data.name != bucket.name:
            clash = self.get_by_name(data.name)
            if clash and clash.id != bucket.id:
                raise DuplicateKey("Savings bucket with this name already exists")
            bucket.name = data.name
        bucket.updated_at = utcnow()
        with translate_storage_errors(
            self.session, unique_message="Savings bucket with this name already exists"
        ):
            self.session.commit()
        self.session.refresh(bucket)
        return bucket

    def delete(self, bucket_id: int) -> bool:
        if not self.exists(bucket_id):
            return False
        with translate_storage_errors(
            self.session,
            foreign_key_message="Cannot delete savings bucket with existing transactions",
        ):
            self.session.execute(
                delete(SavingsBucket).where(SavingsBucket.id == bucket_id)
            )
            self.session.commit()
        logger.info(f"savings_bucket_deleted: id={bucket_id}")
        return True

    def balance(self, bucket_id: int) -> int:
        """Total allocated to the bucket by ``savings`` rows."""
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.savings_bucket_id == bucket_id,
            Transaction.type == TransactionType.savings,
        )
        return int(self.session.execute(stmt).scalar_one())

    def list_with_balances(self) -> list[SavingsBucketWithBalance]:
        allocated = func.coalesce(func.sum(Transaction.amount), 0).label("balance")
        stmt = (
            select(SavingsBucket, allocated)
            .outerjoin(
                Transaction,
                and_(
                    Transaction.savings_bucket_id == SavingsBucket.id,
                    Transaction.type == TransactionType.savings,
                ),
            )
            .group_by(SavingsBucket.id)
            .order_by(SavingsBucket.name)
        )
        return [
            SavingsBucketWithBalance(
                id=bucket.id,
                name=bucket.name,
                created_at=bucket.created_at,
                updated_at=bucket.updated_at,
                balance=int(balance),
            )
            for bucket, balance in self.session.execute(stmt).all()
        ]


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self, type: Optional[CategoryType] = None) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.name)
        if type is not None:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Optional[Category]:
        return self.session.get(Category, category_id)

    def get_by_name_and_type(
        self, name: str, type: CategoryType
    ) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(Category.name == name, Category.type == type)
        )

    def exists(self, category_id: int) -> bool:
        return self.session.scalar(
            select(Category.id).where(Category.id == category_id).limit(1)
        ) is not None

    def count(self, type: Optional[CategoryType] = None) -> int:
        stmt = select(func.count(Category.id))
        if type is not None:
            stmt = stmt.where(Category.type == type)
        return int(self.session.execute(stmt).scalar_one())

    def create(self, data: CategoryIn) -> Category:
        if self.get_by_name_and_type(data.name, data.type):
            raise DuplicateKey("Category with this name already exists")
        category = Category(name=data.name, type=data.type)
        self.session.add(category)
        with translate_storage_errors(
            self.session, unique_message="Category with this name already exists"
        ):
            self.session.commit()
        self.session.refresh(category)
        logger.info(
            f"category_created: id={category.id} type={category.type.value}"
        )
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Optional[Category]:
        category = self.get(category_id)
        if not category:
            return None
        name = data.name if data.name is not None else category.name
        type = data.type if data.type is not None else category.type
        clash = self.get_by_name_and_type(name, type)
        if clash and clash.id != category.id:
            raise DuplicateKey("Category with this name already exists")
        if type != category.type and self._in_use(category_id):
            raise InvalidOperation("Cannot change the type of a category in use")
        category.name = name
        category.type = type
        category.updated_at = utcnow()
        with translate_storage_errors(
            self.session, unique_message="Category with this name already exists"
        ):
            self.session.commit()
        self.session.refresh(category)
        return category

    def _in_use(self, category_id: int) -> bool:
        referenced = select(Transaction.id).where(
            Transaction.category_id == category_id
        )
        budgeted = select(Budget.id).where(Budget.category_id == category_id)
        return (
            self.session.scalar(referenced.limit(1)) is not None
            or self.session.scalar(budgeted.limit(1)) is not None
        )

    def delete(self, category_id: int) -> bool:
        """Delete a category; its budgets go with it, its ledger rows block it."""
        if not self.exists(category_id):
            return False
        with translate_storage_errors(
            self.session,
            foreign_key_message="Cannot delete category with existing transactions",
        ):
            # ORM-enabled delete so loaded Budget rows leave the identity map too
            self.session.execute(delete(Budget).where(Budget.category_id == category_id))
            self.session.execute(delete(Category).where(Category.id == category_id))
            self.session.commit()
        logger.info(f"category_deleted: id={category_id}")
        return True

    def categories_with_spent(self, period: DateRange) -> list[CategoryWithSpent]:
        """Every expense category with its spend in ``period``, zero included."""
        spent = {
            row.category_id: row.total
            for row in BalanceService(self.session).spending_by_category(
                period, include_empty=True
            )
        }
        stmt = (
            select(Category)
            .where(Category.type == CategoryType.expense)
            .order_by(Category.name)
        )
        return [
            CategoryWithSpent(
                id=category.id,
                name=category.name,
                type=category.type,
                created_at=category.created_at,
                updated_at=category.updated_at,
                spent=spent.get(category.id, 0),
            )
            for category in self.session.scalars(stmt)
        ]


class TransactionService:
    """Ledger store: CRUD of single ledger rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, transaction_id: int) -> Optional[Transaction]:
        return self.session.get(Transaction, transaction_id)

    def list(self, filters: Optional[TransactionFilter] = None) -> list[Transaction]:
        filters = filters or TransactionFilter()
        stmt = (
            select(Transaction)
            .where(*filters.predicates())
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
        )
        if filters.limit:
            stmt = stmt.limit(filters.limit)
        if filters.offset:
            stmt = stmt.offset(filters.offset)
        return self.session.scalars(stmt).all()

    def count(self, filters: Optional[TransactionFilter] = None) -> int:
        filters = filters or TransactionFilter()
        stmt = select(func.count(Transaction.id)).where(*filters.predicates())
        return int(self.session.execute(stmt).scalar_one())

    def _check_references(
        self,
        txn_type: TransactionType,
        wallet_id: int,
        category_id: Optional[int],
        savings_bucket_id: Optional[int],
    ) -> None:
        if self.session.get(Wallet, wallet_id) is None:
            raise InvalidArgument("Invalid wallet ID")
        if category_id is not None:
            category = self.session.get(Category, category_id)
            if category is None:
                raise InvalidArgument("Invalid category ID")
            if (
                txn_type in (TransactionType.expense, TransactionType.income)
                and category.type.value != txn_type.value
            ):
                raise InvalidArgument("Category type mismatch")
        elif txn_type == TransactionType.expense:
            raise InvalidArgument("Category ID is required for expense transactions")
        if savings_bucket_id is not None:
            if self.session.get(SavingsBucket, savings_bucket_id) is None:
                raise InvalidArgument("Invalid savings bucket ID")

    def create(self, data: TransactionIn) -> Transaction:
        if data.type == TransactionType.transfer:
            raise InvalidArgument(
                "Transfers must be created as a pair through the transfer service"
            )
        self._check_references(
            data.type, data.wallet_id, data.category_id, data.savings_bucket_id
        )
        txn = Transaction(
            type=data.type,
            amount=data.amount,
            date=data.date,
            note=data.note,
            wallet_id=data.wallet_id,
            category_id=data.category_id,
            savings_bucket_id=data.savings_bucket_id,
        )
        self.session.add(txn)
        with translate_storage_errors(self.session):
            self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} type={txn.type.value} amount={txn.amount}"
        )
        return txn

    def update(
        self, transaction_id: int, data: TransactionUpdate
    ) -> Optional[Transaction]:
        txn = self.get(transaction_id)
        if not txn:
            return None
        if txn.type == TransactionType.transfer:
            raise InvalidOperation(
                "Transfer transactions cannot be updated directly; "
                "delete the transfer and create a new one"
            )

        changes = data.changes()
        for field in ("type", "amount", "date", "wallet_id"):
            if field in changes and changes[field] is None:
                raise InvalidArgument(f"{field} cannot be empty")
        if changes.get("type") == TransactionType.transfer:
            raise InvalidOperation("A transaction cannot be turned into a transfer")

        self._check_references(
            changes.get("type", txn.type),
            changes.get("wallet_id", txn.wallet_id),
            changes.get("category_id", txn.category_id),
            changes.get("savings_bucket_id", txn.savings_bucket_id),
        )
        for field, value in changes.items():
            setattr(txn, field, value)
        txn.updated_at = utcnow()
        with translate_storage_errors(self.session):
            self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_updated: id={txn.id} fields={sorted(changes)}")
        return txn

    def delete(self, transaction_id: int) -> bool:
        """Delete a row; deleting either transfer leg removes the whole pair."""
        txn = self.get(transaction_id)
        if not txn:
            return False
        if txn.type == TransactionType.transfer and txn.transfer_id:
            return TransferService(self.session).delete(txn.transfer_id)
        with translate_storage_errors(self.session):
            self.session.execute(
                delete(Transaction).where(Transaction.id == transaction_id)
            )
            self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id}")
        return True


class TransferService:
    """Creates and removes transfers as atomic pairs of ledger rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _insert_leg(
        self, transfer_id: str, wallet_id: int, amount: int, data: TransferIn
    ) -> Transaction:
        leg = Transaction(
            type=TransactionType.transfer,
            amount=amount,
            date=data.date,
            note=data.note,
            wallet_id=wallet_id,
            transfer_id=transfer_id,
        )
        self.session.add(leg)
        self.session.flush()
        return leg

    def create(self, data: TransferIn) -> Transfer:
        if data.from_wallet_id == data.to_wallet_id:
            raise InvalidArgument("Source and destination wallets must be different")
        if data.amount <= 0:
            raise InvalidArgument("Transfer amount must be positive")
        wallets = WalletService(self.session)
        if not (
            wallets.exists(data.from_wallet_id) and wallets.exists(data.to_wallet_id)
        ):
            raise InvalidArgument("Invalid wallet ID: one or both wallets do not exist")

        transfer_id = str(uuid.uuid4())
        try:
            with translate_storage_errors(self.session):
                outgoing = self._insert_leg(
                    transfer_id, data.from_wallet_id, -data.amount, data
                )
                incoming = self._insert_leg(
                    transfer_id, data.to_wallet_id, data.amount, data
                )
                self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(outgoing)
        self.session.refresh(incoming)
        logger.info(
            f"transfer_created: transfer_id={transfer_id} "
            f"from_wallet={data.from_wallet_id} to_wallet={data.to_wallet_id} "
            f"amount={data.amount}"
        )
        return Transfer(
            id=transfer_id, from_transaction=outgoing, to_transaction=incoming
        )

    def transactions(self, transfer_id: str) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.transfer_id == transfer_id)
            .order_by(Transaction.amount.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, transfer_id: str) -> Optional[Transfer]:
        legs = self.transactions(transfer_id)
        outgoing = next((leg for leg in legs if leg.amount < 0), None)
        incoming = next((leg for leg in legs if leg.amount > 0), None)
        if outgoing is None or incoming is None:
            return None
        return Transfer(
            id=transfer_id, from_transaction=outgoing, to_transaction=incoming
        )

    def delete(self, transfer_id: str) -> bool:
        existing = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.transfer_id == transfer_id
            )
        ).scalar_one()
        if not existing:
            return False
        with translate_storage_errors(self.session):
            self.session.execute(
                delete(Transaction).where(Transaction.transfer_id == transfer_id)
            )
            self.session.commit()
        logger.info(f"transfer_deleted: transfer_id={transfer_id} legs={existing}")
        return True


class BalanceService:
    """Read-side aggregates, always recomputed from the ledger."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def wallet_balance(self, wallet_id: int) -> int:
        stmt = select(_signed_total()).where(Transaction.wallet_id == wallet_id)
        return int(self.session.execute(stmt).scalar_one())

    def _wallets_with_balances_stmt(self):
        return (
            select(Wallet, _signed_total().label("balance"))
            .outerjoin(Transaction, Transaction.wallet_id == Wallet.id)
            .group_by(Wallet.id)
            .order_by(Wallet.name)
        )

    @staticmethod
    def _wallet_row(wallet: Wallet, balance: int) -> WalletWithBalance:
        return WalletWithBalance(
            id=wallet.id,
            name=wallet.name,
            created_at=wallet.created_at,
            updated_at=wallet.updated_at,
            balance=int(balance),
        )

    def wallets_with_balances(self) -> list[WalletWithBalance]:
        rows = self.session.execute(self._wallets_with_balances_stmt()).all()
        return [self._wallet_row(wallet, balance) for wallet, balance in rows]

    def wallet_with_balance(self, wallet_id: int) -> Optional[WalletWithBalance]:
        stmt = self._wallets_with_balances_stmt().where(Wallet.id == wallet_id)
        row = self.session.execute(stmt).first()
        if row is None:
            return None
        return self._wallet_row(row[0], row[1])

    def net_worth(self) -> int:
        return int(self.session.execute(select(_signed_total())).scalar_one())

    def _total_for_type(self, txn_type: TransactionType, period: DateRange) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.type == txn_type, _in_range(Transaction.date, period)
        )
        return int(self.session.execute(stmt).scalar_one())

    def total_income(self, period: DateRange) -> int:
        return self._total_for_type(TransactionType.income, period)

    def total_expenses(self, period: DateRange) -> int:
        """Expense total as a positive magnitude."""
        return self._total_for_type(TransactionType.expense, period)

    def spending_by_category(
        self, period: DateRange, *, include_empty: bool = False
    ) -> list[CategorySpending]:
        total = func.coalesce(func.sum(Transaction.amount), 0)
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("category_name"),
                total.label("total"),
            )
            .select_from(Category)
            .outerjoin(
                Transaction,
                and_(
                    Transaction.category_id == Category.id,
                    Transaction.type == TransactionType.expense,
                    _in_range(Transaction.date, period),
                ),
            )
            .where(Category.type == CategoryType.expense)
            .group_by(Category.id, Category.name)
            .order_by(total.desc(), Category.name)
        )
        if not include_empty:
            stmt = stmt.having(total > 0)
        return [
            CategorySpending(
                category_id=row.category_id,
                category_name=row.category_name,
                total=int(row.total),
            )
            for row in self.session.execute(stmt).all()
        ]

    def category_spent(self, category_id: int, period: DateRange) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.category_id == category_id,
            Transaction.type == TransactionType.expense,
            _in_range(Transaction.date, period),
        )
        return int(self.session.execute(stmt).scalar_one())


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self, month: Optional[date] = None, category_id: Optional[int] = None
    ) -> list[Budget]:
        stmt = select(Budget).where(*self._predicates(month, category_id))
        stmt = stmt.order_by(Budget.month.desc(), Budget.category_id, Budget.id)
        return self.session.scalars(stmt).all()

    @staticmethod
    def _predicates(month: Optional[date], category_id: Optional[int]) -> list:
        conditions = []
        if month is not None:
            conditions.append(Budget.month == month)
        if category_id is not None:
            conditions.append(Budget.category_id == category_id)
        return conditions

    def count(
        self, month: Optional[date] = None, category_id: Optional[int] = None
    ) -> int:
        stmt = select(func.count(Budget.id)).where(
            *self._predicates(month, category_id)
        )
        return int(self.session.execute(stmt).scalar_one())

    def get(self, budget_id: int) -> Optional[Budget]:
        return self.session.get(Budget, budget_id)

    def get_by_month_and_category(
        self, month: date, category_id: int
    ) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.month == month, Budget.category_id == category_id
            )
        )

    def _check_category(self, category_id: int) -> None:
        category = self.session.get(Category, category_id)
        if not category:
            raise InvalidArgument("Invalid category ID")
        if category.type != CategoryType.expense:
            raise InvalidArgument("Budgets can only be set for expense categories")

    def create(self, data: BudgetIn) -> Budget:
        self._check_category(data.category_id)
        if self.get_by_month_and_category(data.month, data.category_id):
            raise DuplicateKey("Budget for this category and month already exists")
        budget = Budget(
            month=data.month,
            category_id=data.category_id,
            limit_amount=data.limit_amount,
        )
        self.session.add(budget)
        with translate_storage_errors(
            self.session,
            unique_message="Budget for this category and month already exists",
        ):
            self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} month={budget.month.isoformat()} "
            f"category_id={budget.category_id}"
        )
        return budget

    def upsert(self, data: BudgetIn) -> Budget:
        # Read-then-write; safe only because there is a single writer.
        existing = self.get_by_month_and_category(data.month, data.category_id)
        if existing:
            return self.update(existing.id, BudgetUpdate(limit_amount=data.limit_amount))
        return self.create(data)

    def update(self, budget_id: int, data: BudgetUpdate) -> Optional[Budget]:
        budget = self.get(budget_id)
        if not budget:
            return None
        budget.limit_amount = data.limit_amount
        budget.updated_at = utcnow()
        with translate_storage_errors(self.session):
            self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> bool:
        if not self.get(budget_id):
            return False
        with translate_storage_errors(self.session):
            self.session.execute(delete(Budget).where(Budget.id == budget_id))
            self.session.commit()
        logger.info(f"budget_deleted: id={budget_id}")
        return True

    def delete_by_month_and_category(self, month: date, category_id: int) -> bool:
        budget = self.get_by_month_and_category(month, category_id)
        if not budget:
            return False
        return self.delete(budget.id)

    def total_for_month(self, month: date) -> int:
        stmt = select(func.coalesce(func.sum(Budget.limit_amount), 0)).where(
            Budget.month == month
        )
        return int(self.session.execute(stmt).scalar_one())

    def months(self) -> list[date]:
        stmt = select(Budget.month).distinct().order_by(Budget.month.desc())
        return list(self.session.scalars(stmt).all())

    def spent_by_category_for_month(self, month: date) -> dict[int, int]:
        period = month_range(month)
        stmt = (
            select(
                Transaction.category_id,
                func.coalesce(func.sum(Transaction.amount), 0).label("spent"),
            )
            .where(
                Transaction.type == TransactionType.expense,
                Transaction.category_id.is_not(None),
                _in_range(Transaction.date, period),
            )
            .group_by(Transaction.category_id)
        )
        return {
            row.category_id: int(row.spent) for row in self.session.execute(stmt)
        }

    @staticmethod
    def _with_actual(budget: Budget, spent: int) -> BudgetWithActual:
        return BudgetWithActual(
            id=budget.id,
            month=budget.month,
            category_id=budget.category_id,
            limit_amount=budget.limit_amount,
            created_at=budget.created_at,
            updated_at=budget.updated_at,
            category_name=budget.category.name,
            actual_spent=spent,
            remaining=budget.limit_amount - spent,
        )

    def budgets_with_actual(self, month: date) -> list[BudgetWithActual]:
        budgets = self.session.scalars(
            select(Budget)
            .options(joinedload(Budget.category))
            .join(Category, Category.id == Budget.category_id)
            .where(Budget.month == month)
            .order_by(Category.name)
        ).all()
        spent_by_category = self.spent_by_category_for_month(month)
        return [
            self._with_actual(budget, spent_by_category.get(budget.category_id, 0))
            for budget in budgets
        ]

    def budget_with_actual(self, budget_id: int) -> Optional[BudgetWithActual]:
        budget = self.get(budget_id)
        if not budget:
            return None
        spent = BalanceService(self.session).category_spent(
            budget.category_id, month_range(budget.month)
        )
        return self._with_actual(budget, spent)

    def copy_to_month(self, from_month: date, to_month: date) -> list[Budget]:
        """Copy budgets into ``to_month`` for categories it does not cover yet.

        Budgets already present in the target month are left untouched.
        """
        created: list[Budget] = []
        with translate_storage_errors(
            self.session,
            unique_message="Budget for this category and month already exists",
        ):
            for source in self.list(month=from_month):
                if self.get_by_month_and_category(to_month, source.category_id):
                    continue
                budget = Budget(
                    month=to_month,
                    category_id=source.category_id,
                    limit_amount=source.limit_amount,
                )
                self.session.add(budget)
                self.session.flush()
                created.append(budget)
            self.session.commit()
        for budget in created:
            self.session.refresh(budget)
        logger.info(
            f"budgets_copied: from={from_month.isoformat()} "
            f"to={to_month.isoformat()} created={len(created)}"
        )
        return created


class DashboardService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.balances = BalanceService(session)

    @staticmethod
    def _shares(rows: list[CategorySpending], whole: int) -> list[SpendingShare]:
        return [
            SpendingShare(
                category_id=row.category_id,
                category_name=row.category_name,
                total=row.total,
                percentage=_percentage(row.total, whole),
            )
            for row in rows
        ]

    def summary(self, period: DateRange) -> DashboardSummary:
        income = self.balances.total_income(period)
        expenses = self.balances.total_expenses(period)
        savings_rate = (
            round((income - expenses) / income * 100, 2) if income > 0 else 0.0
        )
        wallets = [
            WalletBalance(id=row.id, name=row.name, balance=row.balance)
            for row in self.balances.wallets_with_balances()
        ]
        spending = self.balances.spending_by_category(period)
        return DashboardSummary(
            period=PeriodOut(start_date=period.start, end_date=period.end),
            totals=DashboardTotals(
                income=income,
                expenses=expenses,
                net=income - expenses,
                net_worth=self.balances.net_worth(),
            ),
            metrics=DashboardMetrics(
                money_left_to_spend=income - expenses,
                savings_rate=savings_rate,
            ),
            breakdown=DashboardBreakdown(
                spending_by_category=self._shares(spending, expenses),
                wallet_balances=wallets,
            ),
        )

    def spending_breakdown(
        self, period: DateRange, max_categories: int = 10
    ) -> SpendingReport:
        """Spending shares for ``period``; the tail past ``max_categories``
        is folded into a single ``Other`` row with ``category_id`` 0."""
        rows = self.balances.spending_by_category(period)
        whole = sum(row.total for row in rows)
        shares = self._shares(rows, whole)
        if len(shares) > max_categories:
            tail = shares[max_categories - 1 :]
            other_total = sum(share.total for share in tail)
            shares = shares[: max_categories - 1] + [
                SpendingShare(
                    category_id=0,
                    category_name="Other",
                    total=other_total,
                    percentage=_percentage(other_total, whole),
                )
            ]
        return SpendingReport(
            period=PeriodOut(start_date=period.start, end_date=period.end),
            total_spending=whole,
            category_count=len(rows),
            categories=shares,
        )
