import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import create_db_engine, create_session_factory, init_db, session_scope
from errors import (
    ConstraintViolation,
    InvalidArgument,
    InvalidOperation,
    LedgerError,
    NotFound,
    StorageError,
)
from models import CategoryType, TransactionType
from periods import DateRange, parse_date, parse_month, resolve_range
from schemas import (
    BudgetCopyIn,
    BudgetIn,
    BudgetOut,
    BudgetUpdate,
    BudgetWithActual,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    CategoryWithSpent,
    DashboardSummary,
    SavingsBucketIn,
    SavingsBucketOut,
    SavingsBucketUpdate,
    SavingsBucketWithBalance,
    SpendingReport,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    TransferIn,
    TransferOut,
    WalletIn,
    WalletOut,
    WalletUpdate,
    WalletWithBalance,
)
from seed import seed_default_categories
from services import (
    BalanceService,
    BudgetService,
    CategoryService,
    DashboardService,
    SavingsBucketService,
    TransactionFilter,
    TransactionService,
    TransferService,
    WalletService,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (NotFound, 404),
    (ConstraintViolation, 409),
    (InvalidArgument, 400),
    (InvalidOperation, 400),
    (StorageError, 500),
)

router = APIRouter(prefix="/api")


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def period_from_query(
    start_date: Optional[str] = None, end_date: Optional[str] = None
) -> DateRange:
    return resolve_range(start_date, end_date)


def _not_found(what: str) -> NotFound:
    return NotFound(f"{what} not found")


@router.get("/health")
def health():
    return {"status": "ok"}


# Wallets


@router.get("/wallets", response_model=list[WalletWithBalance])
def list_wallets(db: Session = Depends(get_db)):
    return BalanceService(db).wallets_with_balances()


@router.post("/wallets", response_model=WalletOut, status_code=201)
def create_wallet(payload: WalletIn, db: Session = Depends(get_db)):
    return WalletService(db).create(payload)


@router.get("/wallets/{wallet_id}", response_model=WalletWithBalance)
def get_wallet(wallet_id: int, db: Session = Depends(get_db)):
    wallet = BalanceService(db).wallet_with_balance(wallet_id)
    if wallet is None:
        raise _not_found("Wallet")
    return wallet


@router.patch("/wallets/{wallet_id}", response_model=WalletOut)
def update_wallet(wallet_id: int, payload: WalletUpdate, db: Session = Depends(get_db)):
    wallet = WalletService(db).update(wallet_id, payload)
    if wallet is None:
        raise _not_found("Wallet")
    return wallet


@router.delete("/wallets/{wallet_id}")
def delete_wallet(wallet_id: int, db: Session = Depends(get_db)):
    if not WalletService(db).delete(wallet_id):
        raise _not_found("Wallet")
    return {"deleted": True}


# Categories


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(
    type: Optional[CategoryType] = None, db: Session = Depends(get_db)
):
    return CategoryService(db).list_all(type)


@router.get("/categories/with-spent", response_model=list[CategoryWithSpent])
def list_categories_with_spent(
    period: DateRange = Depends(period_from_query), db: Session = Depends(get_db)
):
    return CategoryService(db).categories_with_spent(period)


@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryIn, db: Session = Depends(get_db)):
    return CategoryService(db).create(payload)


@router.get("/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    category = CategoryService(db).get(category_id)
    if category is None:
        raise _not_found("Category")
    return category


@router.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)
):
    category = CategoryService(db).update(category_id, payload)
    if category is None:
        raise _not_found("Category")
    return category


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    if not CategoryService(db).delete(category_id):
        raise _not_found("Category")
    return {"deleted": True}


# Savings buckets


@router.get("/savings-buckets", response_model=list[SavingsBucketWithBalance])
def list_savings_buckets(db: Session = Depends(get_db)):
    return SavingsBucketService(db).list_with_balances()


@router.post("/savings-buckets", response_model=SavingsBucketOut, status_code=201)
def create_savings_bucket(payload: SavingsBucketIn, db: Session = Depends(get_db)):
    return SavingsBucketService(db).create(payload)


@router.get("/savings-buckets/{bucket_id}", response_model=SavingsBucketWithBalance)
def get_savings_bucket(bucket_id: int, db: Session = Depends(get_db)):
    service = SavingsBucketService(db)
    bucket = service.get(bucket_id)
    if bucket is None:
        raise _not_found("Savings bucket")
    return SavingsBucketWithBalance(
        id=bucket.id,
        name=bucket.name,
        created_at=bucket.created_at,
        updated_at=bucket.updated_at,
        balance=service.balance(bucket_id),
    )


@router.patch("/savings-buckets/{bucket_id}", response_model=SavingsBucketOut)
def update_savings_bucket(
    bucket_id: int, payload: SavingsBucketUpdate, db: Session = Depends(get_db)
):
    bucket = SavingsBucketService(db).update(bucket_id, payload)
    if bucket is None:
        raise _not_found("Savings bucket")
    return bucket


@router.delete("/savings-buckets/{bucket_id}")
def delete_savings_bucket(bucket_id: int, db: Session = Depends(get_db)):
    if not SavingsBucketService(db).delete(bucket_id):
        raise _not_found("Savings bucket")
    return {"deleted": True}


# Transactions


@router.get("/transactions")
def list_transactions(
    type: Optional[TransactionType] = None,
    wallet_id: Optional[int] = None,
    category_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = TransactionFilter(
        type=type,
        wallet_id=wallet_id,
        category_id=category_id,
        start_date=parse_date(start_date, "start_date") if start_date else None,
        end_date=parse_date(end_date, "end_date") if end_date else None,
    )
    service = TransactionService(db)
    total = service.count(filters)
    filters.limit = limit
    filters.offset = (page - 1) * limit
    items = service.list(filters)
    return {
        "items": [TransactionOut.model_validate(txn) for txn in items],
        "total": total,
        "page": page,
        "limit": limit,
        "has_more": filters.offset + len(items) < total,
    }


@router.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
    return TransactionService(db).create(payload)


@router.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    txn = TransactionService(db).get(transaction_id)
    if txn is None:
        raise _not_found("Transaction")
    return txn


@router.patch("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, payload: TransactionUpdate, db: Session = Depends(get_db)
):
    txn = TransactionService(db).update(transaction_id, payload)
    if txn is None:
        raise _not_found("Transaction")
    return txn


@router.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    if not TransactionService(db).delete(transaction_id):
        raise _not_found("Transaction")
    return {"deleted": True}


# Transfers


@router.post("/transfers", response_model=TransferOut, status_code=201)
def create_transfer(payload: TransferIn, db: Session = Depends(get_db)):
    transfer = TransferService(db).create(payload)
    return TransferOut.model_validate(transfer)


@router.get("/transfers/{transfer_id}", response_model=TransferOut)
def get_transfer(transfer_id: str, db: Session = Depends(get_db)):
    transfer = TransferService(db).get(transfer_id)
    if transfer is None:
        raise _not_found("Transfer")
    return TransferOut.model_validate(transfer)


@router.delete("/transfers/{transfer_id}")
def delete_transfer(transfer_id: str, db: Session = Depends(get_db)):
    if not TransferService(db).delete(transfer_id):
        raise _not_found("Transfer")
    return {"deleted": True}


# Dashboard


@router.get("/dashboard/summary", response_model=DashboardSummary)
def dashboard_summary(
    period: DateRange = Depends(period_from_query), db: Session = Depends(get_db)
):
    return DashboardService(db).summary(period)


@router.get("/dashboard/spending-by-category", response_model=SpendingReport)
def dashboard_spending_by_category(
    period: DateRange = Depends(period_from_query),
    max_categories: int = Query(10, ge=2, le=50),
    db: Session = Depends(get_db),
):
    return DashboardService(db).spending_breakdown(period, max_categories)


# Budgets


@router.get("/budgets")
def list_budgets(
    month: Optional[str] = None,
    category_id: Optional[int] = None,
    include_actual: bool = False,
    db: Session = Depends(get_db),
):
    service = BudgetService(db)
    month_date = parse_month(month) if month else None
    if include_actual:
        if month_date is None:
            raise InvalidArgument("month is required when include_actual is set")
        rows = service.budgets_with_actual(month_date)
        if category_id is not None:
            rows = [row for row in rows if row.category_id == category_id]
        return rows
    return [
        BudgetOut.model_validate(budget)
        for budget in service.list(month=month_date, category_id=category_id)
    ]


@router.post("/budgets", response_model=BudgetOut)
def upsert_budget(payload: BudgetIn, db: Session = Depends(get_db)):
    return BudgetService(db).upsert(payload)


@router.post("/budgets/copy", status_code=201)
def copy_budgets(payload: BudgetCopyIn, db: Session = Depends(get_db)):
    created = BudgetService(db).copy_to_month(payload.from_month, payload.to_month)
    return {
        "created": [BudgetOut.model_validate(budget) for budget in created],
        "count": len(created),
    }


@router.get("/budgets/{budget_id}", response_model=BudgetWithActual)
def get_budget(budget_id: int, db: Session = Depends(get_db)):
    budget = BudgetService(db).budget_with_actual(budget_id)
    if budget is None:
        raise _not_found("Budget")
    return budget


@router.patch("/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(budget_id: int, payload: BudgetUpdate, db: Session = Depends(get_db)):
    budget = BudgetService(db).update(budget_id, payload)
    if budget is None:
        raise _not_found("Budget")
    return budget


@router.delete("/budgets/{budget_id}")
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    if not BudgetService(db).delete(budget_id):
        raise _not_found("Budget")
    return {"deleted": True}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API with its own engine; run with ``uvicorn main:create_app --factory``."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)
    if settings.seed_default_categories:
        with session_scope(session_factory) as session:
            seed_default_categories(session)

    app = FastAPI(title="Finance Ledger")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"request_failed: path={request.url.path} error={exc!r}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    app.include_router(router)
    logger.info(f"app_started: database_url={settings.database_url}")
    return app
