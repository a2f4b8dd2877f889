"""initial ledger schema

Revision ID: 202410190900
Revises:
Create Date: 2024-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("expense", "income", name="categorytype"), nullable=False
        ),
        *_timestamps(),
        sa.UniqueConstraint("name", "type", name="uq_category_name_type"),
    )

    op.create_table(
        "savings_buckets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "type",
            sa.Enum(
                "expense", "income", "transfer", "savings", name="transactiontype"
            ),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column(
            "wallet_id",
            sa.Integer(),
            sa.ForeignKey("wallets.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
        ),
        sa.Column("transfer_id", sa.String(length=36)),
        sa.Column(
            "savings_bucket_id",
            sa.Integer(),
            sa.ForeignKey("savings_buckets.id", ondelete="RESTRICT"),
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "(type = 'transfer') = (transfer_id IS NOT NULL)",
            name="ck_transactions_transfer_link",
        ),
        sa.CheckConstraint(
            "type = 'transfer' OR amount > 0", name="ck_transactions_amount_positive"
        ),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_wallet_id", "transactions", ["wallet_id"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])
    op.create_index("ix_transactions_type", "transactions", ["type"])
    op.create_index("ix_transactions_transfer_id", "transactions", ["transfer_id"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("limit_amount", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("month", "category_id", name="uq_budget_month_category"),
        sa.CheckConstraint("limit_amount >= 0", name="ck_budgets_limit_positive"),
    )
    op.create_index("ix_budgets_month", "budgets", ["month"])
    op.create_index("ix_budgets_category_id", "budgets", ["category_id"])


def downgrade():
    op.drop_index("ix_budgets_category_id", table_name="budgets")
    op.drop_index("ix_budgets_month", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_transactions_transfer_id", table_name="transactions")
    op.drop_index("ix_transactions_type", table_name="transactions")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_wallet_id", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("savings_buckets")
    op.drop_table("categories")
    op.drop_table("wallets")
