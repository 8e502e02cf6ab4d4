# ruff: noqa: I001
"""Ledger core tables: accounts, taxonomy, transactions, settings.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-18
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "sl_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("institution", sa.String(), nullable=False),
        sa.Column("card_number", sa.String(16), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "institution", "card_number", name="uq_sl_accounts_institution_card"
        ),
        sa.CheckConstraint(
            "institution in ('BANK_HAPOALIM','BANK_LEUMI','ISRACARD','LEUMI_CARD','OTHER')",
            name="ck_sl_accounts_institution",
        ),
    )
    op.create_index(
        "uq_sl_accounts_institution_cardless",
        "sl_accounts",
        ["institution"],
        unique=True,
        sqlite_where=sa.text("card_number IS NULL"),
        postgresql_where=sa.text("card_number IS NULL"),
    )

    op.create_table(
        "sl_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("alias_name", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=False, server_default=sa.text("'expense'")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint(
            "kind in ('expense','income','transfer')", name="ck_sl_categories_kind"
        ),
    )

    op.create_table(
        "sl_category_keywords",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("sl_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("keyword", sa.String(), nullable=False),
        sa.Column("is_exact", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint(
            "category_id", "keyword", name="uq_sl_category_keywords_category_kw"
        ),
    )

    op.create_table(
        "sl_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("sl_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("value_date", sa.Date(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("original_currency", sa.String(8), nullable=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("sl_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "is_auto_categorized", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_excluded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sign_corrections", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "account_id", "date", "amount", "description", name="uq_sl_transactions_content"
        ),
    )
    op.create_index(
        "ix_sl_transactions_account_ref", "sl_transactions", ["account_id", "reference"]
    )
    op.create_index("ix_sl_transactions_category", "sl_transactions", ["category_id"])

    op.create_table(
        "sl_recurring_keywords",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("keyword", sa.String(), nullable=False, unique=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "sl_settings",
        sa.Column("key", sa.String(), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        _timestamp("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("sl_settings")
    op.drop_table("sl_recurring_keywords")
    op.drop_index("ix_sl_transactions_category", table_name="sl_transactions")
    op.drop_index("ix_sl_transactions_account_ref", table_name="sl_transactions")
    op.drop_table("sl_transactions")
    op.drop_table("sl_category_keywords")
    op.drop_table("sl_categories")
    op.drop_index("uq_sl_accounts_institution_cardless", table_name="sl_accounts")
    op.drop_table("sl_accounts")
