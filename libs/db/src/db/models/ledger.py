from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Accounts: sl_accounts
# ---------------------------


class SlAccount(Base):
    __tablename__ = "sl_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    institution: Mapped[str] = mapped_column(String, nullable=False)
    # Last four digits for card accounts; NULL until a statement reveals it.
    card_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("institution", "card_number", name="uq_sl_accounts_institution_card"),
        # NULL card numbers never collide in the constraint above.
        Index(
            "uq_sl_accounts_institution_cardless",
            "institution",
            unique=True,
            sqlite_where=text("card_number IS NULL"),
            postgresql_where=text("card_number IS NULL"),
        ),
        CheckConstraint(
            "institution in ('BANK_HAPOALIM','BANK_LEUMI','ISRACARD','LEUMI_CARD','OTHER')",
            name="ck_sl_accounts_institution",
        ),
    )


# ---------------------------
# Taxonomy: sl_categories + keywords
# ---------------------------


class SlCategory(Base):
    __tablename__ = "sl_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Secondary (usually English) name used by fuzzy resolution.
    alias_name: Mapped[str | None] = mapped_column(String, nullable=True)
    kind: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'expense'"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    __table_args__ = (
        CheckConstraint("kind in ('expense','income','transfer')", name="ck_sl_categories_kind"),
    )


class SlCategoryKeyword(Base):
    __tablename__ = "sl_category_keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sl_categories.id", ondelete="CASCADE"), nullable=False
    )
    keyword: Mapped[str] = mapped_column(String, nullable=False)
    is_exact: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    __table_args__ = (
        UniqueConstraint("category_id", "keyword", name="uq_sl_category_keywords_category_kw"),
    )


# ---------------------------
# Core: sl_transactions
# ---------------------------


class SlTransaction(Base):
    __tablename__ = "sl_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sl_accounts.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    value_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Signed: expenses negative, income positive.
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    original_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    original_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sl_categories.id", ondelete="SET NULL"), nullable=True
    )
    is_auto_categorized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    is_excluded: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    # How many times an import repaired this row's sign in place.
    sign_corrections: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id", "date", "amount", "description", name="uq_sl_transactions_content"
        ),
        Index("ix_sl_transactions_account_ref", "account_id", "reference"),
        Index("ix_sl_transactions_category", "category_id"),
    )


class SlRecurringKeyword(Base):
    __tablename__ = "sl_recurring_keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class SlSetting(Base):
    __tablename__ = "sl_settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


__all__ = [
    "Base",
    "SlAccount",
    "SlCategory",
    "SlCategoryKeyword",
    "SlRecurringKeyword",
    "SlSetting",
    "SlTransaction",
]
