"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger domain models used by ``statement_ledger``.
"""

from .ledger import (
    Base,
    SlAccount,
    SlCategory,
    SlCategoryKeyword,
    SlRecurringKeyword,
    SlSetting,
    SlTransaction,
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
