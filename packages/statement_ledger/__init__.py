"""Public interface for the ``statement_ledger`` package.

This module only re-exports the import surface used by the CLI and by
embedding applications: statement parsing and import, categorization,
manual/bulk actions, and recurring-payment suggestions.
"""

from .bulk import (
    bulk_set_category,
    bulk_set_recurring,
    set_transaction_category,
    set_transaction_recurring,
)
from .categorize import (
    auto_categorize,
    categorize_descriptions,
    identify_descriptions,
    recategorize_transaction,
)
from .importer import import_files, import_statement
from .ingest import detect_institution, parse_statement
from .models import (
    CategorySnapshot,
    ImportResult,
    Institution,
    ParsedTransaction,
    ParseResult,
    PropagationOutcome,
    RecurringSuggestion,
)
from .recurring import apply_suggestion, recurring_suggestions
from .snooze import SettingsSnoozeStore

__all__ = [
    # Ingestion
    "detect_institution",
    "import_files",
    "import_statement",
    "parse_statement",
    # Categorization
    "auto_categorize",
    "categorize_descriptions",
    "identify_descriptions",
    "recategorize_transaction",
    # Manual and bulk actions
    "bulk_set_category",
    "bulk_set_recurring",
    "set_transaction_category",
    "set_transaction_recurring",
    # Recurring suggestions
    "apply_suggestion",
    "recurring_suggestions",
    "SettingsSnoozeStore",
    # Models / types
    "CategorySnapshot",
    "ImportResult",
    "Institution",
    "ParseResult",
    "ParsedTransaction",
    "PropagationOutcome",
    "RecurringSuggestion",
]
