"""Exceptions raised inside the ingestion layer.

They never escape :func:`statement_ledger.ingest.service.parse_statement`,
which turns them into a failed :class:`~statement_ledger.models.ParseResult`.
"""

from __future__ import annotations


class StatementFormatError(ValueError):
    """The file cannot be read as a statement of the expected kind."""


__all__ = ["StatementFormatError"]
