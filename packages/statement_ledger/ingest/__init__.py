"""Statement ingestion: institution/format detection, parsing, normalization."""

from .errors import StatementFormatError
from .institutions import detect_institution
from .service import parse_statement

__all__ = ["StatementFormatError", "detect_institution", "parse_statement"]
