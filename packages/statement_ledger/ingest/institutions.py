"""Institution detection and per-institution parsing configuration.

Detection is a pure function of the file bytes: decode (UTF-8, falling back to
the Hebrew windows-1255 code page), lower-case, and test an ordered marker
table. The first institution with a matching marker wins; nothing matching
means :attr:`Institution.OTHER`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from ..logging_setup import get_logger
from ..models import Institution

_logger = get_logger("statement_ledger.ingest.institutions")

HEBREW_CODEPAGE = "windows-1255"


@dataclass(frozen=True, slots=True)
class InstitutionConfig:
    institution: Institution
    encoding: str
    delimiter: str = ","


_CONFIGS: dict[Institution, InstitutionConfig] = {
    Institution.BANK_HAPOALIM: InstitutionConfig(Institution.BANK_HAPOALIM, HEBREW_CODEPAGE),
    Institution.BANK_LEUMI: InstitutionConfig(Institution.BANK_LEUMI, "utf-8"),
    Institution.ISRACARD: InstitutionConfig(Institution.ISRACARD, "utf-8"),
    Institution.LEUMI_CARD: InstitutionConfig(Institution.LEUMI_CARD, HEBREW_CODEPAGE),
    Institution.OTHER: InstitutionConfig(Institution.OTHER, "utf-8"),
}

# Order matters: generic words such as "מקס" only count once the more specific
# bank markers have had a chance.
_INSTITUTION_MARKERS: tuple[tuple[Institution, tuple[str, ...]], ...] = (
    (Institution.BANK_HAPOALIM, ("בנק הפועלים", "hapoalim", "פועלים")),
    (Institution.BANK_LEUMI, ("בנק לאומי", "leumi bank", "לאומי לישראל")),
    (
        Institution.ISRACARD,
        ("ישראכרט", "isracard", "כרטיסי ישראל", "פירוט עסקאות", "מועד חיוב"),
    ),
    (Institution.LEUMI_CARD, ("לאומי קארד", "leumi card", "לאומי-קארד", "max לאומי", "מקס")),
)

# Last-four extraction from free text, most specific first.
_TEXT_CARD_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"כרטיס.*?(\d{4})\s*$", re.MULTILINE),
    re.compile(r"4 ספרות.*?(\d{4})"),
    re.compile(r"מספר כרטיס.*?(\d{4})"),
    re.compile(r"card.*?(\d{4})", re.IGNORECASE),
    re.compile(r"\*{4,}(\d{4})"),
    re.compile(r"xxxx.*?(\d{4})", re.IGNORECASE),
    re.compile(r"[-–]\s*(\d{4})(?:\s|$)", re.MULTILINE),
    re.compile(r"(\d{4})\s*$", re.MULTILINE),
)

_CELL_CARD_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[-–]\s*(\d{4})\s*$"),
    re.compile(r"כרטיס.*?(\d{4})"),
    re.compile(r"card.*?(\d{4})", re.IGNORECASE),
    re.compile(r"\*{4,}(\d{4})"),
)

_PREAMBLE_SCAN_ROWS = 10


def get_config(institution: Institution) -> InstitutionConfig:
    return _CONFIGS[institution]


def decode_bytes(content: bytes, encoding: str = HEBREW_CODEPAGE) -> str:
    """Decode ``content`` as strict UTF-8, else with ``encoding``.

    Hebrew windows-1255 bytes are practically never valid UTF-8, so trying
    UTF-8 first is safe even for institutions configured with the 8-bit code
    page. A leading byte-order mark is stripped. As a last resort the bytes
    are decoded as UTF-8 with replacement characters so callers never see a
    ``UnicodeDecodeError``.
    """

    candidates = ["utf-8"]
    for alt in (encoding, HEBREW_CODEPAGE):
        if alt.lower() not in candidates:
            candidates.append(alt.lower())
    for enc in candidates:
        try:
            text = content.decode(enc)
        except UnicodeDecodeError:
            continue
        return text.lstrip("\ufeff")
    return content.decode("utf-8", errors="replace").lstrip("\ufeff")


def detect_institution(content: bytes, filename: str | None = None) -> Institution:
    """Classify a statement by textual markers; ``OTHER`` when nothing matches."""

    institution = detect_institution_in_text(decode_bytes(content))
    _logger.debug("detect_institution:done file=%s institution=%s", filename, institution)
    return institution


def detect_institution_in_text(text: str) -> Institution:
    """Marker lookup over already-decoded text (e.g. spreadsheet cells)."""

    lowered = text.lower()
    for institution, markers in _INSTITUTION_MARKERS:
        if any(marker in lowered for marker in markers):
            return institution
    return Institution.OTHER


def extract_card_number_from_text(text: str, institution: Institution) -> str | None:
    """Return the card's last four digits found in a delimited-text preamble."""

    if not institution.is_credit_card:
        return None
    for pattern in _TEXT_CARD_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return None


def extract_card_number_from_rows(
    rows: Iterable[Sequence[Any]], institution: Institution
) -> str | None:
    """Same as :func:`extract_card_number_from_text` for spreadsheet cells."""

    if not institution.is_credit_card:
        return None
    for row_index, row in enumerate(rows):
        if row_index >= _PREAMBLE_SCAN_ROWS:
            break
        for cell in row:
            if cell is None:
                continue
            value = str(cell)
            for pattern in _CELL_CARD_PATTERNS:
                m = pattern.search(value)
                if m:
                    return m.group(1)
    return None


__all__ = [
    "HEBREW_CODEPAGE",
    "InstitutionConfig",
    "decode_bytes",
    "detect_institution",
    "detect_institution_in_text",
    "extract_card_number_from_rows",
    "extract_card_number_from_text",
    "get_config",
]
