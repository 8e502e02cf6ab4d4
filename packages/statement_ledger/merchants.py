"""Merchant signatures: a short normalized token sequence per description.

Bank descriptions carry terminal ids, branch numbers, and payment-rail noise
("העברה", "VISA", ...). The signature keeps the first two meaningful tokens so
``"SUPERMART 00123"`` and ``"SUPERMART 00456"`` cluster together. It is used
for recurring-pattern clustering, for "apply to similar" bulk actions, and as
the keyword learned after a categorization.
"""

from __future__ import annotations

import re
import unicodedata

SIGNATURE_TOKENS: int = 2
MIN_TOKEN_LENGTH: int = 3
MIN_SIGNATURE_CHARS: int = 2

# Payment-rail and bank words that say nothing about the counterparty.
GENERIC_TOKENS: frozenset[str] = frozenset(
    {
        "העברה",
        "העברות",
        "חיוב",
        "זיכוי",
        "תשלום",
        "תשלומים",
        "עסקה",
        "עסקאות",
        "עמלה",
        "עמלות",
        "משיכה",
        "הפקדה",
        "אשראי",
        "כרטיס",
        "ויזה",
        "מאסטרקארד",
        "mastercard",
        "visa",
        "direct",
        "debit",
        "credit",
        "bit",
        "ביט",
        "paybox",
        "פייבוקס",
        "pepper",
        "פפר",
        "bank",
        "בנק",
        "הפועלים",
        "לאומי",
        "ישראכרט",
        "מסטרקארד",
        "cal",
        "max",
        "הוראת",
        "קבע",
        "העב",
        "חיובים",
    }
)

_QUOTES_RE = re.compile(r"[\"'`׳״]")
_NON_WORD_RE = re.compile(r"[\W_]+")
_DIGITS_RE = re.compile(r"\d+")


def normalize_text(text: str | None) -> str:
    """Case-fold, drop diacritics (Latin accents and Hebrew niqqud) and quotes,
    turn punctuation into spaces and collapse whitespace."""

    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _QUOTES_RE.sub("", stripped.casefold())
    return " ".join(_NON_WORD_RE.sub(" ", stripped).split())


def tokenize(text: str | None) -> list[str]:
    return [t for t in normalize_text(text).split() if len(t) > 1]


def merchant_signature(description: str | None) -> str | None:
    """Return the signature of ``description``, or ``None`` if too little is left.

    Digits are removed, tokens shorter than :data:`MIN_TOKEN_LENGTH` dropped,
    generic banking words skipped (unless nothing else remains), and the first
    :data:`SIGNATURE_TOKENS` tokens kept.
    """

    text = _DIGITS_RE.sub(" ", normalize_text(description))
    tokens = [t for t in text.split() if len(t) >= MIN_TOKEN_LENGTH]
    meaningful = [t for t in tokens if t not in GENERIC_TOKENS] or tokens
    signature = " ".join(meaningful[:SIGNATURE_TOKENS])
    if len(signature.replace(" ", "")) < MIN_SIGNATURE_CHARS:
        return None
    return signature


def same_merchant(a: str | None, b: str | None) -> bool:
    """True when both descriptions have the same (non-empty) signature."""

    sig_a = merchant_signature(a)
    if sig_a is None:
        return False
    sig_b = merchant_signature(b)
    if sig_b is None:
        return False
    return sig_a == sig_b or sig_a.replace(" ", "") == sig_b.replace(" ", "")


__all__ = [
    "GENERIC_TOKENS",
    "merchant_signature",
    "normalize_text",
    "same_merchant",
    "tokenize",
]
