"""Environment-driven settings.

Values are read from the process environment at call time (the CLI loads a
local ``.env`` first). Nothing here runs at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_MODEL = "gpt-5-mini"


@dataclass(frozen=True, slots=True)
class Settings:
    """Tunables for one process.

    ``database_url`` is optional here because pure parsing never touches the
    database; DB entry points raise when it is missing.
    """

    database_url: str | None
    categorize_model: str
    categorize_chunk_size: int
    auto_categorize_limit: int
    propagation_limit: int
    import_concurrency: int


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        categorize_model=os.getenv("SL_CATEGORIZE_MODEL") or _DEFAULT_MODEL,
        categorize_chunk_size=_env_int("SL_CATEGORIZE_CHUNK_SIZE", 40),
        auto_categorize_limit=_env_int("SL_AUTO_CATEGORIZE_LIMIT", 100),
        propagation_limit=_env_int("SL_PROPAGATION_LIMIT", 200),
        import_concurrency=_env_int("SL_IMPORT_CONCURRENCY", 4),
    )


__all__ = ["Settings", "load_settings"]
