"""Alembic environment for the ledger schema.

The URL is ``DATABASE_URL`` (after loading the nearest ``.env`` without
overriding the process environment), else ``sqlalchemy.url`` from
alembic.ini. SQLite runs in batch mode so table alterations can be emitted
as copy-and-move.
"""

from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

from db import metadata as target_metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _resolve_url() -> str:
    # usecwd: works from the repo root and from inside libs/db.
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; export it, put it in .env, "
            "or set sqlalchemy.url in alembic.ini"
        )
    return url


def _configure(**kwargs: Any) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline(url: str) -> None:
    """Emit SQL to stdout instead of executing it."""

    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
        with context.begin_transaction():
            context.run_migrations()


_url = _resolve_url()
if context.is_offline_mode():
    run_migrations_offline(_url)
else:
    run_migrations_online(_url)
