"""
alembic/env.py — Migrations for the Rankedle Tables
===================================================

Rankedle lives in the community site's PostgreSQL database, next to tables
it does not own.  Two things keep the migrations to our own schema:

* the revision history is stored in ``rankedle_alembic_version`` instead of
  the default ``alembic_version``, which the site may already use;
* autogenerate only compares tables declared on :data:`Base.metadata`, so
  the site's tables never show up as "removed".

``DATABASE_URL`` (from the environment or ``.env``) overrides the URL in
``alembic.ini``, the same variable the bot and the API read.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

load_dotenv()

config = context.config

database_url = os.getenv("DATABASE_URL")
if database_url:
    config.set_main_option("sqlalchemy.url", database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from rankedle.database.models import Base  # noqa: E402

target_metadata = Base.metadata
VERSION_TABLE = "rankedle_alembic_version"


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip reflected tables that Rankedle does not declare."""
    if type_ == "table" and reflected and compare_to is None:
        return name in target_metadata.tables
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        version_table=VERSION_TABLE,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
