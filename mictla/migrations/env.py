from __future__ import annotations

import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel
from alembic import context

from mictla.core.db import DEFAULT_DATABASE_URL, normalize_sqlite_url

# table models register themselves on SQLModel.metadata
from mictla.modules.memorials import models as _memorials  # noqa: F401
from mictla.modules.family_groups import models as _family_groups  # noqa: F401
from mictla.modules.offerings import models as _offerings  # noqa: F401
from mictla.modules.preferences import models as _preferences  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def get_url() -> str:
    # programmatic runs (EntityStore.init) pass the url in; CLI runs read the env
    url = config.get_main_option("sqlalchemy.url") or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    return normalize_sqlite_url(url)


def run_migrations_offline() -> None:
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
