"""
Alembic environment for the ledger schema.

The database URL always comes from the application settings
(DATABASE_URL), never from alembic.ini, so migrations run
against the same database the service writes to.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from delivery_ledger.config import get_settings
from delivery_ledger.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# delivery_ledger.models imports every model, so the metadata
# holds cashboxes, accounts, orders, transactions, entries and
# the audit log.
target_metadata = Base.metadata

DATABASE_URL = get_settings().DATABASE_URL
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER most columns in place
        render_as_batch=DATABASE_URL.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration as SQL without connecting."""
    _configure(
        url=DATABASE_URL,
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
