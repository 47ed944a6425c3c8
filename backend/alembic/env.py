"""
Alembic Environment Configuration for CoachBridge

Customized for:
- Async SQLAlchemy/SQLModel
- Database URL resolved from application settings
- Only the billing tables, versioned in their own table
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

# Add the backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Import settings and models
from app.config.settings import settings
from app.infrastructure.db.database import resolve_database_url
from sqlmodel import SQLModel

# Import all models to register them with SQLModel.metadata
from app.infrastructure.db.models import (  # noqa: F401
    BillingCustomerModel,
    SubscriptionModel,
    CreditTransactionModel,
    ProcessedWebhookEvent,
)

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# SQLModel metadata for autogenerate
target_metadata = SQLModel.metadata

# The database is shared with Supabase and the web app; only the billing
# tables are managed here, tracked in their own version table.
BILLING_TABLES = frozenset(target_metadata.tables)
VERSION_TABLE = "billing_alembic_version"


def include_object(object, name, type_, reflected, compare_to):
    """Limit autogenerate to the billing tables and their indexes."""
    if type_ == "table":
        return name in BILLING_TABLES
    table = getattr(object, "table", None)
    if table is not None:
        return table.name in BILLING_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        version_table=VERSION_TABLE,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    _configure(
        url=resolve_database_url(settings),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    _configure(connection=connection, compare_server_default=True)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over a throwaway async engine."""
    engine = create_async_engine(
        resolve_database_url(settings),
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
