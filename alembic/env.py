import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool

from alembic import context

# Load .env so LEDGER_* vars are available
load_dotenv()

# Alembic Config object
config = context.config

# Python logging from ini file
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Build DB URL from environment (sync driver; the bot itself uses aiosqlite)
LEDGER_PATH = os.getenv("LEDGER_PATH", "registry.db")

DATABASE_URL = f"sqlite:///{LEDGER_PATH}"

# Import metadata for autogenerate
from src.ledger.models import Base  # noqa: E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(DATABASE_URL, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
