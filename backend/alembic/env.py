from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from config import DATABASE_PATH

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def get_url() -> str:
    """sqlalchemy.url when set (alembic.ini or the caller), otherwise TASKFLOW_DB_PATH."""
    return config.get_main_option("sqlalchemy.url") or f"sqlite:///{DATABASE_PATH}"


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching the database."""
    context.configure(
        url=get_url(),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(get_url())
    # Batch mode so ALTER TABLE works on SQLite
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=None, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
