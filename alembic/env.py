from logging.config import fileConfig

from alembic import context
from alembic.config import Config
from sqlalchemy import create_engine, pool

from src.core.config import settings
from src.core.db import Base
from src.todo.models import Board, BoardMember, Task  # noqa: F401
from src.users.models import User  # noqa: F401


def use_default_db_url_if_needed(config: Config) -> None:
    # sqlalchemy.url gets set explicitly by the integration tests conftest; otherwise the
    # url comes from settings (DATABASE_URL or the DB_* pieces in .env).
    # DO NOT set the db url in alembic.ini
    if not config.get_main_option("sqlalchemy.url"):
        config.set_main_option("sqlalchemy.url", settings.db_conn_url)


def run_migrations_offline(config: Config) -> None:
    """Emit the migration SQL to the script output without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(config: Config) -> None:
    engine = create_engine(config.get_main_option("sqlalchemy.url"), poolclass=pool.NullPool)

    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


# Base model class used for revision autogeneration
target_metadata = Base.metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

use_default_db_url_if_needed(config)

if context.is_offline_mode():
    run_migrations_offline(config)
else:
    run_migrations_online(config)
