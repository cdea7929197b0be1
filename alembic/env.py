from logging.config import fileConfig

from sqlalchemy import create_engine, pool, text

from alembic import context
from src.config.settings import DatabaseSettings
from src.constants import DB_SCHEMA
from src.store.database import database_url
from src.store.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Same DATABASE_* env (and .env) as the service, over the sync psycopg driver.
DATABASE_URL = database_url(DatabaseSettings(), driver="psycopg")


def _only_sync_schema(name, type_, parent_names):
    return name == DB_SCHEMA if type_ == "schema" else True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        version_table_schema=DB_SCHEMA,
        include_schemas=True,
        include_name=_only_sync_schema,
        **kwargs,
    )


if context.is_offline_mode():
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = create_engine(DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        connection.commit()

        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
