"""Migration environment for the preferences database, driven by migration_runner."""

from alembic import context
from sqlalchemy import create_engine, pool

from himawari_live.config import DATABASE_URL
from himawari_live.db.orm import Base

config = context.config


def run_migrations_online() -> None:
    url = config.get_main_option("sqlalchemy.url") or DATABASE_URL
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # sqlite has no in-place ALTER COLUMN
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


run_migrations_online()
