"""
Alembic environment for the donations database.
The URL comes from sqlalchemy.url when a caller sets one, else DATABASE_URL.
"""

from logging.config import fileConfig
import os
import sys

from sqlalchemy import create_engine
from alembic import context

from dotenv import load_dotenv
load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from database import Base, DATABASE_URL  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

url = config.get_main_option('sqlalchemy.url') or DATABASE_URL


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database"""
    context.configure(url=url, target_metadata=Base.metadata, literal_binds=True)

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # SQLite cannot ALTER most columns in place; batch mode rebuilds the table
    engine = create_engine(url)
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            render_as_batch=url.startswith('sqlite'),
            compare_type=True
        )
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
