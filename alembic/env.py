from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from alembic import context
from dotenv import load_dotenv

# Running `alembic` from a checkout: import giftshuffle from the repo root.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from giftshuffle.config import Settings  # noqa: E402
from giftshuffle.db.engine import make_engine  # noqa: E402
from giftshuffle.models import Base  # noqa: E402 - registers every table

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = Settings.from_env()
config.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))


def _options(is_sqlite: bool) -> dict[str, Any]:
    # Constraint names come from the metadata naming convention; SQLite needs
    # batch mode to alter them.
    return {
        "target_metadata": Base.metadata,
        "compare_type": True,
        "render_as_batch": is_sqlite,
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting to the database."""
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_options(settings.database_url.startswith("sqlite")),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(settings.database_url)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                **_options(connection.dialect.name == "sqlite"),
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
