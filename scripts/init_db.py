from __future__ import annotations

import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from giftshuffle.config import Settings, configure_logging
from giftshuffle.db.engine import make_engine
from giftshuffle.models import Base

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(settings: Settings, target_revision: str = "head") -> None:
    """Migrate the configured gift shuffle database to ``target_revision``."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))
    logger.info(f"Upgrading {settings.database_url} to {target_revision}")
    command.upgrade(alembic_cfg, target_revision)


def missing_tables(settings: Settings) -> list[str]:
    """Return model tables that the migrated database does not have."""
    engine = make_engine(settings.database_url)
    try:
        present = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    return sorted(set(Base.metadata.tables) - present)


def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings)
    upgrade_db(settings)
    missing = missing_tables(settings)
    if missing:
        logger.error(f"Schema is missing tables after upgrade: {', '.join(missing)}")
        return 1
    logger.info(f"Schema up to date ({len(Base.metadata.tables)} tables)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
