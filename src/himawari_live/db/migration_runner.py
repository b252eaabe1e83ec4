from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

log = logging.getLogger(__name__)

SCRIPT_LOCATION = Path(__file__).parent / "alembic"


def run_migrations(db_url: str) -> None:
    config = Config()
    config.set_main_option("script_location", str(SCRIPT_LOCATION))
    config.set_main_option("sqlalchemy.url", db_url)
    log.debug("Upgrading preferences schema at %s", db_url)
    command.upgrade(config, "head")
