from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine

from app.infrastructure.db.engine import Base, create_db_engine
from app.infrastructure.db.models import accounts  # noqa: F401  registers tables on Base.metadata
from app.shared.config import get_settings


logger = logging.getLogger(__name__)


def create_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(text("CREATE SCHEMA IF NOT EXISTS public"))
    Base.metadata.create_all(engine)
    logger.info("init_db: schema_ready tables=%s", ",".join(sorted(Base.metadata.tables)))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    if not settings.postgres_dsn:
        raise SystemExit("POSTGRES_DSN is required.")
    engine = create_db_engine(settings.postgres_dsn)
    try:
        create_schema(engine)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
