from __future__ import annotations

from datetime import timedelta
import logging

from app.application.services.device_session_manager import DeviceSessionManager
from app.application.use_cases.expire_sessions import ExpireSessionsUseCase
from app.infrastructure.db.engine import create_db_engine
from app.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from app.infrastructure.security.refresh_token_hasher import Sha256RefreshTokenHasher
from app.shared.config import get_settings


logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    if not settings.postgres_dsn:
        raise SystemExit("POSTGRES_DSN is required.")

    engine = create_db_engine(settings.postgres_dsn)
    try:
        use_case = ExpireSessionsUseCase(
            session_manager=DeviceSessionManager(
                session_store=SqlAccountsRepository(engine),
                refresh_token_hasher=Sha256RefreshTokenHasher(),
                device_cap=settings.device_cap,
                session_validity=timedelta(days=settings.refresh_token_validity_days),
            )
        )
        count = use_case.execute()
        logger.info("expire_sessions: done expired=%s", count)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
