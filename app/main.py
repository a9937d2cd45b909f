from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.container import build_container
from app.api.error_handling import register_exception_handlers
from app.api.routers.auth import router as auth_router
from app.api.routers.health import router as health_router
from app.shared.config import get_settings


logger = logging.getLogger(__name__)

DEVICE_HEADERS = ["X-Device-Id", "X-Device-Name", "X-Device-Type"]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    container = build_container(settings)
    app.state.container = container
    logger.info("app: started device_cap=%s", settings.device_cap)
    try:
        yield
    finally:
        container.close()
        app.state.container = None


def create_app() -> FastAPI:
    application = FastAPI(title="Resume Auth API", lifespan=lifespan)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=DEVICE_HEADERS,
    )
    register_exception_handlers(application)
    application.include_router(health_router)
    application.include_router(auth_router)
    return application


app = create_app()
