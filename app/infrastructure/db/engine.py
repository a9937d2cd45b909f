from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def create_db_engine(dsn: str) -> Engine:
    return create_engine(dsn, future=True, pool_pre_ping=True)
