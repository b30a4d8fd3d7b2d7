from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


@lru_cache(maxsize=4)
def get_engine(dsn: str):
    if dsn.startswith("sqlite"):
        return create_engine(dsn, future=True, connect_args={"check_same_thread": False})
    return create_engine(dsn, future=True, pool_pre_ping=True)


def init_schema(engine) -> None:
    """Creates the cache tables when they do not exist yet."""
    from app.infrastructure.db.models import cache  # noqa: F401

    Base.metadata.create_all(engine)
