from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from worksuite.config import settings


def _create_engine(url: str) -> AsyncEngine:
  kwargs: dict[str, Any] = {"echo": settings.db_echo}
  if url.startswith("sqlite"):
    # SQLite gains nothing from pooling; one connection per checkout.
    kwargs.update(poolclass=NullPool, connect_args={"check_same_thread": False})
  else:
    kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True, pool_recycle=300)
  return create_async_engine(url, **kwargs)


# Connections are opened lazily on first checkout, not here.
engine = _create_engine(settings.database_url)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
