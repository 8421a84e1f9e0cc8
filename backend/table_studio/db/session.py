"""Database engine for direct record access."""

from functools import lru_cache

from sqlalchemy import Engine, create_engine

from table_studio.config import get_settings


@lru_cache
def get_engine() -> Engine | None:
    """Return the shared engine, or ``None`` when no database URL is configured."""

    settings = get_settings()
    if not settings.database_url:
        return None
    return create_engine(settings.database_url, pool_pre_ping=True, future=True)
