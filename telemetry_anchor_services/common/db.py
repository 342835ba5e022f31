from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

# Singleton engine
_engine: Optional[Engine] = None


def utc_now_ms() -> int:
    return int(time.time() * 1000)


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)

    # Basic connection parameters in the log (never the password)
    logger.info(
        "[DB] Creating engine backend=%s host=%s db=%s user=%s",
        url.get_backend_name(),
        url.host,
        url.database,
        url.username,
    )

    engine = create_engine(url, pool_pre_ping=True, future=True)

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")

    return engine


def get_engine(settings: Settings | None = None) -> Engine:
    global _engine

    if _engine is not None:
        return _engine

    settings = settings or get_settings()
    _engine = build_engine(settings.database_url)
    return _engine


def dispose_engine() -> None:
    global _engine

    if _engine is not None:
        _engine.dispose()
        _engine = None
