from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

# Singleton engine
_engine: Optional[Engine] = None


def _safe_url(url: str) -> str:
    # No exponer credenciales en logs
    return url.split("@")[-1]


def get_engine(settings: Optional[Settings] = None) -> Optional[Engine]:
    """Obtiene el engine de la BD de series temporales (singleton).

    Returns:
        Engine si DATABASE_URL está configurado, None si no
    """
    global _engine

    if _engine is not None:
        return _engine

    settings = settings or get_settings()
    if not settings.database_url:
        logger.info("[DB] DATABASE_URL not configured - persistence falls back to memory")
        return None

    logger.info("[DB] Creating engine for %s", _safe_url(settings.database_url))
    engine = create_engine(settings.database_url, pool_pre_ping=True, pool_recycle=300)

    # Test de conexión: ayuda a ver en logs si el servicio realmente llega a la BD
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")

    _engine = engine
    return _engine


def reset_engine() -> None:
    """Descarta el engine singleton."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
