# utils/db.py
"""
Database Connection Management

Features:
- Singleton pattern with thread-safe double-checked locking
- Connection pooling with auto-reconnect
- Health check utilities
- No engine (None) when no database is configured: callers run offline
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool
from sqlalchemy.exc import OperationalError, SQLAlchemyError
import logging
import threading
from typing import Tuple, Optional, Dict, Any

from .config import config

logger = logging.getLogger(__name__)

# ==================== SINGLETON ENGINE ====================

_engine = None
_engine_lock = threading.Lock()


def get_db_engine() -> Optional[Engine]:
    """
    Get SQLAlchemy database engine (singleton pattern)

    Thread-safe implementation using double-checked locking.
    Reuses the same engine across all calls to prevent
    connection pool exhaustion.

    Returns:
        SQLAlchemy Engine instance, or None when no database is configured
    """
    global _engine

    if _engine is None and config.is_db_configured():
        with _engine_lock:
            if _engine is None:
                _engine = _create_engine()

    return _engine


def _create_engine() -> Engine:
    """Create new database engine with configured settings"""
    url = config.get_db_url()
    app_config = config.app_config

    logger.info(f"🔌 Creating database engine: {config.get_masked_db_url()}")

    if url.startswith("sqlite"):
        # SQLite picks its own pool class
        engine = create_engine(url, echo=False)
        logger.info("✅ Database engine created (sqlite)")
        return engine

    pool_size = app_config.get("DB_POOL_SIZE", 5)
    pool_recycle = app_config.get("DB_POOL_RECYCLE", 3600)

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,  # Auto-reconnect on stale connections
        echo=False
    )

    logger.info(f"✅ Database engine created (pool_size={pool_size}, recycle={pool_recycle}s)")

    return engine


# ==================== CONNECTION MANAGEMENT ====================

def check_db_connection() -> Tuple[bool, Optional[str]]:
    """
    Check if database connection is healthy

    Returns:
        Tuple of (is_connected: bool, error_message: str or None)
    """
    engine = get_db_engine()
    if engine is None:
        return False, "No database configured. Working offline on the local cache."

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, None
    except OperationalError as e:
        logger.error(f"❌ Database connection failed: {e}")
        return False, "Cannot connect to database. Please check your network/VPN connection."
    except SQLAlchemyError as e:
        logger.error(f"❌ Database error: {e}")
        return False, f"Database error: {str(e)}"


def get_connection_pool_status() -> Dict[str, Any]:
    """
    Get connection pool statistics for monitoring

    Returns:
        Dictionary with pool statistics
    """
    if _engine is None:
        return {"status": "not_initialized"}

    pool = _engine.pool
    if not isinstance(pool, QueuePool):
        return {"status": "active", "pool": type(pool).__name__}

    return {
        "status": "active",
        "pool_size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "overflow": pool.overflow(),
    }


# ==================== EXPORTS ====================

__all__ = [
    'get_db_engine',
    'check_db_connection',
    'get_connection_pool_status',
]
