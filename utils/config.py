# utils/config.py
"""
Centralized Configuration Management

Features:
- Support both local (.env) and Streamlit Cloud (secrets.toml)
- Singleton pattern for efficiency
- Type-safe getters with defaults
- Missing database settings mean offline mode, not a startup failure
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from typing import Dict, Any, Optional
from dataclasses import dataclass
from urllib.parse import quote_plus

# Initialize logger
logger = logging.getLogger(__name__)

# Shared by app.py and every page
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def is_running_on_streamlit_cloud() -> bool:
    """Detect if running on Streamlit Cloud"""
    try:
        import streamlit as st
        return hasattr(st, 'secrets') and len(st.secrets) > 0
    except Exception:
        return False


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class DatabaseConfig:
    """Database configuration container"""
    url: str = ""
    host: str = ""
    port: int = 3306
    user: str = ""
    password: str = ""
    database: str = "dsa_reporting"

    def is_configured(self) -> bool:
        return bool(self.url or (self.host and self.user))

    def get_url(self) -> Optional[str]:
        """SQLAlchemy URL; DATABASE_URL wins over the host/user parts."""
        if self.url:
            return self.url
        if not self.is_configured():
            return None
        password = quote_plus(str(self.password))
        return f"mysql+pymysql://{self.user}:{password}@{self.host}:{self.port}/{self.database}"

    def masked_url(self) -> str:
        if self.url:
            scheme = self.url.split('://', 1)[0]
            return f"{scheme}://***"
        return f"mysql+pymysql://{self.user}:***@{self.host}:{self.port}/{self.database}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database
        }


class Config:
    """
    Centralized configuration management

    Usage:
        from utils.config import config

        # Database (None when running offline)
        url = config.get_db_url()

        # App settings
        ttl = config.get_app_setting("SALES_CACHE_TTL_SECONDS", 300)

        # Feature flags
        if config.is_feature_enabled("REPROJECT_HIERARCHY"):
            ...
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.is_cloud = is_running_on_streamlit_cloud()
        self._load_config()
        self._initialized = True

    def _load_config(self):
        """Load configuration based on environment"""
        if self.is_cloud:
            self._load_cloud_config()
        else:
            self._load_local_config()

        self._load_app_config()
        self._log_config_status()

    def _load_cloud_config(self):
        """Load configuration from Streamlit Cloud secrets"""
        import streamlit as st

        db_secrets = st.secrets.get("DB_CONFIG", {})
        self._db_config = DatabaseConfig(
            url=db_secrets.get("url", st.secrets.get("DATABASE_URL", "")),
            host=db_secrets.get("host", ""),
            port=int(db_secrets.get("port", 3306)),
            user=db_secrets.get("user", ""),
            password=db_secrets.get("password", ""),
            database=db_secrets.get("database", "dsa_reporting")
        )
        self._settings_source = dict(st.secrets.get("APP", {}))

        logger.info("☁️ Running in STREAMLIT CLOUD")

    def _load_local_config(self):
        """Load configuration from local .env file"""
        env_paths = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for env_path in env_paths:
            if env_path.exists():
                load_dotenv(env_path)
                logger.info(f"Loaded .env from: {env_path}")
                break

        self._db_config = DatabaseConfig(
            url=os.getenv("DATABASE_URL", ""),
            host=os.getenv("DB_HOST", ""),
            port=int(os.getenv("DB_PORT", "3306")),
            user=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            database=os.getenv("DB_NAME", os.getenv("DB_DATABASE", "dsa_reporting"))
        )
        self._settings_source = {}

        if not self._db_config.is_configured():
            logger.warning("No database configured; the app will run offline on the local cache")

        logger.info("💻 Running in LOCAL environment")

    def _setting(self, key: str, default: str) -> str:
        """Cloud secrets [APP] section first, then the environment."""
        return str(self._settings_source.get(key, os.getenv(key, default)))

    def _load_app_config(self):
        """Load application-specific settings"""
        self._app_config = {
            # Session
            "SESSION_TIMEOUT_HOURS": int(self._setting("SESSION_TIMEOUT_HOURS", "8")),
            "DEFAULT_PASSWORD": self._setting("DEFAULT_PASSWORD", "123"),

            # Database pool
            "DB_POOL_SIZE": int(self._setting("DB_POOL_SIZE", "5")),
            "DB_POOL_RECYCLE": int(self._setting("DB_POOL_RECYCLE", "3600")),

            # Local cache / sync
            "CACHE_DIR": self._setting("CACHE_DIR", ".dsa_cache"),
            "SALES_CACHE_TTL_SECONDS": int(self._setting("SALES_CACHE_TTL_SECONDS", "300")),
            "USERS_CACHE_TTL_SECONDS": int(self._setting("USERS_CACHE_TTL_SECONDS", "86400")),
            "WRITE_BATCH_SIZE": int(self._setting("WRITE_BATCH_SIZE", "500")),
            "SUBSCRIPTION_POLL_SECONDS": int(self._setting("SUBSCRIPTION_POLL_SECONDS", "15")),

            # Business logic
            "PLACEHOLDER_MAX_SPAN_DAYS": int(self._setting("PLACEHOLDER_MAX_SPAN_DAYS", "31")),
            "CLEANUP_THRESHOLD_DAYS": int(self._setting("CLEANUP_THRESHOLD_DAYS", "60")),

            # Feature flags
            "ENABLE_REPROJECT_HIERARCHY": _as_bool(self._setting("ENABLE_REPROJECT_HIERARCHY", "true")),
            "ENABLE_REQUIRE_APPROVAL_FOR_DSA_EDITS": _as_bool(
                self._setting("ENABLE_REQUIRE_APPROVAL_FOR_DSA_EDITS", "false")
            ),
            "ENABLE_DEBUG_MODE": _as_bool(self._setting("ENABLE_DEBUG_MODE", "false")),
        }

    def _log_config_status(self):
        """Log configuration status"""
        if self._db_config.is_configured():
            logger.info(f"✅ Database: {self._db_config.masked_url()}")
        else:
            logger.info("⚠️ Database: Not configured (offline mode)")
        logger.info(f"✅ Cache dir: {self._app_config['CACHE_DIR']}")

    # ==================== PUBLIC GETTERS ====================

    def get_db_config(self) -> Dict[str, Any]:
        """Get database configuration as dictionary"""
        return self._db_config.to_dict()

    def get_db_url(self) -> Optional[str]:
        """SQLAlchemy URL, or None when no database is configured"""
        return self._db_config.get_url()

    def get_masked_db_url(self) -> str:
        return self._db_config.masked_url()

    def is_db_configured(self) -> bool:
        return self._db_config.is_configured()

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting with default"""
        return self._app_config.get(key, default)

    def is_feature_enabled(self, feature: str) -> bool:
        """Check if feature is enabled"""
        key = f"ENABLE_{feature.upper()}"
        return self._app_config.get(key, True)

    # ==================== PROPERTIES ====================

    @property
    def db_config(self) -> Dict[str, Any]:
        return self.get_db_config()

    @property
    def app_config(self) -> Dict[str, Any]:
        return self._app_config.copy()


# ==================== SINGLETON INSTANCE ====================

config = Config()

IS_RUNNING_ON_CLOUD = config.is_cloud
APP_CONFIG = config.app_config

__all__ = [
    'config',
    'Config',
    'DatabaseConfig',
    'IS_RUNNING_ON_CLOUD',
    'APP_CONFIG',
    'LOG_FORMAT',
]
