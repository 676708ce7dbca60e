"""
Static configuration management for QuizRank.

Purpose
-------
Process-wide settings read once from environment variables (and a `.env`
file through python-dotenv) with defaults and bounds checking.

Responsibilities
----------------
- Parse and bound every setting; malformed values fall back to the default
  and are recorded in the load metrics
- Validate the settings the engine cannot run without (`validate()`)
- Create the logs and data directories

Non-Responsibilities
--------------------
- Runtime reconfiguration; call `Config.load()` again after changing the
  environment (tests do)
- Secrets storage

Architecture Notes
------------------
- Class-level attributes, no instances. `Config.load()` runs on import.
- `Config.validate()` is called by the bootstrap. In production an unknown
  cache backend or a non-http(s) remote URL raises ConfigurationError;
  elsewhere they are logged as warnings.

Configuration Categories
------------------------
1. Environment: environment name, debug flag, logging
2. Ranking: remote source, cache backend and key prefix, history retention
3. Database: SQLAlchemy async URL and pool settings (SQL cache backend)
4. Redis: connection and client settings (Redis cache backend)
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()

T = TypeVar("T")

_TRUE_VALUES = frozenset({"true", "yes", "1", "on"})
_FALSE_VALUES = frozenset({"false", "no", "0", "off"})


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        try:
            return cls(value.strip().lower())
        except ValueError:
            # Runs before setup_logging(); goes to the root logger
            logging.warning("Unknown environment '%s', defaulting to development", value)
            return cls.DEVELOPMENT


class CacheBackend(Enum):
    """Durable cache backends available to the ranking store."""

    DATABASE = "database"
    REDIS = "redis"
    MEMORY = "memory"


class _ConfigLoadMetrics:
    """Which settings came from the environment and which were rejected."""

    def __init__(self) -> None:
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.last_reload: Optional[str] = None

    def get_summary(self) -> Dict[str, Any]:
        from_env = sum(1 for loaded in self.env_vars_loaded.values() if loaded)
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": from_env,
            "from_defaults": len(self.env_vars_loaded) - from_env,
            "validation_errors": sorted(self.validation_errors),
            "last_reload": self.last_reload,
        }


def _parse_bool(raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError("not a boolean")


class Config:
    """
    Centralized static configuration for the QuizRank ranking engine.

    Usage
    -----
    >>> if Config.remote_enabled():
    ...     source = HttpRankingSource(Config.RANKING_REMOTE_URL, Config.RANKING_REMOTE_PATH)
    >>> logger.info("Config loaded", extra={"config": Config.get_config_summary()})
    """

    _metrics: Optional[_ConfigLoadMetrics] = None
    _enable_metrics: bool = True
    _validated: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True

    # Directories (project root holds logs/ and data/)
    PROJECT_ROOT = Path(__file__).resolve().parents[4]
    LOGS_DIR = PROJECT_ROOT / "logs"
    DATA_DIR = PROJECT_ROOT / "data"

    # Ranking
    RANKING_REMOTE_URL: str = ""
    RANKING_REMOTE_PATH: str = "/rankings/global/"
    RANKING_REMOTE_TIMEOUT_SECONDS: float = 10.0
    RANKING_CACHE_BACKEND: str = CacheBackend.DATABASE.value
    RANKING_CACHE_KEY_PREFIX: str = "quizrank:rankings"
    RANKING_HISTORY_RETENTION_DAYS: int = 90

    # Database (SQL cache backend)
    DATABASE_URL: str = ""
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 1800

    # Redis (Redis cache backend)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PASSWORD: Optional[str] = None
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_TIMEOUT: int = 5

    # =========================================================================
    # Parsing helpers
    # =========================================================================

    @classmethod
    def _env(
        cls,
        key: str,
        default: T,
        parse: Callable[[str], T],
        kind: str,
        min_val: Any = None,
        max_val: Any = None,
    ) -> T:
        """
        Read `key`, parse it and check bounds; any failure yields `default`
        and is recorded in the load metrics.
        """
        raw = os.getenv(key)
        if cls._metrics:
            cls._metrics.env_vars_loaded[key] = raw is not None
        if raw is None:
            return default

        try:
            value = parse(raw)
        except ValueError:
            return cls._reject(key, f"{key}='{raw}' is not a valid {kind}", default)

        if min_val is not None and value < min_val:
            return cls._reject(key, f"{key}={value} is below minimum {min_val}", default)
        if max_val is not None and value > max_val:
            return cls._reject(key, f"{key}={value} exceeds maximum {max_val}", default)
        return value

    @classmethod
    def _reject(cls, key: str, problem: str, default: T) -> T:
        logging.warning("%s, using default %r", problem, default)
        if cls._metrics:
            cls._metrics.validation_errors[key] = problem
        return default

    @classmethod
    def _safe_int(
        cls, key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None
    ) -> int:
        return cls._env(key, default, int, "integer", min_val, max_val)

    @classmethod
    def _safe_float(
        cls,
        key: str,
        default: float,
        min_val: Optional[float] = None,
        max_val: Optional[float] = None,
    ) -> float:
        return cls._env(key, default, float, "number", min_val, max_val)

    @classmethod
    def _safe_bool(cls, key: str, default: bool) -> bool:
        """true/false, yes/no, 1/0, on/off (case-insensitive)."""
        return cls._env(key, default, _parse_bool, "boolean")

    @classmethod
    def _safe_optional_bool(cls, key: str) -> Optional[bool]:
        return cls._env(key, None, _parse_bool, "boolean")

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        return cls._env(key, default, str, "string")

    # =========================================================================
    # Loading & validation
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """(Re)load every setting from the environment."""
        cls._metrics = _ConfigLoadMetrics() if cls._enable_metrics else None
        cls._validated = False

        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = cls._safe_bool("DEBUG", False)
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_optional_bool("LOG_JSON")
        cls.LOG_COLORS = cls._safe_bool("LOG_COLORS", True)

        cls.LOGS_DIR = Path(cls._safe_str("LOGS_DIR", str(cls.PROJECT_ROOT / "logs")))
        cls.DATA_DIR = Path(cls._safe_str("DATA_DIR", str(cls.PROJECT_ROOT / "data")))

        cls.RANKING_REMOTE_URL = cls._safe_str("RANKING_REMOTE_URL", "").strip().rstrip("/")
        cls.RANKING_REMOTE_PATH = cls._safe_str("RANKING_REMOTE_PATH", "/rankings/global/")
        cls.RANKING_REMOTE_TIMEOUT_SECONDS = cls._safe_float(
            "RANKING_REMOTE_TIMEOUT_SECONDS", 10.0, min_val=0.1, max_val=300.0
        )
        cls.RANKING_CACHE_BACKEND = cls._safe_str(
            "RANKING_CACHE_BACKEND", CacheBackend.DATABASE.value
        ).strip().lower()
        cls.RANKING_CACHE_KEY_PREFIX = cls._safe_str(
            "RANKING_CACHE_KEY_PREFIX", "quizrank:rankings"
        )
        cls.RANKING_HISTORY_RETENTION_DAYS = cls._safe_int(
            "RANKING_HISTORY_RETENTION_DAYS", 90, min_val=1, max_val=3650
        )

        cls.DATABASE_URL = cls._safe_str(
            "DATABASE_URL", f"sqlite+aiosqlite:///{cls.DATA_DIR / 'rankings.db'}"
        )
        cls.DATABASE_POOL_SIZE = cls._safe_int("DATABASE_POOL_SIZE", 5, min_val=1, max_val=200)
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_ECHO = cls._safe_bool("DATABASE_ECHO", False)
        cls.DATABASE_POOL_RECYCLE = cls._safe_int("DATABASE_POOL_RECYCLE", 1800, min_val=60)

        cls.REDIS_URL = cls._safe_str("REDIS_URL", "redis://localhost:6379/0")
        cls.REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None
        cls.REDIS_MAX_CONNECTIONS = cls._safe_int(
            "REDIS_MAX_CONNECTIONS", 20, min_val=1, max_val=500
        )
        cls.REDIS_SOCKET_TIMEOUT = cls._safe_int("REDIS_SOCKET_TIMEOUT", 5, min_val=1, max_val=60)

        if cls._metrics:
            cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls) -> None:
        """
        Check the settings the engine cannot run without and create the
        logs and data directories. Runs once per load.

        Raises
        ------
        ConfigurationError:
            In production, for an unknown cache backend or an invalid
            remote URL.
        """
        if cls._validated:
            return

        from quizrank.core.exceptions import ConfigurationError

        logger = logging.getLogger(__name__)
        problems: Dict[str, str] = {}

        backends = sorted(backend.value for backend in CacheBackend)
        if cls.RANKING_CACHE_BACKEND not in backends:
            problems["RANKING_CACHE_BACKEND"] = (
                f"unknown cache backend '{cls.RANKING_CACHE_BACKEND}', expected one of {backends}"
            )

        if cls.RANKING_REMOTE_URL:
            parsed = urlparse(cls.RANKING_REMOTE_URL)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                problems["RANKING_REMOTE_URL"] = (
                    f"expected an http(s) URL, got '{cls.RANKING_REMOTE_URL}'"
                )

        if cls.LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning("Invalid LOG_LEVEL '%s', using INFO", cls.LOG_LEVEL)
            cls.LOG_LEVEL = "INFO"

        for key, message in problems.items():
            if cls._metrics:
                cls._metrics.validation_errors[key] = message
            if cls.is_production():
                raise ConfigurationError(key, message)
            logger.warning("%s: %s", key, message)

        cls.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)

        if cls.is_production() and cls.DEBUG:
            logger.warning("DEBUG mode enabled in production")

        cls._validated = True
        if cls._metrics:
            logger.info("Configuration validated", extra={"config_load": cls._metrics.get_summary()})

    # =========================================================================
    # Accessors
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT == Environment.DEVELOPMENT.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    @classmethod
    def remote_enabled(cls) -> bool:
        return bool(cls.RANKING_REMOTE_URL)

    @classmethod
    def cache_backend(cls) -> CacheBackend:
        """Configured cache backend; unknown values fall back to memory."""
        try:
            return CacheBackend(cls.RANKING_CACHE_BACKEND)
        except ValueError:
            return CacheBackend.MEMORY

    @classmethod
    def get_metrics(cls) -> Optional[_ConfigLoadMetrics]:
        return cls._metrics

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-sensitive settings for startup logging."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "cache_backend": cls.RANKING_CACHE_BACKEND,
            "cache_key_prefix": cls.RANKING_CACHE_KEY_PREFIX,
            "remote_enabled": cls.remote_enabled(),
            "remote_timeout_seconds": cls.RANKING_REMOTE_TIMEOUT_SECONDS,
            "history_retention_days": cls.RANKING_HISTORY_RETENTION_DAYS,
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "redis_max_connections": cls.REDIS_MAX_CONNECTIONS,
            "redis_password_set": bool(cls.REDIS_PASSWORD),
        }


Config.load()
