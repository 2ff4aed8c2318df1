# revops/config.py
"""
Centralized Configuration Management

Version: 1.2.0
Features:
- Local .env support (python-dotenv) with OS environment fallback
- Singleton pattern for efficiency
- Type-safe getters with defaults
- Validation of rollup settings at load time
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from typing import Dict, Any, Optional
from dataclasses import dataclass

# Initialize logger
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

VALID_WINDOW_MODES = ('closed', 'created')


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class RollupSettings:
    """Rollup engine configuration container"""
    window_mode: str = "closed"
    health_score_scale: float = 30.0
    max_workers: int = 4
    timezone: str = "UTC"
    debug_timing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'window_mode': self.window_mode,
            'health_score_scale': self.health_score_scale,
            'max_workers': self.max_workers,
            'timezone': self.timezone,
            'debug_timing': self.debug_timing,
        }


class Config:
    """
    Centralized configuration management

    Usage:
        from revops.config import config

        settings = config.get_rollup_settings()
        level = config.get_app_setting("LOG_LEVEL", "INFO")

        if config.is_feature_enabled("DEBUG_TIMING"):
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

        self._load_config()
        self._initialized = True

    def _load_config(self):
        """Load configuration from .env (if any) and the environment"""
        self._load_env_file()
        self._load_rollup_config()
        self._load_app_config()
        self._log_config_status()

    def _load_env_file(self):
        """Load the first .env file found; never overrides exported variables"""
        env_paths = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for env_path in env_paths:
            if env_path.exists():
                load_dotenv(env_path)
                logger.info(f"Loaded .env from: {env_path}")
                break

    def _load_rollup_config(self):
        """Load and validate rollup engine settings"""
        window_mode = os.getenv("ROLLUP_WINDOW_MODE", "closed").strip().lower()
        if window_mode not in VALID_WINDOW_MODES:
            logger.error(f"Invalid ROLLUP_WINDOW_MODE: {window_mode}")
            raise ValueError(
                f"ROLLUP_WINDOW_MODE must be one of {VALID_WINDOW_MODES}, got {window_mode!r}"
            )

        scale = _env_float("HEALTH_SCORE_SCALE", "30")
        if scale <= 0:
            raise ValueError(f"HEALTH_SCORE_SCALE must be positive, got {scale}")

        workers = _env_int("ROLLUP_MAX_WORKERS", "4")
        if workers < 1:
            raise ValueError(f"ROLLUP_MAX_WORKERS must be >= 1, got {workers}")

        self._rollup_settings = RollupSettings(
            window_mode=window_mode,
            health_score_scale=scale,
            max_workers=workers,
            timezone=os.getenv("ROLLUP_TIMEZONE", "UTC"),
            debug_timing=_env_bool("ENABLE_DEBUG_TIMING"),
        )

    def _load_app_config(self):
        """Load application-level settings"""
        self._app_config = {
            # Logging
            "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),

            # Feature flags
            "ENABLE_DEBUG_TIMING": self._rollup_settings.debug_timing,
        }

    def _log_config_status(self):
        """Log configuration status"""
        s = self._rollup_settings
        logger.debug(f"Rollup window mode: {s.window_mode}")
        logger.debug(f"Health score scale: {s.health_score_scale:g}")
        logger.debug(f"Fan-out workers: {s.max_workers}")

    def reload(self) -> 'Config':
        """Re-read .env and environment variables"""
        self._load_config()
        return self

    # ==================== PUBLIC GETTERS ====================

    def get_rollup_settings(self) -> RollupSettings:
        """Get rollup engine settings"""
        return self._rollup_settings

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting with default"""
        return self._app_config.get(key, default)

    def is_feature_enabled(self, feature: str) -> bool:
        """Check if feature is enabled"""
        key = f"ENABLE_{feature.upper()}"
        return bool(self._app_config.get(key, False))

    # ==================== PROPERTIES ====================

    @property
    def rollup_settings(self) -> Dict[str, Any]:
        """Rollup settings as a plain dictionary"""
        return self._rollup_settings.to_dict()

    @property
    def app_config(self) -> Dict[str, Any]:
        return self._app_config.copy()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging the same way for every entry point."""
    resolved = level or config.get_app_setting("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(resolved).upper(), logging.INFO),
        format=LOG_FORMAT
    )


# ==================== SINGLETON INSTANCE ====================

config = Config()

__all__ = [
    'config',
    'Config',
    'RollupSettings',
    'configure_logging',
    'LOG_FORMAT',
]
