"""
Environment configuration for the Trust & Safety admin backend.
Loads settings from a .env file (python-dotenv) and the process environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)


def load_env_file(env_path: Optional[str] = None) -> bool:
    """
    Load environment variables from .env file

    Args:
        env_path: Path to .env file (default: .env in project root)

    Returns:
        True when a file was found and loaded
    """
    if env_path is None:
        env_path = str(Path(__file__).resolve().parents[2] / '.env')

    if not os.path.exists(env_path):
        logger.debug("No .env file found", extra={"path": str(env_path)})
        return False

    loaded = load_dotenv(env_path, override=False)
    logger.info("Loaded environment file", extra={"path": str(env_path)})
    return loaded


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ''):
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer in environment, using default", extra={
            "key": name, "value": raw, "default": default
        })
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw in (None, ''):
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class SafetyConfig:
    environment: str = 'development'
    frontend_origin: str = '*'

    # Appeal windows
    appeal_grace_period_days: int = 7
    appeal_retention_buffer_days: int = 7
    permanent_ban_appeal_retention_days: int = 90
    content_appeal_fallback_retention_days: int = 30
    report_retention_days: int = 30

    # Per-admin hourly action budget
    admin_action_soft_limit: int = 50
    admin_action_hard_limit: int = 100
    rate_limit_storage_uri: str = 'memory://'
    public_rate_limit: str = '30 per minute'
    public_rate_limit_enabled: bool = True

    # Archive
    archive_prefix: str = 'archives'
    archive_max_attempts: int = 3
    archive_delete_batch_size: int = 100
    archive_stream_token: Optional[str] = None

    # Optional timer-based expiry sweep (0 disables it)
    ban_sweep_interval_seconds: int = 0

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @classmethod
    def from_env(cls) -> "SafetyConfig":
        return cls(
            environment=os.getenv('ENVIRONMENT', 'development').lower(),
            frontend_origin=os.getenv('FRONTEND_ORIGIN', '*'),
            appeal_grace_period_days=_env_int('APPEAL_GRACE_PERIOD_DAYS', 7),
            appeal_retention_buffer_days=_env_int('APPEAL_RETENTION_BUFFER_DAYS', 7),
            permanent_ban_appeal_retention_days=_env_int('PERMANENT_BAN_APPEAL_RETENTION_DAYS', 90),
            content_appeal_fallback_retention_days=_env_int('CONTENT_APPEAL_FALLBACK_RETENTION_DAYS', 30),
            report_retention_days=_env_int('REPORT_RETENTION_DAYS', 30),
            admin_action_soft_limit=_env_int('ADMIN_ACTION_SOFT_LIMIT', 50),
            admin_action_hard_limit=_env_int('ADMIN_ACTION_HARD_LIMIT', 100),
            rate_limit_storage_uri=os.getenv('RATE_LIMIT_STORAGE_URI', 'memory://'),
            public_rate_limit=os.getenv('PUBLIC_RATE_LIMIT', '30 per minute'),
            public_rate_limit_enabled=_env_bool('PUBLIC_RATE_LIMIT_ENABLED', True),
            archive_prefix=os.getenv('ARCHIVE_PREFIX', 'archives').strip('/'),
            archive_max_attempts=max(1, _env_int('ARCHIVE_MAX_ATTEMPTS', 3)),
            archive_delete_batch_size=max(1, _env_int('ARCHIVE_DELETE_BATCH_SIZE', 100)),
            archive_stream_token=os.getenv('ARCHIVE_STREAM_TOKEN') or None,
            ban_sweep_interval_seconds=max(0, _env_int('BAN_SWEEP_INTERVAL_SECONDS', 0)),
        )
