"""
Security service for handling Rate Limiting and other security extensions.

Two layers:
- Flask-Limiter throttles public endpoints per client IP.
- AdminRateLimiter meters state-changing admin actions per admin per hour,
  using the same ``limits`` storage backends Flask-Limiter runs on.
"""
import time
from typing import Optional

from flask import Flask
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from safety_admin.common.errors import RateLimitError
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)

ADMIN_ACTION_NAMESPACE = 'admin-actions'
LIMITER_EXTENSION = 'safety_admin.limiter'


def configure_limiter(app: Flask, storage_uri: str = "memory://", enabled: bool = True) -> Limiter:
    """
    Create the request limiter for this app instance.
    """
    logger.info("Initializing Flask-Limiter for request rate limiting", extra={
        'limiter_storage': storage_uri.split('://', 1)[0],
        'limiter_enabled': enabled,
    })
    app.config['RATELIMIT_ENABLED'] = enabled
    limiter = Limiter(
        key_func=get_remote_address,
        storage_uri=storage_uri,
        strategy="fixed-window",
    )
    limiter.init_app(app)
    # Rate-limited views only hold a weak reference to the limiter.
    app.extensions[LIMITER_EXTENSION] = limiter
    return limiter


class AdminRateLimiter:
    """
    Hourly budget of moderation actions per admin.

    Crossing the soft limit logs a warning; crossing the hard limit raises
    RateLimitError with the seconds left in the current window.
    """

    def __init__(self, soft_limit: int = 50, hard_limit: int = 100,
                 storage_uri: str = "memory://"):
        if soft_limit > hard_limit:
            soft_limit = hard_limit
        self.soft_limit = soft_limit
        self.hard_limit = hard_limit
        self._storage = storage_from_string(storage_uri)
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._hard = parse(f"{hard_limit}/hour")

    def check(self, admin_id: str, action: Optional[str] = None) -> int:
        """Count one action for ``admin_id``; returns actions used this window."""
        if not self._limiter.hit(self._hard, ADMIN_ACTION_NAMESPACE, admin_id):
            stats = self._limiter.get_window_stats(self._hard, ADMIN_ACTION_NAMESPACE, admin_id)
            retry_after = int(stats.reset_time - time.time())
            logger.warning("Admin hourly action limit exceeded", extra={
                'admin_id': admin_id,
                'admin_action': action,
                'hard_limit': self.hard_limit,
                'retry_after': retry_after,
            })
            raise RateLimitError(
                f"Too many admin actions. Limit is {self.hard_limit} per hour.",
                retry_after=retry_after,
            )

        stats = self._limiter.get_window_stats(self._hard, ADMIN_ACTION_NAMESPACE, admin_id)
        used = self.hard_limit - stats.remaining
        if used > self.soft_limit:
            logger.warning("Admin approaching hourly action limit", extra={
                'admin_id': admin_id,
                'admin_action': action,
                'actions_used': used,
                'soft_limit': self.soft_limit,
                'hard_limit': self.hard_limit,
            })
        return used
