"""
Base Service Class.
Provides common utility methods for all services.
"""
from datetime import datetime, timezone
from typing import Callable, Optional
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseService:
    """
    Abstract base class for all services.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now

    def now(self) -> datetime:
        """Return current server time (UTC, timezone-aware)."""
        return self._clock()
