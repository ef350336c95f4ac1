from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class UnbanSource(str, Enum):
    MANUAL = 'manual'
    AUTO = 'auto'


@dataclass
class UserProfile:
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    auth_uid: Optional[str] = None
    is_active: bool = True
    is_banned: bool = False
    ban_reason: Optional[str] = None
    banned_at: Optional[datetime] = None
    banned_by: Optional[str] = None
    ban_duration: Optional[int] = None
    ban_duration_unit: Optional[str] = None
    ban_duration_display: Optional[str] = None
    ban_expires_at: Optional[datetime] = None
    violation_count: int = 0
    updated_at: Optional[datetime] = None
    # Firestore snapshot version used for conditional writes.
    update_time: Any = field(default=None, repr=False, compare=False)

    @property
    def account_name(self) -> str:
        """Identity-provider account; the profile key is only a fallback."""
        return self.auth_uid or self.id

    @property
    def is_permanent_ban(self) -> bool:
        return self.is_banned and self.ban_expires_at is None

    def ban_expired(self, now: datetime) -> bool:
        return self.is_banned and self.ban_expires_at is not None and self.ban_expires_at <= now


@dataclass
class BanSchedule:
    user_id: str
    ban_expires_at: datetime
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
