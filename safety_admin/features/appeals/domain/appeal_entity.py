from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class AppealType(str, Enum):
    BAN = 'ban'
    CONTENT = 'content'


class AppealStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    AUTO_RESOLVED = 'auto_resolved'


class ReviewDecision(str, Enum):
    APPROVE = 'approve'
    REJECT = 'reject'


AUTO_RESOLVE_NOTE = 'Ban expired - appeal closed automatically'


@dataclass
class AppealSnapshot:
    """What the user was appealing against, frozen at submission time."""
    violation_id: Optional[str] = None
    violation_reason: Optional[str] = None
    severity: Optional[str] = None
    violation_type: Optional[str] = None
    content_excerpt: Optional[str] = None
    report_count: int = 0
    ban_reason: Optional[str] = None
    ban_expires_at: Optional[datetime] = None
    ban_duration_display: Optional[str] = None
    banned_at: Optional[datetime] = None
    hidden_reason: Optional[str] = None
    appeal_deadline: Optional[datetime] = None


@dataclass
class Appeal:
    id: str
    user_id: str
    appeal_type: AppealType
    reason: str
    status: AppealStatus = AppealStatus.PENDING
    username: Optional[str] = None
    contact_email: Optional[str] = None
    content_type: Optional[str] = None
    content_id: Optional[str] = None
    snapshot: AppealSnapshot = field(default_factory=AppealSnapshot)
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_by_username: Optional[str] = None
    review_notes: Optional[str] = None
    resolution: Dict[str, Any] = field(default_factory=dict)
    expire_at: Optional[datetime] = None
    update_time: Any = field(default=None, repr=False, compare=False)

    @property
    def slot_key(self) -> str:
        return appeal_slot_key(self.user_id, self.appeal_type, self.content_id, self.content_type)

    @property
    def is_pending(self) -> bool:
        return self.status == AppealStatus.PENDING

    def ban_lapsed(self, now: datetime) -> bool:
        """Pending ban appeal whose temporary ban has already run out."""
        return (
            self.appeal_type == AppealType.BAN
            and self.snapshot.ban_expires_at is not None
            and self.snapshot.ban_expires_at <= now
        )


def appeal_slot_key(user_id: str, appeal_type: AppealType, content_id: Optional[str] = None,
                    content_type: Optional[str] = None) -> str:
    """One key per appealable decision; posts and comments are keyed separately."""
    if not content_id:
        return f"{user_id}:{AppealType(appeal_type).value}:-"
    return f"{user_id}:{AppealType(appeal_type).value}:{content_type or 'post'}:{content_id}"
