from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ModerationAction(str, Enum):
    DISMISS = 'dismiss'
    WARN = 'warn'
    HIDE_CONTENT = 'hide_content'
    BAN_USER = 'ban_user'


class ContentType(str, Enum):
    POST = 'post'
    COMMENT = 'comment'


class ContentStatus(str, Enum):
    ACTIVE = 'active'
    HIDDEN = 'hidden'
    DELETED = 'deleted'


class ReportStatus(str, Enum):
    PENDING = 'pending'
    ACTION_TAKEN = 'action_taken'
    DISMISSED = 'dismissed'


class Severity(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


ACTION_SEVERITY = {
    ModerationAction.WARN: Severity.LOW,
    ModerationAction.HIDE_CONTENT: Severity.MEDIUM,
    ModerationAction.BAN_USER: Severity.HIGH,
}


@dataclass
class ContentRecord:
    id: str
    content_type: ContentType
    author_id: str
    body: str = ''
    status: ContentStatus = ContentStatus.ACTIVE
    report_count: int = 0
    warning_count: int = 0
    hidden_reason: Optional[str] = None
    hidden_at: Optional[datetime] = None
    hidden_by: Optional[str] = None
    hidden_due_to_ban: bool = False
    can_appeal: bool = False
    appeal_deadline: Optional[datetime] = None
    expire_at: Optional[datetime] = None
    moderation_action: Optional[str] = None
    moderated_at: Optional[datetime] = None
    moderated_by: Optional[str] = None
    update_time: Any = field(default=None, repr=False, compare=False)

    def appealable_at(self, now: datetime) -> bool:
        """Hidden, flagged appealable, and the deadline (inclusive) not yet passed."""
        if self.status != ContentStatus.HIDDEN or not self.can_appeal:
            return False
        return self.appeal_deadline is None or now <= self.appeal_deadline


@dataclass
class ReportRecord:
    id: str
    content_type: ContentType
    content_id: str
    reporter_id: Optional[str] = None
    reason: Optional[str] = None
    status: ReportStatus = ReportStatus.PENDING
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None


@dataclass(frozen=True)
class ViolationRecord:
    """Immutable evidence of one moderation decision."""
    id: str
    user_id: str
    content_type: ContentType
    content_id: str
    action: ModerationAction
    severity: Severity
    reason: str
    admin_user_id: str
    created_at: datetime
    violation_type: str = 'other'
    content_excerpt: str = ''
    report_count: int = 0
