from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

# Written on every record that a Firestore TTL policy may delete.
DELETION_CAUSE_EXPIRY = 'expiry'
# Stamped immediately before an application-initiated delete.
DELETION_CAUSE_MANUAL = 'manual'


class AdminActionType:
    BAN_USER = 'BAN_USER'
    UNBAN_USER = 'UNBAN_USER'
    WARN_USER = 'WARN_USER'
    HIDE_CONTENT = 'HIDE_CONTENT'
    DISMISS_REPORTS = 'DISMISS_REPORTS'
    RESTORE_CONTENT = 'RESTORE_CONTENT'
    RESTORE_POST = 'RESTORE_POST'
    RESTORE_COMMENT = 'RESTORE_COMMENT'
    DELETE_POST = 'DELETE_POST'
    DELETE_COMMENT = 'DELETE_COMMENT'
    APPROVE_APPEAL = 'APPROVE_APPEAL'
    REJECT_APPEAL = 'REJECT_APPEAL'
    EXPIRE_BANS = 'EXPIRE_BANS'
    ARCHIVE_REPORTS = 'ARCHIVE_REPORTS'
    ARCHIVE_ACTIVITY = 'ARCHIVE_ACTIVITY'


@dataclass
class AdminAction:
    action_id: str
    admin_user_id: str
    action: str
    target_user_id: str
    timestamp: datetime
    expire_at: datetime
    admin_username: Optional[str] = None
    target_username: Optional[str] = None
    reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    deletion_cause: str = DELETION_CAUSE_EXPIRY


@dataclass
class DeletionEvent:
    """One document deletion observed on the change stream."""
    event_id: str
    collection: str
    document_id: str
    old_value: Dict[str, Any]
    deleted_at: datetime

    @property
    def record_key(self) -> str:
        return f"{self.collection}/{self.document_id}"
