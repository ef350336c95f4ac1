"""
In-app notification writer.

Notifications land in ``users/{userId}/notifications`` where the client app
picks them up. Delivery is best-effort: a failed write is logged and the
calling moderation flow carries on.
"""
import uuid
from typing import Any, Dict, Optional

from google.api_core.exceptions import GoogleAPICallError, RetryError

from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)


class NotificationType:
    ACCOUNT_WARNING = 'ACCOUNT_WARNING'
    CONTENT_HIDDEN = 'CONTENT_HIDDEN'
    ACCOUNT_BANNED = 'ACCOUNT_BANNED'
    APPEAL_APPROVED = 'APPEAL_APPROVED'
    CONTENT_APPEAL_APPROVED = 'CONTENT_APPEAL_APPROVED'
    APPEAL_REJECTED = 'APPEAL_REJECTED'
    CONTENT_RESTORED = 'CONTENT_RESTORED'
    CONTENT_REMOVED = 'CONTENT_REMOVED'


class NotificationService(BaseService):
    def __init__(self, db: Any, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.db = db

    def notify(self, user_id: str, notification_type: str, title: str, message: str,
               metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Write one notification; returns its id, or None when the write failed."""
        notification_id = uuid.uuid4().hex
        metadata = dict(metadata or {})
        payload = {
            'notificationId': notification_id,
            'type': notification_type,
            'title': title,
            'message': message,
            'metadata': metadata,
            'read': False,
            'createdAt': self.now(),
        }
        # Appeal entry points read these at the top level.
        if 'appealDeadline' in metadata:
            payload['appealDeadline'] = metadata['appealDeadline']
        if 'canAppeal' in metadata:
            payload['canAppeal'] = metadata['canAppeal']

        try:
            (self.db.collection('users').document(user_id)
             .collection('notifications').document(notification_id).set(payload))
        except (GoogleAPICallError, RetryError) as exc:
            logger.warning("Failed to deliver notification", extra={
                'user_id': user_id,
                'notification_type': notification_type,
                'error': str(exc),
            })
            return None

        logger.debug("Notification queued", extra={
            'user_id': user_id,
            'notification_type': notification_type,
            'notification_id': notification_id,
        })
        return notification_id
