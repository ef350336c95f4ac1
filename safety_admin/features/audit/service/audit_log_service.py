"""
Audit Log Service.

Appends one AdminActionLog entry per administrative action. Entries expire on
the Monday after next (Firestore TTL on ``expireAt``); the stream archive
consumer preserves them once the TTL deletes them.
"""
import uuid
from typing import Any, Dict, List, Optional, Sequence

from safety_admin.common.actor import ActorContext
from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.common.errors import SafetyAdminError
from safety_admin.features.audit.domain.audit_entity import AdminAction
from safety_admin.features.audit.mapper.audit_mapper import to_action_response
from safety_admin.features.audit.repository.admin_action_repository import AdminActionRepository
from safety_admin.services.system.logger_service import get_logger, log_error
from safety_admin.utils.time_utils import admin_action_retention

logger = get_logger(__name__)


class AuditLogService(BaseService):
    def __init__(self, admin_action_repository: AdminActionRepository, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.admin_action_repository = admin_action_repository

    def record(self, actor: ActorContext, action_type: str, target_user_id: Optional[str] = None,
               target_username: Optional[str] = None, reason: Optional[str] = None,
               metadata: Optional[Dict[str, Any]] = None) -> Optional[AdminAction]:
        """
        Append an audit entry.

        The action being audited has already happened, so a failed write is
        logged and reported as None rather than raised.
        """
        now = self.now()
        entry = AdminAction(
            action_id=uuid.uuid4().hex,
            admin_user_id=actor.user_id,
            admin_username=actor.username,
            action=action_type,
            target_user_id=target_user_id or 'SYSTEM',
            target_username=target_username,
            reason=reason,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            metadata=dict(metadata or {}),
            timestamp=now,
            expire_at=admin_action_retention(now),
        )

        logger.info(
            "AUDIT_EVENT",
            extra={
                'audit_action': action_type,
                'audit_resource': entry.target_user_id,
                'audit_user_id': actor.user_id,
                'audit_reason': reason,
                'audit_timestamp': now.isoformat(),
                'audit_source': 'lifecycle',
                'audit_notes': entry.metadata,
            }
        )

        try:
            return self.admin_action_repository.save(entry)
        except SafetyAdminError as exc:
            log_error(logger, exc, {
                'audit_action': action_type,
                'audit_user_id': actor.user_id,
                'audit_resource': entry.target_user_id,
            })
            return None

    def list_actions(self, limit: int = 50, action_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return [to_action_response(a) for a in self.admin_action_repository.find_recent(limit, action_type)]

    def history_for_user(self, user_id: str, action_types: Optional[Sequence[str]] = None,
                         limit: int = 50) -> List[AdminAction]:
        return self.admin_action_repository.find_by_target(user_id, action_types, limit)
