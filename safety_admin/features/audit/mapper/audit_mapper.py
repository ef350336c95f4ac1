from typing import Any, Dict

from safety_admin.features.audit.domain.audit_entity import AdminAction, DELETION_CAUSE_EXPIRY
from safety_admin.utils.time_utils import ensure_utc, to_iso


def to_dict_from_entity(action: AdminAction) -> Dict[str, Any]:
    return {
        'actionId': action.action_id,
        'adminUserId': action.admin_user_id,
        'adminUsername': action.admin_username,
        'action': action.action,
        'targetUserId': action.target_user_id,
        'targetUsername': action.target_username,
        'reason': action.reason,
        'ipAddress': action.ip_address,
        'userAgent': action.user_agent,
        'metadata': action.metadata,
        'timestamp': action.timestamp,
        'expireAt': action.expire_at,
        'deletionCause': action.deletion_cause,
    }


def from_firestore_dict(doc_id: str, data: Dict[str, Any]) -> AdminAction:
    return AdminAction(
        action_id=data.get('actionId') or doc_id,
        admin_user_id=data.get('adminUserId', ''),
        admin_username=data.get('adminUsername'),
        action=data.get('action', ''),
        target_user_id=data.get('targetUserId', ''),
        target_username=data.get('targetUsername'),
        reason=data.get('reason'),
        ip_address=data.get('ipAddress'),
        user_agent=data.get('userAgent'),
        metadata=data.get('metadata') or {},
        timestamp=ensure_utc(data.get('timestamp')),
        expire_at=ensure_utc(data.get('expireAt')),
        deletion_cause=data.get('deletionCause', DELETION_CAUSE_EXPIRY),
    )


def to_action_response(action: AdminAction) -> Dict[str, Any]:
    return {
        'actionId': action.action_id,
        'adminUserId': action.admin_user_id,
        'adminUsername': action.admin_username,
        'action': action.action,
        'targetUserId': action.target_user_id,
        'targetUsername': action.target_username,
        'reason': action.reason,
        'metadata': action.metadata,
        'timestamp': to_iso(action.timestamp),
        'expireAt': to_iso(action.expire_at),
    }
