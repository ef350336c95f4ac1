"""
Appeal Mapper.
"""
from typing import Any, Dict, List, Optional

from safety_admin.features.appeals.domain.appeal_entity import (
    Appeal,
    AppealSnapshot,
    AppealStatus,
    AppealType,
)
from safety_admin.features.audit.domain.audit_entity import DELETION_CAUSE_EXPIRY
from safety_admin.utils.time_utils import ensure_utc, to_iso


def snapshot_to_dict(snapshot: AppealSnapshot) -> Dict[str, Any]:
    return {
        'violationId': snapshot.violation_id,
        'violationReason': snapshot.violation_reason,
        'severity': snapshot.severity,
        'violationType': snapshot.violation_type,
        'contentExcerpt': snapshot.content_excerpt,
        'reportCount': snapshot.report_count,
        'banReason': snapshot.ban_reason,
        'banExpiresAt': snapshot.ban_expires_at,
        'banDurationDisplay': snapshot.ban_duration_display,
        'bannedAt': snapshot.banned_at,
        'hiddenReason': snapshot.hidden_reason,
        'appealDeadline': snapshot.appeal_deadline,
    }


def snapshot_from_dict(data: Optional[Dict[str, Any]]) -> AppealSnapshot:
    data = data or {}
    return AppealSnapshot(
        violation_id=data.get('violationId'),
        violation_reason=data.get('violationReason'),
        severity=data.get('severity'),
        violation_type=data.get('violationType'),
        content_excerpt=data.get('contentExcerpt'),
        report_count=int(data.get('reportCount') or 0),
        ban_reason=data.get('banReason'),
        ban_expires_at=ensure_utc(data.get('banExpiresAt')),
        ban_duration_display=data.get('banDurationDisplay'),
        banned_at=ensure_utc(data.get('bannedAt')),
        hidden_reason=data.get('hiddenReason'),
        appeal_deadline=ensure_utc(data.get('appealDeadline')),
    )


def to_dict_from_entity(appeal: Appeal) -> Dict[str, Any]:
    data = {
        'appealId': appeal.id,
        'userId': appeal.user_id,
        'username': appeal.username,
        'contactEmail': appeal.contact_email,
        'appealType': appeal.appeal_type.value,
        'reason': appeal.reason,
        'status': appeal.status.value,
        'snapshot': snapshot_to_dict(appeal.snapshot),
        'submittedAt': appeal.submitted_at,
        'reviewedAt': appeal.reviewed_at,
        'reviewedBy': appeal.reviewed_by,
        'reviewedByUsername': appeal.reviewed_by_username,
        'reviewNotes': appeal.review_notes,
        'expireAt': appeal.expire_at,
        'deletionCause': DELETION_CAUSE_EXPIRY,
    }
    if appeal.appeal_type == AppealType.CONTENT:
        data['contentType'] = appeal.content_type
        data['contentId'] = appeal.content_id
    if appeal.resolution:
        data['resolution'] = appeal.resolution
    return data


def from_firestore_dict(doc_id: str, data: Dict[str, Any], update_time: Any = None) -> Appeal:
    return Appeal(
        id=doc_id,
        user_id=data.get('userId', ''),
        appeal_type=AppealType(data.get('appealType') or AppealType.BAN.value),
        reason=data.get('reason', ''),
        status=AppealStatus(data.get('status') or AppealStatus.PENDING.value),
        username=data.get('username'),
        contact_email=data.get('contactEmail'),
        content_type=data.get('contentType'),
        content_id=data.get('contentId'),
        snapshot=snapshot_from_dict(data.get('snapshot')),
        submitted_at=ensure_utc(data.get('submittedAt')),
        reviewed_at=ensure_utc(data.get('reviewedAt')),
        reviewed_by=data.get('reviewedBy'),
        reviewed_by_username=data.get('reviewedByUsername'),
        review_notes=data.get('reviewNotes'),
        resolution=dict(data.get('resolution') or {}),
        expire_at=ensure_utc(data.get('expireAt')),
        update_time=update_time,
    )


def to_appeal_response(appeal: Appeal, previous: Optional[List[Appeal]] = None,
                       appeal_count: Optional[int] = None) -> Dict[str, Any]:
    snapshot = snapshot_to_dict(appeal.snapshot)
    for key in ('banExpiresAt', 'bannedAt', 'appealDeadline'):
        snapshot[key] = to_iso(snapshot[key])

    response = {
        'id': appeal.id,
        'userId': appeal.user_id,
        'username': appeal.username,
        'contactEmail': appeal.contact_email,
        'appealType': appeal.appeal_type.value,
        'contentType': appeal.content_type,
        'contentId': appeal.content_id,
        'reason': appeal.reason,
        'status': appeal.status.value,
        'snapshot': snapshot,
        'submittedAt': to_iso(appeal.submitted_at),
        'reviewedAt': to_iso(appeal.reviewed_at),
        'reviewedBy': appeal.reviewed_by,
        'reviewedByUsername': appeal.reviewed_by_username,
        'reviewNotes': appeal.review_notes,
        'resolution': appeal.resolution or None,
        'expireAt': to_iso(appeal.expire_at),
    }
    if previous is not None:
        response['previousAppeals'] = [
            {
                'id': p.id,
                'appealType': p.appeal_type.value,
                'status': p.status.value,
                'reason': p.reason,
                'submittedAt': to_iso(p.submitted_at),
                'reviewedAt': to_iso(p.reviewed_at),
                'reviewNotes': p.review_notes,
            }
            for p in previous
        ]
    if appeal_count is not None:
        response['appealCount'] = appeal_count
    return response
