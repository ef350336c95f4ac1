"""
Moderation Mapper.
"""
from typing import Any, Dict

from safety_admin.features.moderation.domain.moderation_entity import (
    ContentRecord,
    ContentStatus,
    ContentType,
    ModerationAction,
    ReportRecord,
    ReportStatus,
    Severity,
    ViolationRecord,
)
from safety_admin.utils.time_utils import ensure_utc, to_iso


def content_from_firestore_dict(doc_id: str, content_type: ContentType, data: Dict[str, Any],
                                update_time: Any = None) -> ContentRecord:
    return ContentRecord(
        id=doc_id,
        content_type=content_type,
        author_id=data.get('userId') or data.get('authorId') or '',
        body=data.get('content') or data.get('text') or '',
        status=ContentStatus(data.get('status') or ContentStatus.ACTIVE.value),
        report_count=int(data.get('reportCount') or 0),
        warning_count=int(data.get('warningCount') or 0),
        hidden_reason=data.get('hiddenReason'),
        hidden_at=ensure_utc(data.get('hiddenAt')),
        hidden_by=data.get('hiddenBy'),
        hidden_due_to_ban=bool(data.get('hiddenDueToBan', False)),
        can_appeal=bool(data.get('canAppeal', False)),
        appeal_deadline=ensure_utc(data.get('appealDeadline')),
        expire_at=ensure_utc(data.get('expireAt')),
        moderation_action=data.get('moderationAction'),
        moderated_at=ensure_utc(data.get('moderatedAt')),
        moderated_by=data.get('moderatedBy'),
        update_time=update_time,
    )


def report_from_firestore_dict(doc_id: str, data: Dict[str, Any]) -> ReportRecord:
    return ReportRecord(
        id=doc_id,
        content_type=ContentType(data.get('contentType') or ContentType.POST.value),
        content_id=data.get('contentId', ''),
        reporter_id=data.get('reporterId'),
        reason=data.get('reason'),
        status=ReportStatus(data.get('status') or ReportStatus.PENDING.value),
        created_at=ensure_utc(data.get('createdAt')),
        reviewed_at=ensure_utc(data.get('reviewedAt')),
        reviewed_by=data.get('reviewedBy'),
        review_notes=data.get('reviewNotes'),
    )


def violation_to_dict(violation: ViolationRecord) -> Dict[str, Any]:
    return {
        'violationId': violation.id,
        'userId': violation.user_id,
        'contentType': violation.content_type.value,
        'contentId': violation.content_id,
        'action': violation.action.value,
        'severity': violation.severity.value,
        'reason': violation.reason,
        'violationType': violation.violation_type,
        'contentExcerpt': violation.content_excerpt,
        'reportCount': violation.report_count,
        'adminUserId': violation.admin_user_id,
        'createdAt': violation.created_at,
    }


def violation_from_firestore_dict(doc_id: str, data: Dict[str, Any]) -> ViolationRecord:
    return ViolationRecord(
        id=data.get('violationId') or doc_id,
        user_id=data.get('userId', ''),
        content_type=ContentType(data.get('contentType') or ContentType.POST.value),
        content_id=data.get('contentId', ''),
        action=ModerationAction(data.get('action') or ModerationAction.WARN.value),
        severity=Severity(data.get('severity') or Severity.LOW.value),
        reason=data.get('reason', ''),
        admin_user_id=data.get('adminUserId', ''),
        created_at=ensure_utc(data.get('createdAt')),
        violation_type=data.get('violationType') or 'other',
        content_excerpt=data.get('contentExcerpt') or '',
        report_count=int(data.get('reportCount') or 0),
    )


def to_violation_response(violation: ViolationRecord) -> Dict[str, Any]:
    response = violation_to_dict(violation)
    response['createdAt'] = to_iso(violation.created_at)
    return response
