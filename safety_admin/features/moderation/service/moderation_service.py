"""
Moderation Action Executor.

Applies one admin decision (dismiss, warn, hide_content, ban_user) to a
reported post or comment. The ViolationRecord is written before anything
else changes, so a failure part-way through still leaves the decision on
record.
"""
import uuid
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

from safety_admin.common.actor import ActorContext
from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.common.errors import ConflictError, NotFoundError, ValidationError
from safety_admin.config.env_config import SafetyConfig
from safety_admin.features.audit.domain.audit_entity import AdminActionType
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.features.moderation.domain.moderation_entity import (
    ACTION_SEVERITY,
    ContentRecord,
    ContentStatus,
    ContentType,
    ModerationAction,
    ReportRecord,
    ReportStatus,
    ViolationRecord,
)
from safety_admin.features.moderation.dto.moderation_request import (
    ContentStatusChangeRequest,
    ModerationActionRequest,
)
from safety_admin.features.moderation.mapper.moderation_mapper import to_violation_response
from safety_admin.features.moderation.repository.content_repository import ContentRepositories
from safety_admin.features.moderation.repository.report_repository import ReportRepository
from safety_admin.features.moderation.repository.violation_repository import ViolationRepository
from safety_admin.features.users.repository.user_repository import UserRepository
from safety_admin.features.users.service.ban_service import BAN_REASON_MIN, BanLifecycleManager
from safety_admin.services.notifications.notification_service import NotificationService, NotificationType
from safety_admin.services.system.logger_service import get_logger, log_moderation_operation
from safety_admin.utils.string_utils import truncate_excerpt
from safety_admin.utils.time_utils import ban_duration_to_timedelta, to_iso

logger = get_logger(__name__)

_AUDIT_ACTION = {
    ModerationAction.DISMISS: AdminActionType.DISMISS_REPORTS,
    ModerationAction.WARN: AdminActionType.WARN_USER,
    ModerationAction.HIDE_CONTENT: AdminActionType.HIDE_CONTENT,
}

_RESTORE_AUDIT_ACTION = {
    ContentType.POST: AdminActionType.RESTORE_POST,
    ContentType.COMMENT: AdminActionType.RESTORE_COMMENT,
}

_DELETE_AUDIT_ACTION = {
    ContentType.POST: AdminActionType.DELETE_POST,
    ContentType.COMMENT: AdminActionType.DELETE_COMMENT,
}


def dominant_report_reason(reports: List[ReportRecord]) -> str:
    """Most frequent report reason, 'other' when there is none."""
    reasons = [r.reason.strip().lower() for r in reports if r.reason and r.reason.strip()]
    if not reasons:
        return 'other'
    return Counter(reasons).most_common(1)[0][0]


class ModerationService(BaseService):
    def __init__(self, content_repositories: ContentRepositories, report_repository: ReportRepository,
                 violation_repository: ViolationRepository, user_repository: UserRepository,
                 ban_manager: BanLifecycleManager, audit_log_service: AuditLogService,
                 notification_service: NotificationService, config: Optional[SafetyConfig] = None,
                 clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.content_repositories = content_repositories
        self.report_repository = report_repository
        self.violation_repository = violation_repository
        self.user_repository = user_repository
        self.ban_manager = ban_manager
        self.audit_log_service = audit_log_service
        self.notification_service = notification_service
        self.config = config or SafetyConfig()

    def take_action(self, actor: ActorContext, request: ModerationActionRequest) -> Dict[str, Any]:
        content_repository = self.content_repositories.for_type(request.contentType)
        content = content_repository.find_by_id(request.contentId)
        if content is None:
            raise NotFoundError(request.contentType.value, request.contentId)

        open_reports = self.report_repository.find_open_for_content(request.contentType, content.id)

        if request.action == ModerationAction.DISMISS:
            return self._dismiss(actor, request, content, open_reports)

        if not content.author_id:
            raise ValidationError(f"{request.contentType.value} {content.id} has no author")
        if request.action == ModerationAction.BAN_USER:
            self._check_bannable(content, request)

        now = self.now()
        violation = ViolationRecord(
            id=uuid.uuid4().hex,
            user_id=content.author_id,
            content_type=request.contentType,
            content_id=content.id,
            action=request.action,
            severity=ACTION_SEVERITY[request.action],
            reason=request.reason,
            admin_user_id=actor.user_id,
            created_at=now,
            violation_type=dominant_report_reason(open_reports),
            content_excerpt=truncate_excerpt(content.body),
            report_count=len(open_reports),
        )
        self.violation_repository.save(violation)
        self.user_repository.increment_violation_count(content.author_id)

        result: Dict[str, Any] = {
            'action': request.action.value,
            'contentType': request.contentType.value,
            'contentId': content.id,
            'userId': content.author_id,
            'violation': to_violation_response(violation),
        }

        if request.action == ModerationAction.WARN:
            content_repository.record_warning(content.id, request.reason, now)
            if request.notifyUser:
                self.notification_service.notify(
                    content.author_id, NotificationType.ACCOUNT_WARNING, 'Community guidelines warning',
                    f"Your {request.contentType.value} received a warning. Reason: {request.reason}",
                    metadata={
                        'violationId': violation.id,
                        'contentId': content.id,
                        'contentType': request.contentType.value,
                        'severity': violation.severity.value,
                    },
                )

        elif request.action == ModerationAction.HIDE_CONTENT:
            deadline = self._hide(content_repository, content, request.reason, actor, now, due_to_ban=False)
            result['appealDeadline'] = to_iso(deadline)
            if request.notifyUser:
                self.notification_service.notify(
                    content.author_id, NotificationType.CONTENT_HIDDEN, 'Content hidden',
                    f"Your {request.contentType.value} was hidden. You can appeal until {to_iso(deadline)}.",
                    metadata={
                        'violationId': violation.id,
                        'contentId': content.id,
                        'contentType': request.contentType.value,
                        'appealDeadline': to_iso(deadline),
                        'canAppeal': True,
                    },
                )

        elif request.action == ModerationAction.BAN_USER:
            deadline = self._hide(content_repository, content, request.reason, actor, now, due_to_ban=True)
            result['appealDeadline'] = to_iso(deadline)
            banned = self.ban_manager.ban_user(
                actor, content.author_id, request.reason, request.banDuration, request.banDurationUnit,
                metadata={
                    'violationId': violation.id,
                    'contentId': content.id,
                    'contentType': request.contentType.value,
                    'source': 'moderation',
                },
            )
            result['banExpiresAt'] = to_iso(banned.ban_expires_at)
            result['banDurationDisplay'] = banned.ban_duration_display

        closed = self._close_reports(open_reports, actor, request.reason, now)
        content_repository.stamp_moderation(content.id, request.action.value, request.reason, actor.user_id, now)
        content_repository.mark_reviewed(content.id, actor.user_id, now)
        result['reportsClosed'] = closed

        if request.action in _AUDIT_ACTION:
            self.audit_log_service.record(
                actor, _AUDIT_ACTION[request.action], content.author_id,
                reason=request.reason,
                metadata={
                    'contentId': content.id,
                    'contentType': request.contentType.value,
                    'violationId': violation.id,
                    'severity': violation.severity.value,
                    'reportsClosed': closed,
                },
            )

        log_moderation_operation(
            logger, request.action.value, content.id, actor.user_id,
            content_type=request.contentType.value, user_id=content.author_id,
            violation_id=violation.id, reports_closed=closed,
        )
        return result

    def restore_content(self, actor: ActorContext, request: ContentStatusChangeRequest) -> Dict[str, Any]:
        """Bring hidden or deleted content back to active."""
        content = self._load_content(request)
        if content.status == ContentStatus.ACTIVE:
            raise ConflictError(f"{request.contentType.value} {content.id} is already active",
                                code='ALREADY_ACTIVE')

        now = self.now()
        previous_status = content.status
        self.content_repositories.for_type(request.contentType).restore_if_unchanged(
            content, actor.user_id, request.reason, now,
        )
        self.audit_log_service.record(
            actor, _RESTORE_AUDIT_ACTION[request.contentType], content.author_id or None,
            reason=request.reason,
            metadata={
                'contentId': content.id,
                'contentType': request.contentType.value,
                'previousStatus': previous_status.value,
            },
        )
        if request.notifyUser and content.author_id:
            self.notification_service.notify(
                content.author_id, NotificationType.CONTENT_RESTORED, 'Content restored',
                f"Your {request.contentType.value} has been restored. Reason: {request.reason}",
                metadata={'contentId': content.id, 'contentType': request.contentType.value},
            )
        log_moderation_operation(
            logger, 'restore', content.id, actor.user_id,
            content_type=request.contentType.value, previous_status=previous_status.value,
        )
        return self._status_change_result(content, request, ContentStatus.ACTIVE, previous_status)

    def delete_content(self, actor: ActorContext, request: ContentStatusChangeRequest) -> Dict[str, Any]:
        """Soft delete: status becomes deleted and the document is kept for audit."""
        content = self._load_content(request)
        if content.status == ContentStatus.DELETED:
            raise ConflictError(f"{request.contentType.value} {content.id} is already deleted",
                                code='ALREADY_DELETED')

        now = self.now()
        previous_status = content.status
        self.content_repositories.for_type(request.contentType).soft_delete(
            content, actor.user_id, request.reason, now,
        )
        self.audit_log_service.record(
            actor, _DELETE_AUDIT_ACTION[request.contentType], content.author_id or None,
            reason=request.reason,
            metadata={
                'contentId': content.id,
                'contentType': request.contentType.value,
                'previousStatus': previous_status.value,
            },
        )
        if request.notifyUser and content.author_id:
            self.notification_service.notify(
                content.author_id, NotificationType.CONTENT_REMOVED, 'Content removed',
                f"Your {request.contentType.value} was removed. Reason: {request.reason}",
                metadata={'contentId': content.id, 'contentType': request.contentType.value},
            )
        log_moderation_operation(
            logger, 'delete', content.id, actor.user_id,
            content_type=request.contentType.value, previous_status=previous_status.value,
        )
        return self._status_change_result(content, request, ContentStatus.DELETED, previous_status)

    def _load_content(self, request: ContentStatusChangeRequest) -> ContentRecord:
        content = self.content_repositories.find(request.contentType, request.contentId)
        if content is None:
            raise NotFoundError(request.contentType.value, request.contentId)
        return content

    @staticmethod
    def _status_change_result(content: ContentRecord, request: ContentStatusChangeRequest,
                              status: ContentStatus, previous_status: ContentStatus) -> Dict[str, Any]:
        return {
            'contentType': request.contentType.value,
            'contentId': content.id,
            'userId': content.author_id,
            'status': status.value,
            'previousStatus': previous_status.value,
        }

    def _dismiss(self, actor: ActorContext, request: ModerationActionRequest, content: ContentRecord,
                 open_reports: List[ReportRecord]) -> Dict[str, Any]:
        now = self.now()
        closed = self._close_reports(open_reports, actor, request.reason, now)
        self.content_repositories.for_type(request.contentType).mark_reviewed(content.id, actor.user_id, now)

        self.audit_log_service.record(
            actor, AdminActionType.DISMISS_REPORTS, content.author_id or None,
            reason=request.reason,
            metadata={
                'contentId': content.id,
                'contentType': request.contentType.value,
                'reportsClosed': closed,
            },
        )
        log_moderation_operation(
            logger, request.action.value, content.id, actor.user_id,
            content_type=request.contentType.value, reports_closed=closed,
        )
        return {
            'action': request.action.value,
            'contentType': request.contentType.value,
            'contentId': content.id,
            'userId': content.author_id,
            'violation': None,
            'reportsClosed': closed,
        }

    def _check_bannable(self, content: ContentRecord, request: ModerationActionRequest) -> None:
        """Reject a ban before anything is written."""
        if len(request.reason or '') < BAN_REASON_MIN:
            raise ValidationError(f"Ban reason must be at least {BAN_REASON_MIN} characters", field='reason')
        ban_duration_to_timedelta(request.banDuration, request.banDurationUnit)
        author = self.ban_manager.get_profile(content.author_id)
        if author.is_banned:
            raise ConflictError(f"User {author.id} is already banned", code='ALREADY_BANNED')

    def _hide(self, content_repository, content: ContentRecord, reason: str, actor: ActorContext,
              now, due_to_ban: bool):
        deadline = now + timedelta(days=self.config.appeal_grace_period_days)
        content_repository.hide(content, reason, actor.user_id, now, deadline, due_to_ban=due_to_ban)
        return deadline

    def _close_reports(self, reports: List[ReportRecord], actor: ActorContext, notes: Optional[str], now) -> int:
        if not reports:
            return 0
        expire_at = now + timedelta(days=self.config.report_retention_days)
        return self.report_repository.close(
            [r.id for r in reports], ReportStatus.ACTION_TAKEN, actor.user_id, notes, now, expire_at,
        )
