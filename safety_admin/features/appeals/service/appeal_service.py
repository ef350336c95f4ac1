"""
Appeal Workflow Engine.

    pending -> approved | rejected | auto_resolved

An appeal leaves ``pending`` exactly once. Approval reverses the original
decision (unban or content restore) after the status transition has been
written; if the reversal fails the transition is rolled back so the appeal
can be reviewed again.
"""
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from safety_admin.common.actor import ActorContext, SYSTEM_ACTOR
from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.common.compensation import CompensationStack
from safety_admin.common.errors import (
    ConflictError,
    NotFoundError,
    SafetyAdminError,
    ValidationError,
)
from safety_admin.config.env_config import SafetyConfig
from safety_admin.features.appeals.domain.appeal_entity import (
    AUTO_RESOLVE_NOTE,
    Appeal,
    AppealSnapshot,
    AppealStatus,
    AppealType,
    ReviewDecision,
)
from safety_admin.features.appeals.dto.appeal_request import SubmitAppealRequest
from safety_admin.features.appeals.mapper.appeal_mapper import to_appeal_response
from safety_admin.features.appeals.repository.appeal_repository import AppealRepository, AppealSlotRepository
from safety_admin.features.audit.domain.audit_entity import AdminActionType
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.features.moderation.domain.moderation_entity import ContentType, ViolationRecord
from safety_admin.features.moderation.repository.content_repository import ContentRepositories
from safety_admin.features.moderation.repository.violation_repository import ViolationRepository
from safety_admin.features.users.domain.user_entity import UnbanSource, UserProfile
from safety_admin.features.users.repository.user_repository import UserRepository
from safety_admin.features.users.service.ban_service import BanLifecycleManager
from safety_admin.services.notifications.notification_service import NotificationService, NotificationType
from safety_admin.services.system.logger_service import get_logger, log_appeal_operation
from safety_admin.utils.string_utils import non_blank
from safety_admin.utils.time_utils import to_iso

logger = get_logger(__name__)

REVIEW_NOTES_MIN = 5
PREVIOUS_APPEALS_SHOWN = 5
MAX_PAGE_SIZE = 100
# Violations written this long before bannedAt still belong to the current ban.
BAN_VIOLATION_SKEW = timedelta(seconds=60)


class AppealService(BaseService):
    def __init__(self, appeal_repository: AppealRepository, slot_repository: AppealSlotRepository,
                 user_repository: UserRepository, violation_repository: ViolationRepository,
                 content_repositories: ContentRepositories, ban_manager: BanLifecycleManager,
                 audit_log_service: AuditLogService, notification_service: NotificationService,
                 config: Optional[SafetyConfig] = None, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.appeal_repository = appeal_repository
        self.slot_repository = slot_repository
        self.user_repository = user_repository
        self.violation_repository = violation_repository
        self.content_repositories = content_repositories
        self.ban_manager = ban_manager
        self.audit_log_service = audit_log_service
        self.notification_service = notification_service
        self.config = config or SafetyConfig()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_appeal(self, request: SubmitAppealRequest) -> Appeal:
        now = self.now()

        if request.appealType == AppealType.BAN:
            profile = self.ban_manager.get_profile(request.userId)
            if not profile.is_banned:
                raise ConflictError("There is no active ban to appeal", code='NOT_BANNED')
            snapshot = self._ban_snapshot(profile)
            if profile.ban_expires_at is not None:
                expire_at = profile.ban_expires_at + timedelta(days=self.config.appeal_retention_buffer_days)
            else:
                expire_at = now + timedelta(days=self.config.permanent_ban_appeal_retention_days)
            username = profile.username
        else:
            snapshot = self._content_snapshot(request.userId, request.contentType, request.contentId, now)
            if snapshot.appeal_deadline is not None:
                expire_at = snapshot.appeal_deadline + timedelta(days=self.config.appeal_retention_buffer_days)
            else:
                expire_at = now + timedelta(days=self.config.content_appeal_fallback_retention_days)
            profile = self.user_repository.find_by_id(request.userId)
            username = profile.username if profile else None

        content_type = request.contentType.value if request.contentType else None
        if self.appeal_repository.find_pending_for(request.userId, request.appealType, request.contentId, content_type):
            raise ConflictError("An appeal for this decision is already pending", code='DUPLICATE_APPEAL')

        appeal = Appeal(
            id=uuid.uuid4().hex,
            user_id=request.userId,
            appeal_type=request.appealType,
            reason=request.reason,
            status=AppealStatus.PENDING,
            username=username,
            contact_email=request.contactEmail,
            content_type=content_type,
            content_id=request.contentId,
            snapshot=snapshot,
            submitted_at=now,
            expire_at=expire_at,
        )

        with CompensationStack('submit_appeal', context={'appeal_id': appeal.id, 'user_id': appeal.user_id}) as saga:
            self._claim_slot(appeal, now)
            saga.push('release appeal slot', lambda: self.slot_repository.release(appeal.slot_key, appeal.id))
            self.appeal_repository.save(appeal)

        log_appeal_operation(
            logger, 'SUBMIT', appeal.id, appeal.user_id,
            appeal_type=appeal.appeal_type.value, content_id=appeal.content_id,
            expire_at=to_iso(expire_at),
        )
        return appeal

    def _claim_slot(self, appeal: Appeal, now) -> None:
        if self.slot_repository.claim(appeal.slot_key, appeal.id, now):
            return
        slot = self.slot_repository.find_by_id(appeal.slot_key)
        if slot is not None:
            holder_id = slot.get('appealId')
            holder = self.appeal_repository.find_by_id(holder_id) if holder_id else None
            if holder is not None and holder.is_pending:
                raise ConflictError("An appeal for this decision is already pending", code='DUPLICATE_APPEAL')
            self.slot_repository.take_over(slot, appeal.id, now)
        elif not self.slot_repository.claim(appeal.slot_key, appeal.id, now):
            raise ConflictError("An appeal for this decision is already pending", code='DUPLICATE_APPEAL')

    def _ban_snapshot(self, profile: UserProfile) -> AppealSnapshot:
        violation = None
        if profile.banned_at is not None:
            violation = self.violation_repository.find_latest_since(
                profile.id, profile.banned_at - BAN_VIOLATION_SKEW
            )
        snapshot = self._violation_snapshot(violation)
        snapshot.ban_reason = profile.ban_reason
        snapshot.ban_expires_at = profile.ban_expires_at
        snapshot.ban_duration_display = profile.ban_duration_display
        snapshot.banned_at = profile.banned_at
        return snapshot

    def _content_snapshot(self, user_id: str, content_type: ContentType, content_id: str, now) -> AppealSnapshot:
        content = self.content_repositories.find(content_type, content_id)
        if content is None or content.author_id != user_id:
            raise NotFoundError(ContentType(content_type).value, content_id)
        if not content.appealable_at(now):
            raise ConflictError("This content can no longer be appealed", code='NOT_APPEALABLE')

        snapshot = self._violation_snapshot(
            self.violation_repository.find_latest_for_content(user_id, content_id, content_type)
        )
        snapshot.hidden_reason = content.hidden_reason
        snapshot.appeal_deadline = content.appeal_deadline
        return snapshot

    @staticmethod
    def _violation_snapshot(violation: Optional[ViolationRecord]) -> AppealSnapshot:
        if violation is None:
            return AppealSnapshot()
        return AppealSnapshot(
            violation_id=violation.id,
            violation_reason=violation.reason,
            severity=violation.severity.value,
            violation_type=violation.violation_type,
            content_excerpt=violation.content_excerpt,
            report_count=violation.report_count,
        )

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def review_appeal(self, actor: ActorContext, appeal_id: str, action: ReviewDecision,
                      notes: Optional[str] = None) -> Dict[str, Any]:
        action = ReviewDecision(action)
        notes = non_blank(notes)
        appeal = self.appeal_repository.find_by_id(appeal_id)
        if appeal is None:
            raise NotFoundError('appeal', appeal_id)
        if not appeal.is_pending:
            raise ConflictError(f"Appeal {appeal_id} is already {appeal.status.value}", code='APPEAL_NOT_PENDING')
        if action == ReviewDecision.REJECT and len(notes or '') < REVIEW_NOTES_MIN:
            raise ValidationError(
                f"Rejection notes must be at least {REVIEW_NOTES_MIN} characters", field='notes'
            )

        now = self.now()
        status = AppealStatus.APPROVED if action == ReviewDecision.APPROVE else AppealStatus.REJECTED
        resolution: Dict[str, Any] = {}
        if action == ReviewDecision.APPROVE and appeal.appeal_type == AppealType.BAN:
            resolution['banAlreadyLifted'] = not self._still_banned(appeal.user_id)

        fields = {
            'reviewedAt': now,
            'reviewedBy': actor.user_id,
            'reviewedByUsername': actor.username,
            'reviewNotes': notes,
        }
        if resolution:
            fields['resolution'] = resolution

        context = {'appeal_id': appeal.id, 'user_id': appeal.user_id, 'admin_id': actor.user_id}
        with CompensationStack('review_appeal', context=context) as saga:
            self.appeal_repository.transition(appeal, status, fields)
            saga.push('revert appeal to pending', lambda: self.appeal_repository.revert_to_pending(appeal.id))

            if action == ReviewDecision.APPROVE:
                if appeal.appeal_type == AppealType.BAN:
                    if not resolution['banAlreadyLifted']:
                        self._lift_ban(actor, appeal, resolution)
                else:
                    self._restore_content(actor, appeal, notes, now)

        self._release_slot(appeal)

        audit_type = AdminActionType.APPROVE_APPEAL if status == AppealStatus.APPROVED else AdminActionType.REJECT_APPEAL
        self.audit_log_service.record(
            actor, audit_type, appeal.user_id,
            target_username=appeal.username, reason=notes,
            metadata={
                'appealId': appeal.id,
                'appealType': appeal.appeal_type.value,
                'contentId': appeal.content_id,
                **resolution,
            },
        )
        self._notify_decision(appeal, status, notes)
        log_appeal_operation(
            logger, action.value.upper(), appeal.id, appeal.user_id,
            admin_id=actor.user_id, appeal_type=appeal.appeal_type.value,
            ban_already_lifted=resolution.get('banAlreadyLifted'),
        )

        appeal.status = status
        appeal.reviewed_at = now
        appeal.reviewed_by = actor.user_id
        appeal.reviewed_by_username = actor.username
        appeal.review_notes = notes
        appeal.resolution = resolution
        appeal.update_time = None
        return to_appeal_response(appeal)

    def _still_banned(self, user_id: str) -> bool:
        try:
            return self.ban_manager.get_profile(user_id).is_banned
        except NotFoundError:
            return False

    def _lift_ban(self, actor: ActorContext, appeal: Appeal, resolution: Dict[str, Any]) -> None:
        try:
            self.ban_manager.unban_user(appeal.user_id, source=UnbanSource.MANUAL, actor=actor)
        except ConflictError as exc:
            if exc.code != 'NOT_BANNED':
                raise
            # Lapsed between the check and the unban.
            resolution['banAlreadyLifted'] = True

    def _restore_content(self, actor: ActorContext, appeal: Appeal, notes: Optional[str], now) -> None:
        content_type = ContentType(appeal.content_type or ContentType.POST.value)
        repository = self.content_repositories.for_type(content_type)
        content = repository.find_by_id(appeal.content_id)
        if content is None:
            raise NotFoundError(content_type.value, appeal.content_id)
        reason = notes or 'Appeal approved'
        repository.restore(content, actor.user_id, reason, now)
        self.audit_log_service.record(
            actor, AdminActionType.RESTORE_CONTENT, appeal.user_id,
            target_username=appeal.username, reason=reason,
            metadata={'appealId': appeal.id, 'contentId': content.id, 'contentType': content_type.value},
        )

    def _release_slot(self, appeal: Appeal) -> None:
        # A stale slot is taken over on the next submission, so failure here is not fatal.
        try:
            self.slot_repository.release(appeal.slot_key, appeal.id)
        except SafetyAdminError as exc:
            logger.warning("Failed to release appeal slot", extra={
                'appeal_id': appeal.id, 'slot_key': appeal.slot_key, 'error_message': str(exc)
            })

    def _notify_decision(self, appeal: Appeal, status: AppealStatus, notes: Optional[str]) -> None:
        metadata = {'appealId': appeal.id, 'appealType': appeal.appeal_type.value}
        if appeal.content_id:
            metadata['contentId'] = appeal.content_id
            metadata['contentType'] = appeal.content_type

        if status == AppealStatus.REJECTED:
            self.notification_service.notify(
                appeal.user_id, NotificationType.APPEAL_REJECTED, 'Appeal rejected',
                f"Your appeal was reviewed and rejected. Notes: {notes}", metadata=metadata,
            )
        elif appeal.appeal_type == AppealType.CONTENT:
            self.notification_service.notify(
                appeal.user_id, NotificationType.CONTENT_APPEAL_APPROVED, 'Appeal approved',
                f"Your appeal was approved and your {appeal.content_type or 'content'} has been restored.",
                metadata=metadata,
            )
        else:
            self.notification_service.notify(
                appeal.user_id, NotificationType.APPEAL_APPROVED, 'Appeal approved',
                "Your appeal was approved and your account has been restored.", metadata=metadata,
            )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_appeals(self, status: Optional[AppealStatus] = AppealStatus.PENDING,
                     appeal_type: Optional[AppealType] = None, limit: int = 50,
                     before=None) -> Dict[str, Any]:
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        status = AppealStatus(status) if status is not None else None
        now = self.now()

        fetched = self.appeal_repository.find_by_status(status, appeal_type, limit + 1, before)
        has_more = len(fetched) > limit
        page = fetched[:limit]

        auto_resolved = 0
        visible: List[Appeal] = []
        for appeal in page:
            if appeal.is_pending and appeal.ban_lapsed(now):
                if self._auto_resolve(appeal, now):
                    auto_resolved += 1
                if status == AppealStatus.PENDING:
                    continue
            visible.append(appeal)

        histories: Dict[str, List[Appeal]] = {}
        appeals = []
        for appeal in visible:
            if appeal.user_id not in histories:
                histories[appeal.user_id] = self.appeal_repository.find_by_user(appeal.user_id)
            history = histories[appeal.user_id]
            previous = [
                p for p in history
                if p.id != appeal.id and not p.is_pending
                and (appeal.submitted_at is None or p.submitted_at is None or p.submitted_at <= appeal.submitted_at)
            ][:PREVIOUS_APPEALS_SHOWN]
            appeals.append(to_appeal_response(appeal, previous=previous, appeal_count=len(history)))

        if auto_resolved:
            logger.info("Auto-resolved lapsed ban appeals", extra={'auto_resolved': auto_resolved})

        return {
            'appeals': appeals,
            'count': len(appeals),
            'autoResolved': auto_resolved,
            'hasMore': has_more,
            'nextCursor': to_iso(page[-1].submitted_at) if has_more and page else None,
        }

    def _auto_resolve(self, appeal: Appeal, now) -> bool:
        try:
            self.appeal_repository.transition(appeal, AppealStatus.AUTO_RESOLVED, {
                'reviewedAt': now,
                'reviewedBy': SYSTEM_ACTOR.user_id,
                'reviewedByUsername': SYSTEM_ACTOR.username,
                'reviewNotes': AUTO_RESOLVE_NOTE,
            })
        except ConflictError:
            # Reviewed concurrently; it is no longer pending either way.
            return False
        appeal.status = AppealStatus.AUTO_RESOLVED
        appeal.reviewed_at = now
        appeal.reviewed_by = SYSTEM_ACTOR.user_id
        appeal.review_notes = AUTO_RESOLVE_NOTE

        self._release_slot(appeal)
        try:
            self.ban_manager.get_profile(appeal.user_id)
        except NotFoundError:
            logger.warning("Appeal for missing user", extra={'appeal_id': appeal.id, 'user_id': appeal.user_id})
        log_appeal_operation(logger, 'AUTO_RESOLVE', appeal.id, appeal.user_id)
        return True

    def history_for_user(self, user_id: str, limit: int = 50) -> List[Appeal]:
        return self.appeal_repository.find_by_user(user_id, limit)

    def get_appeal(self, appeal_id: str) -> Dict[str, Any]:
        appeal = self.appeal_repository.find_by_id(appeal_id)
        if appeal is None:
            raise NotFoundError('appeal', appeal_id)
        return to_appeal_response(appeal)
