"""
User read service: ban status, banned-user listing and the admin user detail.

Every read goes through the ban manager's lazy expiry first, so an expired
ban is never reported as active.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

from safety_admin.common.actor import ActorContext
from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.common.errors import ValidationError
from safety_admin.features.appeals.domain.appeal_entity import Appeal, AppealType
from safety_admin.features.appeals.mapper.appeal_mapper import to_appeal_response
from safety_admin.features.appeals.repository.appeal_repository import AppealRepository
from safety_admin.features.audit.domain.audit_entity import AdminActionType
from safety_admin.features.audit.mapper.audit_mapper import to_action_response
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.features.moderation.mapper.moderation_mapper import to_violation_response
from safety_admin.features.moderation.repository.violation_repository import ViolationRepository
from safety_admin.features.users.domain.user_entity import UserProfile
from safety_admin.features.users.mapper.user_mapper import (
    to_ban_status_response,
    to_banned_user_response,
    to_profile_response,
)
from safety_admin.features.users.repository.user_repository import UserRepository
from safety_admin.features.users.service.ban_service import BanLifecycleManager
from safety_admin.services.system.logger_service import get_logger
from safety_admin.utils.time_utils import to_iso

logger = get_logger(__name__)

BAN_TYPES = ('all', 'temporary', 'permanent')
BAN_VIOLATION_SKEW = timedelta(seconds=60)


class UserService(BaseService):
    def __init__(self, ban_manager: BanLifecycleManager, user_repository: UserRepository,
                 violation_repository: ViolationRepository, appeal_repository: AppealRepository,
                 audit_log_service: AuditLogService, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.ban_manager = ban_manager
        self.user_repository = user_repository
        self.violation_repository = violation_repository
        self.appeal_repository = appeal_repository
        self.audit_log_service = audit_log_service

    # ------------------------------------------------------------------
    # Ban status
    # ------------------------------------------------------------------

    def get_ban_status(self, user_id: str) -> Dict[str, Any]:
        return self._ban_status(self.ban_manager.get_profile(user_id))

    def get_ban_status_by_username(self, username: str) -> Dict[str, Any]:
        """Public lookup; unknown usernames look exactly like unbanned ones."""
        profile = self.ban_manager.find_profile_by_username(username)
        if profile is None:
            return {'isBanned': False, 'canAppeal': False}
        return self._ban_status(profile)

    def _ban_status(self, profile: UserProfile) -> Dict[str, Any]:
        status = to_ban_status_response(profile, self.now())
        if not profile.is_banned:
            status['canAppeal'] = False
            return status

        violation = None
        if profile.banned_at is not None:
            violation = self.violation_repository.find_latest_since(
                profile.id, profile.banned_at - BAN_VIOLATION_SKEW
            )
        status['violation'] = {
            'id': violation.id,
            'reason': violation.reason,
            'severity': violation.severity.value,
            'violationType': violation.violation_type,
            'contentExcerpt': violation.content_excerpt,
            'createdAt': to_iso(violation.created_at),
        } if violation else None

        appeal = self._current_ban_appeal(profile)
        status['appeal'] = {
            'id': appeal.id,
            'status': appeal.status.value,
            'submittedAt': to_iso(appeal.submitted_at),
            'reviewedAt': to_iso(appeal.reviewed_at),
            'reviewNotes': appeal.review_notes,
        } if appeal else None
        status['canAppeal'] = not (appeal and appeal.is_pending)
        return status

    def _current_ban_appeal(self, profile: UserProfile) -> Optional[Appeal]:
        return self.appeal_repository.find_latest_of_type(profile.id, AppealType.BAN, since=profile.banned_at)

    # ------------------------------------------------------------------
    # Listing / detail
    # ------------------------------------------------------------------

    def list_banned_users(self, ban_type: str = 'all', limit: int = 100) -> Dict[str, Any]:
        ban_type = (ban_type or 'all').lower()
        if ban_type not in BAN_TYPES:
            raise ValidationError(f"banType must be one of {', '.join(BAN_TYPES)}", field='banType')

        users: List[Dict[str, Any]] = []
        for profile in self.user_repository.find_banned(limit):
            profile = self.ban_manager.refresh_expiry(profile)
            if not profile.is_banned:
                continue
            if ban_type == 'temporary' and profile.is_permanent_ban:
                continue
            if ban_type == 'permanent' and not profile.is_permanent_ban:
                continue
            users.append(to_banned_user_response(profile, self.now()))

        return {'users': users, 'count': len(users), 'banType': ban_type}

    def get_user_detail(self, user_id: str) -> Dict[str, Any]:
        profile = self.ban_manager.get_profile(user_id)
        violations = self.violation_repository.find_by_user(user_id)
        ban_history = self.audit_log_service.history_for_user(
            user_id, [AdminActionType.BAN_USER, AdminActionType.UNBAN_USER]
        )
        appeals = self.appeal_repository.find_by_user(user_id)

        return {
            'user': to_profile_response(profile),
            'violations': [to_violation_response(v) for v in violations],
            'banHistory': [to_action_response(a) for a in ban_history],
            'appeals': [to_appeal_response(a) for a in appeals],
            'stats': {
                'totalViolations': max(profile.violation_count, len(violations)),
                'totalBans': sum(1 for a in ban_history if a.action == AdminActionType.BAN_USER),
                'currentlyBanned': profile.is_banned,
            },
        }

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def run_expiry_sweep(self, actor: ActorContext, limit: int = 100) -> Dict[str, int]:
        result = self.ban_manager.expire_due_bans(limit)
        self.audit_log_service.record(actor, AdminActionType.EXPIRE_BANS, metadata=dict(result))
        return result
