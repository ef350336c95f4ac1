"""
Ban Lifecycle Manager.

Ban and unban span two systems that must agree: the Firestore profile and
the Firebase Auth account. Each runs as a saga on a CompensationStack:

    ban:   profile ban fields -> disable account -> create schedule (temporary only)
    unban: clear ban fields   -> enable account  -> delete schedule

Expiry is pull-based. Every read path that looks at ban status goes through
``get_profile``/``refresh_expiry`` which unbans an expired ban before
answering. ``expire_due_bans`` is an optional sweep over the schedule records
for deployments that want bounded expiry latency.
"""
from dataclasses import replace
from typing import Any, Dict, Optional

from safety_admin.common.actor import ActorContext, SYSTEM_ACTOR
from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.common.compensation import CompensationStack
from safety_admin.common.errors import (
    ConflictError,
    NotFoundError,
    SafetyAdminError,
    ValidationError,
)
from safety_admin.features.audit.domain.audit_entity import AdminActionType
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.features.users.domain.user_entity import BanSchedule, UnbanSource, UserProfile
from safety_admin.features.users.mapper.user_mapper import cleared_ban_fields
from safety_admin.features.users.repository.ban_schedule_repository import BanScheduleRepository
from safety_admin.features.users.repository.user_repository import UserRepository
from safety_admin.services.notifications.notification_service import NotificationService, NotificationType
from safety_admin.services.system.logger_service import get_logger, log_ban_operation, log_error
from safety_admin.utils.time_utils import ban_duration_to_timedelta, format_ban_duration, to_iso

logger = get_logger(__name__)

BAN_REASON_MIN = 5
BAN_REASON_MAX = 500
AUTO_UNBAN_ATTEMPTS = 2


class BanLifecycleManager(BaseService):
    def __init__(self, user_repository: UserRepository, schedule_repository: BanScheduleRepository,
                 identity_provider, audit_log_service: AuditLogService,
                 notification_service: NotificationService, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.user_repository = user_repository
        self.schedule_repository = schedule_repository
        self.identity_provider = identity_provider
        self.audit_log_service = audit_log_service
        self.notification_service = notification_service

    # ------------------------------------------------------------------
    # Ban
    # ------------------------------------------------------------------

    def ban_user(self, actor: ActorContext, target_user_id: str, reason: str, duration: int,
                 unit: str = 'days', metadata: Optional[Dict[str, Any]] = None) -> UserProfile:
        reason = (reason or '').strip()
        if not BAN_REASON_MIN <= len(reason) <= BAN_REASON_MAX:
            raise ValidationError(
                f"Ban reason must be between {BAN_REASON_MIN} and {BAN_REASON_MAX} characters",
                field='reason',
            )
        unit = (unit or 'days').lower()
        delta = ban_duration_to_timedelta(duration, unit)

        profile = self.get_profile(target_user_id)
        if profile.is_banned:
            raise ConflictError(f"User {target_user_id} is already banned", code='ALREADY_BANNED')

        now = self.now()
        expires_at = now + delta if delta else None
        display = format_ban_duration(duration, unit)
        ban_fields = {
            'isBanned': True,
            'isActive': False,
            'banReason': reason,
            'bannedAt': now,
            'bannedBy': actor.user_id,
            'banDuration': duration,
            'banDurationUnit': unit,
            'banDurationDisplay': display,
            'banExpiresAt': expires_at,
            'updatedAt': now,
        }
        account_name = profile.account_name
        context = {'user_id': target_user_id, 'admin_id': actor.user_id}

        with CompensationStack('ban_user', context=context) as saga:
            self.user_repository.conditional_update(profile, ban_fields, expect_banned=False)
            saga.push('restore profile ban state', lambda: self.user_repository.restore_ban_state(profile))

            self.identity_provider.disable_account(account_name)
            saga.push('re-enable identity account', lambda: self.identity_provider.enable_account(account_name))

            if expires_at is not None:
                self.schedule_repository.create(BanSchedule(
                    user_id=target_user_id,
                    ban_expires_at=expires_at,
                    created_at=now,
                    metadata={'bannedBy': actor.user_id},
                ))

        banned = replace(
            profile,
            is_banned=True,
            is_active=False,
            ban_reason=reason,
            banned_at=now,
            banned_by=actor.user_id,
            ban_duration=duration,
            ban_duration_unit=unit,
            ban_duration_display=display,
            ban_expires_at=expires_at,
            updated_at=now,
            update_time=None,
        )

        log_ban_operation(logger, 'BAN', target_user_id, actor.user_id,
                          ban_duration=display, ban_expires_at=to_iso(expires_at))
        audit_metadata = {
            'banDuration': duration,
            'banDurationUnit': unit,
            'banDurationDisplay': display,
            'banExpiresAt': to_iso(expires_at),
            **(metadata or {}),
        }
        self.audit_log_service.record(
            actor, AdminActionType.BAN_USER, target_user_id,
            target_username=profile.username, reason=reason, metadata=audit_metadata,
        )

        message = (
            f"Your account has been suspended until {to_iso(expires_at)}."
            if expires_at else
            "Your account has been permanently suspended."
        )
        self.notification_service.notify(
            target_user_id, NotificationType.ACCOUNT_BANNED, 'Account suspended',
            f"{message} Reason: {reason}",
            metadata={
                'banReason': reason,
                'banExpiresAt': to_iso(expires_at),
                'banDurationDisplay': display,
                'canAppeal': True,
                **(metadata or {}),
            },
        )
        return banned

    # ------------------------------------------------------------------
    # Unban
    # ------------------------------------------------------------------

    def unban_user(self, target_user_id: str, source: UnbanSource = UnbanSource.MANUAL,
                   actor: Optional[ActorContext] = None) -> UserProfile:
        actor = actor or SYSTEM_ACTOR
        profile = self.user_repository.find_by_id(target_user_id)
        if profile is None:
            raise NotFoundError('user', target_user_id)
        if not profile.is_banned:
            raise ConflictError(f"User {target_user_id} is not banned", code='NOT_BANNED')

        now = self.now()
        account_name = profile.account_name
        context = {'user_id': target_user_id, 'admin_id': actor.user_id, 'unban_source': source.value}

        with CompensationStack('unban_user', context=context) as saga:
            self.user_repository.conditional_update(profile, cleared_ban_fields(now), expect_banned=True)
            saga.push('restore profile ban state', lambda: self.user_repository.restore_ban_state(profile))

            self.identity_provider.enable_account(account_name)
            saga.push('re-disable identity account', lambda: self.identity_provider.disable_account(account_name))

            self.schedule_repository.delete(target_user_id)

        log_ban_operation(logger, 'UNBAN', target_user_id, actor.user_id, unban_source=source.value)
        self.audit_log_service.record(
            actor, AdminActionType.UNBAN_USER, target_user_id,
            target_username=profile.username,
            reason='Ban expired' if source == UnbanSource.AUTO else None,
            metadata={
                'source': source.value,
                'previousBanReason': profile.ban_reason,
                'previousBanExpiresAt': to_iso(profile.ban_expires_at),
            },
        )

        return replace(
            profile,
            is_banned=False,
            is_active=True,
            ban_reason=None,
            banned_at=None,
            banned_by=None,
            ban_duration=None,
            ban_duration_unit=None,
            ban_duration_display=None,
            ban_expires_at=None,
            updated_at=now,
            update_time=None,
        )

    # ------------------------------------------------------------------
    # Lazy expiry
    # ------------------------------------------------------------------

    def refresh_expiry(self, profile: UserProfile) -> UserProfile:
        """Lift an expired ban before anyone reads it; returns the current profile."""
        if not profile.ban_expired(self.now()):
            return profile

        try:
            return self._auto_unban(profile.id)
        except ConflictError:
            # Another request lifted (or changed) the ban first.
            current = self.user_repository.find_by_id(profile.id)
            return current or profile
        except SafetyAdminError as exc:
            log_error(logger, exc, {'user_id': profile.id, 'operation': 'auto_unban'})
            return profile

    def _auto_unban(self, user_id: str) -> UserProfile:
        """Unban with source=auto, re-reading once if the profile moved underneath us."""
        attempt = 1
        while True:
            try:
                return self.unban_user(user_id, source=UnbanSource.AUTO)
            except ConflictError as exc:
                if exc.code != 'CONCURRENT_MODIFICATION' or attempt >= AUTO_UNBAN_ATTEMPTS:
                    raise
                logger.info("Profile changed during auto-unban, retrying", extra={
                    'user_id': user_id, 'attempt': attempt
                })
                attempt += 1

    def get_profile(self, user_id: str) -> UserProfile:
        profile = self.user_repository.find_by_id(user_id)
        if profile is None:
            raise NotFoundError('user', user_id)
        return self.refresh_expiry(profile)

    def find_profile_by_username(self, username: str) -> Optional[UserProfile]:
        profile = self.user_repository.find_by_username(username)
        if profile is None:
            return None
        return self.refresh_expiry(profile)

    def expire_due_bans(self, limit: int = 100) -> Dict[str, int]:
        """Sweep schedule records that are past due and lift their bans."""
        due = self.schedule_repository.find_due(self.now(), limit)
        expired = 0
        failed = 0
        for schedule in due:
            try:
                self._auto_unban(schedule.user_id)
                expired += 1
            except ConflictError as exc:
                if exc.code != 'NOT_BANNED':
                    # Still banned; the schedule stays so the next sweep retries.
                    failed += 1
                    log_error(logger, exc, {'user_id': schedule.user_id, 'operation': 'sweep_unban'})
                    continue
                # Profile already unbanned; drop the orphaned schedule.
                self.schedule_repository.delete(schedule.user_id)
            except NotFoundError:
                logger.warning("Ban schedule without profile", extra={'user_id': schedule.user_id})
                self.schedule_repository.delete(schedule.user_id)
            except SafetyAdminError as exc:
                failed += 1
                log_error(logger, exc, {'user_id': schedule.user_id, 'operation': 'sweep_unban'})

        if due:
            logger.info("Ban expiry sweep finished", extra={
                'bans_due': len(due), 'bans_expired': expired, 'bans_failed': failed
            })
        return {'due': len(due), 'expired': expired, 'failed': failed}
