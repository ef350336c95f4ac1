"""
Dependency wiring.

Every lifecycle component is built once here and handed its collaborators
explicitly. The only process-wide handles are the Firestore client, the
storage bucket and the Firebase app behind the identity provider.
"""
from dataclasses import dataclass
from typing import Any, Optional

from safety_admin.common.base.base_service import Clock
from safety_admin.config.env_config import SafetyConfig
from safety_admin.features.appeals.repository.appeal_repository import AppealRepository, AppealSlotRepository
from safety_admin.features.appeals.service.appeal_service import AppealService
from safety_admin.features.audit.repository.admin_action_repository import AdminActionRepository
from safety_admin.features.audit.repository.archive_repository import ArchiveRepository
from safety_admin.features.audit.service.archive_service import ArchiveService, StreamArchiveService
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.features.moderation.repository.content_repository import ContentRepositories
from safety_admin.features.moderation.repository.report_repository import ReportRepository
from safety_admin.features.moderation.repository.violation_repository import ViolationRepository
from safety_admin.features.moderation.service.moderation_service import ModerationService
from safety_admin.features.users.repository.ban_schedule_repository import BanScheduleRepository
from safety_admin.features.users.repository.user_repository import UserRepository
from safety_admin.features.users.service.ban_service import BanLifecycleManager
from safety_admin.features.users.service.user_service import UserService
from safety_admin.services.notifications.notification_service import NotificationService
from safety_admin.services.slack.alert_notifier import AlertSlackNotifier
from safety_admin.services.system.logger_service import get_logger
from safety_admin.services.system.security import AdminRateLimiter

logger = get_logger(__name__)


@dataclass
class SafetyContainer:
    config: SafetyConfig
    audit_log_service: AuditLogService
    notification_service: NotificationService
    ban_manager: BanLifecycleManager
    user_service: UserService
    moderation_service: ModerationService
    appeal_service: AppealService
    archive_service: ArchiveService
    stream_archive_service: StreamArchiveService
    admin_rate_limiter: AdminRateLimiter


def build_container(db: Any, bucket: Any, identity_provider: Any, config: Optional[SafetyConfig] = None,
                    clock: Optional[Clock] = None,
                    alert_notifier: Optional[AlertSlackNotifier] = None) -> SafetyContainer:
    config = config or SafetyConfig.from_env()

    # Repositories
    user_repository = UserRepository(db)
    schedule_repository = BanScheduleRepository(db)
    violation_repository = ViolationRepository(db)
    content_repositories = ContentRepositories(db)
    report_repository = ReportRepository(db)
    appeal_repository = AppealRepository(db)
    slot_repository = AppealSlotRepository(db)
    admin_action_repository = AdminActionRepository(db)
    archive_repository = ArchiveRepository(bucket, prefix=config.archive_prefix)

    # Services
    audit_log_service = AuditLogService(admin_action_repository, clock=clock)
    notification_service = NotificationService(db, clock=clock)
    ban_manager = BanLifecycleManager(
        user_repository=user_repository,
        schedule_repository=schedule_repository,
        identity_provider=identity_provider,
        audit_log_service=audit_log_service,
        notification_service=notification_service,
        clock=clock,
    )
    user_service = UserService(
        ban_manager=ban_manager,
        user_repository=user_repository,
        violation_repository=violation_repository,
        appeal_repository=appeal_repository,
        audit_log_service=audit_log_service,
        clock=clock,
    )
    moderation_service = ModerationService(
        content_repositories=content_repositories,
        report_repository=report_repository,
        violation_repository=violation_repository,
        user_repository=user_repository,
        ban_manager=ban_manager,
        audit_log_service=audit_log_service,
        notification_service=notification_service,
        config=config,
        clock=clock,
    )
    appeal_service = AppealService(
        appeal_repository=appeal_repository,
        slot_repository=slot_repository,
        user_repository=user_repository,
        violation_repository=violation_repository,
        content_repositories=content_repositories,
        ban_manager=ban_manager,
        audit_log_service=audit_log_service,
        notification_service=notification_service,
        config=config,
        clock=clock,
    )
    archive_service = ArchiveService(
        report_repository=report_repository,
        admin_action_repository=admin_action_repository,
        archive_repository=archive_repository,
        audit_log_service=audit_log_service,
        config=config,
        clock=clock,
    )
    stream_archive_service = StreamArchiveService(
        archive_repository=archive_repository,
        alert_notifier=alert_notifier if alert_notifier is not None else AlertSlackNotifier(),
        config=config,
        clock=clock,
    )

    return SafetyContainer(
        config=config,
        audit_log_service=audit_log_service,
        notification_service=notification_service,
        ban_manager=ban_manager,
        user_service=user_service,
        moderation_service=moderation_service,
        appeal_service=appeal_service,
        archive_service=archive_service,
        stream_archive_service=stream_archive_service,
        admin_rate_limiter=AdminRateLimiter(
            soft_limit=config.admin_action_soft_limit,
            hard_limit=config.admin_action_hard_limit,
            storage_uri=config.rate_limit_storage_uri,
        ),
    )


def build_default_container(config: Optional[SafetyConfig] = None) -> SafetyContainer:
    """Container backed by the real Firebase project from the environment."""
    from safety_admin.services.firebase.firebase_service import get_firebase_service
    from safety_admin.services.firebase.identity_provider import FirebaseIdentityProvider

    firebase = get_firebase_service()
    container = build_container(
        db=firebase.get_client(),
        bucket=firebase.get_bucket(),
        identity_provider=FirebaseIdentityProvider(app=firebase.app),
        config=config,
    )
    logger.info("Service container built", extra={'environment': container.config.environment})
    return container
