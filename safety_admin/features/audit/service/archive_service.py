"""
Archival pipeline.

StreamArchiveService consumes Firestore deletion events and copies records
removed by a TTL policy into date-partitioned JSON archives. It is safe to
replay: records are keyed by ``collection/documentId`` and merged, never
appended.

ArchiveService is the on-demand path used by admins to clear resolved
reports and old activity: archive first, then stamp ``deletionCause`` and
delete.
"""
from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from safety_admin.common.actor import ActorContext
from safety_admin.common.base.base_service import BaseService, Clock
from safety_admin.common.errors import SafetyAdminError, ValidationError
from safety_admin.config.env_config import SafetyConfig
from safety_admin.features.audit.domain.audit_entity import (
    DELETION_CAUSE_EXPIRY,
    DELETION_CAUSE_MANUAL,
    AdminActionType,
    DeletionEvent,
)
from safety_admin.features.audit.mapper.audit_mapper import to_action_response
from safety_admin.features.audit.repository.admin_action_repository import AdminActionRepository
from safety_admin.features.audit.repository.archive_repository import ArchiveRepository
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.features.moderation.repository.report_repository import ReportRepository
from safety_admin.services.slack.alert_notifier import AlertSlackNotifier
from safety_admin.services.system.logger_service import get_logger, log_error
from safety_admin.utils.time_utils import ensure_utc, to_iso

logger = get_logger(__name__)

# Collections under a TTL policy and the archive they land in.
ARCHIVED_COLLECTIONS = {
    'admin_actions': 'activity',
    'reports': 'reports',
    'appeals': 'appeals',
    'posts': 'content',
    'comments': 'content',
}


def parse_deletion_event(payload: Dict[str, Any]) -> Optional[DeletionEvent]:
    """Build a DeletionEvent from a decoded push payload; None when malformed."""
    if not isinstance(payload, dict):
        return None
    collection = payload.get('collection')
    document_id = payload.get('documentId')
    document = payload.get('document')
    if (not collection or not document_id) and isinstance(document, str) and '/' in document:
        collection, document_id = document.rsplit('/', 1)
        collection = collection.split('/')[-1]
    deleted_at = ensure_utc(payload.get('time'))
    old_value = payload.get('oldValue')
    if not collection or not document_id or deleted_at is None or not isinstance(old_value, dict):
        return None
    return DeletionEvent(
        event_id=str(payload.get('id') or f"{collection}/{document_id}@{to_iso(deleted_at)}"),
        collection=collection,
        document_id=str(document_id),
        old_value=old_value,
        deleted_at=deleted_at,
    )


def is_automatic_deletion(event: DeletionEvent) -> bool:
    """Deleted by the TTL policy rather than by the application or a person."""
    if event.old_value.get('deletionCause') != DELETION_CAUSE_EXPIRY:
        return False
    expire_at = ensure_utc(event.old_value.get('expireAt'))
    return expire_at is not None and expire_at <= event.deleted_at


class StreamArchiveService(BaseService):
    def __init__(self, archive_repository: ArchiveRepository, alert_notifier: Optional[AlertSlackNotifier] = None,
                 config: Optional[SafetyConfig] = None, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.archive_repository = archive_repository
        self.alert_notifier = alert_notifier
        self.config = config or SafetyConfig()

    def handle_deletion_events(self, payloads: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        stats = {'received': 0, 'archived': 0, 'duplicates': 0, 'ignored': 0,
                 'manual': 0, 'malformed': 0, 'failed': 0}
        partitions: Dict[Tuple[str, str], Dict[str, Dict[str, Any]]] = defaultdict(dict)

        for payload in payloads:
            stats['received'] += 1
            event = parse_deletion_event(payload)
            if event is None:
                stats['malformed'] += 1
                logger.warning("Malformed deletion event skipped", extra={'event_payload': str(payload)[:500]})
                continue

            entity_type = ARCHIVED_COLLECTIONS.get(event.collection)
            if entity_type is None:
                stats['ignored'] += 1
                continue
            if not is_automatic_deletion(event):
                stats['manual'] += 1
                logger.debug("Manual deletion not archived", extra={
                    'collection': event.collection, 'document_id': event.document_id
                })
                continue

            expire_day = ensure_utc(event.old_value.get('expireAt')).date()
            path = self.archive_repository.ttl_path(entity_type, expire_day)
            partitions[(entity_type, path)][event.record_key] = {
                'collection': event.collection,
                'documentId': event.document_id,
                'eventId': event.event_id,
                'deletedAt': event.deleted_at,
                'data': event.old_value,
            }

        for (entity_type, path), records in partitions.items():
            added = self._merge_with_retry(entity_type, path, records)
            if added is None:
                stats['failed'] += len(records)
            else:
                stats['archived'] += added
                stats['duplicates'] += len(records) - added

        logger.info("Deletion events processed", extra={'archive_stats': stats})
        return stats

    def _merge_with_retry(self, entity_type: str, path: str, records: Dict[str, Dict[str, Any]]) -> Optional[int]:
        attempts = self.config.archive_max_attempts
        last_error: Optional[SafetyAdminError] = None
        for attempt in range(1, attempts + 1):
            try:
                return self.archive_repository.merge_records(path, entity_type, records, self.now())
            except SafetyAdminError as exc:
                last_error = exc
                logger.warning("Archive merge attempt failed", extra={
                    'archive_path': path, 'attempt': attempt, 'max_attempts': attempts,
                    'error_message': str(exc),
                })

        logger.critical("ARCHIVE_ALERT", extra={
            'archive_path': path,
            'entity_type': entity_type,
            'record_keys': sorted(records),
            'error_message': str(last_error),
        })
        if self.alert_notifier is not None:
            self.alert_notifier.notify_alert(
                'Archive write failed',
                f"{len(records)} expired {entity_type} record(s) could not be archived after {attempts} attempts. "
                "The event will be redelivered.",
                context={'path': path, 'error': str(last_error), 'records': ', '.join(sorted(records)[:10])},
            )
        return None


class ArchiveService(BaseService):
    def __init__(self, report_repository: ReportRepository, admin_action_repository: AdminActionRepository,
                 archive_repository: ArchiveRepository, audit_log_service: AuditLogService,
                 config: Optional[SafetyConfig] = None, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.report_repository = report_repository
        self.admin_action_repository = admin_action_repository
        self.archive_repository = archive_repository
        self.audit_log_service = audit_log_service
        self.config = config or SafetyConfig()

    def archive_resolved_reports(self, actor: ActorContext, limit: int = 1000) -> Dict[str, Any]:
        reports = self.report_repository.find_raw_resolved(limit)
        if not reports:
            return {'archivedCount': 0, 'deletedCount': 0, 'archivePath': None, 'errors': []}

        now = self.now()
        path = self.archive_repository.write_new(
            self.archive_repository.manual_path('reports', now),
            {
                'archivedAt': now,
                'archivedBy': actor.user_id,
                'totalRecords': len(reports),
                'reports': reports,
            },
        )
        ids = [r['reportId'] for r in reports]
        return self._purge(actor, self.report_repository, ids, path, AdminActionType.ARCHIVE_REPORTS)

    def archive_activity_log(self, actor: ActorContext, older_than_days: int = 7,
                             limit: int = 500) -> Dict[str, Any]:
        if older_than_days < 1:
            raise ValidationError("olderThanDays must be at least 1", field='olderThanDays')
        now = self.now()
        cutoff = now - timedelta(days=older_than_days)
        actions = self.admin_action_repository.find_before(cutoff, limit)
        if not actions:
            return {'archivedCount': 0, 'deletedCount': 0, 'archivePath': None, 'errors': [],
                    'cutoff': to_iso(cutoff)}

        path = self.archive_repository.write_new(
            self.archive_repository.manual_path('activity', now),
            {
                'archivedAt': now,
                'archivedBy': actor.user_id,
                'cutoff': cutoff,
                'totalRecords': len(actions),
                'actions': [to_action_response(a) for a in actions],
            },
        )
        result = self._purge(
            actor, self.admin_action_repository, [a.action_id for a in actions], path,
            AdminActionType.ARCHIVE_ACTIVITY,
        )
        result['cutoff'] = to_iso(cutoff)
        return result

    def _purge(self, actor: ActorContext, repository, ids: List[str], path: str, audit_type: str) -> Dict[str, Any]:
        errors = repository.stamp_and_delete(ids, DELETION_CAUSE_MANUAL, self.config.archive_delete_batch_size)
        failed_ids = {doc_id for err in errors for doc_id in err['ids']}
        deleted = len(ids) - len(failed_ids)

        if errors:
            log_error(logger, RuntimeError(f"{len(errors)} delete batch(es) failed after archiving"), {
                'archive_path': path, 'collection': repository.collection_name, 'failed_ids': sorted(failed_ids),
            })
        self.audit_log_service.record(actor, audit_type, metadata={
            'archivePath': path,
            'archivedCount': len(ids),
            'deletedCount': deleted,
            'failedBatches': len(errors),
        })
        logger.info("Manual archive completed", extra={
            'archive_path': path, 'collection': repository.collection_name,
            'archived_count': len(ids), 'deleted_count': deleted,
        })
        return {'archivedCount': len(ids), 'deletedCount': deleted, 'archivePath': path, 'errors': errors}
