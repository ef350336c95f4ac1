from datetime import datetime
from typing import List, Optional, Sequence

from google.cloud.firestore_v1.base_query import FieldFilter

from safety_admin.common.base.base_repository import FirestoreRepository, MAX_BATCH_WRITES
from safety_admin.features.audit.domain.audit_entity import DELETION_CAUSE_EXPIRY
from safety_admin.features.moderation.domain.moderation_entity import (
    ContentType,
    ReportRecord,
    ReportStatus,
)
from safety_admin.features.moderation.mapper.moderation_mapper import report_from_firestore_dict

RESOLVED_STATUSES = (ReportStatus.ACTION_TAKEN.value, ReportStatus.DISMISSED.value)


class ReportRepository(FirestoreRepository[ReportRecord]):
    collection_name = 'reports'

    def find_by_id(self, id: str) -> Optional[ReportRecord]:
        with self._store_call('get_report', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return report_from_firestore_dict(doc.id, doc.to_dict() or {})

    def save(self, entity: ReportRecord) -> ReportRecord:
        with self._store_call('save_report', entity.id):
            self._doc(entity.id).set({
                'contentType': entity.content_type.value,
                'contentId': entity.content_id,
                'reporterId': entity.reporter_id,
                'reason': entity.reason,
                'status': entity.status.value,
                'createdAt': entity.created_at,
            }, merge=True)
        return entity

    def find_open_for_content(self, content_type: ContentType, content_id: str) -> List[ReportRecord]:
        with self._store_call('find_open_reports', content_id):
            docs = (
                self.collection
                .where(filter=FieldFilter('contentId', '==', content_id))
                .where(filter=FieldFilter('contentType', '==', ContentType(content_type).value))
                .where(filter=FieldFilter('status', '==', ReportStatus.PENDING.value))
                .stream()
            )
            return [report_from_firestore_dict(doc.id, doc.to_dict() or {}) for doc in docs]

    def close(self, report_ids: Sequence[str], status: ReportStatus, admin_id: str,
              notes: Optional[str], closed_at: datetime, expire_at: datetime) -> int:
        """Close reports in batches; closed reports start their retention window."""
        ids = list(report_ids)
        for start in range(0, len(ids), MAX_BATCH_WRITES):
            chunk = ids[start:start + MAX_BATCH_WRITES]
            with self._store_call('close_reports', chunk[0]):
                batch = self.db.batch()
                for report_id in chunk:
                    batch.update(self._doc(report_id), {
                        'status': status.value,
                        'reviewedAt': closed_at,
                        'reviewedBy': admin_id,
                        'reviewNotes': notes,
                        'expireAt': expire_at,
                        'deletionCause': DELETION_CAUSE_EXPIRY,
                    })
                batch.commit()
        return len(ids)

    def find_resolved(self, limit: int = 1000) -> List[ReportRecord]:
        with self._store_call('find_resolved_reports'):
            docs = (
                self.collection
                .where(filter=FieldFilter('status', 'in', list(RESOLVED_STATUSES)))
                .limit(limit)
                .stream()
            )
            return [report_from_firestore_dict(doc.id, doc.to_dict() or {}) for doc in docs]

    def find_raw_resolved(self, limit: int = 1000) -> List[dict]:
        """Resolved reports as stored, for archiving verbatim."""
        with self._store_call('find_resolved_reports_raw'):
            docs = (
                self.collection
                .where(filter=FieldFilter('status', 'in', list(RESOLVED_STATUSES)))
                .limit(limit)
                .stream()
            )
            return [{'reportId': doc.id, **(doc.to_dict() or {})} for doc in docs]
