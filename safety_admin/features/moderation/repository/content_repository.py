"""
Content Repository.

Posts and comments live in separate collections; only the moderation-relevant
fields are read or written here.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from google.cloud import firestore

from safety_admin.common.base.base_repository import FirestoreRepository
from safety_admin.features.audit.domain.audit_entity import DELETION_CAUSE_EXPIRY, DELETION_CAUSE_MANUAL
from safety_admin.features.moderation.domain.moderation_entity import (
    ContentRecord,
    ContentStatus,
    ContentType,
)
from safety_admin.features.moderation.mapper.moderation_mapper import content_from_firestore_dict
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)

CONTENT_COLLECTIONS = {
    ContentType.POST: 'posts',
    ContentType.COMMENT: 'comments',
}

HIDDEN_STATE_FIELDS = (
    'hiddenReason',
    'hiddenAt',
    'hiddenBy',
    'hiddenDueToBan',
    'canAppeal',
    'appealDeadline',
    'expireAt',
    'deletionCause',
)

DELETED_STATE_FIELDS = (
    'deletedAt',
    'deletedBy',
    'deletedReason',
)


class ContentRepository(FirestoreRepository[ContentRecord]):
    def __init__(self, db: Any, content_type: ContentType = ContentType.POST):
        super().__init__(db, CONTENT_COLLECTIONS[content_type])
        self.content_type = content_type

    def find_by_id(self, id: str) -> Optional[ContentRecord]:
        with self._store_call('get_content', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return content_from_firestore_dict(doc.id, self.content_type, doc.to_dict() or {}, doc.update_time)

    def save(self, entity: ContentRecord) -> ContentRecord:
        with self._store_call('save_content', entity.id):
            self._doc(entity.id).set({
                'userId': entity.author_id,
                'content': entity.body,
                'status': entity.status.value,
                'reportCount': entity.report_count,
            }, merge=True)
        return entity

    def update_fields(self, content_id: str, fields: Dict[str, Any]) -> None:
        with self._store_call('update_content', content_id):
            self._doc(content_id).update(fields)

    def hide(self, content: ContentRecord, reason: str, admin_id: str, hidden_at: datetime,
             appeal_deadline: datetime, due_to_ban: bool = False) -> None:
        """Hide content until the appeal deadline; the TTL purges it afterwards."""
        self.update_fields(content.id, {
            'status': ContentStatus.HIDDEN.value,
            'hiddenReason': reason,
            'hiddenAt': hidden_at,
            'hiddenBy': admin_id,
            'hiddenDueToBan': due_to_ban,
            'canAppeal': True,
            'appealDeadline': appeal_deadline,
            'expireAt': appeal_deadline,
            'deletionCause': DELETION_CAUSE_EXPIRY,
            'updatedAt': hidden_at,
        })

    def restore(self, content: ContentRecord, admin_id: str, reason: Optional[str],
                restored_at: datetime) -> None:
        fields: Dict[str, Any] = {
            key: firestore.DELETE_FIELD for key in HIDDEN_STATE_FIELDS + DELETED_STATE_FIELDS
        }
        fields.update({
            'status': ContentStatus.ACTIVE.value,
            'restoredAt': restored_at,
            'restoredBy': admin_id,
            'restoredReason': reason,
            'updatedAt': restored_at,
        })
        self.update_fields(content.id, fields)

    def restore_if_unchanged(self, content: ContentRecord, admin_id: str, reason: str,
                             restored_at: datetime) -> None:
        """Admin restore of hidden or deleted content, guarded against a concurrent status change."""
        fields: Dict[str, Any] = {
            key: firestore.DELETE_FIELD for key in HIDDEN_STATE_FIELDS + DELETED_STATE_FIELDS
        }
        fields.update({
            'status': ContentStatus.ACTIVE.value,
            'restoredAt': restored_at,
            'restoredBy': admin_id,
            'restoredReason': reason,
            'updatedAt': restored_at,
        })
        with self._store_call('restore_content', content.id):
            self._doc(content.id).update(fields, option=self._write_option(content.update_time))

    def soft_delete(self, content: ContentRecord, admin_id: str, reason: str, deleted_at: datetime) -> None:
        """
        Mark content deleted and keep the document for audit.

        The purge TTL is dropped and the record is tagged as a manual removal,
        so a hidden post deleted by an admin is never archived as an expiry.
        """
        with self._store_call('delete_content', content.id):
            self._doc(content.id).update({
                'status': ContentStatus.DELETED.value,
                'deletedAt': deleted_at,
                'deletedBy': admin_id,
                'deletedReason': reason,
                'canAppeal': False,
                'expireAt': firestore.DELETE_FIELD,
                'deletionCause': DELETION_CAUSE_MANUAL,
                'updatedAt': deleted_at,
            }, option=self._write_option(content.update_time))

    def record_warning(self, content_id: str, reason: str, warned_at: datetime) -> None:
        self.update_fields(content_id, {
            'warningCount': firestore.Increment(1),
            'lastWarningAt': warned_at,
            'lastWarningReason': reason,
        })

    def mark_reviewed(self, content_id: str, admin_id: str, reviewed_at: datetime) -> None:
        self.update_fields(content_id, {
            'reportCount': 0,
            'reviewedAt': reviewed_at,
            'reviewedBy': admin_id,
            'reviewStatus': 'action_taken',
        })

    def stamp_moderation(self, content_id: str, action: str, reason: Optional[str],
                         admin_id: str, moderated_at: datetime) -> None:
        self.update_fields(content_id, {
            'moderationAction': action,
            'moderationReason': reason,
            'moderatedAt': moderated_at,
            'moderatedBy': admin_id,
        })


class ContentRepositories:
    """One ContentRepository per content type."""

    def __init__(self, db: Any):
        self._by_type = {content_type: ContentRepository(db, content_type) for content_type in ContentType}

    def for_type(self, content_type: ContentType) -> ContentRepository:
        return self._by_type[ContentType(content_type)]

    def find(self, content_type: ContentType, content_id: str) -> Optional[ContentRecord]:
        return self.for_type(content_type).find_by_id(content_id)
