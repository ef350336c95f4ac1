from datetime import datetime
from typing import List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from safety_admin.common.base.base_repository import FirestoreRepository
from safety_admin.features.moderation.domain.moderation_entity import ContentType, ViolationRecord
from safety_admin.features.moderation.mapper.moderation_mapper import (
    violation_from_firestore_dict,
    violation_to_dict,
)


class ViolationRepository(FirestoreRepository[ViolationRecord]):
    """Violation records are written once and never updated."""

    collection_name = 'violations'

    def find_by_id(self, id: str) -> Optional[ViolationRecord]:
        with self._store_call('get_violation', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return violation_from_firestore_dict(doc.id, doc.to_dict() or {})

    def save(self, entity: ViolationRecord) -> ViolationRecord:
        with self._store_call('create_violation', entity.id):
            self._doc(entity.id).create(violation_to_dict(entity))
        return entity

    def _newest(self, query, limit: int) -> List[ViolationRecord]:
        query = query.order_by('createdAt', direction=firestore.Query.DESCENDING).limit(limit)
        return [violation_from_firestore_dict(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def find_by_user(self, user_id: str, limit: int = 50) -> List[ViolationRecord]:
        """Newest first."""
        with self._store_call('find_violations', user_id):
            return self._newest(self.collection.where(filter=FieldFilter('userId', '==', user_id)), limit)

    def find_latest_for_content(self, user_id: str, content_id: str,
                                content_type: Optional[ContentType] = None) -> Optional[ViolationRecord]:
        query = (
            self.collection
            .where(filter=FieldFilter('userId', '==', user_id))
            .where(filter=FieldFilter('contentId', '==', content_id))
        )
        if content_type is not None:
            query = query.where(filter=FieldFilter('contentType', '==', ContentType(content_type).value))
        with self._store_call('find_content_violation', content_id):
            latest = self._newest(query, 1)
        return latest[0] if latest else None

    def find_latest_since(self, user_id: str, since: datetime) -> Optional[ViolationRecord]:
        """Newest violation recorded at or after ``since``."""
        query = (
            self.collection
            .where(filter=FieldFilter('userId', '==', user_id))
            .where(filter=FieldFilter('createdAt', '>=', since))
        )
        with self._store_call('find_recent_violation', user_id):
            latest = self._newest(query, 1)
        return latest[0] if latest else None
