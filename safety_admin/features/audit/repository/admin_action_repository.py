from datetime import datetime
from typing import List, Optional, Sequence

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from safety_admin.common.base.base_repository import FirestoreRepository
from safety_admin.features.audit.domain.audit_entity import AdminAction
from safety_admin.features.audit.mapper.audit_mapper import from_firestore_dict, to_dict_from_entity


class AdminActionRepository(FirestoreRepository[AdminAction]):
    collection_name = 'admin_actions'

    def find_by_id(self, id: str) -> Optional[AdminAction]:
        with self._store_call('get_admin_action', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return from_firestore_dict(doc.id, doc.to_dict() or {})

    def save(self, entity: AdminAction) -> AdminAction:
        # Append-only: create() refuses to overwrite an existing entry.
        with self._store_call('append_admin_action', entity.action_id):
            self._doc(entity.action_id).create(to_dict_from_entity(entity))
        return entity

    def find_recent(self, limit: int = 50, action_type: Optional[str] = None) -> List[AdminAction]:
        query = self.collection
        if action_type:
            query = query.where(filter=FieldFilter('action', '==', action_type))
        with self._store_call('find_recent_admin_actions'):
            docs = (
                query.order_by('timestamp', direction=firestore.Query.DESCENDING)
                .limit(limit)
                .stream()
            )
            return [from_firestore_dict(doc.id, doc.to_dict() or {}) for doc in docs]

    def find_by_target(self, user_id: str, action_types: Optional[Sequence[str]] = None,
                       limit: int = 50) -> List[AdminAction]:
        query = self.collection.where(filter=FieldFilter('targetUserId', '==', user_id))
        if action_types:
            query = query.where(filter=FieldFilter('action', 'in', list(action_types)))
        with self._store_call('find_admin_actions_by_target', user_id):
            docs = query.limit(limit).stream()
            actions = [from_firestore_dict(doc.id, doc.to_dict() or {}) for doc in docs]
        return sorted(actions, key=lambda a: a.timestamp, reverse=True)

    def find_before(self, cutoff: datetime, limit: int = 500) -> List[AdminAction]:
        with self._store_call('find_admin_actions_before'):
            docs = (
                self.collection
                .where(filter=FieldFilter('timestamp', '<=', cutoff))
                .limit(limit)
                .stream()
            )
            return [from_firestore_dict(doc.id, doc.to_dict() or {}) for doc in docs]
