"""
Appeal Repository.

Status transitions are written with the snapshot's ``update_time`` as a
precondition, so two reviewers (or a reviewer and the auto-resolver) cannot
both move the same appeal out of ``pending``.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from safety_admin.common.base.base_repository import FirestoreRepository
from safety_admin.common.errors import ConflictError, NotFoundError
from safety_admin.features.appeals.domain.appeal_entity import Appeal, AppealStatus, AppealType
from safety_admin.features.appeals.mapper.appeal_mapper import from_firestore_dict, to_dict_from_entity

REVIEW_FIELDS = ('reviewedAt', 'reviewedBy', 'reviewedByUsername', 'reviewNotes', 'resolution')


class AppealRepository(FirestoreRepository[Appeal]):
    collection_name = 'appeals'

    def find_by_id(self, id: str) -> Optional[Appeal]:
        with self._store_call('get_appeal', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time)

    def save(self, entity: Appeal) -> Appeal:
        with self._store_call('create_appeal', entity.id):
            self._doc(entity.id).create(to_dict_from_entity(entity))
        return entity

    def find_pending_for(self, user_id: str, appeal_type: AppealType, content_id: Optional[str] = None,
                         content_type: Optional[str] = None) -> List[Appeal]:
        with self._store_call('find_pending_appeals', user_id):
            docs = (
                self.collection
                .where(filter=FieldFilter('userId', '==', user_id))
                .where(filter=FieldFilter('status', '==', AppealStatus.PENDING.value))
                .stream()
            )
            appeals = [from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time) for doc in docs]
        return [
            a for a in appeals
            if a.appeal_type == appeal_type
            and (a.content_id or None) == (content_id or None)
            and (not content_id or (a.content_type or 'post') == (content_type or 'post'))
        ]

    def find_by_status(self, status: Optional[AppealStatus], appeal_type: Optional[AppealType] = None,
                       limit: int = 50, before: Optional[datetime] = None) -> List[Appeal]:
        """Newest first; ``before`` is the submittedAt cursor of the previous page."""
        query = self.collection
        if status is not None:
            query = query.where(filter=FieldFilter('status', '==', AppealStatus(status).value))
        if appeal_type is not None:
            query = query.where(filter=FieldFilter('appealType', '==', AppealType(appeal_type).value))
        if before is not None:
            query = query.where(filter=FieldFilter('submittedAt', '<', before))
        query = query.order_by('submittedAt', direction=firestore.Query.DESCENDING).limit(limit)

        with self._store_call('list_appeals'):
            return [from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time) for doc in query.stream()]

    def find_by_user(self, user_id: str, limit: int = 50) -> List[Appeal]:
        """All of a user's appeals, newest first."""
        query = (
            self.collection
            .where(filter=FieldFilter('userId', '==', user_id))
            .order_by('submittedAt', direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        with self._store_call('find_user_appeals', user_id):
            return [from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time) for doc in query.stream()]

    def find_latest_of_type(self, user_id: str, appeal_type: AppealType,
                            since: Optional[datetime] = None) -> Optional[Appeal]:
        """Newest appeal of ``appeal_type`` submitted at or after ``since``."""
        query = (
            self.collection
            .where(filter=FieldFilter('userId', '==', user_id))
            .where(filter=FieldFilter('appealType', '==', AppealType(appeal_type).value))
        )
        if since is not None:
            query = query.where(filter=FieldFilter('submittedAt', '>=', since))
        query = query.order_by('submittedAt', direction=firestore.Query.DESCENDING).limit(1)
        with self._store_call('find_latest_appeal', user_id):
            docs = list(query.stream())
        if not docs:
            return None
        return from_firestore_dict(docs[0].id, docs[0].to_dict() or {}, docs[0].update_time)

    def transition(self, appeal: Appeal, status: AppealStatus, fields: Dict[str, Any]) -> None:
        """Move a pending appeal to ``status``; ConflictError if it changed underneath us."""
        if not appeal.is_pending:
            raise ConflictError(f"Appeal {appeal.id} is already {appeal.status.value}", code='APPEAL_NOT_PENDING')
        with self._store_call('transition_appeal', appeal.id):
            self._doc(appeal.id).update(
                {'status': status.value, **fields},
                option=self._write_option(appeal.update_time),
            )

    def revert_to_pending(self, appeal_id: str) -> None:
        fields: Dict[str, Any] = {key: firestore.DELETE_FIELD for key in REVIEW_FIELDS}
        fields['status'] = AppealStatus.PENDING.value
        with self._store_call('revert_appeal', appeal_id):
            self._doc(appeal_id).update(fields)


class AppealSlotRepository(FirestoreRepository[Dict[str, Any]]):
    """
    One lock document per (user, appeal type, content) while an appeal is pending.

    ``create()`` fails if the slot is taken, which closes the race between two
    simultaneous submissions that both passed the pending-appeal query.
    """

    collection_name = 'appeal_slots'

    def find_by_id(self, id: str) -> Optional[Dict[str, Any]]:
        with self._store_call('get_appeal_slot', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return {'key': doc.id, 'update_time': doc.update_time, **(doc.to_dict() or {})}

    def save(self, entity: Dict[str, Any]) -> Dict[str, Any]:
        with self._store_call('save_appeal_slot', entity['key']):
            self._doc(entity['key']).set({'appealId': entity['appealId'], 'claimedAt': entity.get('claimedAt')})
        return entity

    def claim(self, key: str, appeal_id: str, claimed_at: datetime) -> bool:
        """True when the slot was free; False when someone holds it."""
        try:
            with self._store_call('claim_appeal_slot', key):
                self._doc(key).create({'appealId': appeal_id, 'claimedAt': claimed_at})
        except ConflictError as exc:
            if exc.code != 'ALREADY_EXISTS':
                raise
            return False
        return True

    def take_over(self, slot: Dict[str, Any], appeal_id: str, claimed_at: datetime) -> None:
        """Replace a stale holder, guarded by the slot's update time."""
        with self._store_call('take_over_appeal_slot', slot['key']):
            self._doc(slot['key']).update(
                {'appealId': appeal_id, 'claimedAt': claimed_at},
                option=self._write_option(slot.get('update_time')),
            )

    def release(self, key: str, appeal_id: str) -> bool:
        slot = self.find_by_id(key)
        if slot is None or slot.get('appealId') != appeal_id:
            return False
        try:
            with self._store_call('release_appeal_slot', key):
                self._doc(key).delete()
        except NotFoundError:
            return False
        return True
