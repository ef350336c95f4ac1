from typing import Any, Dict, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from safety_admin.common.base.base_repository import FirestoreRepository
from safety_admin.common.errors import ConflictError
from safety_admin.features.users.domain.user_entity import UserProfile
from safety_admin.features.users.mapper.user_mapper import ban_state_fields, from_firestore_dict
from safety_admin.utils.string_utils import normalize_username
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)


class UserRepository(FirestoreRepository[UserProfile]):
    collection_name = 'users'

    def find_by_id(self, id: str) -> Optional[UserProfile]:
        with self._store_call('get_profile', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time)

    def find_by_username(self, username: str) -> Optional[UserProfile]:
        normalized = normalize_username(username)
        if not normalized:
            return None
        with self._store_call('find_by_username', normalized):
            docs = list(
                self.collection
                .where(filter=FieldFilter('usernameLower', '==', normalized))
                .limit(1)
                .stream()
            )
        if not docs:
            return None
        doc = docs[0]
        return from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time)

    def find_banned(self, limit: int = 100) -> List[UserProfile]:
        with self._store_call('find_banned'):
            docs = (
                self.collection
                .where(filter=FieldFilter('isBanned', '==', True))
                .limit(limit)
                .stream()
            )
            return [from_firestore_dict(doc.id, doc.to_dict() or {}, doc.update_time) for doc in docs]

    def save(self, entity: UserProfile) -> UserProfile:
        data = {
            'username': entity.username,
            'usernameLower': normalize_username(entity.username),
            'email': entity.email,
            'authUid': entity.auth_uid,
            'violationCount': entity.violation_count,
            **ban_state_fields(entity),
        }
        with self._store_call('save_profile', entity.id):
            self._doc(entity.id).set(data, merge=True)
        return entity

    def conditional_update(self, profile: UserProfile, fields: Dict[str, Any],
                           expect_banned: bool) -> None:
        """
        Update ban fields only if the document has not changed since ``profile``
        was read and the stored ban flag still matches ``expect_banned``.
        """
        if profile.is_banned != expect_banned:
            raise ConflictError(
                f"User {profile.id} is {'not ' if expect_banned else 'already '}banned",
                code='NOT_BANNED' if expect_banned else 'ALREADY_BANNED',
            )
        with self._store_call('conditional_update', profile.id):
            self._doc(profile.id).update(fields, option=self._write_option(profile.update_time))
        logger.debug("Profile ban fields updated", extra={
            'user_id': profile.id, 'fields': sorted(fields.keys())
        })

    def restore_ban_state(self, profile: UserProfile) -> None:
        """Unconditionally write back the ban fields as they were in ``profile``."""
        with self._store_call('restore_ban_state', profile.id):
            self._doc(profile.id).update(ban_state_fields(profile))

    def increment_violation_count(self, user_id: str, amount: int = 1) -> None:
        with self._store_call('increment_violation_count', user_id):
            self._doc(user_id).update({'violationCount': firestore.Increment(amount)})
