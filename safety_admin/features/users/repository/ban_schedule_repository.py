"""
Ban schedule records: one document per temporarily banned user.

A schedule exists exactly while a temporary ban is active; the sweep in
``BanLifecycleManager.expire_due_bans`` reads them back by expiry.
"""
from datetime import datetime
from typing import List, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from safety_admin.common.base.base_repository import FirestoreRepository
from safety_admin.features.users.domain.user_entity import BanSchedule
from safety_admin.features.users.mapper.user_mapper import schedule_from_dict, schedule_to_dict
from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)


class BanScheduleRepository(FirestoreRepository[BanSchedule]):
    collection_name = 'ban_schedules'

    def find_by_id(self, id: str) -> Optional[BanSchedule]:
        with self._store_call('get_schedule', id):
            doc = self._doc(id).get()
        if not doc.exists:
            return None
        return schedule_from_dict(doc.to_dict() or {})

    def save(self, entity: BanSchedule) -> BanSchedule:
        with self._store_call('save_schedule', entity.user_id):
            self._doc(entity.user_id).set(schedule_to_dict(entity))
        return entity

    def create(self, schedule: BanSchedule) -> BanSchedule:
        """Create-only write; an existing schedule raises ConflictError."""
        with self._store_call('create_schedule', schedule.user_id):
            self._doc(schedule.user_id).create(schedule_to_dict(schedule))
        return schedule

    def delete(self, user_id: str) -> bool:
        """Delete the schedule; returns False when there was none."""
        with self._store_call('delete_schedule', user_id):
            ref = self._doc(user_id)
            if not ref.get().exists:
                logger.debug("No ban schedule to delete", extra={'user_id': user_id})
                return False
            ref.delete()
        return True

    def find_due(self, now: datetime, limit: int = 100) -> List[BanSchedule]:
        with self._store_call('find_due_schedules'):
            docs = (
                self.collection
                .where(filter=FieldFilter('banExpiresAt', '<=', now))
                .limit(limit)
                .stream()
            )
            return [schedule_from_dict(doc.to_dict() or {}) for doc in docs]
