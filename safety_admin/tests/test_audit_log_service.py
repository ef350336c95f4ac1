"""Unit tests for audit log retention and recording."""

from datetime import datetime, timedelta, timezone

import pytest
from google.api_core.exceptions import ServiceUnavailable

from safety_admin.utils.time_utils import admin_action_retention

MONDAY_AFTER_NEXT = datetime(2024, 3, 18, tzinfo=timezone.utc)


@pytest.mark.parametrize('now', [
    datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc),     # Monday
    datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc),    # Wednesday
    datetime(2024, 3, 10, 23, 59, tzinfo=timezone.utc),  # Sunday
])
def test_retention_is_monday_after_next(now) -> None:
    assert admin_action_retention(now) == MONDAY_AFTER_NEXT


def test_retention_always_exceeds_a_week() -> None:
    start = datetime(2024, 3, 4, tzinfo=timezone.utc)
    for hours in range(0, 24 * 14, 5):
        now = start + timedelta(hours=hours)
        assert admin_action_retention(now) - now > timedelta(days=7)


def test_record_writes_expiring_entry(container, db, admin) -> None:
    entry = container.audit_log_service.record(
        admin, 'BAN_USER', 'user-1', target_username='Bob', reason='Spam', metadata={'banDuration': 3},
    )

    stored = db.data(f"admin_actions/{entry.action_id}")
    assert stored['adminUserId'] == 'admin-1'
    assert stored['adminUsername'] == 'alice.admin'
    assert stored['ipAddress'] == '10.0.0.1'
    assert stored['expireAt'] == MONDAY_AFTER_NEXT
    assert stored['deletionCause'] == 'expiry'
    assert stored['metadata'] == {'banDuration': 3}


def test_record_failure_does_not_raise(container, db, admin) -> None:
    db.fail('create', 'admin_actions/', ServiceUnavailable('firestore unavailable'))

    assert container.audit_log_service.record(admin, 'WARN_USER', 'user-1') is None
    assert db.collection_docs('admin_actions') == {}


def test_list_actions_newest_first_and_filtered(container, clock, admin) -> None:
    service = container.audit_log_service
    service.record(admin, 'BAN_USER', 'user-1')
    clock.advance(minutes=1)
    service.record(admin, 'WARN_USER', 'user-2')
    clock.advance(minutes=1)
    service.record(admin, 'BAN_USER', 'user-3')

    assert [a['targetUserId'] for a in service.list_actions()] == ['user-3', 'user-2', 'user-1']
    assert [a['targetUserId'] for a in service.list_actions(action_type='BAN_USER')] == ['user-3', 'user-1']
    assert len(service.list_actions(limit=1)) == 1
