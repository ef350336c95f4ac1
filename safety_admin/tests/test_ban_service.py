"""Unit tests for the ban/unban sagas and lazy ban expiry."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from google.api_core.exceptions import FailedPrecondition, ServiceUnavailable

from safety_admin.common.errors import ConflictError, ExternalSystemError, NotFoundError, ValidationError
from safety_admin.features.users.domain.user_entity import UnbanSource
from safety_admin.features.users.mapper.user_mapper import BAN_FIELDS


def _audit_actions(db):
    return sorted(entry['action'] for entry in db.collection_docs('admin_actions').values())


def test_temporary_ban_updates_profile_schedule_and_identity(container, db, identity, clock, admin, seed_user) -> None:
    # Setup.
    seed_user('user-1', auth_uid='auth-1')

    # Execute.
    banned = container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3, 'days')

    stored = db.data('users/user-1')
    assert stored['isBanned'] is True
    assert stored['isActive'] is False
    assert stored['banReason'] == 'Repeated spam posts'
    assert stored['bannedBy'] == 'admin-1'
    assert stored['banExpiresAt'] == clock() + timedelta(days=3)
    assert stored['banDurationDisplay'] == '3 days'
    assert db.data('ban_schedules/user-1')['banExpiresAt'] == clock() + timedelta(days=3)
    assert identity.disabled == {'auth-1': True}

    assert banned.is_banned
    assert banned.ban_expires_at == clock() + timedelta(days=3)
    assert _audit_actions(db) == ['BAN_USER']
    notifications = db.collection_docs('users/user-1/notifications')
    assert [n['type'] for n in notifications.values()] == ['ACCOUNT_BANNED']


def test_permanent_ban_has_no_schedule(container, db, admin, seed_user) -> None:
    seed_user('user-1')

    banned = container.ban_manager.ban_user(admin, 'user-1', 'Hate speech', 0)

    assert banned.is_permanent_ban
    assert banned.ban_duration_display == 'Permanent'
    assert db.data('users/user-1')['banExpiresAt'] is None
    assert db.data('ban_schedules/user-1') is None


def test_ban_rejects_already_banned_user(container, db, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')

    with pytest.raises(ConflictError) as exc_info:
        container.ban_manager.ban_user(admin, 'user-1', 'Second attempt', 2, 'days')

    assert exc_info.value.code == 'ALREADY_BANNED'
    assert db.data('users/user-1')['banDurationDisplay'] == '1 hour'
    assert _audit_actions(db) == ['BAN_USER']


@pytest.mark.parametrize('reason,duration,unit,field', [
    ('bad', 3, 'days', 'reason'),
    ('Repeated spam posts', -1, 'days', 'banDuration'),
    ('Repeated spam posts', 3, 'weeks', 'banDurationUnit'),
])
def test_ban_validates_input_before_writing(container, db, admin, seed_user, reason, duration, unit, field) -> None:
    seed_user('user-1')

    with pytest.raises(ValidationError) as exc_info:
        container.ban_manager.ban_user(admin, 'user-1', reason, duration, unit)

    assert exc_info.value.field == field
    assert db.data('users/user-1')['isBanned'] is False


def test_ban_unknown_user_is_not_found(container, admin) -> None:
    with pytest.raises(NotFoundError):
        container.ban_manager.ban_user(admin, 'ghost', 'Repeated spam posts', 3)


def test_ban_rolls_back_profile_when_identity_disable_fails(container, db, identity, admin, seed_user) -> None:
    # Setup.
    seed_user('user-1', auth_uid='auth-1')
    identity.fail_disable = True

    # Execute.
    with pytest.raises(ExternalSystemError) as exc_info:
        container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3)

    assert exc_info.value.system == 'identity_provider'
    stored = db.data('users/user-1')
    assert stored['isBanned'] is False
    assert stored['isActive'] is True
    assert not any(key in stored for key in BAN_FIELDS)
    assert db.data('ban_schedules/user-1') is None
    assert _audit_actions(db) == []


def test_ban_reenables_account_when_schedule_write_fails(container, db, identity, admin, seed_user) -> None:
    seed_user('user-1', auth_uid='auth-1')
    db.fail('create', 'ban_schedules/', ServiceUnavailable('firestore unavailable'))

    with pytest.raises(ExternalSystemError) as exc_info:
        container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3)

    assert exc_info.value.system == 'firestore'
    assert identity.calls == [('disable', 'auth-1'), ('enable', 'auth-1')]
    assert identity.disabled == {'auth-1': False}
    assert db.data('users/user-1')['isBanned'] is False


def test_ban_surfaces_original_error_when_compensation_also_fails(container, db, identity, admin, seed_user) -> None:
    seed_user('user-1')
    identity.fail_disable = True
    repository = container.ban_manager.user_repository

    with patch.object(repository, 'restore_ban_state',
                      side_effect=ExternalSystemError('firestore', 'restore failed')):
        with pytest.raises(ExternalSystemError) as exc_info:
            container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3)

    assert exc_info.value.system == 'identity_provider'


def test_ban_then_unban_restores_original_state(container, db, identity, admin, seed_user) -> None:
    # Setup.
    seed_user('user-1', auth_uid='auth-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3)

    # Execute.
    profile = container.ban_manager.unban_user('user-1', UnbanSource.MANUAL, actor=admin)

    assert not profile.is_banned
    stored = db.data('users/user-1')
    assert stored['isBanned'] is False
    assert stored['isActive'] is True
    assert not any(key in stored for key in BAN_FIELDS)
    assert db.data('ban_schedules/user-1') is None
    assert identity.disabled == {'auth-1': False}
    assert _audit_actions(db) == ['BAN_USER', 'UNBAN_USER']


def test_unban_of_unbanned_user_conflicts(container, seed_user) -> None:
    seed_user('user-1')

    with pytest.raises(ConflictError) as exc_info:
        container.ban_manager.unban_user('user-1')

    assert exc_info.value.code == 'NOT_BANNED'


def test_unban_rolls_back_when_identity_enable_fails(container, db, identity, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3)
    identity.fail_enable = True

    with pytest.raises(ExternalSystemError):
        container.ban_manager.unban_user('user-1', actor=admin)

    stored = db.data('users/user-1')
    assert stored['isBanned'] is True
    assert stored['banReason'] == 'Repeated spam posts'
    assert db.data('ban_schedules/user-1') is not None


def test_expired_ban_is_lifted_on_read(container, db, identity, clock, admin, seed_user) -> None:
    # Setup.
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    clock.advance(hours=1)

    # Execute.
    profile = container.ban_manager.get_profile('user-1')

    assert not profile.is_banned
    assert db.data('users/user-1')['isBanned'] is False
    assert db.data('ban_schedules/user-1') is None
    assert identity.disabled == {'user-1': False}
    unbans = [a for a in db.collection_docs('admin_actions').values() if a['action'] == 'UNBAN_USER']
    assert len(unbans) == 1
    assert unbans[0]['adminUserId'] == 'SYSTEM'
    assert unbans[0]['metadata']['source'] == 'auto'


def test_active_ban_is_not_lifted_early(container, clock, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    clock.advance(minutes=59)

    assert container.ban_manager.get_profile('user-1').is_banned


def test_lazy_expiry_reports_ban_when_unban_fails(container, db, identity, clock, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    clock.advance(hours=2)
    identity.fail_enable = True

    profile = container.ban_manager.get_profile('user-1')

    assert profile.is_banned
    assert db.data('users/user-1')['isBanned'] is True


def test_expire_due_bans_sweeps_only_due_schedules(container, db, clock, admin, seed_user) -> None:
    seed_user('user-1')
    seed_user('user-2', username='Carol')
    seed_user('user-3', username='Dave')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    container.ban_manager.ban_user(admin, 'user-2', 'Repeated spam posts', 5, 'days')
    container.ban_manager.ban_user(admin, 'user-3', 'Repeated spam posts', 0)
    clock.advance(hours=2)

    result = container.ban_manager.expire_due_bans()

    assert result == {'due': 1, 'expired': 1, 'failed': 0}
    assert db.data('users/user-1')['isBanned'] is False
    assert db.data('users/user-2')['isBanned'] is True
    assert db.data('users/user-3')['isBanned'] is True


def test_expire_due_bans_drops_orphaned_schedule(container, db, clock, seed_user) -> None:
    seed_user('user-1')
    db.seed('ban_schedules/user-1', {'userId': 'user-1', 'banExpiresAt': clock() - timedelta(minutes=5)})

    result = container.ban_manager.expire_due_bans()

    assert result == {'due': 1, 'expired': 0, 'failed': 0}
    assert db.data('ban_schedules/user-1') is None


def test_conditional_update_detects_concurrent_write(container, db, seed_user) -> None:
    seed_user('user-1')
    repository = container.ban_manager.user_repository
    profile = repository.find_by_id('user-1')
    # Another writer touches the document after our read.
    db.seed('users/user-1', {**db.data('users/user-1'), 'email': 'new@example.com'})

    with pytest.raises(ConflictError) as exc_info:
        repository.conditional_update(profile, {'isBanned': True}, expect_banned=False)

    assert exc_info.value.code == 'CONCURRENT_MODIFICATION'


def test_sweep_retries_after_concurrent_profile_write(container, db, clock, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    clock.advance(hours=2)
    # A violationCount increment lands between the sweep's read and its write.
    db.fail('update', 'users/user-1', FailedPrecondition('update_time mismatch'))

    result = container.ban_manager.expire_due_bans()

    assert result == {'due': 1, 'expired': 1, 'failed': 0}
    assert db.data('users/user-1')['isBanned'] is False
    assert db.data('ban_schedules/user-1') is None


def test_sweep_keeps_schedule_while_profile_stays_banned(container, db, clock, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    clock.advance(hours=2)
    db.fail('update', 'users/user-1', FailedPrecondition('update_time mismatch'), times=2)

    first = container.ban_manager.expire_due_bans()

    assert first == {'due': 1, 'expired': 0, 'failed': 1}
    # A temporary ban always keeps its schedule record.
    assert db.data('users/user-1')['isBanned'] is True
    assert db.data('ban_schedules/user-1') is not None

    second = container.ban_manager.expire_due_bans()

    assert second == {'due': 1, 'expired': 1, 'failed': 0}
    assert db.data('ban_schedules/user-1') is None


def test_lazy_expiry_retries_after_concurrent_profile_write(container, db, clock, admin, seed_user) -> None:
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    clock.advance(hours=2)
    db.fail('update', 'users/user-1', FailedPrecondition('update_time mismatch'))

    profile = container.ban_manager.get_profile('user-1')

    assert not profile.is_banned
    assert db.data('ban_schedules/user-1') is None
