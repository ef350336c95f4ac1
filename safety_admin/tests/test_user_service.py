"""Unit tests for ban status and user detail reads over long histories."""

from datetime import timedelta

from safety_admin.features.appeals.dto.appeal_request import SubmitAppealRequest
from safety_admin.features.moderation.dto.moderation_request import ModerationActionRequest


def _seed_old_violations(db, clock, count, user_id='user-1'):
    for i in range(count):
        db.seed(f"violations/old-{i:02d}", {
            'violationId': f"old-{i:02d}",
            'userId': user_id,
            'contentType': 'post',
            'contentId': f"old-post-{i}",
            'action': 'warn',
            'severity': 'low',
            'reason': 'Old spam warning',
            'createdAt': clock() - timedelta(days=30 + i),
        })


def _seed_old_appeals(db, clock, count, user_id='user-1'):
    for i in range(count):
        db.seed(f"appeals/old-{i:02d}", {
            'userId': user_id,
            'appealType': 'ban',
            'status': 'rejected',
            'reason': 'Earlier ban appeal',
            'submittedAt': clock() - timedelta(days=60 + i),
        })


def _ban_via_moderation(container, admin, post_id='post-1'):
    return container.moderation_service.take_action(admin, ModerationActionRequest(
        action='ban_user', contentId=post_id, reason='Spam links everywhere', banDuration=3,
    ))


def test_ban_status_reports_current_violation_with_long_history(container, db, clock, admin,
                                                                seed_user, seed_post) -> None:
    # Setup.
    seed_user('user-1')
    seed_post('post-1')
    _seed_old_violations(db, clock, 60)

    # Execute.
    result = _ban_via_moderation(container, admin)
    status = container.user_service.get_ban_status('user-1')

    assert status['isBanned'] is True
    assert status['violation']['id'] == result['violation']['violationId']
    assert status['violation']['reason'] == 'Spam links everywhere'
    assert status['violation']['severity'] == 'high'


def test_ban_appeal_snapshot_uses_current_violation_with_long_history(container, db, clock, admin,
                                                                      seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')
    _seed_old_violations(db, clock, 60)
    _ban_via_moderation(container, admin)

    appeal = container.appeal_service.submit_appeal(SubmitAppealRequest(
        userId='user-1', appealType='ban', reason='I did not post that spam, please review',
    ))

    assert appeal.snapshot.violation_reason == 'Spam links everywhere'
    assert appeal.snapshot.severity == 'high'


def test_pending_appeal_blocks_new_appeal_with_long_history(container, db, clock, admin, seed_user) -> None:
    seed_user('user-1')
    _seed_old_appeals(db, clock, 55)
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3, 'days')
    appeal = container.appeal_service.submit_appeal(SubmitAppealRequest(
        userId='user-1', appealType='ban', reason='I did not post that spam, please review',
    ))

    status = container.user_service.get_ban_status('user-1')

    assert status['appeal']['id'] == appeal.id
    assert status['appeal']['status'] == 'pending'
    assert status['canAppeal'] is False


def test_appeals_from_earlier_bans_do_not_block_current_ban(container, db, clock, admin, seed_user) -> None:
    seed_user('user-1')
    _seed_old_appeals(db, clock, 3)
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3, 'days')

    status = container.user_service.get_ban_status('user-1')

    assert status['appeal'] is None
    assert status['canAppeal'] is True


def test_user_detail_lists_violations_newest_first(container, db, clock, admin, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')
    _seed_old_violations(db, clock, 3)
    result = _ban_via_moderation(container, admin)

    detail = container.user_service.get_user_detail('user-1')

    ids = [v['violationId'] for v in detail['violations']]
    assert ids == [result['violation']['violationId'], 'old-00', 'old-01', 'old-02']
