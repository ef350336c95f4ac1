"""Unit tests for the appeal workflow engine."""

from datetime import timedelta

import pydantic
import pytest

from safety_admin.common.errors import ConflictError, ExternalSystemError, NotFoundError, ValidationError
from safety_admin.features.appeals.domain.appeal_entity import AUTO_RESOLVE_NOTE, AppealStatus
from safety_admin.features.appeals.dto.appeal_request import SubmitAppealRequest
from safety_admin.features.moderation.dto.moderation_request import ModerationActionRequest


def _ban_appeal(user_id='user-1', reason='I did not post that spam, please review'):
    return SubmitAppealRequest(userId=user_id, appealType='ban', reason=reason)


def _content_appeal(content_id='post-1', user_id='user-1'):
    return SubmitAppealRequest(
        userId=user_id, appealType='content', contentType='post', contentId=content_id,
        reason='This post was satire, not misinformation',
    )


def _hide_post(container, admin, post_id='post-1'):
    container.moderation_service.take_action(admin, ModerationActionRequest(
        action='hide_content', contentId=post_id, reason='Misleading claims',
    ))


@pytest.fixture
def banned_user(container, admin, seed_user):
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3, 'days')
    return 'user-1'


def test_ban_appeal_for_permanent_ban_is_kept_ninety_days(container, db, clock, admin, seed_user) -> None:
    # Setup.
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Hate speech', 0)

    # Execute.
    appeal = container.appeal_service.submit_appeal(_ban_appeal(reason='Please unban'))

    assert appeal.status == AppealStatus.PENDING
    assert appeal.expire_at == clock() + timedelta(days=90)
    stored = db.data(f"appeals/{appeal.id}")
    assert stored['status'] == 'pending'
    assert stored['deletionCause'] == 'expiry'
    assert stored['snapshot']['banReason'] == 'Hate speech'
    assert db.data('appeal_slots/user-1:ban:-')['appealId'] == appeal.id


def test_temporary_ban_appeal_outlives_the_ban_by_a_week(container, clock, banned_user) -> None:
    appeal = container.appeal_service.submit_appeal(_ban_appeal())

    assert appeal.expire_at == clock() + timedelta(days=3) + timedelta(days=7)
    assert appeal.snapshot.ban_duration_display == '3 days'


def test_ban_appeal_snapshots_the_violation(container, admin, seed_user, seed_post, seed_report) -> None:
    seed_user('user-1')
    seed_post('post-1')
    seed_report('r1')
    seed_report('r2')
    container.moderation_service.take_action(admin, ModerationActionRequest(
        action='ban_user', contentId='post-1', reason='Spam links everywhere', banDuration=1,
    ))

    appeal = container.appeal_service.submit_appeal(_ban_appeal())

    assert appeal.snapshot.violation_reason == 'Spam links everywhere'
    assert appeal.snapshot.severity == 'high'
    assert appeal.snapshot.report_count == 2
    assert appeal.snapshot.content_excerpt == 'Buy cheap followers now!!!'


def test_second_pending_ban_appeal_is_rejected(container, banned_user) -> None:
    container.appeal_service.submit_appeal(_ban_appeal())

    with pytest.raises(ConflictError) as exc_info:
        container.appeal_service.submit_appeal(_ban_appeal(reason='Second try at getting unbanned'))

    assert exc_info.value.code == 'DUPLICATE_APPEAL'


def test_stale_slot_is_taken_over(container, db, clock, banned_user) -> None:
    # Slot left behind by an appeal that is no longer pending.
    db.seed('appeals/old', {'userId': 'user-1', 'appealType': 'ban', 'status': 'rejected', 'reason': 'old'})
    db.seed('appeal_slots/user-1:ban:-', {'appealId': 'old', 'claimedAt': clock()})

    appeal = container.appeal_service.submit_appeal(_ban_appeal())

    assert db.data('appeal_slots/user-1:ban:-')['appealId'] == appeal.id


def test_ban_appeal_requires_an_active_ban(container, seed_user) -> None:
    seed_user('user-1')

    with pytest.raises(ConflictError) as exc_info:
        container.appeal_service.submit_appeal(_ban_appeal())

    assert exc_info.value.code == 'NOT_BANNED'


def test_submit_request_validates_reason_length() -> None:
    with pytest.raises(pydantic.ValidationError):
        SubmitAppealRequest(userId='user-1', reason='too short')
    with pytest.raises(pydantic.ValidationError):
        SubmitAppealRequest(userId='user-1', appealType='content', reason='Long enough reason here')


def test_content_appeal_accepted_at_exact_deadline(container, db, clock, admin, seed_user, seed_post) -> None:
    # Setup.
    seed_user('user-1')
    seed_post('post-1')
    _hide_post(container, admin)
    deadline = db.data('posts/post-1')['appealDeadline']
    clock.advance(days=7)
    assert clock() == deadline

    # Execute.
    appeal = container.appeal_service.submit_appeal(_content_appeal())

    assert appeal.status == AppealStatus.PENDING
    assert appeal.snapshot.hidden_reason == 'Misleading claims'
    assert appeal.expire_at == deadline + timedelta(days=7)


def test_content_appeal_after_deadline_is_refused(container, clock, admin, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')
    _hide_post(container, admin)
    clock.advance(days=7, seconds=1)

    with pytest.raises(ConflictError) as exc_info:
        container.appeal_service.submit_appeal(_content_appeal())

    assert exc_info.value.code == 'NOT_APPEALABLE'


def test_content_appeal_by_someone_else_is_not_found(container, admin, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_user('user-2', username='Mallory')
    seed_post('post-1')
    _hide_post(container, admin)

    with pytest.raises(NotFoundError):
        container.appeal_service.submit_appeal(_content_appeal(user_id='user-2'))


def test_approving_ban_appeal_unbans_user(container, db, identity, admin, banned_user) -> None:
    # Setup.
    appeal = container.appeal_service.submit_appeal(_ban_appeal())

    # Execute.
    result = container.appeal_service.review_appeal(admin, appeal.id, 'approve', 'Looks like a false positive')

    assert result['status'] == 'approved'
    assert result['resolution'] == {'banAlreadyLifted': False}
    assert container.user_service.get_ban_status('user-1')['isBanned'] is False
    assert db.data('users/user-1')['isBanned'] is False
    assert identity.disabled == {'user-1': False}
    assert db.data(f"appeals/{appeal.id}")['reviewedBy'] == 'admin-1'
    assert db.data('appeal_slots/user-1:ban:-') is None
    actions = sorted(a['action'] for a in db.collection_docs('admin_actions').values())
    assert actions == ['APPROVE_APPEAL', 'BAN_USER', 'UNBAN_USER']
    types = [n['type'] for n in db.collection_docs('users/user-1/notifications').values()]
    assert 'APPEAL_APPROVED' in types


def test_failed_unban_puts_appeal_back_to_pending(container, db, identity, admin, banned_user) -> None:
    appeal = container.appeal_service.submit_appeal(_ban_appeal())
    identity.fail_enable = True

    with pytest.raises(ExternalSystemError):
        container.appeal_service.review_appeal(admin, appeal.id, 'approve')

    stored = db.data(f"appeals/{appeal.id}")
    assert stored['status'] == 'pending'
    assert 'reviewedBy' not in stored
    assert db.data('users/user-1')['isBanned'] is True
    assert db.data('appeal_slots/user-1:ban:-')['appealId'] == appeal.id


def test_approving_content_appeal_restores_post(container, db, admin, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')
    _hide_post(container, admin)
    appeal = container.appeal_service.submit_appeal(_content_appeal())

    container.appeal_service.review_appeal(admin, appeal.id, 'approve')

    post = db.data('posts/post-1')
    assert post['status'] == 'active'
    for key in ('hiddenReason', 'hiddenAt', 'canAppeal', 'appealDeadline', 'expireAt', 'deletionCause'):
        assert key not in post
    assert post['restoredBy'] == 'admin-1'
    actions = [a['action'] for a in db.collection_docs('admin_actions').values()]
    assert 'RESTORE_CONTENT' in actions
    types = [n['type'] for n in db.collection_docs('users/user-1/notifications').values()]
    assert 'CONTENT_APPEAL_APPROVED' in types


def test_reject_requires_explanatory_notes(container, db, admin, banned_user) -> None:
    appeal = container.appeal_service.submit_appeal(_ban_appeal())

    with pytest.raises(ValidationError):
        container.appeal_service.review_appeal(admin, appeal.id, 'reject', '  ')

    result = container.appeal_service.review_appeal(admin, appeal.id, 'reject', 'Spam confirmed by logs')

    assert result['status'] == 'rejected'
    assert db.data('users/user-1')['isBanned'] is True
    types = [n['type'] for n in db.collection_docs('users/user-1/notifications').values()]
    assert 'APPEAL_REJECTED' in types


def test_appeal_leaves_pending_only_once(container, admin, banned_user) -> None:
    appeal = container.appeal_service.submit_appeal(_ban_appeal())
    container.appeal_service.review_appeal(admin, appeal.id, 'reject', 'Spam confirmed by logs')

    with pytest.raises(ConflictError) as exc_info:
        container.appeal_service.review_appeal(admin, appeal.id, 'approve')

    assert exc_info.value.code == 'APPEAL_NOT_PENDING'


def test_review_unknown_appeal_is_not_found(container, admin) -> None:
    with pytest.raises(NotFoundError):
        container.appeal_service.review_appeal(admin, 'missing', 'approve')


def test_pending_listing_auto_resolves_lapsed_ban_appeals(container, db, clock, admin, seed_user) -> None:
    # Setup.
    seed_user('user-1')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 1, 'hours')
    appeal = container.appeal_service.submit_appeal(_ban_appeal())
    clock.advance(hours=2)

    # Execute.
    result = container.appeal_service.list_appeals()

    assert result['appeals'] == []
    assert result['autoResolved'] == 1
    stored = db.data(f"appeals/{appeal.id}")
    assert stored['status'] == 'auto_resolved'
    assert stored['reviewedBy'] == 'SYSTEM'
    assert stored['reviewNotes'] == AUTO_RESOLVE_NOTE
    assert db.data('users/user-1')['isBanned'] is False
    assert db.data('appeal_slots/user-1:ban:-') is None

    assert container.appeal_service.list_appeals()['autoResolved'] == 0


def test_pending_listing_includes_previous_appeals(container, clock, admin, banned_user) -> None:
    first = container.appeal_service.submit_appeal(_ban_appeal())
    container.appeal_service.review_appeal(admin, first.id, 'reject', 'Spam confirmed by logs')
    clock.advance(minutes=5)
    second = container.appeal_service.submit_appeal(_ban_appeal(reason='New evidence: my account was hacked'))

    result = container.appeal_service.list_appeals()

    assert [a['id'] for a in result['appeals']] == [second.id]
    listed = result['appeals'][0]
    assert listed['appealCount'] == 2
    assert [p['id'] for p in listed['previousAppeals']] == [first.id]


def test_listing_pages_newest_first(container, clock, admin, seed_user) -> None:
    for user_id, username in (('user-1', 'Bob'), ('user-2', 'Carol')):
        seed_user(user_id, username=username)
        container.ban_manager.ban_user(admin, user_id, 'Repeated spam posts', 3)
        container.appeal_service.submit_appeal(_ban_appeal(user_id=user_id))
        clock.advance(minutes=1)

    page = container.appeal_service.list_appeals(limit=1)

    assert [a['userId'] for a in page['appeals']] == ['user-2']
    assert page['hasMore'] is True
    assert page['nextCursor'] == page['appeals'][0]['submittedAt']


def test_post_and_comment_with_same_id_hold_separate_slots(container, db, admin, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('shared-1')
    seed_post('shared-1', collection='comments', content='You are all idiots')
    _hide_post(container, admin, post_id='shared-1')
    container.moderation_service.take_action(admin, ModerationActionRequest(
        action='hide_content', contentType='comment', contentId='shared-1', reason='Insulting other members',
    ))

    post_appeal = container.appeal_service.submit_appeal(_content_appeal(content_id='shared-1'))
    comment_appeal = container.appeal_service.submit_appeal(SubmitAppealRequest(
        userId='user-1', appealType='content', contentType='comment', contentId='shared-1',
        reason='It was a joke between friends, please restore it',
    ))

    assert db.data('appeal_slots/user-1:content:post:shared-1')['appealId'] == post_appeal.id
    assert db.data('appeal_slots/user-1:content:comment:shared-1')['appealId'] == comment_appeal.id
    assert comment_appeal.snapshot.violation_reason == 'Insulting other members'
    with pytest.raises(ConflictError):
        container.appeal_service.submit_appeal(_content_appeal(content_id='shared-1'))
