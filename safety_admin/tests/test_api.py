"""HTTP-level tests: authentication, typed error mapping and the public endpoints."""

import gc
from unittest.mock import patch

import pytest
from google.api_core.exceptions import ServiceUnavailable

from safety_admin.app import create_app
from safety_admin.services.system.security import AdminRateLimiter

AUTH = {'Authorization': 'Bearer test-token'}
STREAM_AUTH = {'X-Archive-Token': 'stream-secret'}


@pytest.fixture
def claims():
    return {'uid': 'admin-1', 'email': 'alice@example.com', 'name': 'alice.admin', 'admin': True}


@pytest.fixture
def make_client(container, claims):
    patcher = patch('safety_admin.services.system.auth_middleware.verify_firebase_token', return_value=claims)
    patcher.start()

    def _make():
        return create_app(container=container).test_client()

    yield _make
    patcher.stop()


@pytest.fixture
def client(make_client):
    return make_client()


def _ban(client, user_id='user-1', **body):
    payload = {'reason': 'Repeated spam posts', 'banDuration': 3, 'banDurationUnit': 'days'}
    payload.update(body)
    return client.post(f"/api/admin/users/{user_id}/ban", json=payload, headers=AUTH)


def test_health_is_public(client) -> None:
    response = client.get('/api/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'


def test_admin_route_requires_authentication(client) -> None:
    response = client.get('/api/admin/users/banned')

    assert response.status_code == 401


def test_non_admin_is_forbidden(client, claims) -> None:
    claims['admin'] = False

    response = _ban(client)

    assert response.status_code == 403
    assert response.get_json()['code'] == 'UNAUTHORIZED'


def test_ban_and_unban_over_http(client, db, seed_user) -> None:
    # Setup.
    seed_user('user-1')

    # Execute.
    banned = _ban(client)
    unbanned = client.post('/api/admin/users/user-1/unban', json={}, headers=AUTH)

    assert banned.status_code == 200
    assert banned.get_json()['user']['isBanned'] is True
    assert unbanned.status_code == 200
    assert db.data('users/user-1')['isBanned'] is False
    audit = [a for a in db.collection_docs('admin_actions').values() if a['action'] == 'BAN_USER']
    assert audit[0]['adminUsername'] == 'alice.admin'
    assert audit[0]['metadata']['source'] == 'admin'


@pytest.mark.parametrize('setup,body,status,code', [
    ('banned', {}, 409, 'ALREADY_BANNED'),
    ('plain', {'banDuration': -1}, 400, 'VALIDATION_ERROR'),
    ('plain', {'banDurationUnit': 'weeks'}, 400, 'VALIDATION_ERROR'),
    ('missing', {}, 404, 'NOT_FOUND'),
    ('identity_down', {}, 502, 'EXTERNAL_SYSTEM_ERROR'),
])
def test_typed_errors_map_to_status_codes(client, container, identity, admin, seed_user,
                                          setup, body, status, code) -> None:
    if setup != 'missing':
        seed_user('user-1')
    if setup == 'banned':
        container.ban_manager.ban_user(admin, 'user-1', 'Earlier offence', 0)
    if setup == 'identity_down':
        identity.fail_disable = True

    response = _ban(client, **body)

    assert response.status_code == status
    payload = response.get_json()
    assert payload['success'] is False
    assert payload['code'] == code


def test_admin_hourly_limit_returns_429(make_client, container, seed_user) -> None:
    container.admin_rate_limiter = AdminRateLimiter(soft_limit=1, hard_limit=1)
    client = make_client()
    seed_user('user-1')
    seed_user('user-2', username='Carol')

    assert _ban(client, 'user-1').status_code == 200
    response = _ban(client, 'user-2')

    assert response.status_code == 429
    assert response.get_json()['code'] == 'RATE_LIMIT_EXCEEDED'
    assert int(response.headers['Retry-After']) >= 1


def test_public_ban_status_by_username(client, seed_user) -> None:
    seed_user('user-1', username='Bob')
    _ban(client)

    banned = client.get('/api/ban-status/bob')
    unknown = client.get('/api/ban-status/nobody')

    assert banned.status_code == 200
    data = banned.get_json()['data']
    assert data['isBanned'] is True
    assert data['banDurationDisplay'] == '3 days'
    assert data['canAppeal'] is True
    assert unknown.get_json()['data'] == {'isBanned': False, 'canAppeal': False}


def test_appeal_submit_and_review_flow(client, db, seed_user) -> None:
    # Setup.
    seed_user('user-1', username='Bob')
    _ban(client)

    # Execute.
    submitted = client.post('/api/appeals', json={
        'userId': 'user-1', 'appealType': 'ban', 'reason': 'I was hacked, those posts are not mine',
    })
    appeal_id = submitted.get_json()['appeal']['id']
    listed = client.get('/api/admin/appeals', headers=AUTH)
    duplicate = client.post('/api/appeals', json={
        'userId': 'user-1', 'appealType': 'ban', 'reason': 'Please look at this again soon',
    })
    reviewed = client.post(f"/api/admin/appeals/{appeal_id}/review", json={'action': 'approve'}, headers=AUTH)
    status = client.get('/api/ban-status/bob')

    assert submitted.status_code == 201
    assert [a['id'] for a in listed.get_json()['data']['appeals']] == [appeal_id]
    assert duplicate.status_code == 409
    assert reviewed.status_code == 200
    assert reviewed.get_json()['data']['status'] == 'approved'
    assert status.get_json()['data']['isBanned'] is False


def test_appeal_listing_rejects_unknown_status(client) -> None:
    response = client.get('/api/admin/appeals?status=archived', headers=AUTH)

    assert response.status_code == 400


def test_moderation_action_over_http(client, db, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')

    response = client.post('/api/admin/moderation/posts/post-1/action',
                           json={'action': 'hide_content', 'reason': 'Misleading claims'}, headers=AUTH)

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['contentType'] == 'post'
    assert data['violation']['severity'] == 'medium'
    assert db.data('posts/post-1')['status'] == 'hidden'


def test_moderation_action_requires_reason(client, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')

    response = client.post('/api/admin/moderation/posts/post-1/action', json={'action': 'warn'}, headers=AUTH)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'VALIDATION_ERROR'


def _deletion_event(doc_id):
    return {
        'collection': 'reports',
        'documentId': doc_id,
        'time': '2024-04-05T10:00:00Z',
        'oldValue': {'status': 'action_taken', 'expireAt': '2024-04-05T09:00:00Z', 'deletionCause': 'expiry'},
    }


def test_deletion_stream_requires_token(client) -> None:
    response = client.post('/api/internal/archive/deletions', json=_deletion_event('r1'),
                           headers={'X-Archive-Token': 'wrong'})

    assert response.status_code == 403


def test_deletion_stream_archives_events(client, bucket) -> None:
    response = client.post('/api/internal/archive/deletions',
                           json={'events': [_deletion_event('r1'), _deletion_event('r2')]}, headers=STREAM_AUTH)

    assert response.status_code == 200
    assert response.get_json()['stats']['archived'] == 2
    assert 'archives/reports/ttl/2024/week-14/2024-04-05.json' in bucket.objects


def test_deletion_stream_failure_asks_for_redelivery(client, bucket, alert_notifier) -> None:
    bucket.upload_errors = [ServiceUnavailable('storage unavailable')] * 3

    response = client.post('/api/internal/archive/deletions', json=[_deletion_event('r1')], headers=STREAM_AUTH)

    assert response.status_code == 500
    assert response.get_json()['stats']['failed'] == 1
    alert_notifier.notify_alert.assert_called_once()


def test_archive_reports_endpoint(client, db, seed_report) -> None:
    seed_report('r1', status='dismissed')

    response = client.post('/api/admin/archive/reports', headers=AUTH)

    assert response.status_code == 200
    assert response.get_json()['data']['archivedCount'] == 1
    assert db.data('reports/r1') is None


def test_user_detail_includes_violations_and_history(client, db, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')
    client.post('/api/admin/moderation/posts/post-1/action',
                json={'action': 'ban_user', 'reason': 'Spam links everywhere', 'banDuration': 1}, headers=AUTH)

    response = client.get('/api/admin/users/user-1', headers=AUTH)

    data = response.get_json()['data']
    assert data['user']['isBanned'] is True
    assert len(data['violations']) == 1
    assert [a['action'] for a in data['banHistory']] == ['BAN_USER']
    assert data['stats'] == {'totalViolations': 1, 'totalBans': 1, 'currentlyBanned': True}


def test_banned_user_listing_filters_by_type(client, container, admin, seed_user) -> None:
    seed_user('user-1')
    seed_user('user-2', username='Carol')
    container.ban_manager.ban_user(admin, 'user-1', 'Repeated spam posts', 3)
    container.ban_manager.ban_user(admin, 'user-2', 'Hate speech', 0)

    temporary = client.get('/api/admin/users/banned?banType=temporary', headers=AUTH)
    invalid = client.get('/api/admin/users/banned?banType=forever', headers=AUTH)

    assert [u['userId'] for u in temporary.get_json()['data']['users']] == ['user-1']
    assert invalid.status_code == 400


def test_public_routes_answer_after_garbage_collection(make_client, config, seed_user) -> None:
    config.public_rate_limit_enabled = True
    client = make_client()
    seed_user('user-1', username='Bob')
    _ban(client)
    gc.collect()

    status = client.get('/api/ban-status/bob')
    appeal = client.post('/api/appeals', json={
        'userId': 'user-1', 'appealType': 'ban', 'reason': 'I was hacked, those posts are not mine',
    })

    assert status.status_code == 200
    assert appeal.status_code == 201


def test_public_ban_status_is_throttled_per_client(make_client, config, seed_user) -> None:
    config.public_rate_limit_enabled = True
    config.public_rate_limit = '2 per minute'
    client = make_client()
    seed_user('user-1', username='Bob')

    codes = [client.get('/api/ban-status/bob').status_code for _ in range(3)]

    assert codes == [200, 200, 429]


def test_delete_and_restore_post_over_http(client, db, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')

    deleted = client.post('/api/admin/moderation/posts/post-1/delete',
                          json={'reason': 'Confirmed coordinated scam campaign'}, headers=AUTH)
    again = client.post('/api/admin/moderation/posts/post-1/delete',
                        json={'reason': 'Confirmed coordinated scam campaign'}, headers=AUTH)
    restored = client.post('/api/admin/moderation/posts/post-1/restore',
                           json={'reason': 'Author proved account was hijacked'}, headers=AUTH)

    assert deleted.status_code == 200
    assert deleted.get_json()['data']['status'] == 'deleted'
    assert again.status_code == 409
    assert again.get_json()['code'] == 'ALREADY_DELETED'
    assert restored.status_code == 200
    assert restored.get_json()['data']['previousStatus'] == 'deleted'
    assert db.data('posts/post-1')['status'] == 'active'
    actions = [a['action'] for a in db.collection_docs('admin_actions').values()]
    assert actions == ['DELETE_POST', 'RESTORE_POST']


def test_content_status_change_requires_reason(client, seed_user, seed_post) -> None:
    seed_user('user-1')
    seed_post('post-1')

    response = client.post('/api/admin/moderation/posts/post-1/restore', json={'reason': 'ok'}, headers=AUTH)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'VALIDATION_ERROR'
