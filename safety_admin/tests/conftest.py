from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from safety_admin.common.actor import ActorContext
from safety_admin.config.env_config import SafetyConfig
from safety_admin.container import build_container
from safety_admin.tests.fakes import FakeBucket, FakeFirestore, FakeIdentityProvider, FrozenClock


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def alert_notifier():
    return MagicMock()


@pytest.fixture
def config():
    return SafetyConfig(
        archive_stream_token='stream-secret',
        public_rate_limit_enabled=False,
    )


@pytest.fixture
def container(db, bucket, identity, config, clock, alert_notifier):
    return build_container(db, bucket, identity, config=config, clock=clock, alert_notifier=alert_notifier)


@pytest.fixture
def admin():
    return ActorContext(user_id='admin-1', username='alice.admin', ip_address='10.0.0.1', user_agent='pytest')


@pytest.fixture
def seed_user(db):
    def _seed(user_id='user-1', username='Bob', auth_uid=None, **fields):
        data = {
            'username': username,
            'usernameLower': username.lower(),
            'email': f"{username.lower()}@example.com",
            'isActive': True,
            'isBanned': False,
            'violationCount': 0,
        }
        if auth_uid:
            data['authUid'] = auth_uid
        data.update(fields)
        db.seed(f"users/{user_id}", data)
        return user_id
    return _seed


@pytest.fixture
def seed_post(db, clock):
    def _seed(post_id='post-1', user_id='user-1', content='Buy cheap followers now!!!', collection='posts', **fields):
        data = {
            'userId': user_id,
            'content': content,
            'status': 'active',
            'reportCount': 0,
            'createdAt': clock(),
        }
        data.update(fields)
        db.seed(f"{collection}/{post_id}", data)
        return post_id
    return _seed


@pytest.fixture
def seed_report(db, clock):
    def _seed(report_id, content_id='post-1', reason='spam', content_type='post', status='pending', **fields):
        data = {
            'contentType': content_type,
            'contentId': content_id,
            'reporterId': f"reporter-{report_id}",
            'reason': reason,
            'status': status,
            'createdAt': clock(),
        }
        data.update(fields)
        db.seed(f"reports/{report_id}", data)
        return report_id
    return _seed
