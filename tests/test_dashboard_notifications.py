"""
Tests for the dashboard totals and campaign notifications.
"""

import json

import pytest
import redis

from api.config import settings
from api.dependencies import get_notifier, get_redis
from services.dashboard_service import DashboardService
from services.notification_service import LEADER_WITH_PENDING_PLANILLADOS, NotificationService


class FakeRedis:
    """In-memory pub/sub and lists standing in for Redis."""

    def __init__(self):
        self.published = []
        self.lists = {}

    def publish(self, channel, data):
        self.published.append((channel, data))

    def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)

    def ltrim(self, key, start, end):
        self.lists[key] = self.lists.get(key, [])[start:end + 1]

    def lrange(self, key, start, end):
        return self.lists.get(key, [])[start:end + 1]


class BrokenRedis:

    def publish(self, channel, data):
        raise redis.ConnectionError('Connection refused')

    def lrange(self, key, start, end):
        raise redis.ConnectionError('Connection refused')


@pytest.fixture
def fake_redis():
    return FakeRedis()


class TestDashboardService:

    def test_empty_database(self, session):
        stats = DashboardService(session).stats()
        assert stats['planillados'] == {'total': 0, 'verified': 0, 'pending': 0, 'ediles': 0}
        assert stats['goal'] == {'total_meta': 0, 'current': 0, 'percentage': 0}

    def test_totals(self, session, leader, location_tree, make_planillado):
        make_planillado(status='verified', is_edil=True)
        make_planillado()
        leader.is_verified = True
        session.commit()

        stats = DashboardService(session).stats()

        assert stats['candidates'] == {'total': 1, 'active': 1}
        assert stats['groups'] == {'total': 1, 'active': 1}
        assert stats['leaders'] == {'total': 1, 'active': 1, 'verified': 1}
        assert stats['locations']['by_type'] == {'department': 1, 'municipality': 1, 'neighborhood': 1}
        assert stats['planillados'] == {'total': 2, 'verified': 1, 'pending': 1, 'ediles': 1}
        assert stats['goal'] == {'total_meta': 100, 'current': 2, 'percentage': 2}

    def test_inactive_candidates_do_not_count_toward_goal(self, session, candidate):
        candidate.is_active = False
        session.commit()
        stats = DashboardService(session).stats()
        assert stats['candidates'] == {'total': 1, 'active': 0}
        assert stats['goal']['total_meta'] == 0


class TestNotificationService:
    """Test publishing and the recent history."""

    def test_publish(self, fake_redis):
        service = NotificationService(fake_redis, 'campaign:events')

        assert service.publish(LEADER_WITH_PENDING_PLANILLADOS, {'leader_id': 1, 'pending_count': 2})

        channel, data = fake_redis.published[0]
        assert channel == 'campaign:events'
        message = json.loads(data)
        assert message['event'] == LEADER_WITH_PENDING_PLANILLADOS
        assert message['payload'] == {'leader_id': 1, 'pending_count': 2}
        assert 'timestamp' in message

    def test_history_is_capped_and_newest_first(self, fake_redis):
        service = NotificationService(fake_redis, 'campaign:events', history_size=2)
        for number in range(3):
            service.publish('event', {'number': number})

        recent = service.recent()
        assert [item['payload']['number'] for item in recent] == [2, 1]
        assert len(service.recent(limit=1)) == 1

    def test_without_redis(self):
        service = NotificationService(None, 'campaign:events')
        assert service.publish('event', {}) is False
        assert service.recent() == []

    def test_redis_errors_are_not_raised(self):
        service = NotificationService(BrokenRedis(), 'campaign:events')
        assert service.publish('event', {}) is False
        assert service.recent() == []


class TestDashboardAndNotificationsAPI:

    def test_dashboard_stats(self, client, candidate, make_planillado):
        make_planillado()
        response = client.get('/api/dashboard/stats')
        assert response.status_code == 200
        assert response.json()['goal'] == {'total_meta': 100, 'current': 1, 'percentage': 1}

    def test_recent_notifications(self, client, fake_redis):
        service = NotificationService(fake_redis, 'campaign:events')
        service.publish('planillados.pending.linked', {'linked_count': 3})
        client.app.dependency_overrides[get_notifier] = lambda: service

        response = client.get('/api/notifications/recent', params={'limit': 5})

        assert response.status_code == 200
        assert response.json()[0]['payload'] == {'linked_count': 3}

    def test_recent_notifications_limit(self, client):
        assert client.get('/api/notifications/recent', params={'limit': 100}).status_code == 422

    def test_ping(self, client):
        assert client.get('/api/ping').json() == {'ping': 'pong'}

    def test_root_lists_resources(self, client):
        data = client.get('/').json()
        assert '/api/planillados' in data['resources']
        assert 'auth_enabled' in data


class FakePubSub:

    def __init__(self, messages):
        self.messages = list(messages)
        self.channels = []
        self.closed = False

    def subscribe(self, channel):
        self.channels.append(channel)

    def get_message(self, timeout=0):
        return self.messages.pop(0) if self.messages else None

    def close(self):
        self.closed = True


class TestNotificationsSocket:
    """Test the /ws/notifications stream."""

    def test_history_then_live_events(self, client, monkeypatch, fake_redis):
        monkeypatch.setattr(settings, 'ENABLE_AUTH', False)
        NotificationService(fake_redis, settings.NOTIFICATIONS_CHANNEL).publish('event', {'number': 1})
        live = json.dumps({'event': LEADER_WITH_PENDING_PLANILLADOS, 'payload': {'leader_id': 7}})
        pubsub = FakePubSub([{'type': 'message', 'data': live}])
        fake_redis.pubsub = lambda **kwargs: pubsub
        client.app.dependency_overrides[get_redis] = lambda: fake_redis

        with client.websocket_connect('/ws/notifications') as ws:
            recent = ws.receive_json()
            notification = ws.receive_json()

        assert recent['type'] == 'recent'
        assert recent['items'][0]['payload'] == {'number': 1}
        assert notification['type'] == 'notification'
        assert notification['payload'] == {'leader_id': 7}
        assert pubsub.channels == [settings.NOTIFICATIONS_CHANNEL]

    def test_disconnect_releases_subscription(self, client, monkeypatch, fake_redis):
        monkeypatch.setattr(settings, 'ENABLE_AUTH', False)
        pubsub = FakePubSub([])
        fake_redis.pubsub = lambda **kwargs: pubsub
        client.app.dependency_overrides[get_redis] = lambda: fake_redis

        with client.websocket_connect('/ws/notifications') as ws:
            assert ws.receive_json() == {'type': 'recent', 'items': []}

        assert pubsub.closed is True
