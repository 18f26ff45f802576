import json

import redis

from orderdesk import realtime


class RecordingRedis:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1


class BrokenRedis:
    def publish(self, channel, message):
        raise redis.ConnectionError("connection reset")


def test_channel_name():
    assert realtime.channel_for(7) == "orders:restaurant:7"


def test_no_redis_url_means_no_client(monkeypatch):
    monkeypatch.setattr(realtime, "redis_client", None)
    monkeypatch.setattr(realtime.settings, "redis_url", "")

    assert realtime.get_redis() is None
    realtime.publish_order_update(1, {"type": "order_created"})


def test_events_go_to_the_restaurant_channel(monkeypatch):
    fake = RecordingRedis()
    monkeypatch.setattr(realtime, "redis_client", fake)

    realtime.publish_order_update(3, {"type": "status_update", "status": "ready"})

    assert fake.published == [("orders:restaurant:3", {"type": "status_update", "status": "ready"})]


def test_publish_failures_are_swallowed(monkeypatch):
    monkeypatch.setattr(realtime, "redis_client", BrokenRedis())

    realtime.publish_order_update(3, {"type": "status_update"})
