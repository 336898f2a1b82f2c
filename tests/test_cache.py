import redis
from fastapi.testclient import TestClient

from stockwatch import cache
from stockwatch.services.inventory.main import app as inventory_app


class DownRedis:
    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("Connection refused")

    get = setex = keys = delete = _fail


def test_disabled_cache_is_a_miss():
    assert cache.redis_client is None
    assert cache.get_cache("dashboard:1") is None
    assert cache.set_cache("dashboard:1", {"total_items": 1}) is False
    assert cache.delete_pattern("dashboard:*") is False


def test_round_trip_and_pattern_delete(memory_redis):
    cache.set_cache("dashboard:1", {"total_items": 3})
    cache.set_cache("dashboard:2", {"total_items": 4})
    cache.set_cache("other", {"x": 1})

    assert cache.get_cache("dashboard:1") == {"total_items": 3}
    assert cache.delete_pattern("dashboard:*") is True
    assert list(memory_redis.store) == ["other"]


def test_redis_errors_are_treated_as_misses(monkeypatch):
    monkeypatch.setattr(cache, "redis_client", DownRedis())

    assert cache.get_cache("dashboard:1") is None
    assert cache.set_cache("dashboard:1", {}) is False
    assert cache.delete_pattern("dashboard:*") is False


def test_dashboard_summary_is_cached_until_inventory_changes(
    memory_redis, make_user, make_item, auth_headers
):
    user = make_user()
    headers = auth_headers(user)
    client = TestClient(inventory_app)
    make_item(user, name="Gear", quantity=40)

    first = client.get("/api/inventory/dashboard-summary", headers=headers).json()
    make_item(user, name="Nut", quantity=40)
    cached = client.get("/api/inventory/dashboard-summary", headers=headers).json()

    assert first["total_items"] == cached["total_items"] == 1
    assert f"dashboard:{user.id}" in memory_redis.store

    item_id = client.get("/api/inventory", headers=headers).json()[0]["id"]
    client.delete(f"/api/inventory/{item_id}", headers=headers)

    assert memory_redis.store == {}
    assert client.get("/api/inventory/dashboard-summary", headers=headers).json()["total_items"] == 1
