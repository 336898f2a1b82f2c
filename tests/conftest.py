import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["LOW_STOCK_SWEEP_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import asyncio
import fnmatch
import json

import httpx
import pytest

from stockwatch import auth, cache, models
from stockwatch.clients.notification_client import NotificationClient
from stockwatch.database import Base, SessionLocal, engine
from stockwatch.services.notifications.main import create_app
from stockwatch.services.notifications.realtime import ConnectionRegistry


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(username="alice", password="Secret123", role="user"):
        user = models.User(
            username=username,
            email=f"{username}@stockwatch.io",
            password_hash=auth.get_password_hash(password),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_item(db):
    def _make_item(owner=None, name="Bolt", quantity=3, min_threshold=5, unit="pieces", category="Tools"):
        item = models.InventoryItem(
            name=name,
            quantity=quantity,
            min_threshold=min_threshold,
            unit=unit,
            category=category,
            created_by=owner.id if owner else None,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item
    return _make_item


@pytest.fixture
def make_vendor(db):
    def _make_vendor(company_name="Acme Supply", email="sales@acme.io", specialty="Tools"):
        vendor = models.Vendor(
            company_name=company_name,
            contact_person="Jo Rivera",
            email=email,
            specialty=specialty,
        )
        db.add(vendor)
        db.commit()
        db.refresh(vendor)
        return vendor
    return _make_vendor


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {auth.create_access_token(user)}"}


@pytest.fixture
def auth_headers():
    return bearer


class MemoryRedis:
    """Just enough of the redis client API for the cache helpers."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def keys(self, pattern):
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


@pytest.fixture
def memory_redis(monkeypatch):
    client = MemoryRedis()
    monkeypatch.setattr(cache, "redis_client", client)
    return client


@pytest.fixture
def notification_app():
    return create_app(registry=ConnectionRegistry(), enable_sweep=False)


@pytest.fixture
def asgi_notification_client(notification_app):
    """Notification client that calls the in-process notification app."""
    return NotificationClient(
        base_url="http://notification-service",
        transport=httpx.ASGITransport(app=notification_app),
    )


class FakeWebSocket:
    """In-memory stand-in for a FastAPI WebSocket, driven by the test."""

    def __init__(self, token=None, headers=None, fail_sends=False, send_delay=0.0):
        self.query_params = {"token": token} if token else {}
        self.headers = headers or {}
        self.accepted = False
        self.closed_with = None
        self.sent = []
        self.fail_sends = fail_sends
        self.send_delay = send_delay
        self._incoming = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000, reason=None):
        self.closed_with = (code, reason)

    async def send_json(self, data):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    async def receive(self):
        return await self._incoming.get()

    def push(self, event, data):
        self.push_raw(json.dumps({"event": event, "data": data}))

    def push_raw(self, text):
        self._incoming.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data):
        self._incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self):
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def events(self, name):
        return [message["data"] for message in self.sent if message["event"] == name]


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
