import asyncio
import gc

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from backend.backend import app
from backend.engagement_module.database import Base, get_db_session
from backend.engagement_module.models import User, UserRole
from backend.engagement_module.realtime import ChangeFeed, feed, stream_updates

API = "/api/v1/engagement"


def test_publish_reaches_listed_recipients_only():
    async def scenario():
        feed = ChangeFeed()
        alice = feed.subscribe("alice")
        bob = feed.subscribe("bob")
        delivered = feed.publish("messages", "created", {"id": "m1"}, recipients=["alice"])
        event = await asyncio.wait_for(alice.queue.get(), timeout=1)
        await asyncio.sleep(0)
        return delivered, event, bob.queue.empty()

    delivered, event, bob_empty = asyncio.run(scenario())
    assert delivered == 1
    assert event == {"channel": "messages", "action": "created", "data": {"id": "m1"}}
    assert bob_empty


def test_broadcast_from_worker_thread():
    async def scenario():
        feed = ChangeFeed()
        subscriptions = [feed.subscribe("a"), feed.subscribe("b")]
        await asyncio.to_thread(feed.publish, "events", "created", {"id": "e1"})
        events = [await asyncio.wait_for(s.queue.get(), timeout=1) for s in subscriptions]
        feed.unsubscribe(subscriptions[0])
        return events, feed.subscriber_count()

    events, remaining = asyncio.run(scenario())
    assert [e["data"]["id"] for e in events] == ["e1", "e1"]
    assert remaining == 1


def test_websocket_receives_message_events(client, teacher, parent, auth):
    with client.websocket_connect(f"/ws/updates?user_id={teacher.id}") as websocket:
        response = client.post(f"{API}/messages", json={"receiver_id": teacher.id, "content": "Hi"}, headers=auth(parent))
        event = websocket.receive_json()
    assert event["channel"] == "messages"
    assert event["action"] == "created"
    assert event["data"]["id"] == response.json()["id"]


def test_websocket_rejects_unknown_user(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/updates?user_id=ghost") as websocket:
            websocket.receive_json()


@pytest.fixture
def pooled_app(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'realtime.db'}",
        connect_args={"check_same_thread": False},
        poolclass=QueuePool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False)

    def override_db_session():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    with factory() as db:
        user = User(name="Tom Teacher", email="tom@school.test", role=UserRole.TEACHER, password_hash="x")
        db.add(user)
        db.commit()
        user_id = user.id

    app.dependency_overrides[get_db_session] = override_db_session
    try:
        yield TestClient(app), engine, user_id
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def test_open_socket_holds_no_pooled_connection(pooled_app):
    client, engine, user_id = pooled_app
    with client.websocket_connect(f"/ws/updates?user_id={user_id}"):
        with client.websocket_connect(f"/ws/updates?user_id={user_id}"):
            assert engine.pool.checkedout() == 0
            response = client.get(f"{API}/me", headers={"X-User-Id": user_id})
            assert response.status_code == 200


class BrokenSocket:
    def __init__(self):
        self.closed = asyncio.Event()

    async def accept(self):
        pass

    async def send_json(self, data):
        raise RuntimeError("connection reset")

    async def receive_text(self):
        await self.closed.wait()
        raise WebSocketDisconnect(code=1006)


def test_failed_delivery_is_collected_on_disconnect():
    async def scenario():
        errors = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: errors.append(context))
        before = feed.subscriber_count()
        socket = BrokenSocket()
        task = asyncio.create_task(stream_updates(socket, "broken"))
        await asyncio.sleep(0)
        feed.publish("events", "created", {"id": "e1"}, recipients=["broken"])
        await asyncio.sleep(0.05)
        socket.closed.set()
        await asyncio.wait_for(task, timeout=1)
        gc.collect()
        await asyncio.sleep(0)
        return errors, feed.subscriber_count() - before

    errors, leftover = asyncio.run(scenario())
    assert errors == []
    assert leftover == 0
