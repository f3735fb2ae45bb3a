import dataclasses
import os
from datetime import datetime

import pytest
from fastapi import HTTPException

from backend.engagement_module import message_service
from backend.engagement_module.config import settings
from backend.engagement_module.models import Message

API = "/api/v1/engagement"


@pytest.fixture
def thread(db, teacher, parent):
    messages = [
        Message(sender_id=parent.id, sender_name=parent.name, receiver_id=teacher.id, content="Hello", timestamp=datetime(2024, 1, 1, 9)),
        Message(sender_id=teacher.id, sender_name=teacher.name, receiver_id=parent.id, content="Hi!", timestamp=datetime(2024, 1, 1, 10)),
        Message(sender_id=parent.id, sender_name=parent.name, receiver_id=teacher.id, content="Question", timestamp=datetime(2024, 1, 1, 11)),
    ]
    db.add_all(messages)
    db.commit()
    return [m.id for m in messages]


def test_send_message(client, teacher, parent, auth):
    response = client.post(
        f"{API}/messages",
        json={"receiver_id": teacher.id, "content": "  See you at pickup  "},
        headers=auth(parent),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["content"] == "See you at pickup"
    assert body["sender_name"] == "Pat Parent"
    assert body["is_read"] is False
    assert body["has_attachment"] is False


def test_empty_message_needs_attachment(client, teacher, parent, auth):
    empty = client.post(f"{API}/messages", json={"receiver_id": teacher.id, "content": "  "}, headers=auth(parent))
    assert empty.status_code == 400

    response = client.post(
        f"{API}/messages",
        json={
            "receiver_id": teacher.id,
            "file_url": "/static/uploads/abc.pdf",
            "file_name": "homework.pdf",
            "file_type": "application/pdf",
            "file_size": 1024,
        },
        headers=auth(parent),
    )
    assert response.status_code == 201
    assert response.json()["has_attachment"] is True
    assert response.json()["file_name"] == "homework.pdf"


def test_send_to_unknown_receiver(client, parent, auth):
    response = client.post(f"{API}/messages", json={"receiver_id": "ghost", "content": "hi"}, headers=auth(parent))
    assert response.status_code == 404


def test_conversation_is_chronological(client, teacher, parent, thread, auth):
    response = client.get(f"{API}/messages/conversations/{parent.id}", headers=auth(teacher))
    assert [m["id"] for m in response.json()] == thread


def test_soft_delete_hides_only_for_deleting_user(client, teacher, parent, thread, auth):
    response = client.post(f"{API}/messages/delete", json={"message_ids": [thread[0]]}, headers=auth(teacher))
    assert response.json()["count"] == 1

    teacher_view = client.get(f"{API}/messages/conversations/{parent.id}", headers=auth(teacher)).json()
    parent_view = client.get(f"{API}/messages/conversations/{teacher.id}", headers=auth(parent)).json()
    assert [m["id"] for m in teacher_view] == thread[1:]
    assert [m["id"] for m in parent_view] == thread
    assert parent_view[0]["deleted_for"] == {teacher.id: True}


def test_delete_for_everyone_removes_for_both(client, db, teacher, parent, thread, auth):
    response = client.post(
        f"{API}/messages/delete",
        json={"message_ids": thread[:2], "for_everyone": True},
        headers=auth(parent),
    )
    assert response.json()["count"] == 2
    assert db.get(Message, thread[0]) is None
    parent_view = client.get(f"{API}/messages/conversations/{teacher.id}", headers=auth(parent)).json()
    assert [m["id"] for m in parent_view] == [thread[2]]


def test_outsider_cannot_delete(client, other_parent, thread, auth):
    response = client.post(f"{API}/messages/delete", json={"message_ids": [thread[0]]}, headers=auth(other_parent))
    assert response.status_code == 403


def test_only_sender_can_edit(client, teacher, parent, thread, auth):
    denied = client.patch(f"{API}/messages/{thread[0]}", json={"content": "changed"}, headers=auth(teacher))
    assert denied.status_code == 403

    response = client.patch(f"{API}/messages/{thread[0]}", json={"content": "Hello again"}, headers=auth(parent))
    assert response.status_code == 200
    assert response.json()["content"] == "Hello again"


def test_only_receiver_marks_read(client, teacher, parent, thread, auth):
    assert client.post(f"{API}/messages/{thread[0]}/read", headers=auth(parent)).status_code == 403
    response = client.post(f"{API}/messages/{thread[0]}/read", headers=auth(teacher))
    assert response.json()["is_read"] is True
    again = client.post(f"{API}/messages/{thread[0]}/read", headers=auth(teacher))
    assert again.status_code == 200


def test_mark_conversation_read_touches_only_received(client, db, teacher, parent, thread, auth):
    response = client.post(f"{API}/messages/conversations/{parent.id}/read", headers=auth(teacher))
    assert response.json()["count"] == 2
    db.expire_all()
    assert db.get(Message, thread[1]).is_read is False
    assert client.get(f"{API}/messages/unread/count", headers=auth(teacher)).json()["count"] == 0
    assert client.get(f"{API}/messages/unread/count", headers=auth(parent)).json()["count"] == 1


def test_unread_excludes_soft_deleted(client, teacher, parent, thread, auth):
    client.post(f"{API}/messages/delete", json={"message_ids": [thread[2]]}, headers=auth(teacher))
    unread = client.get(f"{API}/messages/unread", headers=auth(teacher)).json()
    assert [m["id"] for m in unread] == [thread[0]]


def test_forward_creates_copies_and_keeps_originals(client, db, teacher, parent, other_parent, thread, auth):
    response = client.post(
        f"{API}/messages/forward",
        json={"message_ids": [thread[0], thread[2]], "recipient_id": other_parent.id},
        headers=auth(teacher),
    )
    assert response.status_code == 201
    copies = response.json()
    assert [m["content"] for m in copies] == ["Hello", "Question"]
    assert all(m["sender_id"] == teacher.id and m["receiver_id"] == other_parent.id for m in copies)
    assert not {m["id"] for m in copies} & set(thread)

    original = db.get(Message, thread[0])
    assert original.sender_id == parent.id
    assert original.receiver_id == teacher.id


def test_forward_targets_skip_current_partner(client, teacher, parent, other_parent, auth):
    response = client.get(f"{API}/messages/forward-targets", params={"partner_id": parent.id}, headers=auth(teacher))
    assert [c["id"] for c in response.json()] == [other_parent.id]


def test_store_attachment(monkeypatch, tmp_path):
    monkeypatch.setattr(message_service, "settings", dataclasses.replace(settings, upload_dir=str(tmp_path)))
    stored = message_service.store_attachment(filename="notes.txt", content_type="text/plain", data=b"hello")
    assert stored["name"] == "notes.txt"
    assert stored["size"] == 5
    assert stored["url"].startswith("/static/uploads/") and stored["url"].endswith(".txt")
    assert os.path.exists(os.path.join(tmp_path, os.path.basename(stored["url"])))


def test_oversize_attachment_rejected(monkeypatch, tmp_path):
    monkeypatch.setattr(
        message_service,
        "settings",
        dataclasses.replace(settings, upload_dir=str(tmp_path), max_attachment_mb=0),
    )
    with pytest.raises(HTTPException) as exc:
        message_service.store_attachment(filename="big.bin", content_type=None, data=b"x")
    assert exc.value.status_code == 400


def test_upload_endpoint(client, parent, auth, monkeypatch, tmp_path):
    monkeypatch.setattr(message_service, "settings", dataclasses.replace(settings, upload_dir=str(tmp_path)))
    response = client.post(
        f"{API}/messages/attachments",
        files={"file": ("photo.png", b"\x89PNG", "image/png")},
        headers=auth(parent),
    )
    assert response.status_code == 201
    assert response.json()["type"] == "image/png"
