from datetime import date, datetime

from backend.engagement_module.config import settings
from backend.engagement_module.models import Event, Message, ProblemKind, ProblemReport, ProblemStatus, User, UserRole
from backend.engagement_module.user_service import chat_contacts

API = "/api/v1/engagement"


def test_admin_signup_requires_exact_code(client):
    payload = {"name": "New Admin", "email": "New.Admin@School.test", "password": "secret1", "admin_code": "wrong-code"}
    response = client.post(f"{API}/admin/signup", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid admin code"

    payload["admin_code"] = settings.admin_signup_code
    response = client.post(f"{API}/admin/signup", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "admin"
    assert body["email"] == "new.admin@school.test"


def test_identity_header_is_required(client, admin):
    assert client.get(f"{API}/me").status_code == 401
    assert client.get(f"{API}/me", headers={"X-User-Id": "nobody"}).status_code == 401
    response = client.get(f"{API}/me", headers={"X-User-Id": admin.id})
    assert response.status_code == 200
    assert response.json()["name"] == "Ada Admin"


def test_admin_creates_users_and_rejects_duplicates(client, admin, auth):
    payload = {"role": "teacher", "name": "Nina", "email": "nina@school.test", "password": "secret1", "grades": ["Grade 3"]}
    response = client.post(f"{API}/users", json=payload, headers=auth(admin))
    assert response.status_code == 201
    assert response.json()["grades"] == ["Grade 3"]

    duplicate = client.post(f"{API}/users", json=payload, headers=auth(admin))
    assert duplicate.status_code == 409

    short = dict(payload, email="other@school.test", password="12345")
    assert client.post(f"{API}/users", json=short, headers=auth(admin)).status_code == 400


def test_only_admins_manage_users(client, teacher, auth):
    payload = {"role": "parent", "name": "Paula", "email": "paula@home.test", "password": "secret1"}
    assert client.post(f"{API}/users", json=payload, headers=auth(teacher)).status_code == 403


def test_list_users_by_role_and_grade(client, admin, teacher, student, parent, make_user, auth):
    make_user(UserRole.STUDENT, "Gia Grade2", "gia@school.test", grade="Grade 2")

    response = client.get(f"{API}/users", params={"role": "student", "grade": "Grade 1"}, headers=auth(admin))
    assert [u["email"] for u in response.json()] == ["sam@school.test"]

    response = client.get(f"{API}/users", params={"role": "teacher", "grade": "Grade 2"}, headers=auth(admin))
    assert [u["id"] for u in response.json()] == [teacher.id]

    response = client.get(f"{API}/users", params={"role": "teacher", "grade": "Grade 9"}, headers=auth(admin))
    assert response.json() == []


def test_update_user(client, admin, teacher, auth):
    response = client.patch(
        f"{API}/users/{teacher.id}",
        json={"name": "Tom T.", "grades": ["Grade 4"]},
        headers=auth(admin),
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Tom T."
    assert response.json()["grades"] == ["Grade 4"]

    clash = client.patch(f"{API}/users/{teacher.id}", json={"email": "ada@school.test"}, headers=auth(admin))
    assert clash.status_code == 409


def test_deleting_parent_removes_linked_students(client, db, admin, parent, student, auth):
    parent_id, student_id = parent.id, student.id
    response = client.delete(f"{API}/users/{parent_id}", headers=auth(admin))
    assert response.status_code == 200
    assert response.json()["count"] == 2
    assert db.get(User, parent_id) is None
    assert db.get(User, student_id) is None


def test_parent_sees_own_children_only(client, parent, other_parent, student, auth):
    response = client.get(f"{API}/parents/{parent.id}/children", headers=auth(parent))
    assert [child["id"] for child in response.json()] == [student.id]
    assert client.get(f"{API}/parents/{parent.id}/children", headers=auth(other_parent)).status_code == 403


def test_dashboard_counts(client, db, admin, teacher, parent, student, auth):
    db.add(Event(title="Open day", date=date(2024, 5, 1)))
    db.add(ProblemReport(user_id=parent.id, user_role="parent", kind=ProblemKind.SYSTEM, description="slow"))
    db.add(
        ProblemReport(
            user_id=parent.id,
            user_role="parent",
            kind=ProblemKind.SYSTEM,
            description="fixed",
            status=ProblemStatus.RESOLVED,
        )
    )
    db.commit()

    response = client.get(f"{API}/dashboard/counts", headers=auth(admin))
    assert response.json() == {"teachers": 1, "parents": 1, "students": 1, "events": 1, "active_problems": 1}
    assert client.get(f"{API}/dashboard/counts", headers=auth(teacher)).status_code == 403


def test_meeting_participants_depend_on_role(client, admin, teacher, parent, student, auth):
    def names(user):
        return [u["name"] for u in client.get(f"{API}/meetings/participants", headers=auth(user)).json()]

    assert names(parent) == ["Ada Admin", "Tom Teacher"]
    assert names(teacher) == ["Ada Admin", "Pat Parent"]
    assert names(admin) == ["Pat Parent", "Tom Teacher"]
    assert names(student) == []


def test_chat_contacts_track_latest_message_and_unread(db, teacher, parent, other_parent):
    db.add_all(
        [
            Message(sender_id=parent.id, receiver_id=teacher.id, content="hi", timestamp=datetime(2024, 1, 1, 9)),
            Message(sender_id=parent.id, receiver_id=teacher.id, content="there", timestamp=datetime(2024, 1, 1, 10)),
            Message(sender_id=teacher.id, receiver_id=parent.id, content="hello", timestamp=datetime(2024, 1, 1, 11)),
        ]
    )
    db.commit()

    contacts = {c.id: c for c in chat_contacts(db, user=teacher)}
    assert set(contacts) == {parent.id, other_parent.id}
    assert contacts[parent.id].unread_count == 2
    assert contacts[parent.id].last_message_at == datetime(2024, 1, 1, 11)
    assert contacts[other_parent.id].last_message_at is None


def test_chat_contacts_endpoint_orders_by_recent_conversation(client, db, teacher, parent, other_parent, auth):
    db.add(Message(sender_id=other_parent.id, receiver_id=teacher.id, content="ping", timestamp=datetime(2024, 2, 1)))
    db.commit()
    response = client.get(f"{API}/chat/contacts", headers=auth(teacher))
    assert [c["id"] for c in response.json()] == [other_parent.id, parent.id]
    assert response.json()[0]["unread_count"] == 1
