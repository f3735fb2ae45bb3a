from backend.engagement_module.models import Activity, ActivityKind

API = "/api/v1/engagement"


def mark_payload(student, **overrides):
    payload = {
        "kind": "grade",
        "student_id": student.id,
        "semester": "Semester 1",
        "subject": "Mathematics",
        "mark": "A",
        "assessments": {"Quiz 1 (20)": 18, "Final Exam (80)": 70},
    }
    payload.update(overrides)
    return payload


def test_submit_grade_with_assessments(client, db, teacher, student, auth):
    response = client.post(f"{API}/marks", json=mark_payload(student), headers=auth(teacher))
    assert response.status_code == 201
    body = response.json()
    assert body["value"] == "A"
    assert body["assessments"] == [
        {"name": "Quiz 1", "max_points": 20, "score": 18},
        {"name": "Final Exam", "max_points": 80, "score": 70},
    ]
    activities = db.query(Activity).filter(Activity.student_id == student.id).all()
    assert [a.kind for a in activities] == [ActivityKind.GRADE]


def test_progress_marks_do_not_log_grade_activity(client, db, teacher, student, auth):
    response = client.post(f"{API}/marks", json=mark_payload(student, kind="progress", assessments=None), headers=auth(teacher))
    assert response.status_code == 201
    assert db.query(Activity).count() == 0


def test_scores_over_max_are_rejected(client, teacher, student, auth):
    over = mark_payload(student, assessments={"Quiz 1 (20)": 21})
    response = client.post(f"{API}/marks", json=over, headers=auth(teacher))
    assert response.status_code == 400
    assert response.json()["detail"] == "Score for Quiz 1 cannot exceed 20"


def test_malformed_assessment_key_is_rejected(client, teacher, student, auth):
    response = client.post(f"{API}/marks", json=mark_payload(student, assessments={"Quiz": 5}), headers=auth(teacher))
    assert response.status_code == 400


def test_parents_cannot_submit_marks(client, parent, student, auth):
    assert client.post(f"{API}/marks", json=mark_payload(student), headers=auth(parent)).status_code == 403


def test_read_marks(client, teacher, parent, student, auth):
    client.post(f"{API}/marks", json=mark_payload(student), headers=auth(teacher))
    client.post(f"{API}/marks", json=mark_payload(student, subject="Science", mark="B+", assessments=None), headers=auth(teacher))

    base = f"{API}/marks/grade/{student.id}/Semester 1"
    assert client.get(base, headers=auth(parent)).json() == {"Mathematics": "A", "Science": "B+"}
    assert client.get(f"{base}/Mathematics", headers=auth(parent)).json()["value"] == "A"
    details = client.get(f"{base}/Mathematics/assessments", headers=auth(parent)).json()
    assert [d["name"] for d in details] == ["Quiz 1", "Final Exam"]
    assert client.get(f"{base}/History", headers=auth(parent)).status_code == 404
    assert client.get(f"{API}/marks/progress/{student.id}/Semester 1", headers=auth(parent)).json() == {}


def test_resubmitting_overwrites_the_same_slot(client, teacher, student, auth):
    client.post(f"{API}/marks", json=mark_payload(student), headers=auth(teacher))
    response = client.post(f"{API}/marks", json=mark_payload(student, mark="A+", assessments={"Quiz 1 (20)": 20}), headers=auth(teacher))
    assert response.json()["value"] == "A+"
    assert len(response.json()["assessments"]) == 1


def test_update_and_delete_mark(client, teacher, student, auth):
    client.post(f"{API}/marks", json=mark_payload(student), headers=auth(teacher))
    url = f"{API}/marks/grade/{student.id}/Semester 1/Mathematics"

    response = client.put(url, json={"mark": "B", "assessments": {"Quiz 1 (20)": 12, "Final Exam (80)": 60}}, headers=auth(teacher))
    assert response.status_code == 200
    assert response.json()["value"] == "B"
    assert [a["score"] for a in response.json()["assessments"]] == [12, 60]

    rejected = client.put(url, json={"mark": "B", "assessments": {"Quiz 1 (20)": 25}}, headers=auth(teacher))
    assert rejected.status_code == 400

    assert client.delete(url, headers=auth(teacher)).status_code == 200
    assert client.get(url, headers=auth(teacher)).status_code == 404
    assert client.put(url, json={"mark": "C"}, headers=auth(teacher)).status_code == 404
