from backend.engagement_module.models import User
from backend.engagement_module.user_service import DEMO_USERS, seed_demo_users


def test_health_reports_database(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "connected"


def test_seed_demo_users_is_idempotent(db):
    seed_demo_users(db)
    seed_demo_users(db)
    assert db.query(User).count() == len(DEMO_USERS)
    parent = db.query(User).filter(User.email == "parent@school.local").one()
    assert parent.child_emails == ["student@school.local"]
