from sqlalchemy.orm import Session

from .models import Activity, ActivityKind, Message, MessageDeletion, User, UserRole
from .user_service import children_for_parent


def log_grade_activity(db: Session, *, student_id: str, subject: str, mark: str) -> Activity:
    # Added to the caller's transaction; the caller commits.
    activity = Activity(
        kind=ActivityKind.GRADE,
        title=f"New grade in {subject}",
        description=f"Mark recorded: {mark}",
        student_id=student_id,
    )
    db.add(activity)
    return activity


def log_attendance_activity(db: Session, *, student_id: str, date: str, period: int, present: bool) -> Activity:
    activity = Activity(
        kind=ActivityKind.ATTENDANCE,
        title="Attendance recorded",
        description=f"{'Present' if present else 'Absent'} on {date}, period {period}",
        student_id=student_id,
    )
    db.add(activity)
    return activity


def recent_activities(db: Session, *, parent: User, limit: int = 5) -> list[dict]:
    """Children's grade and attendance activity plus messages to the parent, newest first."""
    children = children_for_parent(db, parent_id=parent.id) if parent.role == UserRole.PARENT else []
    child_ids = [child.id for child in children]
    items = []
    if child_ids:
        activities = (
            db.query(Activity)
            .filter(Activity.student_id.in_(child_ids))
            .order_by(Activity.timestamp.desc())
            .limit(limit)
            .all()
        )
        items.extend(
            {
                "kind": activity.kind.value,
                "title": activity.title,
                "description": activity.description,
                "student_id": activity.student_id,
                "timestamp": activity.timestamp,
            }
            for activity in activities
        )

    messages = (
        db.query(Message)
        .filter(Message.receiver_id == parent.id)
        .filter(~Message.deletions.any(MessageDeletion.user_id == parent.id))
        .order_by(Message.timestamp.desc())
        .limit(limit)
        .all()
    )
    items.extend(
        {
            "kind": "message",
            "title": f"Message from {message.sender_name or 'a contact'}",
            "description": message.content or (message.file_name or "Attachment"),
            "student_id": None,
            "timestamp": message.timestamp,
        }
        for message in messages
    )

    items.sort(key=lambda item: item["timestamp"], reverse=True)
    return items[:limit]
