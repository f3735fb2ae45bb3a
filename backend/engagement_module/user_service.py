import logging
from dataclasses import dataclass
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .models import Event, Message, MessageDeletion, ProblemReport, ProblemStatus, User, UserRole
from .security import admin_code_matches, hash_password
from .validators import normalize_email, password_error


logger = logging.getLogger(__name__)

MEETING_PARTNER_ROLES = {
    UserRole.PARENT: (UserRole.TEACHER, UserRole.ADMIN),
    UserRole.TEACHER: (UserRole.PARENT, UserRole.ADMIN),
    UserRole.ADMIN: (UserRole.TEACHER, UserRole.PARENT),
}

CHAT_PARTNER_ROLES = {
    UserRole.PARENT: (UserRole.TEACHER,),
    UserRole.TEACHER: (UserRole.PARENT,),
    UserRole.ADMIN: (UserRole.ADMIN, UserRole.TEACHER, UserRole.PARENT, UserRole.STUDENT),
}


@dataclass
class Contact:
    id: str
    name: str
    email: str
    role: UserRole
    last_message_at: datetime | None = None
    unread_count: int = 0


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _ensure_email_free(db: Session, email: str, exclude_id: str | None = None) -> None:
    query = db.query(User).filter(User.email == email)
    if exclude_id:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail="Email already in use")


def create_user(
    db: Session,
    *,
    role: UserRole,
    name: str,
    email: str,
    raw_password: str,
    subject: str | None = None,
    grade: str | None = None,
    grades: list[str] | None = None,
    child_emails: list[str] | None = None,
) -> User:
    email = normalize_email(email)
    error = password_error(raw_password)
    if error:
        raise HTTPException(status_code=400, detail=error)
    _ensure_email_free(db, email)

    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(raw_password),
        role=role,
        subject=subject,
        grade=grade,
        grades=list(grades or []),
        child_emails=[normalize_email(child) for child in child_emails or []],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created {role.value} account {user.email}")
    return user


def register_admin(db: Session, *, name: str, email: str, raw_password: str, admin_code: str) -> User:
    if not admin_code_matches(admin_code):
        raise HTTPException(status_code=400, detail="Invalid admin code")
    return create_user(db, role=UserRole.ADMIN, name=name, email=email, raw_password=raw_password)


def get_user(db: Session, *, user_id: str) -> User:
    return _get_user_or_404(db, user_id)


def list_users(db: Session, *, role: UserRole | None = None, grade: str | None = None) -> list[User]:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.name).all()
    if grade:
        users = [u for u in users if u.grade == grade or grade in (u.grades or [])]
    return users


def update_user(db: Session, *, user_id: str, changes: dict) -> User:
    user = _get_user_or_404(db, user_id)
    if changes.get("email") is not None:
        email = normalize_email(changes["email"])
        _ensure_email_free(db, email, exclude_id=user.id)
        user.email = email
    if changes.get("name") is not None:
        user.name = changes["name"].strip()
    for field in ("subject", "grade"):
        if field in changes:
            setattr(user, field, changes[field])
    if changes.get("grades") is not None:
        user.grades = list(changes["grades"])
    if changes.get("child_emails") is not None:
        user.child_emails = [normalize_email(child) for child in changes["child_emails"]]
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, *, user_id: str) -> int:
    """Delete a user; a parent takes their linked students along. Returns rows removed."""
    user = _get_user_or_404(db, user_id)
    removed = [user]
    if user.role == UserRole.PARENT and user.child_emails:
        removed.extend(
            db.query(User)
            .filter(User.role == UserRole.STUDENT, User.email.in_(user.child_emails))
            .all()
        )
    for doomed in removed:
        db.delete(doomed)
    db.commit()
    logger.info(f"Deleted user {user_id} ({len(removed)} account(s) removed)")
    return len(removed)


def children_for_parent(db: Session, *, parent_id: str) -> list[User]:
    parent = _get_user_or_404(db, parent_id)
    if parent.role != UserRole.PARENT:
        raise HTTPException(status_code=400, detail="User is not a parent")
    if not parent.child_emails:
        return []
    return (
        db.query(User)
        .filter(User.role == UserRole.STUDENT, User.email.in_(parent.child_emails))
        .order_by(User.name)
        .all()
    )


def dashboard_counts(db: Session) -> dict[str, int]:
    def count_role(role: UserRole) -> int:
        return db.query(User).filter(User.role == role).count()

    return {
        "teachers": count_role(UserRole.TEACHER),
        "parents": count_role(UserRole.PARENT),
        "students": count_role(UserRole.STUDENT),
        "events": db.query(Event).count(),
        "active_problems": db.query(ProblemReport).filter(ProblemReport.status != ProblemStatus.RESOLVED).count(),
    }


def potential_meeting_participants(db: Session, *, role: UserRole) -> list[User]:
    roles = MEETING_PARTNER_ROLES.get(role, ())
    if not roles:
        return []
    return db.query(User).filter(User.role.in_(roles)).order_by(User.name).all()


def chat_contacts(db: Session, *, user: User) -> list[Contact]:
    roles = CHAT_PARTNER_ROLES.get(user.role, ())
    partners = (
        db.query(User)
        .filter(User.role.in_(roles), User.id != user.id)
        .order_by(User.name)
        .all()
    )
    contacts = {p.id: Contact(id=p.id, name=p.name, email=p.email, role=p.role) for p in partners}

    messages = (
        db.query(Message)
        .filter((Message.sender_id == user.id) | (Message.receiver_id == user.id))
        .filter(~Message.deletions.any(MessageDeletion.user_id == user.id))
        .all()
    )
    for message in messages:
        partner_id = message.receiver_id if message.sender_id == user.id else message.sender_id
        contact = contacts.get(partner_id)
        if contact is None:
            continue
        if contact.last_message_at is None or message.timestamp > contact.last_message_at:
            contact.last_message_at = message.timestamp
        if message.receiver_id == user.id and not message.is_read:
            contact.unread_count += 1
    return list(contacts.values())


DEMO_USERS = (
    ("School Admin", "admin@school.local", UserRole.ADMIN, {}),
    ("Demo Teacher", "teacher@school.local", UserRole.TEACHER, {"subject": "Mathematics", "grades": ["Grade 1"]}),
    ("Demo Student", "student@school.local", UserRole.STUDENT, {"grade": "Grade 1"}),
    ("Demo Parent", "parent@school.local", UserRole.PARENT, {"child_emails": ["student@school.local"]}),
)


def seed_demo_users(db: Session) -> None:
    for name, email, role, extra in DEMO_USERS:
        exists = db.query(User).filter(User.email == email).first()
        if exists:
            continue
        db.add(
            User(
                name=name,
                email=email,
                role=role,
                password_hash=hash_password("ChangeMe@123"),
                subject=extra.get("subject"),
                grade=extra.get("grade"),
                grades=extra.get("grades", []),
                child_emails=extra.get("child_emails", []),
            )
        )
    db.commit()
