from fastapi import HTTPException
from sqlalchemy.orm import Session

from .models import TodoItem, TodoPriority, User, utcnow
from .realtime import feed


def parse_priority(value: str | None) -> TodoPriority:
    try:
        return TodoPriority((value or "").strip().lower())
    except ValueError:
        return TodoPriority.MEDIUM


def _get_todo_or_404(db: Session, user: User, todo_id: str) -> TodoItem:
    todo = db.get(TodoItem, todo_id)
    if not todo or todo.user_id != user.id:
        raise HTTPException(status_code=404, detail="To-do not found")
    return todo


def build_todo(
    *,
    user_id: str,
    title: str,
    description: str = "",
    due_date: str = "",
    due_time: str = "",
    priority: str | TodoPriority = TodoPriority.MEDIUM,
    category: str = "",
    meeting_id: str | None = None,
) -> TodoItem:
    return TodoItem(
        user_id=user_id,
        title=title.strip(),
        description=description,
        due_date=due_date,
        due_time=due_time,
        priority=parse_priority(priority),
        category=category,
        meeting_id=meeting_id,
    )


def add_todo(db: Session, *, user: User, **fields) -> TodoItem:
    todo = build_todo(user_id=user.id, **fields)
    db.add(todo)
    db.commit()
    db.refresh(todo)
    feed.publish("todos", "created", {"id": todo.id}, recipients=[user.id])
    return todo


def list_todos(db: Session, *, user: User) -> list[TodoItem]:
    return (
        db.query(TodoItem)
        .filter(TodoItem.user_id == user.id)
        .order_by(TodoItem.is_completed, TodoItem.created_at.desc())
        .all()
    )


def update_todo(db: Session, *, user: User, todo_id: str, changes: dict) -> TodoItem:
    todo = _get_todo_or_404(db, user, todo_id)
    for field in ("title", "description", "due_date", "due_time", "category", "is_completed"):
        if changes.get(field) is not None:
            setattr(todo, field, changes[field])
    if changes.get("priority") is not None:
        todo.priority = parse_priority(changes["priority"])
    todo.updated_at = utcnow()
    db.commit()
    db.refresh(todo)
    feed.publish("todos", "updated", {"id": todo.id}, recipients=[user.id])
    return todo


def delete_todo(db: Session, *, user: User, todo_id: str) -> None:
    todo = _get_todo_or_404(db, user, todo_id)
    db.delete(todo)
    db.commit()
    feed.publish("todos", "deleted", {"id": todo_id}, recipients=[user.id])
