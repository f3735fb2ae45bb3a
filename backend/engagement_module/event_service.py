import calendar
import logging
from collections import defaultdict
from datetime import date

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .models import Announcement, Event, User
from .realtime import feed
from .validators import parse_event_date
from .views import sort_events_by_date_desc


logger = logging.getLogger(__name__)


def _parse_date_or_400(value: str) -> date:
    parsed = parse_event_date(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid date, use YYYY-MM-DD or MM/DD/YYYY")
    return parsed


def _get_event_or_404(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def post_event(db: Session, *, actor: User, title: str, date: str, time: str = "", description: str = "") -> Event:
    event = Event(
        title=title.strip(),
        date=_parse_date_or_400(date),
        time=time,
        description=description,
        created_by=actor.id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(f"Event '{event.title}' posted for {event.date.isoformat()} by {actor.id}")
    feed.publish("events", "created", {"id": event.id})
    return event


def list_events(db: Session) -> list[Event]:
    return sort_events_by_date_desc(db.query(Event).all())


def get_event(db: Session, *, event_id: str) -> Event:
    return _get_event_or_404(db, event_id)


def update_event(db: Session, *, event_id: str, changes: dict) -> Event:
    event = _get_event_or_404(db, event_id)
    if changes.get("title") is not None:
        event.title = changes["title"].strip()
    if changes.get("date") is not None:
        event.date = _parse_date_or_400(changes["date"])
    for field in ("time", "description"):
        if changes.get(field) is not None:
            setattr(event, field, changes[field])
    db.commit()
    db.refresh(event)
    feed.publish("events", "updated", {"id": event.id})
    return event


def delete_event(db: Session, *, event_id: str) -> None:
    event = _get_event_or_404(db, event_id)
    db.delete(event)
    db.commit()
    feed.publish("events", "deleted", {"id": event_id})


def events_for_month(db: Session, *, year: int, month: int) -> dict[int, list[Event]]:
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    if not 1 <= year <= 9999:
        raise HTTPException(status_code=400, detail="Year must be between 1 and 9999")
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    events = (
        db.query(Event)
        .filter(Event.date >= first, Event.date <= last)
        .order_by(Event.date, Event.time)
        .all()
    )
    by_day = defaultdict(list)
    for event in events:
        by_day[event.date.day].append(event)
    return dict(by_day)


def event_count(db: Session) -> int:
    return db.query(Event).count()


def create_announcement(
    db: Session,
    *,
    teacher: User,
    date: str,
    subject: str,
    period: int,
    title: str,
    time: str = "",
    description: str = "",
) -> Announcement:
    announcement = Announcement(
        teacher_id=teacher.id,
        teacher_name=teacher.name,
        date=date,
        subject=subject.strip(),
        period=period,
        title=title.strip(),
        time=time,
        description=description,
    )
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    feed.publish("announcements", "created", {"id": announcement.id})
    return announcement


def list_announcements(db: Session) -> list[Announcement]:
    return db.query(Announcement).order_by(Announcement.created_at.desc()).all()
