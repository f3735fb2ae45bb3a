import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .models import AlternativeTime, MeetingRequest, MeetingStatus, TodoPriority, User, utcnow
from .notification_service import notify
from .realtime import feed
from .todo_service import build_todo


logger = logging.getLogger(__name__)

TODO_CATEGORY = "Meetings"


def _get_meeting_or_404(db: Session, meeting_id: str) -> MeetingRequest:
    meeting = db.get(MeetingRequest, meeting_id)
    if not meeting:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


def _require_participant(meeting: MeetingRequest, user: User) -> None:
    if user.id not in (meeting.requester_id, meeting.recipient_id):
        raise HTTPException(status_code=403, detail="Not a participant in this meeting")


def _other_party(meeting: MeetingRequest, user: User) -> str:
    return meeting.recipient_id if user.id == meeting.requester_id else meeting.requester_id


def _publish(action: str, meeting: MeetingRequest) -> None:
    feed.publish(
        "meetings",
        action,
        {"id": meeting.id, "status": meeting.status.value},
        recipients=[meeting.requester_id, meeting.recipient_id],
    )


def _meeting_todos(meeting: MeetingRequest, label: str) -> list:
    return [
        build_todo(
            user_id=meeting.requester_id,
            title=f"Meeting ({label}): {meeting.title}",
            description=f"Meeting with {meeting.recipient_name}: {meeting.description}",
            due_date=meeting.proposed_date,
            due_time=meeting.proposed_time,
            priority=TodoPriority.HIGH,
            category=TODO_CATEGORY,
            meeting_id=meeting.id,
        ),
        build_todo(
            user_id=meeting.recipient_id,
            title=f"Meeting ({label}): {meeting.title}",
            description=f"Meeting with {meeting.requester_name}: {meeting.description}",
            due_date=meeting.proposed_date,
            due_time=meeting.proposed_time,
            priority=TodoPriority.HIGH,
            category=TODO_CATEGORY,
            meeting_id=meeting.id,
        ),
    ]


def create_meeting(
    db: Session,
    *,
    requester: User,
    recipient_id: str,
    title: str,
    description: str,
    proposed_date: str,
    proposed_time: str,
    location: str = "Online",
    related_student_id: str | None = None,
) -> MeetingRequest:
    if recipient_id == requester.id:
        raise HTTPException(status_code=400, detail="Cannot request a meeting with yourself")
    recipient = db.get(User, recipient_id)
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")

    meeting = MeetingRequest(
        requester_id=requester.id,
        requester_name=requester.name,
        requester_role=requester.role.value,
        recipient_id=recipient.id,
        recipient_name=recipient.name,
        recipient_role=recipient.role.value,
        title=title.strip(),
        description=description,
        proposed_date=proposed_date,
        proposed_time=proposed_time,
        location=location or "Online",
        related_student_id=related_student_id,
        status=MeetingStatus.PENDING,
    )
    db.add(meeting)
    db.commit()
    db.refresh(meeting)
    logger.info(f"Meeting {meeting.id} requested by {requester.id} with {recipient.id}")
    _publish("created", meeting)
    notify(
        db,
        user_id=recipient.id,
        title="New Meeting Request",
        message=f"{requester.name} has requested a meeting with you.",
    )
    return meeting


def get_meeting(db: Session, *, meeting_id: str) -> MeetingRequest:
    return _get_meeting_or_404(db, meeting_id)


def sent_meetings(db: Session, *, user: User) -> list[MeetingRequest]:
    return (
        db.query(MeetingRequest)
        .filter(MeetingRequest.requester_id == user.id)
        .order_by(MeetingRequest.updated_at.desc())
        .all()
    )


def received_meetings(db: Session, *, user: User) -> list[MeetingRequest]:
    return (
        db.query(MeetingRequest)
        .filter(MeetingRequest.recipient_id == user.id)
        .order_by(MeetingRequest.updated_at.desc())
        .all()
    )


def all_meetings(db: Session, *, user: User) -> list[MeetingRequest]:
    merged = {m.id: m for m in sent_meetings(db, user=user) + received_meetings(db, user=user)}
    return sorted(merged.values(), key=lambda m: m.updated_at, reverse=True)


def update_meeting_status(
    db: Session,
    *,
    actor: User,
    meeting_id: str,
    status: MeetingStatus,
    response_message: str | None = None,
) -> MeetingRequest:
    meeting = _get_meeting_or_404(db, meeting_id)
    _require_participant(meeting, actor)
    if (
        meeting.status == MeetingStatus.PENDING
        and actor.id == meeting.requester_id
        and status in (MeetingStatus.ACCEPTED, MeetingStatus.REJECTED)
    ):
        raise HTTPException(status_code=403, detail="Only the recipient can accept or reject a pending request")

    meeting.status = status
    if response_message is not None:
        meeting.response_message = response_message
    meeting.updated_at = utcnow()
    confirmed = status in (MeetingStatus.ACCEPTED, MeetingStatus.RESCHEDULED)
    if confirmed:
        db.add_all(_meeting_todos(meeting, status.value.title()))
    db.commit()
    db.refresh(meeting)
    logger.info(f"Meeting {meeting.id} marked {status.value} by {actor.id}")
    _publish("status", meeting)

    label = status.value.replace("_", " ")
    if confirmed:
        for user_id in (meeting.requester_id, meeting.recipient_id):
            notify(
                db,
                user_id=user_id,
                title=f"Meeting {label.title()}",
                message=f"The meeting '{meeting.title}' is {label} for {meeting.proposed_date} at {meeting.proposed_time}.",
            )
    else:
        notify(
            db,
            user_id=_other_party(meeting, actor),
            title=f"Meeting Request {label.title()}",
            message=f"Your meeting request '{meeting.title}' has been {label}.",
        )
    return meeting


def suggest_alternatives(
    db: Session,
    *,
    actor: User,
    meeting_id: str,
    alternatives: list[dict],
    response_message: str = "",
) -> MeetingRequest:
    meeting = _get_meeting_or_404(db, meeting_id)
    _require_participant(meeting, actor)
    if not alternatives:
        raise HTTPException(status_code=400, detail="Suggest at least one alternative time")

    start = len(meeting.suggested_alternatives)
    for offset, alternative in enumerate(alternatives):
        meeting.suggested_alternatives.append(
            AlternativeTime(
                position=start + offset,
                date=alternative["date"],
                time=alternative["time"],
                suggested_by=actor.id,
            )
        )
    meeting.response_message = response_message
    meeting.status = MeetingStatus.RESCHEDULED
    meeting.updated_at = utcnow()
    db.add(
        build_todo(
            user_id=meeting.requester_id,
            title=f"Meeting (Needs Review): {meeting.title}",
            description=f"Alternative meeting times have been suggested for meeting with {meeting.recipient_name}",
            due_date=meeting.proposed_date,
            due_time=meeting.proposed_time,
            priority=TodoPriority.HIGH,
            category=TODO_CATEGORY,
            meeting_id=meeting.id,
        )
    )
    db.commit()
    db.refresh(meeting)
    _publish("alternatives", meeting)
    notify(
        db,
        user_id=_other_party(meeting, actor),
        title="Alternative Meeting Times Suggested",
        message=f"{actor.name} suggested {len(alternatives)} alternative time(s) for '{meeting.title}'.",
    )
    return meeting


def select_alternative(db: Session, *, actor: User, meeting_id: str, index: int) -> MeetingRequest:
    meeting = _get_meeting_or_404(db, meeting_id)
    _require_participant(meeting, actor)
    alternatives = meeting.suggested_alternatives
    if not 0 <= index < len(alternatives):
        raise HTTPException(status_code=400, detail="Invalid alternative index")

    for position, alternative in enumerate(alternatives):
        alternative.is_selected = position == index
    chosen = alternatives[index]
    meeting.proposed_date = chosen.date
    meeting.proposed_time = chosen.time
    meeting.status = MeetingStatus.PENDING
    meeting.updated_at = utcnow()
    db.add_all(_meeting_todos(meeting, "Rescheduled"))
    db.commit()
    db.refresh(meeting)
    _publish("rescheduled", meeting)
    notify(
        db,
        user_id=_other_party(meeting, actor),
        title="Meeting Time Selected",
        message=f"{actor.name} selected {meeting.proposed_date} at {meeting.proposed_time} for '{meeting.title}'.",
    )
    return meeting
