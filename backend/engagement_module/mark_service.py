import logging
from typing import NamedTuple

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .activity_service import log_grade_activity
from .models import Assessment, Mark, MarkKind, User, utcnow
from .realtime import feed
from .validators import parse_assessment_key, validate_assessment_scores


logger = logging.getLogger(__name__)


class AssessmentEntry(NamedTuple):
    name: str
    max_points: int
    score: int


def parse_assessments(raw: dict[str, int] | None) -> list[AssessmentEntry]:
    """Turn ``{"Quiz 1 (20)": 15}`` into validated entries; 400 on a bad form."""
    entries = []
    for key, score in (raw or {}).items():
        parsed = parse_assessment_key(key)
        if parsed is None:
            raise HTTPException(status_code=400, detail=f"Invalid assessment key: {key}")
        name, max_points = parsed
        entries.append(AssessmentEntry(name=name, max_points=max_points, score=int(score)))
    error = validate_assessment_scores(entries)
    if error:
        raise HTTPException(status_code=400, detail=error)
    return entries


def _find_mark(db: Session, kind: MarkKind, student_id: str, semester: str, subject: str) -> Mark | None:
    return (
        db.query(Mark)
        .filter(
            Mark.kind == kind,
            Mark.student_id == student_id,
            Mark.semester == semester,
            Mark.subject == subject,
        )
        .first()
    )


def _get_mark_or_404(db: Session, kind: MarkKind, student_id: str, semester: str, subject: str) -> Mark:
    mark = _find_mark(db, kind, student_id, semester, subject)
    if not mark:
        raise HTTPException(status_code=404, detail="Mark not found")
    return mark


def _replace_assessments(mark: Mark, entries: list[AssessmentEntry]) -> None:
    mark.assessments = [
        Assessment(position=position, name=entry.name, max_points=entry.max_points, score=entry.score)
        for position, entry in enumerate(entries)
    ]


def _publish(action: str, mark: Mark) -> None:
    feed.publish(
        "marks",
        action,
        {"kind": mark.kind.value, "student_id": mark.student_id, "semester": mark.semester, "subject": mark.subject},
        recipients=[mark.student_id, mark.teacher_id],
    )


def submit_mark(
    db: Session,
    *,
    teacher: User,
    kind: MarkKind,
    student_id: str,
    semester: str,
    subject: str,
    value: str,
    assessments: dict[str, int] | None = None,
) -> Mark:
    entries = parse_assessments(assessments)
    mark = _find_mark(db, kind, student_id, semester, subject)
    if mark is None:
        mark = Mark(kind=kind, student_id=student_id, semester=semester, subject=subject)
        db.add(mark)
    mark.teacher_id = teacher.id
    mark.value = value
    mark.updated_at = utcnow()
    if assessments is not None:
        _replace_assessments(mark, entries)
    if kind == MarkKind.GRADE:
        log_grade_activity(db, student_id=student_id, subject=subject, mark=value)
    db.commit()
    db.refresh(mark)
    logger.info(f"{kind.value.title()} mark for {student_id} in {subject} ({semester}) set by {teacher.id}")
    _publish("saved", mark)
    return mark


def get_mark(db: Session, *, kind: MarkKind, student_id: str, semester: str, subject: str) -> Mark:
    return _get_mark_or_404(db, kind, student_id, semester, subject)


def assessment_details(db: Session, *, kind: MarkKind, student_id: str, semester: str, subject: str) -> list[Assessment]:
    return list(_get_mark_or_404(db, kind, student_id, semester, subject).assessments)


def student_marks(db: Session, *, kind: MarkKind, student_id: str, semester: str) -> dict[str, str]:
    marks = (
        db.query(Mark)
        .filter(Mark.kind == kind, Mark.student_id == student_id, Mark.semester == semester)
        .order_by(Mark.subject)
        .all()
    )
    return {mark.subject: mark.value for mark in marks}


def update_mark(
    db: Session,
    *,
    teacher: User,
    kind: MarkKind,
    student_id: str,
    semester: str,
    subject: str,
    value: str,
    assessments: dict[str, int] | None = None,
) -> Mark:
    mark = _get_mark_or_404(db, kind, student_id, semester, subject)
    entries = parse_assessments(assessments)
    mark.value = value
    mark.teacher_id = teacher.id
    mark.updated_at = utcnow()
    if assessments is not None:
        _replace_assessments(mark, entries)
    db.commit()
    db.refresh(mark)
    _publish("updated", mark)
    return mark


def delete_mark(db: Session, *, kind: MarkKind, student_id: str, semester: str, subject: str) -> None:
    mark = _get_mark_or_404(db, kind, student_id, semester, subject)
    payload = {"kind": kind.value, "student_id": student_id, "semester": semester, "subject": subject}
    recipients = [mark.student_id, mark.teacher_id]
    db.delete(mark)
    db.commit()
    feed.publish("marks", "deleted", payload, recipients=recipients)
