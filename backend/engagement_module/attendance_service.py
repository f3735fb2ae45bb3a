import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .activity_service import log_attendance_activity
from .models import AttendanceRecord, User, UserRole
from .realtime import feed


logger = logging.getLogger(__name__)


def submit_attendance(
    db: Session,
    *,
    teacher: User,
    date: str,
    day: str,
    period: int,
    grade: str,
    student_attendance: dict[str, bool],
) -> AttendanceRecord:
    if not student_attendance:
        raise HTTPException(status_code=400, detail="No students in attendance sheet")

    record = AttendanceRecord(
        teacher_id=teacher.id,
        date=date,
        day=day,
        period=period,
        grade=grade,
        student_attendance=dict(student_attendance),
    )
    db.add(record)
    for student_id, present in student_attendance.items():
        log_attendance_activity(db, student_id=student_id, date=date, period=period, present=present)
    db.commit()
    db.refresh(record)

    logger.info(f"Attendance for {grade} period {period} on {date} saved by {teacher.id}")
    feed.publish(
        "attendance",
        "created",
        {"id": record.id, "date": date, "period": period, "grade": grade},
        recipients=list(student_attendance) + [teacher.id],
    )
    return record


def teacher_classes(db: Session, *, teacher_id: str) -> list[str]:
    teacher = db.get(User, teacher_id)
    if not teacher or teacher.role != UserRole.TEACHER:
        raise HTTPException(status_code=404, detail="Teacher not found")
    return list(teacher.grades or [])


def students_in_class(db: Session, *, grade: str) -> list[User]:
    return (
        db.query(User)
        .filter(User.role == UserRole.STUDENT, User.grade == grade)
        .order_by(User.name)
        .all()
    )


def student_attendance(db: Session, *, student_id: str, date: str, period: int | None = None) -> dict[int, bool]:
    query = db.query(AttendanceRecord).filter(AttendanceRecord.date == date)
    if period is not None:
        query = query.filter(AttendanceRecord.period == period)
    result = {}
    for record in query.order_by(AttendanceRecord.period).all():
        if student_id in record.student_attendance:
            result[record.period] = bool(record.student_attendance[student_id])
    return result


def attendance_summary(db: Session, *, student_id: str) -> dict:
    present = 0
    total = 0
    for record in db.query(AttendanceRecord).all():
        if student_id not in record.student_attendance:
            continue
        total += 1
        if record.student_attendance[student_id]:
            present += 1
    rate = round(present / total * 100, 1) if total else 0.0
    return {"student_id": student_id, "present": present, "total": total, "rate": rate}
