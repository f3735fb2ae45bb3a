import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .models import ProblemKind, ProblemReport, ProblemStatus, User, utcnow
from .realtime import feed
from .validators import normalize_email, validate_problem_report


logger = logging.getLogger(__name__)


def _publish(action: str, report: ProblemReport) -> None:
    feed.publish("problems", action, {"id": report.id, "kind": report.kind.value, "status": report.status.value})


def _get_report_or_404(db: Session, report_id: str) -> ProblemReport:
    report = db.get(ProblemReport, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


def submit_system_report(db: Session, *, reporter: User, description: str) -> ProblemReport:
    error = validate_problem_report(description)
    if error:
        raise HTTPException(status_code=400, detail=error)
    report = ProblemReport(
        user_id=reporter.id,
        user_name=reporter.name,
        user_role=reporter.role.value,
        kind=ProblemKind.SYSTEM,
        description=description.strip(),
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info(f"System problem {report.id} reported by {reporter.id}")
    _publish("created", report)
    return report


def submit_user_report(
    db: Session,
    *,
    reporter: User,
    reported_email: str,
    reported_role: str,
    description: str,
) -> ProblemReport:
    error = validate_problem_report(description, reported_email, user_report=True)
    if error:
        raise HTTPException(status_code=400, detail=error)
    report = ProblemReport(
        user_id=reporter.id,
        user_name=reporter.name,
        user_role=reporter.role.value,
        kind=ProblemKind.USER,
        reported_role=reported_role,
        reported_user_email=normalize_email(reported_email),
        description=description.strip(),
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info(f"User problem {report.id} reported by {reporter.id} about {report.reported_user_email}")
    _publish("created", report)
    return report


def list_reports(db: Session, *, role: str | None = None, kind: ProblemKind | None = None) -> list[ProblemReport]:
    query = db.query(ProblemReport)
    if role:
        query = query.filter(ProblemReport.user_role == role)
    if kind:
        query = query.filter(ProblemReport.kind == kind)
    return query.order_by(ProblemReport.timestamp.desc()).all()


def get_report(db: Session, *, report_id: str) -> ProblemReport:
    return _get_report_or_404(db, report_id)


def update_report_status(db: Session, *, report_id: str, status: ProblemStatus) -> ProblemReport:
    report = _get_report_or_404(db, report_id)
    report.status = status
    report.updated_at = utcnow()
    db.commit()
    db.refresh(report)
    _publish("status", report)
    return report


def active_report_count(db: Session) -> int:
    return db.query(ProblemReport).filter(ProblemReport.status != ProblemStatus.RESOLVED).count()
