import logging
import smtplib
from email.mime.text import MIMEText

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .config import settings
from .models import Notification, User
from .realtime import feed


logger = logging.getLogger(__name__)


class NotificationDispatchError(Exception):
    pass


def send_notification_email(*, recipient_email: str, title: str, message: str) -> None:
    if not settings.smtp_username or not settings.smtp_password:
        raise NotificationDispatchError("SMTP credentials are missing")

    msg = MIMEText(message)
    msg["Subject"] = title
    msg["From"] = settings.smtp_username
    msg["To"] = recipient_email

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(settings.smtp_username, [recipient_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationDispatchError(f"Failed to send notification email: {exc}") from exc


def notify(db: Session, *, user_id: str, title: str, message: str) -> Notification:
    notification = Notification(user_id=user_id, title=title, message=message)
    db.add(notification)
    db.commit()
    db.refresh(notification)

    feed.publish(
        "notifications",
        "created",
        {"id": notification.id, "title": title, "message": message},
        recipients=[user_id],
    )

    if settings.notify_by_email:
        recipient = db.get(User, user_id)
        if recipient:
            try:
                send_notification_email(recipient_email=recipient.email, title=title, message=message)
            except NotificationDispatchError as exc:
                logger.warning(f"E-mail copy of notification {notification.id} not sent: {exc}")
    return notification


def list_notifications(db: Session, *, user: User) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.timestamp.desc())
        .all()
    )


def mark_notification_read(db: Session, *, user: User, notification_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification or notification.user_id != user.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification
