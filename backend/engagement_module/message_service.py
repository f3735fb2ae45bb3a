import logging
import os
import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .config import settings
from .models import Message, MessageDeletion, User
from .realtime import feed
from .views import visible_messages


logger = logging.getLogger(__name__)

ATTACHMENT_FIELDS = ("file_url", "file_name", "file_type", "file_size")


def _publish(action: str, message: Message) -> None:
    feed.publish(
        "messages",
        action,
        {"id": message.id, "sender_id": message.sender_id, "receiver_id": message.receiver_id},
        recipients=[message.sender_id, message.receiver_id],
    )


def _get_message_or_404(db: Session, message_id: str) -> Message:
    message = db.get(Message, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


def _require_participant(message: Message, user: User) -> None:
    if user.id not in (message.sender_id, message.receiver_id):
        raise HTTPException(status_code=403, detail="Not a participant in this conversation")


def _not_deleted_for(user_id: str):
    return ~Message.deletions.any(MessageDeletion.user_id == user_id)


def store_attachment(*, filename: str, content_type: str | None, data: bytes) -> dict:
    if len(data) > settings.max_attachment_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"Attachment exceeds the {settings.max_attachment_mb} MB limit",
        )
    os.makedirs(settings.upload_dir, exist_ok=True)
    file_ext = os.path.splitext(filename or "")[1]
    unique_filename = f"{uuid.uuid4().hex}{file_ext}"
    with open(os.path.join(settings.upload_dir, unique_filename), "wb") as buffer:
        buffer.write(data)
    logger.info(f"Stored attachment {filename} as {unique_filename}")
    return {
        "url": f"/static/uploads/{unique_filename}",
        "name": filename or unique_filename,
        "type": content_type or "application/octet-stream",
        "size": len(data),
    }


def send_message(
    db: Session,
    *,
    sender: User,
    receiver_id: str,
    content: str = "",
    attachment: dict | None = None,
) -> Message:
    if not db.get(User, receiver_id):
        raise HTTPException(status_code=404, detail="Receiver not found")
    attachment = {key: value for key, value in (attachment or {}).items() if value is not None}
    content = (content or "").strip()
    if not content and not attachment.get("file_url"):
        raise HTTPException(status_code=400, detail="Message must have content or an attachment")

    message = Message(
        sender_id=sender.id,
        sender_name=sender.name,
        receiver_id=receiver_id,
        content=content,
        **{key: attachment[key] for key in ATTACHMENT_FIELDS if key in attachment},
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    _publish("created", message)
    return message


def get_conversation(db: Session, *, viewer: User, partner_id: str) -> list[Message]:
    messages = (
        db.query(Message)
        .filter(
            ((Message.sender_id == viewer.id) & (Message.receiver_id == partner_id))
            | ((Message.sender_id == partner_id) & (Message.receiver_id == viewer.id))
        )
        .all()
    )
    return visible_messages(messages, viewer.id)


def edit_message(db: Session, *, editor: User, message_id: str, content: str) -> Message:
    message = _get_message_or_404(db, message_id)
    if message.sender_id != editor.id:
        raise HTTPException(status_code=403, detail="Only the sender can edit a message")
    content = (content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content cannot be empty")
    message.content = content
    db.commit()
    db.refresh(message)
    _publish("updated", message)
    return message


def mark_read(db: Session, *, reader: User, message_id: str) -> Message:
    message = _get_message_or_404(db, message_id)
    if message.receiver_id != reader.id:
        raise HTTPException(status_code=403, detail="Only the receiver can mark a message as read")
    if not message.is_read:
        message.is_read = True
        db.commit()
        db.refresh(message)
        _publish("read", message)
    return message


def mark_conversation_read(db: Session, *, reader: User, partner_id: str) -> int:
    unread = (
        db.query(Message)
        .filter(
            Message.sender_id == partner_id,
            Message.receiver_id == reader.id,
            Message.is_read.is_(False),
        )
        .all()
    )
    for message in unread:
        message.is_read = True
    db.commit()
    if unread:
        feed.publish(
            "messages",
            "read",
            {"reader_id": reader.id, "partner_id": partner_id, "count": len(unread)},
            recipients=[reader.id, partner_id],
        )
    return len(unread)


def delete_messages(db: Session, *, actor: User, message_ids: list[str], for_everyone: bool = False) -> int:
    messages = [_get_message_or_404(db, message_id) for message_id in dict.fromkeys(message_ids)]
    for message in messages:
        _require_participant(message, actor)

    # Snapshot before commit; deleted rows are detached afterwards.
    participants = [(message.id, message.sender_id, message.receiver_id) for message in messages]
    for message in messages:
        if for_everyone:
            db.delete(message)
        elif actor.id not in message.deleted_for:
            message.deletions.append(MessageDeletion(message_id=message.id, user_id=actor.id))
    db.commit()

    for message_id, sender_id, receiver_id in participants:
        if for_everyone:
            feed.publish("messages", "deleted", {"id": message_id}, recipients=[sender_id, receiver_id])
        else:
            feed.publish("messages", "hidden", {"id": message_id}, recipients=[actor.id])
    logger.info(f"User {actor.id} deleted {len(messages)} message(s) (for_everyone={for_everyone})")
    return len(messages)


def forward_messages(db: Session, *, actor: User, message_ids: list[str], recipient_id: str) -> list[Message]:
    if not db.get(User, recipient_id):
        raise HTTPException(status_code=404, detail="Recipient not found")
    sources = [_get_message_or_404(db, message_id) for message_id in message_ids]
    for source in sources:
        _require_participant(source, actor)

    forwarded = []
    for source in sources:
        copy = Message(
            sender_id=actor.id,
            sender_name=actor.name,
            receiver_id=recipient_id,
            content=source.content,
            **{key: getattr(source, key) for key in ATTACHMENT_FIELDS},
        )
        db.add(copy)
        forwarded.append(copy)
    db.commit()
    for copy in forwarded:
        db.refresh(copy)
        _publish("created", copy)
    return forwarded


def unread_messages(db: Session, *, user: User) -> list[Message]:
    return (
        db.query(Message)
        .filter(Message.receiver_id == user.id, Message.is_read.is_(False))
        .filter(_not_deleted_for(user.id))
        .order_by(Message.timestamp)
        .all()
    )


def unread_count(db: Session, *, user: User) -> int:
    return (
        db.query(Message)
        .filter(Message.receiver_id == user.id, Message.is_read.is_(False))
        .filter(_not_deleted_for(user.id))
        .count()
    )
