"""Derived views computed from fetched records.

These mirror what a client screen shows after a fetch: filtered tabs, search
results, sort orders and the chat selection set.
"""
from datetime import date, datetime
from typing import Iterable, Sequence

from .models import MeetingStatus
from .validators import parse_event_date


MEETING_TABS = ("All", "Pending", "Accepted", "Completed", "Sent", "Received")

_TAB_STATUS = {
    1: MeetingStatus.PENDING,
    2: MeetingStatus.ACCEPTED,
    3: MeetingStatus.COMPLETED,
}


def filter_meetings(meetings: Sequence, tab_index: int, query: str = "", user_id: str | None = None) -> list:
    if tab_index in _TAB_STATUS:
        selected = [m for m in meetings if m.status == _TAB_STATUS[tab_index]]
    elif tab_index == 4:
        selected = [m for m in meetings if m.requester_id == user_id]
    elif tab_index == 5:
        selected = [m for m in meetings if m.recipient_id == user_id]
    else:
        selected = list(meetings)

    if not query:
        return selected
    needle = query.lower()
    return [
        m
        for m in selected
        if needle in (m.title or "").lower()
        or needle in (m.description or "").lower()
        or needle in (m.location or "").lower()
    ]


def _event_sort_key(event) -> date:
    value = event.date
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_event_date(value or "") or date.min


def sort_events_by_date_desc(events: Iterable) -> list:
    # Unparseable dates sink to the bottom.
    return sorted(events, key=_event_sort_key, reverse=True)


def visible_messages(messages: Iterable, viewer_id: str) -> list:
    kept = [m for m in messages if viewer_id not in m.deleted_for]
    return sorted(kept, key=lambda m: m.timestamp)


def toggle_selection(selected: frozenset, message_id: str) -> frozenset:
    if message_id in selected:
        return selected - {message_id}
    return selected | {message_id}


def clear_selection() -> frozenset:
    return frozenset()


def can_edit_selection(selected: frozenset, messages_by_id: dict, viewer_id: str) -> bool:
    if len(selected) != 1:
        return False
    (message_id,) = selected
    message = messages_by_id.get(message_id)
    return message is not None and message.sender_id == viewer_id


def forward_targets(users: Iterable, partner_id: str) -> list:
    return [user for user in users if user.id != partner_id]


def filter_contacts(contacts: Iterable, query: str = "") -> list:
    """Search contacts by name or email, most recent conversation first."""
    needle = (query or "").lower()
    matched = [
        c
        for c in contacts
        if not needle or needle in (c.name or "").lower() or needle in (c.email or "").lower()
    ]
    return sorted(matched, key=lambda c: c.last_message_at or datetime.min, reverse=True)
