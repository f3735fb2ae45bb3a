"""Form validation predicates shared by the services and their tests.

Every function here is pure: it inspects its arguments and either returns a
value or an error message. Services turn error messages into HTTP 400s.
"""
import re
from datetime import date, datetime
from typing import Iterable

from fastapi import HTTPException


EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
ASSESSMENT_KEY_PATTERN = re.compile(r"^(?P<name>.+) \((?P<max>\d+)\)$")
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")
MIN_PASSWORD_LENGTH = 6


def is_valid_email(value: str | None) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value.strip()) is not None


def normalize_email(value: str) -> str:
    normalized = (value or "").lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return normalized


def password_error(password: str) -> str | None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    return None


def validate_problem_report(description: str, reported_email: str | None = None, *, user_report: bool = False) -> str | None:
    """Return the first problem with a report form, or None when it can be submitted."""
    if user_report:
        if not (reported_email or "").strip() or not (description or "").strip():
            return "Please fill all fields"
        if not is_valid_email(reported_email):
            return "Please enter a valid email"
        return None
    if not (description or "").strip():
        return "Please describe the problem"
    return None


def parse_event_date(value: str) -> date | None:
    value = (value or "").strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_assessment_key(key: str) -> tuple[str, int] | None:
    """Split ``"Quiz 1 (20)"`` into ``("Quiz 1", 20)``."""
    match = ASSESSMENT_KEY_PATTERN.match(key or "")
    if not match:
        return None
    return match.group("name"), int(match.group("max"))


def format_assessment_key(name: str, max_points: int) -> str:
    return f"{name} ({max_points})"


def assessment_totals(entries: Iterable) -> tuple[int, int]:
    """Return ``(total_score, total_max_points)`` for assessment entries."""
    total_score = 0
    total_max = 0
    for entry in entries:
        total_score += entry.score
        total_max += entry.max_points
    return total_score, total_max


def validate_assessment_scores(entries: list) -> str | None:
    for entry in entries:
        if entry.score < 0:
            return f"Score for {entry.name} cannot be negative"
        if entry.score > entry.max_points:
            return f"Score for {entry.name} cannot exceed {entry.max_points}"
    total_score, total_max = assessment_totals(entries)
    if total_score > total_max:
        return f"Total score cannot exceed {total_max}"
    return None
