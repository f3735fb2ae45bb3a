from datetime import date as calendar_date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .models import MarkKind, MeetingStatus, ProblemKind, ProblemStatus, TodoPriority, UserRole


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class AdminSignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str
    admin_code: str


class UserCreateRequest(BaseModel):
    role: UserRole
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str
    subject: str | None = None
    grade: str | None = None
    grades: list[str] = Field(default_factory=list)
    child_emails: list[str] = Field(default_factory=list)


class UserUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=5, max_length=255)
    subject: str | None = None
    grade: str | None = None
    grades: list[str] | None = None
    child_emails: list[str] | None = None


class UserOut(OrmModel):
    id: str
    name: str
    email: str
    role: UserRole
    subject: str | None = None
    grade: str | None = None
    grades: list[str] = Field(default_factory=list)
    child_emails: list[str] = Field(default_factory=list)
    created_at: datetime


class ContactOut(OrmModel):
    id: str
    name: str
    email: str
    role: UserRole
    last_message_at: datetime | None = None
    unread_count: int = 0


class DashboardCounts(BaseModel):
    teachers: int
    parents: int
    students: int
    events: int
    active_problems: int


class CountResponse(BaseModel):
    count: int


class ActionResponse(BaseModel):
    message: str


class MessageCreateRequest(BaseModel):
    receiver_id: str
    content: str = ""
    file_url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = Field(default=None, ge=0)


class MessageEditRequest(BaseModel):
    content: str = Field(min_length=1)


class MessageDeleteRequest(BaseModel):
    message_ids: list[str] = Field(min_length=1)
    for_everyone: bool = False


class MessageForwardRequest(BaseModel):
    message_ids: list[str] = Field(min_length=1)
    recipient_id: str


class MessageOut(OrmModel):
    id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    content: str
    timestamp: datetime
    is_read: bool
    deleted_for: dict[str, bool] = Field(default_factory=dict)
    has_attachment: bool = False
    file_url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None


class AttachmentOut(BaseModel):
    url: str
    name: str
    type: str
    size: int


class EventCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    date: str
    time: str = ""
    description: str = ""


class EventUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    date: str | None = None
    time: str | None = None
    description: str | None = None


class EventOut(OrmModel):
    id: str
    title: str
    date: calendar_date
    time: str
    description: str
    created_by: str | None = None
    created_at: datetime


class AnnouncementCreateRequest(BaseModel):
    date: str
    subject: str = Field(min_length=1, max_length=120)
    period: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=255)
    time: str = ""
    description: str = ""


class AnnouncementOut(OrmModel):
    id: str
    teacher_id: str
    teacher_name: str
    date: str
    subject: str
    period: int
    title: str
    time: str
    description: str
    created_at: datetime


class AttendanceSubmitRequest(BaseModel):
    date: str = Field(min_length=10, max_length=10)
    day: str = ""
    period: int = Field(ge=1, le=7)
    grade: str
    student_attendance: dict[str, bool]


class AttendanceRecordOut(OrmModel):
    id: str
    teacher_id: str
    date: str
    day: str
    period: int
    grade: str
    student_attendance: dict[str, bool]


class AttendanceSummary(BaseModel):
    student_id: str
    present: int
    total: int
    rate: float


class AssessmentOut(OrmModel):
    name: str
    max_points: int
    score: int


class MarkSubmitRequest(BaseModel):
    kind: MarkKind = MarkKind.GRADE
    student_id: str
    semester: str
    subject: str
    mark: str
    # Keys use the "Name (Max)" form, values are scores.
    assessments: dict[str, int] | None = None


class MarkUpdateRequest(BaseModel):
    mark: str
    assessments: dict[str, int] | None = None


class MarkOut(OrmModel):
    kind: MarkKind
    semester: str
    student_id: str
    subject: str
    teacher_id: str
    value: str
    assessments: list[AssessmentOut] = Field(default_factory=list)
    updated_at: datetime


class MeetingCreateRequest(BaseModel):
    recipient_id: str
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    proposed_date: str
    proposed_time: str
    location: str = "Online"
    related_student_id: str | None = None


class MeetingStatusUpdate(BaseModel):
    status: MeetingStatus
    response_message: str | None = None


class AlternativeIn(BaseModel):
    date: str
    time: str


class SuggestAlternativesRequest(BaseModel):
    alternatives: list[AlternativeIn] = Field(min_length=1)
    response_message: str = ""


class SelectAlternativeRequest(BaseModel):
    index: int


class AlternativeOut(OrmModel):
    date: str
    time: str
    suggested_by: str
    suggested_at: datetime
    is_selected: bool


class MeetingOut(OrmModel):
    id: str
    requester_id: str
    requester_name: str
    requester_role: str
    recipient_id: str
    recipient_name: str
    recipient_role: str
    title: str
    description: str
    proposed_date: str
    proposed_time: str
    status: MeetingStatus
    location: str
    related_student_id: str | None = None
    response_message: str
    suggested_alternatives: list[AlternativeOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TodoCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    due_date: str = ""
    due_time: str = ""
    priority: str = "medium"
    category: str = ""
    meeting_id: str | None = None


class TodoUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    due_date: str | None = None
    due_time: str | None = None
    priority: str | None = None
    category: str | None = None
    is_completed: bool | None = None


class TodoOut(OrmModel):
    id: str
    user_id: str
    title: str
    description: str
    due_date: str
    due_time: str
    priority: TodoPriority
    category: str
    is_completed: bool
    meeting_id: str | None = None
    created_at: datetime
    updated_at: datetime


class SystemReportRequest(BaseModel):
    description: str = ""


class UserReportRequest(BaseModel):
    reported_email: str = ""
    reported_role: Literal["teacher", "parent"]
    description: str = ""


class ReportStatusUpdate(BaseModel):
    status: ProblemStatus


class ProblemReportOut(OrmModel):
    id: str
    user_id: str
    user_name: str
    user_role: str
    kind: ProblemKind
    reported_role: str | None = None
    reported_user_email: str | None = None
    description: str
    timestamp: datetime
    status: ProblemStatus
    updated_at: datetime | None = None


class NotificationOut(OrmModel):
    id: str
    user_id: str
    title: str
    message: str
    timestamp: datetime
    read: bool


class ActivityOut(BaseModel):
    kind: Literal["grade", "attendance", "message"]
    title: str
    description: str
    student_id: str | None = None
    timestamp: datetime
