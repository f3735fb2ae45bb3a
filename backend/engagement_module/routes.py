from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from . import (
    activity_service,
    attendance_service,
    event_service,
    mark_service,
    meeting_service,
    message_service,
    notification_service,
    problem_service,
    todo_service,
    user_service,
)
from .database import get_db_session
from .middleware import get_current_user, require_roles
from .models import MarkKind, ProblemKind, User, UserRole
from .schemas import (
    ActionResponse,
    ActivityOut,
    AdminSignupRequest,
    AnnouncementCreateRequest,
    AnnouncementOut,
    AssessmentOut,
    AttachmentOut,
    AttendanceRecordOut,
    AttendanceSubmitRequest,
    AttendanceSummary,
    ContactOut,
    CountResponse,
    DashboardCounts,
    EventCreateRequest,
    EventOut,
    EventUpdateRequest,
    MarkOut,
    MarkSubmitRequest,
    MarkUpdateRequest,
    MeetingCreateRequest,
    MeetingOut,
    MeetingStatusUpdate,
    MessageCreateRequest,
    MessageDeleteRequest,
    MessageEditRequest,
    MessageForwardRequest,
    MessageOut,
    NotificationOut,
    ProblemReportOut,
    ReportStatusUpdate,
    SelectAlternativeRequest,
    SuggestAlternativesRequest,
    SystemReportRequest,
    TodoCreateRequest,
    TodoOut,
    TodoUpdateRequest,
    UserCreateRequest,
    UserOut,
    UserReportRequest,
    UserUpdateRequest,
)
from .views import filter_contacts, filter_meetings, forward_targets

router = APIRouter(prefix="/api/v1/engagement", tags=["Parent-Teacher Engagement"])

staff_only = require_roles(UserRole.TEACHER)
admin_only = require_roles(UserRole.ADMIN)


# --- Users ---

@router.post("/admin/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def admin_signup(payload: AdminSignupRequest, db: Session = Depends(get_db_session)):
    return user_service.register_admin(
        db,
        name=payload.name,
        email=payload.email,
        raw_password=payload.password,
        admin_code=payload.admin_code,
    )


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return user_service.create_user(
        db,
        role=payload.role,
        name=payload.name,
        email=payload.email,
        raw_password=payload.password,
        subject=payload.subject,
        grade=payload.grade,
        grades=payload.grades,
        child_emails=payload.child_emails,
    )


@router.get("/users", response_model=list[UserOut])
def get_users(
    role: UserRole | None = None,
    grade: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return user_service.list_users(db, role=role, grade=grade)


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return user_service.get_user(db, user_id=user_id)


@router.patch("/users/{user_id}", response_model=UserOut)
def edit_user(
    user_id: str,
    payload: UserUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return user_service.update_user(db, user_id=user_id, changes=payload.model_dump(exclude_unset=True))


@router.delete("/users/{user_id}", response_model=CountResponse)
def remove_user(user_id: str, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    return CountResponse(count=user_service.delete_user(db, user_id=user_id))


@router.get("/parents/{parent_id}/children", response_model=list[UserOut])
def parent_children(
    parent_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    if current_user.role != UserRole.ADMIN and current_user.id != parent_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot view another parent's children")
    return user_service.children_for_parent(db, parent_id=parent_id)


@router.get("/dashboard/counts", response_model=DashboardCounts)
def dashboard(db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    return DashboardCounts(**user_service.dashboard_counts(db))


@router.get("/chat/contacts", response_model=list[ContactOut])
def contacts(
    q: str = "",
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return filter_contacts(user_service.chat_contacts(db, user=current_user), q)


# --- Messages ---

@router.post("/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def post_message(
    payload: MessageCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return message_service.send_message(
        db,
        sender=current_user,
        receiver_id=payload.receiver_id,
        content=payload.content,
        attachment=payload.model_dump(include={"file_url", "file_name", "file_type", "file_size"}),
    )


@router.post("/messages/attachments", response_model=AttachmentOut, status_code=status.HTTP_201_CREATED)
async def upload_attachment(file: UploadFile = File(...), _: User = Depends(get_current_user)):
    data = await file.read()
    return message_service.store_attachment(filename=file.filename, content_type=file.content_type, data=data)


@router.get("/messages/conversations/{partner_id}", response_model=list[MessageOut])
def conversation(
    partner_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return message_service.get_conversation(db, viewer=current_user, partner_id=partner_id)


@router.post("/messages/conversations/{partner_id}/read", response_model=CountResponse)
def read_conversation(
    partner_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return CountResponse(count=message_service.mark_conversation_read(db, reader=current_user, partner_id=partner_id))


@router.get("/messages/unread", response_model=list[MessageOut])
def unread(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return message_service.unread_messages(db, user=current_user)


@router.get("/messages/unread/count", response_model=CountResponse)
def unread_total(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return CountResponse(count=message_service.unread_count(db, user=current_user))


@router.get("/messages/forward-targets", response_model=list[ContactOut])
def forward_contacts(
    partner_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return forward_targets(user_service.chat_contacts(db, user=current_user), partner_id)


@router.post("/messages/delete", response_model=CountResponse)
def delete_messages(
    payload: MessageDeleteRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    count = message_service.delete_messages(
        db, actor=current_user, message_ids=payload.message_ids, for_everyone=payload.for_everyone
    )
    return CountResponse(count=count)


@router.post("/messages/forward", response_model=list[MessageOut], status_code=status.HTTP_201_CREATED)
def forward(
    payload: MessageForwardRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return message_service.forward_messages(
        db, actor=current_user, message_ids=payload.message_ids, recipient_id=payload.recipient_id
    )


@router.patch("/messages/{message_id}", response_model=MessageOut)
def edit_message(
    message_id: str,
    payload: MessageEditRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return message_service.edit_message(db, editor=current_user, message_id=message_id, content=payload.content)


@router.post("/messages/{message_id}/read", response_model=MessageOut)
def read_message(
    message_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return message_service.mark_read(db, reader=current_user, message_id=message_id)


# --- Events & announcements ---

@router.post("/events", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(staff_only),
):
    return event_service.post_event(
        db,
        actor=current_user,
        title=payload.title,
        date=payload.date,
        time=payload.time,
        description=payload.description,
    )


@router.get("/events", response_model=list[EventOut])
def events(db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return event_service.list_events(db)


@router.get("/events/count", response_model=CountResponse)
def events_total(db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return CountResponse(count=event_service.event_count(db))


@router.get("/events/calendar/{year}/{month}", response_model=dict[int, list[EventOut]])
def events_calendar(
    year: int,
    month: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return event_service.events_for_month(db, year=year, month=month)


@router.get("/events/{event_id}", response_model=EventOut)
def event_detail(event_id: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return event_service.get_event(db, event_id=event_id)


@router.patch("/events/{event_id}", response_model=EventOut)
def edit_event(
    event_id: str,
    payload: EventUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(staff_only),
):
    return event_service.update_event(db, event_id=event_id, changes=payload.model_dump(exclude_unset=True))


@router.delete("/events/{event_id}", response_model=ActionResponse)
def remove_event(event_id: str, db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    event_service.delete_event(db, event_id=event_id)
    return ActionResponse(message="Event deleted")


@router.post("/announcements", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
def create_announcement(
    payload: AnnouncementCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(staff_only),
):
    return event_service.create_announcement(db, teacher=current_user, **payload.model_dump())


@router.get("/announcements", response_model=list[AnnouncementOut])
def announcements(db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return event_service.list_announcements(db)


# --- Attendance ---

@router.post("/attendance", response_model=AttendanceRecordOut, status_code=status.HTTP_201_CREATED)
def take_attendance(
    payload: AttendanceSubmitRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(staff_only),
):
    return attendance_service.submit_attendance(db, teacher=current_user, **payload.model_dump())


@router.get("/teachers/{teacher_id}/classes", response_model=list[str])
def classes_for_teacher(teacher_id: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return attendance_service.teacher_classes(db, teacher_id=teacher_id)


@router.get("/classes/{grade}/students", response_model=list[UserOut])
def class_students(grade: str, db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return attendance_service.students_in_class(db, grade=grade)


@router.get("/attendance/students/{student_id}", response_model=dict[int, bool])
def attendance_for_student(
    student_id: str,
    date: str,
    period: int | None = Query(default=None, ge=1, le=7),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return attendance_service.student_attendance(db, student_id=student_id, date=date, period=period)


@router.get("/attendance/students/{student_id}/summary", response_model=AttendanceSummary)
def attendance_overview(student_id: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return AttendanceSummary(**attendance_service.attendance_summary(db, student_id=student_id))


# --- Marks ---

@router.post("/marks", response_model=MarkOut, status_code=status.HTTP_201_CREATED)
def record_mark(
    payload: MarkSubmitRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(staff_only),
):
    return mark_service.submit_mark(
        db,
        teacher=current_user,
        kind=payload.kind,
        student_id=payload.student_id,
        semester=payload.semester,
        subject=payload.subject,
        value=payload.mark,
        assessments=payload.assessments,
    )


@router.get("/marks/{kind}/{student_id}/{semester}", response_model=dict[str, str])
def marks_for_semester(
    kind: MarkKind,
    student_id: str,
    semester: str,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return mark_service.student_marks(db, kind=kind, student_id=student_id, semester=semester)


@router.get("/marks/{kind}/{student_id}/{semester}/{subject}", response_model=MarkOut)
def mark_detail(
    kind: MarkKind,
    student_id: str,
    semester: str,
    subject: str,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return mark_service.get_mark(db, kind=kind, student_id=student_id, semester=semester, subject=subject)


@router.get("/marks/{kind}/{student_id}/{semester}/{subject}/assessments", response_model=list[AssessmentOut])
def mark_assessments(
    kind: MarkKind,
    student_id: str,
    semester: str,
    subject: str,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return mark_service.assessment_details(db, kind=kind, student_id=student_id, semester=semester, subject=subject)


@router.put("/marks/{kind}/{student_id}/{semester}/{subject}", response_model=MarkOut)
def edit_mark(
    kind: MarkKind,
    student_id: str,
    semester: str,
    subject: str,
    payload: MarkUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(staff_only),
):
    return mark_service.update_mark(
        db,
        teacher=current_user,
        kind=kind,
        student_id=student_id,
        semester=semester,
        subject=subject,
        value=payload.mark,
        assessments=payload.assessments,
    )


@router.delete("/marks/{kind}/{student_id}/{semester}/{subject}", response_model=ActionResponse)
def remove_mark(
    kind: MarkKind,
    student_id: str,
    semester: str,
    subject: str,
    db: Session = Depends(get_db_session),
    _: User = Depends(staff_only),
):
    mark_service.delete_mark(db, kind=kind, student_id=student_id, semester=semester, subject=subject)
    return ActionResponse(message="Mark deleted")


# --- Meetings ---

@router.get("/meetings/participants", response_model=list[UserOut])
def meeting_participants(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return user_service.potential_meeting_participants(db, role=current_user.role)


@router.post("/meetings", response_model=MeetingOut, status_code=status.HTTP_201_CREATED)
def request_meeting(
    payload: MeetingCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return meeting_service.create_meeting(db, requester=current_user, **payload.model_dump())


@router.get("/meetings", response_model=list[MeetingOut])
def meetings(
    box: str = Query(default="all", pattern="^(all|sent|received)$"),
    tab: int = 0,
    q: str = "",
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    loaders = {
        "all": meeting_service.all_meetings,
        "sent": meeting_service.sent_meetings,
        "received": meeting_service.received_meetings,
    }
    return filter_meetings(loaders[box](db, user=current_user), tab, q, current_user.id)


@router.get("/meetings/{meeting_id}", response_model=MeetingOut)
def meeting_detail(meeting_id: str, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return meeting_service.get_meeting(db, meeting_id=meeting_id)


@router.patch("/meetings/{meeting_id}/status", response_model=MeetingOut)
def change_meeting_status(
    meeting_id: str,
    payload: MeetingStatusUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return meeting_service.update_meeting_status(
        db,
        actor=current_user,
        meeting_id=meeting_id,
        status=payload.status,
        response_message=payload.response_message,
    )


@router.post("/meetings/{meeting_id}/alternatives", response_model=MeetingOut)
def propose_alternatives(
    meeting_id: str,
    payload: SuggestAlternativesRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return meeting_service.suggest_alternatives(
        db,
        actor=current_user,
        meeting_id=meeting_id,
        alternatives=[alternative.model_dump() for alternative in payload.alternatives],
        response_message=payload.response_message,
    )


@router.post("/meetings/{meeting_id}/alternatives/select", response_model=MeetingOut)
def choose_alternative(
    meeting_id: str,
    payload: SelectAlternativeRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return meeting_service.select_alternative(db, actor=current_user, meeting_id=meeting_id, index=payload.index)


# --- To-dos ---

@router.post("/todos", response_model=TodoOut, status_code=status.HTTP_201_CREATED)
def create_todo(
    payload: TodoCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return todo_service.add_todo(db, user=current_user, **payload.model_dump())


@router.get("/todos", response_model=list[TodoOut])
def todos(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return todo_service.list_todos(db, user=current_user)


@router.patch("/todos/{todo_id}", response_model=TodoOut)
def edit_todo(
    todo_id: str,
    payload: TodoUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return todo_service.update_todo(
        db, user=current_user, todo_id=todo_id, changes=payload.model_dump(exclude_unset=True)
    )


@router.delete("/todos/{todo_id}", response_model=ActionResponse)
def remove_todo(todo_id: str, db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    todo_service.delete_todo(db, user=current_user, todo_id=todo_id)
    return ActionResponse(message="To-do deleted")


# --- Problem reports ---

@router.post("/problems/system", response_model=ProblemReportOut, status_code=status.HTTP_201_CREATED)
def report_system_problem(
    payload: SystemReportRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return problem_service.submit_system_report(db, reporter=current_user, description=payload.description)


@router.post("/problems/user", response_model=ProblemReportOut, status_code=status.HTTP_201_CREATED)
def report_user_problem(
    payload: UserReportRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return problem_service.submit_user_report(
        db,
        reporter=current_user,
        reported_email=payload.reported_email,
        reported_role=payload.reported_role,
        description=payload.description,
    )


@router.get("/problems", response_model=list[ProblemReportOut])
def problems(
    role: UserRole | None = None,
    kind: ProblemKind | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return problem_service.list_reports(db, role=role.value if role else None, kind=kind)


@router.get("/problems/active/count", response_model=CountResponse)
def active_problems(db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    return CountResponse(count=problem_service.active_report_count(db))


@router.get("/problems/{report_id}", response_model=ProblemReportOut)
def problem_detail(report_id: str, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    return problem_service.get_report(db, report_id=report_id)


@router.patch("/problems/{report_id}/status", response_model=ProblemReportOut)
def change_problem_status(
    report_id: str,
    payload: ReportStatusUpdate,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return problem_service.update_report_status(db, report_id=report_id, status=payload.status)


# --- Notifications & activity ---

@router.get("/notifications", response_model=list[NotificationOut])
def notifications(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return notification_service.list_notifications(db, user=current_user)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def read_notification(
    notification_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return notification_service.mark_notification_read(db, user=current_user, notification_id=notification_id)


@router.get("/activities/recent", response_model=list[ActivityOut])
def recent_activity(
    limit: int = Query(default=5, ge=1, le=50),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.PARENT)),
):
    return activity_service.recent_activities(db, parent=current_user, limit=limit)
