import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .middleware import CallerContext
from .models import (
    Announcement,
    Assignment,
    Attendance,
    Event,
    Exam,
    Grade,
    Lesson,
    PERSON_MODELS,
    Parent,
    Result,
    SchoolClass,
    Student,
    Subject,
    Teacher,
    UserRole,
)
from .schemas import (
    AnnouncementCreate,
    AnnouncementOut,
    AnnouncementUpdate,
    AssignmentCreate,
    AssignmentOut,
    AssignmentUpdate,
    AttendanceCreate,
    AttendanceOut,
    AttendanceUpdate,
    ClassCreate,
    ClassOut,
    ClassRef,
    ClassUpdate,
    EventCreate,
    EventOut,
    EventUpdate,
    ExamCreate,
    ExamOut,
    ExamUpdate,
    LessonCreate,
    LessonOut,
    LessonRef,
    LessonUpdate,
    ParentCreate,
    ParentOut,
    ParentUpdate,
    PersonRef,
    ResultCreate,
    ResultOut,
    ResultUpdate,
    ScheduleEntryOut,
    StudentCreate,
    StudentOut,
    StudentUpdate,
    SubjectCreate,
    SubjectOut,
    SubjectRef,
    SubjectUpdate,
    TeacherCreate,
    TeacherOut,
    TeacherUpdate,
)
from .scopes import build_list_query


logger = logging.getLogger(__name__)


# --- row projections ---


def _person_ref(person) -> PersonRef | None:
    if person is None:
        return None
    return PersonRef(id=person.id, name=person.name, surname=person.surname)


def _class_ref(school_class: SchoolClass | None) -> ClassRef | None:
    if school_class is None:
        return None
    return ClassRef(id=school_class.id, name=school_class.name)


def _lesson_ref(lesson: Lesson | None) -> LessonRef | None:
    if lesson is None:
        return None
    return LessonRef(
        id=lesson.id,
        name=lesson.name,
        subject=SubjectRef(id=lesson.subject.id, name=lesson.subject.name) if lesson.subject else None,
        class_=_class_ref(lesson.class_),
        teacher=_person_ref(lesson.teacher),
    )


def teacher_out(teacher: Teacher) -> TeacherOut:
    return TeacherOut(
        id=teacher.id,
        username=teacher.username,
        name=teacher.name,
        surname=teacher.surname,
        email=teacher.email,
        phone=teacher.phone,
        address=teacher.address,
        img=teacher.img,
        blood_type=teacher.blood_type,
        sex=teacher.sex,
        birthday=teacher.birthday,
        subjects=[SubjectRef(id=s.id, name=s.name) for s in teacher.subjects],
        classes=[_class_ref(c) for c in teacher.supervised_classes],
    )


def student_out(student: Student) -> StudentOut:
    return StudentOut(
        id=student.id,
        username=student.username,
        name=student.name,
        surname=student.surname,
        email=student.email,
        phone=student.phone,
        address=student.address,
        img=student.img,
        blood_type=student.blood_type,
        sex=student.sex,
        birthday=student.birthday,
        parent_id=student.parent_id,
        grade_id=student.grade_id,
        class_id=student.class_id,
        class_=_class_ref(student.class_),
        grade_level=student.grade.level if student.grade else None,
    )


def parent_out(parent: Parent) -> ParentOut:
    return ParentOut(
        id=parent.id,
        username=parent.username,
        name=parent.name,
        surname=parent.surname,
        email=parent.email,
        phone=parent.phone,
        address=parent.address,
        students=[_person_ref(s) for s in parent.students],
    )


def class_out(school_class: SchoolClass) -> ClassOut:
    return ClassOut(
        id=school_class.id,
        name=school_class.name,
        capacity=school_class.capacity,
        grade_id=school_class.grade_id,
        grade_level=school_class.grade.level if school_class.grade else None,
        supervisor_id=school_class.supervisor_id,
        supervisor=_person_ref(school_class.supervisor),
    )


def subject_out(subject: Subject) -> SubjectOut:
    return SubjectOut(id=subject.id, name=subject.name, teachers=[_person_ref(t) for t in subject.teachers])


def lesson_out(lesson: Lesson) -> LessonOut:
    return LessonOut(
        id=lesson.id,
        name=lesson.name,
        day=lesson.day,
        start_time=lesson.start_time,
        end_time=lesson.end_time,
        subject_id=lesson.subject_id,
        class_id=lesson.class_id,
        teacher_id=lesson.teacher_id,
        subject=SubjectRef(id=lesson.subject.id, name=lesson.subject.name) if lesson.subject else None,
        class_=_class_ref(lesson.class_),
        teacher=_person_ref(lesson.teacher),
    )


def exam_out(exam: Exam) -> ExamOut:
    return ExamOut(
        id=exam.id,
        title=exam.title,
        start_time=exam.start_time,
        end_time=exam.end_time,
        lesson_id=exam.lesson_id,
        lesson=_lesson_ref(exam.lesson),
    )


def assignment_out(assignment: Assignment) -> AssignmentOut:
    return AssignmentOut(
        id=assignment.id,
        title=assignment.title,
        description=assignment.description,
        start_date=assignment.start_date,
        due_date=assignment.due_date,
        lesson_id=assignment.lesson_id,
        lesson=_lesson_ref(assignment.lesson),
    )


def result_out(result: Result) -> ResultOut:
    assessment = result.exam or result.assignment
    lesson = assessment.lesson if assessment else None
    return ResultOut(
        id=result.id,
        score=result.score,
        student_id=result.student_id,
        exam_id=result.exam_id,
        assignment_id=result.assignment_id,
        title=assessment.title if assessment else None,
        student=_person_ref(result.student),
        class_=_class_ref(lesson.class_) if lesson else None,
        teacher=_person_ref(lesson.teacher) if lesson else None,
    )


def attendance_out(attendance: Attendance) -> AttendanceOut:
    return AttendanceOut(
        id=attendance.id,
        date=attendance.date,
        present=attendance.present,
        student_id=attendance.student_id,
        lesson_id=attendance.lesson_id,
        student=_person_ref(attendance.student),
        lesson_name=attendance.lesson.name if attendance.lesson else None,
    )


def event_out(event: Event) -> EventOut:
    return EventOut(
        id=event.id,
        title=event.title,
        description=event.description,
        start_time=event.start_time,
        end_time=event.end_time,
        class_id=event.class_id,
        class_=_class_ref(event.class_),
    )


def announcement_out(announcement: Announcement) -> AnnouncementOut:
    return AnnouncementOut(
        id=announcement.id,
        title=announcement.title,
        description=announcement.description,
        date=announcement.date,
        class_id=announcement.class_id,
        class_=_class_ref(announcement.class_),
    )


# --- shared helpers ---


def _require(db: Session, model: type, key: Any, label: str):
    row = db.get(model, key) if key is not None else None
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return row


def _check_window(start: datetime | None, end: datetime | None, label: str = "End time") -> None:
    if start is not None and end is not None and end <= start:
        raise HTTPException(status_code=400, detail=f"{label} must be after the start")


def _commit(db: Session, row) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Rejected write for %s: %s", type(row).__name__, exc.orig)
        raise HTTPException(status_code=400, detail="Record conflicts with existing data") from exc
    db.refresh(row)


def _apply(row, payload: BaseModel, exclude: set[str] | None = None) -> None:
    for key, value in payload.model_dump(exclude_unset=True, exclude={"id"} | (exclude or set())).items():
        setattr(row, key, value)


def _ensure_teaches(context: CallerContext, lesson: Lesson | None) -> None:
    """Teachers may only write rows hanging off their own lessons."""
    if context.role == UserRole.ADMIN:
        return
    if context.role != UserRole.TEACHER or lesson is None or lesson.teacher_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role privileges")


def _new_identity_id(raw: str | None) -> str:
    return raw.strip() if raw and raw.strip() else uuid.uuid4().hex


def find_person(db: Session, identity_id: str) -> tuple[UserRole, Any] | None:
    """Look an identity up across the four person tables."""
    for role, model in PERSON_MODELS.items():
        row = db.get(model, identity_id)
        if row is not None:
            return role, row
    return None


def _check_identity_free(db: Session, identity_id: str) -> None:
    # Identity ids are unique across the four person tables.
    if find_person(db, identity_id) is not None:
        raise HTTPException(status_code=400, detail="Identity id already in use")


# --- people ---


def create_teacher(db: Session, context: CallerContext, payload: TeacherCreate) -> Teacher:
    identity_id = _new_identity_id(payload.id)
    _check_identity_free(db, identity_id)
    teacher = Teacher(id=identity_id, **payload.model_dump(exclude={"id", "subjects"}))
    teacher.subjects = [_require(db, Subject, sid, "Subject") for sid in payload.subjects]
    db.add(teacher)
    _commit(db, teacher)
    logger.info("Teacher %s created by %s", teacher.id, context.user_id)
    return teacher


def update_teacher(db: Session, context: CallerContext, payload: TeacherUpdate) -> Teacher:
    teacher = _require(db, Teacher, payload.id, "Teacher")
    _apply(teacher, payload, exclude={"subjects"})
    if payload.subjects is not None:
        teacher.subjects = [_require(db, Subject, sid, "Subject") for sid in payload.subjects]
    _commit(db, teacher)
    return teacher


def create_student(db: Session, context: CallerContext, payload: StudentCreate) -> Student:
    identity_id = _new_identity_id(payload.id)
    _check_identity_free(db, identity_id)
    _check_student_links(db, payload.parent_id, payload.grade_id, payload.class_id)
    student = Student(id=identity_id, **payload.model_dump(exclude={"id"}))
    db.add(student)
    _commit(db, student)
    logger.info("Student %s created by %s", student.id, context.user_id)
    return student


def update_student(db: Session, context: CallerContext, payload: StudentUpdate) -> Student:
    student = _require(db, Student, payload.id, "Student")
    _check_student_links(db, payload.parent_id, payload.grade_id, payload.class_id, current=student)
    _apply(student, payload)
    _commit(db, student)
    return student


def _check_student_links(db, parent_id, grade_id, class_id, current: Student | None = None) -> None:
    if parent_id is not None:
        _require(db, Parent, parent_id, "Parent")
    if grade_id is not None:
        _require(db, Grade, grade_id, "Grade")
    if class_id is not None and (current is None or current.class_id != class_id):
        _ensure_class_has_room(db, class_id)


def _ensure_class_has_room(db: Session, class_id: int) -> SchoolClass:
    school_class = _require(db, SchoolClass, class_id, "Class")
    if len(school_class.students) >= school_class.capacity:
        raise HTTPException(status_code=400, detail="Class is full")
    return school_class


def create_parent(db: Session, context: CallerContext, payload: ParentCreate) -> Parent:
    identity_id = _new_identity_id(payload.id)
    _check_identity_free(db, identity_id)
    parent = Parent(id=identity_id, **payload.model_dump(exclude={"id"}))
    db.add(parent)
    _commit(db, parent)
    return parent


def update_parent(db: Session, context: CallerContext, payload: ParentUpdate) -> Parent:
    parent = _require(db, Parent, payload.id, "Parent")
    _apply(parent, payload)
    _commit(db, parent)
    return parent


# --- classes, subjects, lessons ---


def create_class(db: Session, context: CallerContext, payload: ClassCreate) -> SchoolClass:
    if payload.grade_id is not None:
        _require(db, Grade, payload.grade_id, "Grade")
    if payload.supervisor_id is not None:
        _require(db, Teacher, payload.supervisor_id, "Supervisor")
    school_class = SchoolClass(**payload.model_dump())
    db.add(school_class)
    _commit(db, school_class)
    return school_class


def update_class(db: Session, context: CallerContext, payload: ClassUpdate) -> SchoolClass:
    school_class = _require(db, SchoolClass, payload.id, "Class")
    if payload.grade_id is not None:
        _require(db, Grade, payload.grade_id, "Grade")
    if payload.supervisor_id is not None:
        _require(db, Teacher, payload.supervisor_id, "Supervisor")
    _apply(school_class, payload)
    _commit(db, school_class)
    return school_class


def create_subject(db: Session, context: CallerContext, payload: SubjectCreate) -> Subject:
    subject = Subject(name=payload.name.strip())
    subject.teachers = [_require(db, Teacher, tid, "Teacher") for tid in payload.teachers]
    db.add(subject)
    _commit(db, subject)
    return subject


def update_subject(db: Session, context: CallerContext, payload: SubjectUpdate) -> Subject:
    subject = _require(db, Subject, payload.id, "Subject")
    if payload.name is not None:
        subject.name = payload.name.strip()
    if payload.teachers is not None:
        subject.teachers = [_require(db, Teacher, tid, "Teacher") for tid in payload.teachers]
    _commit(db, subject)
    return subject


def create_lesson(db: Session, context: CallerContext, payload: LessonCreate) -> Lesson:
    _check_window(payload.start_time, payload.end_time)
    _require(db, Subject, payload.subject_id, "Subject")
    _require(db, SchoolClass, payload.class_id, "Class")
    _require(db, Teacher, payload.teacher_id, "Teacher")
    lesson = Lesson(**payload.model_dump())
    db.add(lesson)
    _commit(db, lesson)
    return lesson


def update_lesson(db: Session, context: CallerContext, payload: LessonUpdate) -> Lesson:
    lesson = _require(db, Lesson, payload.id, "Lesson")
    if payload.subject_id is not None:
        _require(db, Subject, payload.subject_id, "Subject")
    if payload.class_id is not None:
        _require(db, SchoolClass, payload.class_id, "Class")
    if payload.teacher_id is not None:
        _require(db, Teacher, payload.teacher_id, "Teacher")
    _apply(lesson, payload)
    _check_window(lesson.start_time, lesson.end_time)
    _commit(db, lesson)
    return lesson


# --- assessments ---


def create_exam(db: Session, context: CallerContext, payload: ExamCreate) -> Exam:
    _check_window(payload.start_time, payload.end_time)
    _ensure_teaches(context, _require(db, Lesson, payload.lesson_id, "Lesson"))
    exam = Exam(**payload.model_dump())
    db.add(exam)
    _commit(db, exam)
    return exam


def update_exam(db: Session, context: CallerContext, payload: ExamUpdate) -> Exam:
    exam = _require(db, Exam, payload.id, "Exam")
    _ensure_teaches(context, exam.lesson)
    if payload.lesson_id is not None:
        _ensure_teaches(context, _require(db, Lesson, payload.lesson_id, "Lesson"))
    _apply(exam, payload)
    _check_window(exam.start_time, exam.end_time)
    _commit(db, exam)
    return exam


def create_assignment(db: Session, context: CallerContext, payload: AssignmentCreate) -> Assignment:
    _ensure_teaches(context, _require(db, Lesson, payload.lesson_id, "Lesson"))
    data = payload.model_dump(exclude_none=True)
    _check_window(data.get("start_date"), payload.due_date, label="Due date")
    assignment = Assignment(**data)
    db.add(assignment)
    _commit(db, assignment)
    return assignment


def update_assignment(db: Session, context: CallerContext, payload: AssignmentUpdate) -> Assignment:
    assignment = _require(db, Assignment, payload.id, "Assignment")
    _ensure_teaches(context, assignment.lesson)
    if payload.lesson_id is not None:
        _ensure_teaches(context, _require(db, Lesson, payload.lesson_id, "Lesson"))
    _apply(assignment, payload)
    _check_window(assignment.start_date, assignment.due_date, label="Due date")
    _commit(db, assignment)
    return assignment


def _result_lesson(db: Session, exam_id: int | None, assignment_id: int | None) -> Lesson:
    if exam_id is not None:
        return _require(db, Exam, exam_id, "Exam").lesson
    return _require(db, Assignment, assignment_id, "Assignment").lesson


def create_result(db: Session, context: CallerContext, payload: ResultCreate) -> Result:
    _require(db, Student, payload.student_id, "Student")
    _ensure_teaches(context, _result_lesson(db, payload.exam_id, payload.assignment_id))
    result = Result(**payload.model_dump())
    db.add(result)
    _commit(db, result)
    return result


def update_result(db: Session, context: CallerContext, payload: ResultUpdate) -> Result:
    result = _require(db, Result, payload.id, "Result")
    _ensure_teaches(context, _result_lesson(db, result.exam_id, result.assignment_id))
    changes = payload.model_dump(exclude_unset=True, exclude={"id"})
    exam_id = changes.get("exam_id", result.exam_id)
    assignment_id = changes.get("assignment_id", result.assignment_id)
    if (exam_id is None) == (assignment_id is None):
        raise HTTPException(status_code=400, detail="A result belongs to exactly one exam or assignment")
    if "student_id" in changes:
        _require(db, Student, changes["student_id"], "Student")
    _ensure_teaches(context, _result_lesson(db, exam_id, assignment_id))
    for key, value in changes.items():
        setattr(result, key, value)
    _commit(db, result)
    return result


def create_attendance(db: Session, context: CallerContext, payload: AttendanceCreate) -> Attendance:
    _require(db, Student, payload.student_id, "Student")
    _ensure_teaches(context, _require(db, Lesson, payload.lesson_id, "Lesson"))
    attendance = Attendance(**payload.model_dump())
    db.add(attendance)
    _commit(db, attendance)
    return attendance


def update_attendance(db: Session, context: CallerContext, payload: AttendanceUpdate) -> Attendance:
    attendance = _require(db, Attendance, payload.id, "Attendance")
    _ensure_teaches(context, attendance.lesson)
    if payload.lesson_id is not None:
        _ensure_teaches(context, _require(db, Lesson, payload.lesson_id, "Lesson"))
    if payload.student_id is not None:
        _require(db, Student, payload.student_id, "Student")
    _apply(attendance, payload)
    _commit(db, attendance)
    return attendance


# --- calendar ---


def create_event(db: Session, context: CallerContext, payload: EventCreate) -> Event:
    _check_window(payload.start_time, payload.end_time)
    if payload.class_id is not None:
        _require(db, SchoolClass, payload.class_id, "Class")
    event = Event(**payload.model_dump())
    db.add(event)
    _commit(db, event)
    return event


def update_event(db: Session, context: CallerContext, payload: EventUpdate) -> Event:
    event = _require(db, Event, payload.id, "Event")
    if payload.class_id is not None:
        _require(db, SchoolClass, payload.class_id, "Class")
    _apply(event, payload)
    _check_window(event.start_time, event.end_time)
    _commit(db, event)
    return event


def create_announcement(db: Session, context: CallerContext, payload: AnnouncementCreate) -> Announcement:
    if payload.class_id is not None:
        _require(db, SchoolClass, payload.class_id, "Class")
    announcement = Announcement(**payload.model_dump(exclude_none=True))
    db.add(announcement)
    _commit(db, announcement)
    return announcement


def update_announcement(db: Session, context: CallerContext, payload: AnnouncementUpdate) -> Announcement:
    announcement = _require(db, Announcement, payload.id, "Announcement")
    if payload.class_id is not None:
        _require(db, SchoolClass, payload.class_id, "Class")
    _apply(announcement, payload)
    _commit(db, announcement)
    return announcement


# --- registry used by the routers ---


@dataclass(frozen=True)
class WriteSpec:
    model: type
    label: str
    key: str
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    create: Callable[..., Any]
    update: Callable[..., Any]
    serialize: Callable[[Any], BaseModel]
    int_ids: bool = True
    teacher_writable: bool = False


WRITE_SPECS: dict[str, WriteSpec] = {
    "teachers": WriteSpec(
        Teacher, "Teacher", "teacher", TeacherCreate, TeacherUpdate, create_teacher, update_teacher, teacher_out,
        int_ids=False,
    ),
    "students": WriteSpec(
        Student, "Student", "student", StudentCreate, StudentUpdate, create_student, update_student, student_out,
        int_ids=False,
    ),
    "parents": WriteSpec(
        Parent, "Parent", "parent", ParentCreate, ParentUpdate, create_parent, update_parent, parent_out,
        int_ids=False,
    ),
    "classes": WriteSpec(
        SchoolClass, "Class", "class", ClassCreate, ClassUpdate, create_class, update_class, class_out
    ),
    "subjects": WriteSpec(
        Subject, "Subject", "subject", SubjectCreate, SubjectUpdate, create_subject, update_subject, subject_out
    ),
    "lessons": WriteSpec(
        Lesson, "Lesson", "lesson", LessonCreate, LessonUpdate, create_lesson, update_lesson, lesson_out
    ),
    "exams": WriteSpec(
        Exam, "Exam", "exam", ExamCreate, ExamUpdate, create_exam, update_exam, exam_out, teacher_writable=True
    ),
    "assignments": WriteSpec(
        Assignment, "Assignment", "assignment", AssignmentCreate, AssignmentUpdate, create_assignment,
        update_assignment, assignment_out, teacher_writable=True,
    ),
    "results": WriteSpec(
        Result, "Result", "result", ResultCreate, ResultUpdate, create_result, update_result, result_out,
        teacher_writable=True,
    ),
    "attendance": WriteSpec(
        Attendance, "Attendance", "attendance", AttendanceCreate, AttendanceUpdate, create_attendance,
        update_attendance, attendance_out, teacher_writable=True,
    ),
    "events": WriteSpec(
        Event, "Event", "event", EventCreate, EventUpdate, create_event, update_event, event_out
    ),
    "announcements": WriteSpec(
        Announcement, "Announcement", "announcement", AnnouncementCreate, AnnouncementUpdate, create_announcement,
        update_announcement, announcement_out,
    ),
}

SERIALIZERS: dict[str, Callable[[Any], BaseModel]] = {name: spec.serialize for name, spec in WRITE_SPECS.items()}


def _owning_lesson(row) -> Lesson | None:
    if isinstance(row, (Exam, Assignment, Attendance)):
        return row.lesson
    if isinstance(row, Result):
        assessment = row.exam or row.assignment
        return assessment.lesson if assessment else None
    return None


def delete_entity(db: Session, context: CallerContext, entity: str, raw_id: Any) -> None:
    spec = WRITE_SPECS[entity]
    key: Any = str(raw_id).strip() if raw_id is not None else ""
    if not key:
        raise HTTPException(status_code=400, detail="Missing id")
    if spec.int_ids:
        try:
            key = int(key)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid id") from exc
    row = _require(db, spec.model, key, spec.label)
    if spec.teacher_writable:
        _ensure_teaches(context, _owning_lesson(row))
    db.delete(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"{spec.label} is still referenced") from exc
    logger.info("%s %s deleted by %s", spec.label, key, context.user_id)


# --- helpers for dropdowns and the current user ---


def list_class_options(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(select(SchoolClass.id, SchoolClass.name).order_by(SchoolClass.name)).all()
    return [{"id": row.id, "name": row.name} for row in rows]


def list_teacher_options(db: Session) -> list[dict[str, Any]]:
    rows = db.execute(select(Teacher.id, Teacher.name, Teacher.surname).order_by(Teacher.name, Teacher.surname)).all()
    return [{"id": row.id, "name": f"{row.name} {row.surname}"} for row in rows]


def student_class_id(db: Session, context: CallerContext) -> int | None:
    student = db.scalars(
        select(Student).where((Student.id == context.user_id) | (Student.username == context.user_id))
    ).first()
    return student.class_id if student else None


# --- dashboards ---


def current_week_monday(today: date | None = None) -> date:
    """Monday of the school week ``today`` belongs to; weekends look ahead to the next one."""
    today = today or date.today()
    weekday = today.weekday()
    if weekday >= 5:
        return today + timedelta(days=7 - weekday)
    return today - timedelta(days=weekday)


def lesson_schedule(
    db: Session,
    context: CallerContext,
    teacher_id: str | None = None,
    class_id: int | None = None,
    today: date | None = None,
) -> list[ScheduleEntryOut]:
    """Lessons of a teacher or a class, moved onto the current Monday to Friday week.

    The caller's lesson scope still applies, so asking for someone else's
    timetable only returns the lessons the caller may see anyway.
    """
    if not teacher_id and class_id is None:
        raise HTTPException(status_code=400, detail="teacherId or classId is required")
    filters: dict[str, Any] = {}
    if teacher_id:
        filters["teacherId"] = teacher_id
    if class_id is not None:
        filters["classId"] = class_id
    statement, where = build_list_query("lessons", context, filters)
    if where is not None:
        statement = statement.where(where)

    monday = current_week_monday(today)
    entries = []
    for lesson in db.scalars(statement):
        day = monday + timedelta(days=lesson.start_time.weekday())
        entries.append(
            ScheduleEntryOut(
                lesson_id=lesson.id,
                title=f"{lesson.subject.name} - {lesson.teacher.name} {lesson.teacher.surname}",
                start=datetime.combine(day, lesson.start_time.time()),
                end=datetime.combine(day, lesson.end_time.time()),
            )
        )
    return sorted(entries, key=lambda entry: (entry.start, entry.lesson_id))


def count_users(db: Session) -> dict[str, int]:
    return {
        role.value: db.scalar(select(func.count()).select_from(model)) for role, model in PERSON_MODELS.items()
    }
