"""Role scoped query predicates.

Every listing goes through :func:`build_list_query`, which combines three
independent parts with ``AND``:

* the caller's role restriction from a :class:`RoleScope` subclass,
* the free text ``search`` term over the entity's name or title fields,
* foreign key filters taken from the query string.

A restriction of ``None`` means "unrestricted" and is only ever produced by
:class:`AdminScope`. Chains that need something the caller does not have (a
student without a class) collapse to ``false()`` so they match nothing.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select, and_, false, or_, select
from sqlalchemy.orm import selectinload

from .middleware import CallerContext
from .models import (
    Announcement,
    Assignment,
    Attendance,
    Event,
    Exam,
    Lesson,
    Parent,
    Result,
    SchoolClass,
    Student,
    Subject,
    Teacher,
    UserRole,
)


class UnknownRoleError(Exception):
    pass


class UnknownEntityError(Exception):
    pass


class RoleScope:
    def __init__(self, context: CallerContext):
        self.context = context
        self.me = context.user_id

    def in_classes(self, column):
        """Restrict ``column`` (a class id) to the classes this caller belongs to."""
        raise NotImplementedError

    def lessons(self):
        return self.in_classes(Lesson.class_id)

    def exams(self):
        return _has(Exam.lesson, self.lessons())

    def assignments(self):
        return _has(Assignment.lesson, self.lessons())

    def results(self):
        raise NotImplementedError

    def attendance(self):
        raise NotImplementedError

    def students(self):
        raise NotImplementedError

    def teachers(self):
        return Teacher.lessons.any(self.in_classes(Lesson.class_id))

    def parents(self):
        raise NotImplementedError

    def classes(self):
        return self.in_classes(SchoolClass.id)

    def subjects(self):
        return None

    def events(self):
        return or_(Event.class_id.is_(None), self.in_classes(Event.class_id))

    def announcements(self):
        return or_(Announcement.class_id.is_(None), self.in_classes(Announcement.class_id))

    def clause_for(self, entity: str):
        try:
            method = getattr(self, ENTITY_SPECS[entity].scope_method)
        except KeyError as exc:
            raise UnknownEntityError(entity) from exc
        return method()


class AdminScope(RoleScope):
    def in_classes(self, column):
        return None

    def lessons(self):
        return None

    def exams(self):
        return None

    def assignments(self):
        return None

    def results(self):
        return None

    def attendance(self):
        return None

    def students(self):
        return None

    def teachers(self):
        return None

    def parents(self):
        return None

    def classes(self):
        return None

    def events(self):
        return None

    def announcements(self):
        return None


class TeacherScope(RoleScope):
    def taught_class_ids(self):
        return select(Lesson.class_id).where(Lesson.teacher_id == self.me).correlate(None)

    def in_classes(self, column):
        return column.in_(self.taught_class_ids())

    def lessons(self):
        return Lesson.teacher_id == self.me

    def results(self):
        return or_(
            Result.exam.has(Exam.lesson.has(self.lessons())),
            Result.assignment.has(Assignment.lesson.has(self.lessons())),
        )

    def attendance(self):
        return Attendance.lesson.has(self.lessons())

    def students(self):
        return self.in_classes(Student.class_id)

    def teachers(self):
        return or_(Teacher.id == self.me, super().teachers())

    def parents(self):
        return Parent.students.any(self.in_classes(Student.class_id))

    def classes(self):
        return or_(self.in_classes(SchoolClass.id), SchoolClass.supervisor_id == self.me)


class StudentScope(RoleScope):
    def in_classes(self, column):
        if self.context.class_id is None:
            return false()
        return column == self.context.class_id

    def results(self):
        return Result.student_id == self.me

    def attendance(self):
        return Attendance.student_id == self.me

    def students(self):
        if self.context.class_id is None:
            return Student.id == self.me
        return or_(Student.id == self.me, Student.class_id == self.context.class_id)

    def parents(self):
        return Parent.students.any(Student.id == self.me)


class ParentScope(RoleScope):
    def child_class_ids(self):
        return (
            select(Student.class_id)
            .where(Student.parent_id == self.me, Student.class_id.is_not(None))
            .correlate(None)
        )

    def in_classes(self, column):
        return column.in_(self.child_class_ids())

    def results(self):
        return Result.student.has(Student.parent_id == self.me)

    def attendance(self):
        return Attendance.student.has(Student.parent_id == self.me)

    def students(self):
        return Student.parent_id == self.me

    def parents(self):
        return Parent.id == self.me


SCOPES: dict[UserRole, type[RoleScope]] = {
    UserRole.ADMIN: AdminScope,
    UserRole.TEACHER: TeacherScope,
    UserRole.STUDENT: StudentScope,
    UserRole.PARENT: ParentScope,
}


def scope_for(context: CallerContext) -> RoleScope:
    try:
        role = UserRole(context.role)
    except ValueError as exc:
        raise UnknownRoleError(f"Unknown role: {context.role!r}") from exc
    return SCOPES[role](context)


def _has(relationship, criterion):
    return None if criterion is None else relationship.has(criterion)


def parse_int(raw: Any) -> int | None:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


LIKE_ESCAPE = "\\"


def like_pattern(term: str) -> str:
    """``%term%`` where ``%`` and ``_`` inside ``term`` match literally."""
    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    for wildcard in ("%", "_"):
        escaped = escaped.replace(wildcard, LIKE_ESCAPE + wildcard)
    return f"%{escaped}%"


def _like(column, pattern: str):
    return column.ilike(pattern, escape=LIKE_ESCAPE)


@dataclass(frozen=True)
class EntitySpec:
    model: type
    scope_method: str
    search: Callable[[str], Any]
    int_filters: Mapping[str, Callable[[int], Any]] = field(default_factory=dict)
    str_filters: Mapping[str, Callable[[str], Any]] = field(default_factory=dict)
    load: tuple = ()
    order_by: tuple = ()


ENTITY_SPECS: dict[str, EntitySpec] = {
    "students": EntitySpec(
        model=Student,
        scope_method="students",
        search=lambda p: or_(
            _like(Student.name, p), _like(Student.surname, p), _like(Student.username, p), _like(Student.email, p)
        ),
        int_filters={"classId": lambda v: Student.class_id == v},
        str_filters={
            "teacherId": lambda v: Student.class_.has(SchoolClass.lessons.any(Lesson.teacher_id == v)),
            "parentId": lambda v: Student.parent_id == v,
        },
        load=(selectinload(Student.class_), selectinload(Student.grade)),
        order_by=(Student.name, Student.id),
    ),
    "teachers": EntitySpec(
        model=Teacher,
        scope_method="teachers",
        search=lambda p: or_(
            _like(Teacher.name, p), _like(Teacher.surname, p), _like(Teacher.username, p), _like(Teacher.email, p)
        ),
        int_filters={
            "classId": lambda v: Teacher.lessons.any(Lesson.class_id == v),
            "subjectId": lambda v: Teacher.subjects.any(Subject.id == v),
        },
        load=(selectinload(Teacher.subjects), selectinload(Teacher.supervised_classes)),
        order_by=(Teacher.name, Teacher.id),
    ),
    "parents": EntitySpec(
        model=Parent,
        scope_method="parents",
        search=lambda p: or_(
            _like(Parent.name, p), _like(Parent.surname, p), _like(Parent.email, p), _like(Parent.phone, p)
        ),
        str_filters={"studentId": lambda v: Parent.students.any(Student.id == v)},
        load=(selectinload(Parent.students),),
        order_by=(Parent.name, Parent.id),
    ),
    "classes": EntitySpec(
        model=SchoolClass,
        scope_method="classes",
        search=lambda p: _like(SchoolClass.name, p),
        str_filters={
            "supervisorId": lambda v: SchoolClass.supervisor_id == v,
            "teacherId": lambda v: SchoolClass.lessons.any(Lesson.teacher_id == v),
        },
        load=(selectinload(SchoolClass.supervisor), selectinload(SchoolClass.grade)),
        order_by=(SchoolClass.name, SchoolClass.id),
    ),
    "subjects": EntitySpec(
        model=Subject,
        scope_method="subjects",
        search=lambda p: _like(Subject.name, p),
        str_filters={"teacherId": lambda v: Subject.teachers.any(Teacher.id == v)},
        load=(selectinload(Subject.teachers),),
        order_by=(Subject.name, Subject.id),
    ),
    "lessons": EntitySpec(
        model=Lesson,
        scope_method="lessons",
        search=lambda p: or_(
            _like(Lesson.name, p), Lesson.subject.has(_like(Subject.name, p)), Lesson.teacher.has(_like(Teacher.name, p))
        ),
        int_filters={"classId": lambda v: Lesson.class_id == v},
        str_filters={"teacherId": lambda v: Lesson.teacher_id == v},
        load=(selectinload(Lesson.subject), selectinload(Lesson.class_), selectinload(Lesson.teacher)),
        order_by=(Lesson.id,),
    ),
    "exams": EntitySpec(
        model=Exam,
        scope_method="exams",
        search=lambda p: or_(_like(Exam.title, p), Exam.lesson.has(Lesson.subject.has(_like(Subject.name, p)))),
        int_filters={
            "classId": lambda v: Exam.lesson.has(Lesson.class_id == v),
            "lessonId": lambda v: Exam.lesson_id == v,
        },
        str_filters={"teacherId": lambda v: Exam.lesson.has(Lesson.teacher_id == v)},
        load=(
            selectinload(Exam.lesson).selectinload(Lesson.subject),
            selectinload(Exam.lesson).selectinload(Lesson.class_),
            selectinload(Exam.lesson).selectinload(Lesson.teacher),
        ),
        order_by=(Exam.start_time, Exam.id),
    ),
    "assignments": EntitySpec(
        model=Assignment,
        scope_method="assignments",
        search=lambda p: or_(
            _like(Assignment.title, p), Assignment.lesson.has(Lesson.subject.has(_like(Subject.name, p)))
        ),
        int_filters={
            "classId": lambda v: Assignment.lesson.has(Lesson.class_id == v),
            "lessonId": lambda v: Assignment.lesson_id == v,
        },
        str_filters={"teacherId": lambda v: Assignment.lesson.has(Lesson.teacher_id == v)},
        load=(
            selectinload(Assignment.lesson).selectinload(Lesson.subject),
            selectinload(Assignment.lesson).selectinload(Lesson.class_),
            selectinload(Assignment.lesson).selectinload(Lesson.teacher),
        ),
        order_by=(Assignment.due_date, Assignment.id),
    ),
    "results": EntitySpec(
        model=Result,
        scope_method="results",
        search=lambda p: or_(
            Result.exam.has(_like(Exam.title, p)),
            Result.assignment.has(_like(Assignment.title, p)),
            Result.student.has(or_(_like(Student.name, p), _like(Student.surname, p))),
        ),
        int_filters={
            "classId": lambda v: or_(
                Result.exam.has(Exam.lesson.has(Lesson.class_id == v)),
                Result.assignment.has(Assignment.lesson.has(Lesson.class_id == v)),
            ),
            "lessonId": lambda v: or_(
                Result.exam.has(Exam.lesson_id == v), Result.assignment.has(Assignment.lesson_id == v)
            ),
        },
        str_filters={"studentId": lambda v: Result.student_id == v},
        load=(
            selectinload(Result.student),
            selectinload(Result.exam).selectinload(Exam.lesson).selectinload(Lesson.class_),
            selectinload(Result.exam).selectinload(Exam.lesson).selectinload(Lesson.teacher),
            selectinload(Result.assignment).selectinload(Assignment.lesson).selectinload(Lesson.class_),
            selectinload(Result.assignment).selectinload(Assignment.lesson).selectinload(Lesson.teacher),
        ),
        order_by=(Result.id,),
    ),
    "attendance": EntitySpec(
        model=Attendance,
        scope_method="attendance",
        search=lambda p: Attendance.student.has(or_(_like(Student.name, p), _like(Student.surname, p))),
        int_filters={
            "classId": lambda v: Attendance.lesson.has(Lesson.class_id == v),
            "lessonId": lambda v: Attendance.lesson_id == v,
        },
        str_filters={"studentId": lambda v: Attendance.student_id == v},
        load=(selectinload(Attendance.student), selectinload(Attendance.lesson)),
        order_by=(Attendance.date.desc(), Attendance.id),
    ),
    "events": EntitySpec(
        model=Event,
        scope_method="events",
        search=lambda p: _like(Event.title, p),
        int_filters={"classId": lambda v: Event.class_id == v},
        load=(selectinload(Event.class_),),
        order_by=(Event.start_time, Event.id),
    ),
    "announcements": EntitySpec(
        model=Announcement,
        scope_method="announcements",
        search=lambda p: _like(Announcement.title, p),
        int_filters={"classId": lambda v: Announcement.class_id == v},
        load=(selectinload(Announcement.class_),),
        order_by=(Announcement.date.desc(), Announcement.id),
    ),
}


def filter_clauses(spec: EntitySpec, filters: Mapping[str, Any]) -> list:
    clauses = []
    search = (filters.get("search") or "").strip()
    if search:
        clauses.append(spec.search(like_pattern(search)))
    for key, build in spec.int_filters.items():
        if key in filters:
            value = parse_int(filters[key])
            # Non-numeric ids are ignored rather than rejected.
            if value is not None:
                clauses.append(build(value))
    for key, build in spec.str_filters.items():
        value = (filters.get(key) or "").strip()
        if value:
            clauses.append(build(value))
    return clauses


def build_where(entity: str, context: CallerContext, filters: Mapping[str, Any] | None = None):
    """Role restriction ANDed with the request filters, or ``None`` when nothing applies."""
    spec = ENTITY_SPECS.get(entity)
    if spec is None:
        raise UnknownEntityError(entity)
    restriction = scope_for(context).clause_for(entity)
    clauses = filter_clauses(spec, filters or {})
    if restriction is not None:
        clauses.insert(0, restriction)
    if not clauses:
        return None
    return clauses[0] if len(clauses) == 1 else and_(*clauses)


def build_list_query(
    entity: str, context: CallerContext, filters: Mapping[str, Any] | None = None
) -> tuple[Select, Any]:
    where = build_where(entity, context, filters)
    spec = ENTITY_SPECS[entity]
    statement = select(spec.model).options(*spec.load).order_by(*spec.order_by)
    return statement, where
