from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .models import Day, RequestStatus, UserRole, UserSex


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# --- references embedded in list rows ---


class ClassRef(CamelModel):
    id: int
    name: str


class SubjectRef(CamelModel):
    id: int
    name: str


class PersonRef(CamelModel):
    id: str
    name: str
    surname: str


class LessonRef(CamelModel):
    id: int
    name: str
    subject: SubjectRef | None = None
    class_: ClassRef | None = Field(default=None, alias="class")
    teacher: PersonRef | None = None


# --- people ---


class TeacherOut(CamelModel):
    id: str
    username: str
    name: str
    surname: str
    email: str | None = None
    phone: str | None = None
    address: str
    img: str | None = None
    blood_type: str
    sex: UserSex
    birthday: datetime | None = None
    subjects: list[SubjectRef] = []
    classes: list[ClassRef] = []


class StudentOut(CamelModel):
    id: str
    username: str
    name: str
    surname: str
    email: str | None = None
    phone: str | None = None
    address: str
    img: str | None = None
    blood_type: str
    sex: UserSex
    birthday: datetime | None = None
    parent_id: str | None = None
    grade_id: int | None = None
    class_id: int | None = None
    class_: ClassRef | None = Field(default=None, alias="class")
    grade_level: int | None = None


class ParentOut(CamelModel):
    id: str
    username: str
    name: str
    surname: str
    email: str | None = None
    phone: str
    address: str
    students: list[PersonRef] = []


class TeacherCreate(CamelModel):
    id: str | None = Field(default=None, max_length=64)
    username: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    surname: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address: str = ""
    img: str | None = None
    blood_type: str = ""
    sex: UserSex = UserSex.MALE
    birthday: datetime | None = None
    subjects: list[int] = []


class TeacherUpdate(CamelModel):
    id: str
    username: str | None = Field(default=None, min_length=3, max_length=255)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    surname: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    img: str | None = None
    blood_type: str | None = None
    sex: UserSex | None = None
    birthday: datetime | None = None
    subjects: list[int] | None = None


class StudentCreate(CamelModel):
    id: str | None = Field(default=None, max_length=64)
    username: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    surname: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address: str = ""
    img: str | None = None
    blood_type: str = ""
    sex: UserSex = UserSex.MALE
    birthday: datetime | None = None
    parent_id: str | None = None
    grade_id: int | None = None
    class_id: int | None = None


class StudentUpdate(CamelModel):
    id: str
    username: str | None = Field(default=None, min_length=3, max_length=255)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    surname: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    img: str | None = None
    blood_type: str | None = None
    sex: UserSex | None = None
    birthday: datetime | None = None
    parent_id: str | None = None
    grade_id: int | None = None
    class_id: int | None = None


class ParentCreate(CamelModel):
    id: str | None = Field(default=None, max_length=64)
    username: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    surname: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str = ""
    address: str = ""


class ParentUpdate(CamelModel):
    id: str
    username: str | None = Field(default=None, min_length=3, max_length=255)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    surname: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address: str | None = None


# --- classes, subjects, lessons ---


class ClassOut(CamelModel):
    id: int
    name: str
    capacity: int
    grade_id: int | None = None
    grade_level: int | None = None
    supervisor_id: str | None = None
    supervisor: PersonRef | None = None


class ClassCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    capacity: int = Field(gt=0)
    grade_id: int | None = None
    supervisor_id: str | None = None


class ClassUpdate(CamelModel):
    id: int
    name: str | None = Field(default=None, min_length=1, max_length=255)
    capacity: int | None = Field(default=None, gt=0)
    grade_id: int | None = None
    supervisor_id: str | None = None


class SubjectOut(CamelModel):
    id: int
    name: str
    teachers: list[PersonRef] = []


class SubjectCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    teachers: list[str] = []


class SubjectUpdate(CamelModel):
    id: int
    name: str | None = Field(default=None, min_length=1, max_length=255)
    teachers: list[str] | None = None


class LessonOut(CamelModel):
    id: int
    name: str
    day: Day
    start_time: datetime
    end_time: datetime
    subject_id: int
    class_id: int
    teacher_id: str
    subject: SubjectRef | None = None
    class_: ClassRef | None = Field(default=None, alias="class")
    teacher: PersonRef | None = None


class ScheduleEntryOut(CamelModel):
    lesson_id: int
    title: str
    start: datetime
    end: datetime


class LessonCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    day: Day
    start_time: datetime
    end_time: datetime
    subject_id: int
    class_id: int
    teacher_id: str


class LessonUpdate(CamelModel):
    id: int
    name: str | None = Field(default=None, min_length=1, max_length=255)
    day: Day | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    subject_id: int | None = None
    class_id: int | None = None
    teacher_id: str | None = None


# --- assessments ---


class ExamOut(CamelModel):
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    lesson_id: int
    lesson: LessonRef | None = None


class ExamCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime
    lesson_id: int


class ExamUpdate(CamelModel):
    id: int
    title: str | None = Field(default=None, min_length=1, max_length=255)
    start_time: datetime | None = None
    end_time: datetime | None = None
    lesson_id: int | None = None


class AssignmentOut(CamelModel):
    id: int
    title: str
    description: str
    start_date: datetime
    due_date: datetime
    lesson_id: int
    lesson: LessonRef | None = None


class AssignmentCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    start_date: datetime | None = None
    due_date: datetime
    lesson_id: int


class AssignmentUpdate(CamelModel):
    id: int
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_date: datetime | None = None
    due_date: datetime | None = None
    lesson_id: int | None = None


class ResultOut(CamelModel):
    id: int
    score: float
    student_id: str
    exam_id: int | None = None
    assignment_id: int | None = None
    title: str | None = None
    student: PersonRef | None = None
    class_: ClassRef | None = Field(default=None, alias="class")
    teacher: PersonRef | None = None


class ResultCreate(CamelModel):
    score: float = Field(ge=0)
    student_id: str
    exam_id: int | None = None
    assignment_id: int | None = None

    @model_validator(mode="after")
    def exam_xor_assignment(self):
        if (self.exam_id is None) == (self.assignment_id is None):
            raise ValueError("A result belongs to exactly one exam or assignment")
        return self


class ResultUpdate(CamelModel):
    id: int
    score: float | None = Field(default=None, ge=0)
    student_id: str | None = None
    exam_id: int | None = None
    assignment_id: int | None = None


class AttendanceOut(CamelModel):
    id: int
    date: datetime
    present: bool
    student_id: str
    lesson_id: int
    student: PersonRef | None = None
    lesson_name: str | None = None


class AttendanceCreate(CamelModel):
    date: datetime
    present: bool = True
    student_id: str
    lesson_id: int


class AttendanceUpdate(CamelModel):
    id: int
    date: datetime | None = None
    present: bool | None = None
    student_id: str | None = None
    lesson_id: int | None = None


# --- calendar ---


class EventOut(CamelModel):
    id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    class_id: int | None = None
    class_: ClassRef | None = Field(default=None, alias="class")


class EventCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    start_time: datetime
    end_time: datetime
    class_id: int | None = None


class EventUpdate(CamelModel):
    id: int
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    class_id: int | None = None


class AnnouncementOut(CamelModel):
    id: int
    title: str
    description: str
    date: datetime
    class_id: int | None = None
    class_: ClassRef | None = Field(default=None, alias="class")


class AnnouncementCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    date: datetime | None = None
    class_id: int | None = None


class AnnouncementUpdate(CamelModel):
    id: int
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    date: datetime | None = None
    class_id: int | None = None


# --- messaging and requests ---


class MessageCreate(CamelModel):
    sender_id: str | None = None
    receiver_id: str | None = None
    content: str | None = None


class MessageOut(CamelModel):
    id: int
    sender_id: str
    receiver_id: str
    content: str
    timestamp: datetime
    read: bool


class UserInfoOut(CamelModel):
    id: str
    username: str | None = None
    name: str | None = None
    surname: str | None = None
    img: str | None = None
    type: UserRole
    display_name: str


class ClassRequestCreate(CamelModel):
    student_id: str | None = None


class ClassRequestTransition(CamelModel):
    action: Literal["approve", "reject"]
    class_id: int | None = None


class ClassRequestOut(CamelModel):
    id: int
    student_id: str
    status: RequestStatus
    class_id: int | None = None
    reviewed_by: str | None = None
    created_at: datetime
    updated_at: datetime
    student: PersonRef | None = None
