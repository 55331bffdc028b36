import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


class UserSex(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class Day(str, enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


teacher_subjects = Table(
    "teacher_subjects",
    Base.metadata,
    Column("teacher_id", String(64), ForeignKey("teachers.id", ondelete="CASCADE"), primary_key=True),
    Column("subject_id", Integer, ForeignKey("subjects.id", ondelete="CASCADE"), primary_key=True),
)


class Admin(Base):
    __tablename__ = "admins"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class Teacher(Base):
    __tablename__ = "teachers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    surname: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    img: Mapped[str | None] = mapped_column(String(512), nullable=True)
    blood_type: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    sex: Mapped[UserSex] = mapped_column(Enum(UserSex, name="user_sex"), nullable=False, default=UserSex.MALE)
    birthday: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    subjects: Mapped[list["Subject"]] = relationship(
        "Subject", secondary=teacher_subjects, back_populates="teachers"
    )
    lessons: Mapped[list["Lesson"]] = relationship(
        "Lesson", back_populates="teacher", cascade="all, delete-orphan"
    )
    supervised_classes: Mapped[list["SchoolClass"]] = relationship("SchoolClass", back_populates="supervisor")


class Parent(Base):
    __tablename__ = "parents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    surname: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    address: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    students: Mapped[list["Student"]] = relationship("Student", back_populates="parent")


class Grade(Base):
    __tablename__ = "grades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    classes: Mapped[list["SchoolClass"]] = relationship("SchoolClass", back_populates="grade")
    students: Mapped[list["Student"]] = relationship("Student", back_populates="grade")


class SchoolClass(Base):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_id: Mapped[int | None] = mapped_column(ForeignKey("grades.id"), nullable=True, index=True)
    supervisor_id: Mapped[str | None] = mapped_column(
        ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    grade: Mapped[Grade | None] = relationship("Grade", back_populates="classes")
    supervisor: Mapped[Teacher | None] = relationship("Teacher", back_populates="supervised_classes")
    students: Mapped[list["Student"]] = relationship("Student", back_populates="class_")
    lessons: Mapped[list["Lesson"]] = relationship(
        "Lesson", back_populates="class_", cascade="all, delete-orphan"
    )
    events: Mapped[list["Event"]] = relationship("Event", back_populates="class_", cascade="all, delete-orphan")
    announcements: Mapped[list["Announcement"]] = relationship(
        "Announcement", back_populates="class_", cascade="all, delete-orphan"
    )


class Student(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    surname: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    img: Mapped[str | None] = mapped_column(String(512), nullable=True)
    blood_type: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    sex: Mapped[UserSex] = mapped_column(Enum(UserSex, name="user_sex"), nullable=False, default=UserSex.MALE)
    birthday: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("parents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    grade_id: Mapped[int | None] = mapped_column(ForeignKey("grades.id"), nullable=True, index=True)
    class_id: Mapped[int | None] = mapped_column(
        ForeignKey("classes.id", ondelete="SET NULL"), nullable=True, index=True
    )

    parent: Mapped[Parent | None] = relationship("Parent", back_populates="students")
    grade: Mapped[Grade | None] = relationship("Grade", back_populates="students")
    class_: Mapped[SchoolClass | None] = relationship("SchoolClass", back_populates="students")
    results: Mapped[list["Result"]] = relationship("Result", back_populates="student", cascade="all, delete-orphan")
    attendances: Mapped[list["Attendance"]] = relationship(
        "Attendance", back_populates="student", cascade="all, delete-orphan"
    )
    class_requests: Mapped[list["ClassAssignmentRequest"]] = relationship(
        "ClassAssignmentRequest", back_populates="student", cascade="all, delete-orphan"
    )


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    teachers: Mapped[list[Teacher]] = relationship("Teacher", secondary=teacher_subjects, back_populates="subjects")
    lessons: Mapped[list["Lesson"]] = relationship("Lesson", back_populates="subject", cascade="all, delete-orphan")


class Lesson(Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    day: Mapped[Day] = mapped_column(Enum(Day, name="lesson_day"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subjects.id"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False, index=True)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)

    subject: Mapped[Subject] = relationship("Subject", back_populates="lessons")
    class_: Mapped[SchoolClass] = relationship("SchoolClass", back_populates="lessons")
    teacher: Mapped[Teacher] = relationship("Teacher", back_populates="lessons")
    exams: Mapped[list["Exam"]] = relationship("Exam", back_populates="lesson", cascade="all, delete-orphan")
    assignments: Mapped[list["Assignment"]] = relationship(
        "Assignment", back_populates="lesson", cascade="all, delete-orphan"
    )
    attendances: Mapped[list["Attendance"]] = relationship(
        "Attendance", back_populates="lesson", cascade="all, delete-orphan"
    )


class Exam(Base):
    __tablename__ = "exams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"), nullable=False, index=True)

    lesson: Mapped[Lesson] = relationship("Lesson", back_populates="exams")
    results: Mapped[list["Result"]] = relationship("Result", back_populates="exam", cascade="all, delete-orphan")


class Assignment(Base):
    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"), nullable=False, index=True)

    lesson: Mapped[Lesson] = relationship("Lesson", back_populates="assignments")
    results: Mapped[list["Result"]] = relationship(
        "Result", back_populates="assignment", cascade="all, delete-orphan"
    )


class Result(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    exam_id: Mapped[int | None] = mapped_column(ForeignKey("exams.id"), nullable=True, index=True)
    assignment_id: Mapped[int | None] = mapped_column(ForeignKey("assignments.id"), nullable=True, index=True)

    student: Mapped[Student] = relationship("Student", back_populates="results")
    exam: Mapped[Exam | None] = relationship("Exam", back_populates="results")
    assignment: Mapped[Assignment | None] = relationship("Assignment", back_populates="results")


class Attendance(Base):
    __tablename__ = "attendances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id"), nullable=False, index=True)

    student: Mapped[Student] = relationship("Student", back_populates="attendances")
    lesson: Mapped[Lesson] = relationship("Lesson", back_populates="attendances")


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    class_id: Mapped[int | None] = mapped_column(ForeignKey("classes.id"), nullable=True, index=True)

    class_: Mapped[SchoolClass | None] = relationship("SchoolClass", back_populates="events")


class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    class_id: Mapped[int | None] = mapped_column(ForeignKey("classes.id"), nullable=True, index=True)

    class_: Mapped[SchoolClass | None] = relationship("SchoolClass", back_populates="announcements")


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class ClassAssignmentRequest(Base):
    __tablename__ = "class_assignment_requests"
    __table_args__ = (
        # One open request per student; approved/rejected rows are history.
        Index(
            "uq_class_request_pending_student",
            "student_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="request_status", values_callable=_values),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    class_id: Mapped[int | None] = mapped_column(ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    student: Mapped[Student] = relationship("Student", back_populates="class_requests")
    class_: Mapped[SchoolClass | None] = relationship("SchoolClass")


PERSON_MODELS: dict[UserRole, type] = {
    UserRole.ADMIN: Admin,
    UserRole.TEACHER: Teacher,
    UserRole.STUDENT: Student,
    UserRole.PARENT: Parent,
}
