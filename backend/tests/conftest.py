from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend import app
from school_module.database import Base, get_db_session
from school_module.middleware import CallerContext
from school_module.models import (
    Admin,
    Announcement,
    Assignment,
    Attendance,
    Day,
    Event,
    Exam,
    Grade,
    Lesson,
    Parent,
    Result,
    SchoolClass,
    Student,
    Subject,
    Teacher,
    UserRole,
)
from school_module.security import create_access_token


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def auth(user_id: str, role: str, class_id: int | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role, class_id=class_id)}"}


def ctx(user_id: str, role: UserRole, class_id: int | None = None) -> CallerContext:
    return CallerContext(user_id=user_id, role=role, class_id=class_id)


@dataclass
class School:
    class_a: int
    class_b: int
    class_c: int
    lesson_a1: int
    lesson_a3: int
    lesson_b2: int
    exam_a1: int
    exam_b2: int
    assignment_a3: int
    assignment_b2: int


@pytest.fixture
def school(db) -> School:
    """Three classes, three teachers, two families and a student waiting for a class.

    * teacher1 teaches class 1A, teacher2 teaches 2A, teacher3 teaches 1A and supervises 3A.
    * parent1 has student1 (1A) and student2 (2A); parent2 has student3 (1A).
    * student4 has no class yet.
    """
    start = datetime(2024, 9, 2, 9, 0)

    db.add(Admin(id="admin1", username="admin1"))
    grade = Grade(level=1)
    math = Subject(name="Mathematics")
    history = Subject(name="History")
    art = Subject(name="Art")

    teacher1 = Teacher(id="teacher1", username="teacher1", name="Ada", surname="Lovelace", email="ada@example.com")
    teacher2 = Teacher(id="teacher2", username="teacher2", name="Alan", surname="Turing", email="alan@example.com")
    teacher3 = Teacher(id="teacher3", username="teacher3", name="Grace", surname="Hopper", email="grace@example.com")
    teacher1.subjects.append(math)
    teacher2.subjects.append(history)

    class_a = SchoolClass(name="1A", capacity=20, grade=grade, supervisor=teacher1)
    class_b = SchoolClass(name="2A", capacity=20, grade=grade, supervisor=teacher2)
    class_c = SchoolClass(name="3A", capacity=2, grade=grade, supervisor=teacher3)

    parent1 = Parent(id="parent1", username="parent1", name="Paula", surname="Parker", phone="555-0101")
    parent2 = Parent(id="parent2", username="parent2", name="Peter", surname="Pan", phone="555-0102")

    student1 = Student(id="student1", username="student1", name="Sam", surname="Parker", parent=parent1, class_=class_a)
    student2 = Student(id="student2", username="student2", name="Sue", surname="Parker", parent=parent1, class_=class_b)
    student3 = Student(id="student3", username="student3", name="Tim", surname="Pan", parent=parent2, class_=class_a)
    student4 = Student(id="student4", username="student4", name="Newt", surname="Comer")

    lesson_a1 = Lesson(
        name="Algebra", day=Day.MONDAY, start_time=start, end_time=start + timedelta(hours=1),
        subject=math, class_=class_a, teacher=teacher1,
    )
    lesson_a3 = Lesson(
        name="Painting", day=Day.TUESDAY, start_time=start, end_time=start + timedelta(hours=1),
        subject=art, class_=class_a, teacher=teacher3,
    )
    lesson_b2 = Lesson(
        name="Ancient Rome", day=Day.WEDNESDAY, start_time=start, end_time=start + timedelta(hours=1),
        subject=history, class_=class_b, teacher=teacher2,
    )

    exam_a1 = Exam(title="Algebra midterm", start_time=start, end_time=start + timedelta(hours=2), lesson=lesson_a1)
    exam_b2 = Exam(title="Rome quiz", start_time=start, end_time=start + timedelta(hours=1), lesson=lesson_b2)
    assignment_a3 = Assignment(
        title="Sketchbook", start_date=start, due_date=start + timedelta(days=7), lesson=lesson_a3
    )
    assignment_b2 = Assignment(
        title="Roman roads essay", start_date=start, due_date=start + timedelta(days=7), lesson=lesson_b2
    )

    db.add_all([
        grade, math, history, art, teacher1, teacher2, teacher3, class_a, class_b, class_c,
        parent1, parent2, student1, student2, student3, student4,
        lesson_a1, lesson_a3, lesson_b2, exam_a1, exam_b2, assignment_a3, assignment_b2,
    ])
    db.add_all([
        Result(score=91, student=student1, exam=exam_a1),
        Result(score=78, student=student3, exam=exam_a1),
        Result(score=65, student=student2, exam=exam_b2),
        Result(score=88, student=student1, assignment=assignment_a3),
        Attendance(date=start, present=True, student=student1, lesson=lesson_a1),
        Attendance(date=start, present=False, student=student2, lesson=lesson_b2),
        Event(title="Sports day", start_time=start, end_time=start + timedelta(hours=4)),
        Event(title="1A field trip", start_time=start, end_time=start + timedelta(hours=4), class_=class_a),
        Event(title="2A museum visit", start_time=start, end_time=start + timedelta(hours=4), class_=class_b),
        Announcement(title="School closed Friday", date=start),
        Announcement(title="1A homework policy", date=start, class_=class_a),
        Announcement(title="3A timetable", date=start, class_=class_c),
    ])
    db.commit()

    return School(
        class_a=class_a.id,
        class_b=class_b.id,
        class_c=class_c.id,
        lesson_a1=lesson_a1.id,
        lesson_a3=lesson_a3.id,
        lesson_b2=lesson_b2.id,
        exam_a1=exam_a1.id,
        exam_b2=exam_b2.id,
        assignment_a3=assignment_a3.id,
        assignment_b2=assignment_b2.id,
    )
