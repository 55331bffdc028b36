import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import (
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
    UserSex,
)


logger = logging.getLogger(__name__)

SUBJECTS = [
    "Mathematics",
    "Science",
    "English",
    "History",
    "Geography",
    "Physics",
    "Chemistry",
    "Biology",
    "Computer Science",
    "Art",
]
DAYS = list(Day)


def seed_demo_data(db: Session) -> bool:
    """Populate an empty database with a small demo school. Returns False if data already exists."""
    if db.scalars(select(Admin).limit(1)).first() is not None:
        logger.info("Demo data already present, skipping seed")
        return False

    now = datetime.now().replace(second=0, microsecond=0)
    today = now.replace(hour=0, minute=0)

    db.add_all([Admin(id="admin1", username="admin1"), Admin(id="admin2", username="admin2")])

    grades = [Grade(level=level) for level in range(1, 7)]
    db.add_all(grades)
    classes = [SchoolClass(name=f"{i}A", grade=grades[i - 1], capacity=15 + i) for i in range(1, 7)]
    db.add_all(classes)
    subjects = [Subject(name=name) for name in SUBJECTS]
    db.add_all(subjects)

    teachers = []
    for i in range(1, 16):
        teacher = Teacher(
            id=f"teacher{i}",
            username=f"teacher{i}",
            name=f"TName{i}",
            surname=f"TSurname{i}",
            email=f"teacher{i}@example.com",
            phone=f"123-456-78{i:02d}",
            address=f"Address{i}",
            blood_type="A+",
            sex=UserSex.MALE if i % 2 == 0 else UserSex.FEMALE,
            birthday=today - timedelta(days=365 * 30),
        )
        teacher.subjects.append(subjects[i % 10])
        teachers.append(teacher)
    db.add_all(teachers)
    for index, school_class in enumerate(classes):
        school_class.supervisor = teachers[index]

    lessons = []
    for i in range(1, 31):
        start = today + timedelta(hours=8 + i % 6)
        lessons.append(
            Lesson(
                name=f"Lesson{i}",
                day=DAYS[i % len(DAYS)],
                start_time=start,
                end_time=start + timedelta(hours=1),
                subject=subjects[i % 10],
                class_=classes[i % 6],
                teacher=teachers[i % 15],
            )
        )
    db.add_all(lessons)

    parents = [
        Parent(
            id=f"parentId{i}",
            username=f"parentId{i}",
            name=f"PName {i}",
            surname=f"PSurname {i}",
            email=f"parent{i}@example.com",
            phone=f"123-456-79{i:02d}",
            address=f"Address{i}",
        )
        for i in range(1, 26)
    ]
    db.add_all(parents)

    students = []
    for i in range(1, 51):
        students.append(
            Student(
                id=f"student{i}",
                username=f"student{i}",
                name=f"SName{i}",
                surname=f"SSurname {i}",
                email=f"student{i}@example.com",
                phone=f"987-654-32{i:02d}",
                address=f"Address{i}",
                blood_type="O-",
                sex=UserSex.MALE if i % 2 == 0 else UserSex.FEMALE,
                parent=parents[(i - 1) // 2],
                grade=grades[i % 6],
                class_=classes[i % 6],
                birthday=today - timedelta(days=365 * 10),
            )
        )
    db.add_all(students)

    exams = [
        Exam(
            title=f"Exam {i}",
            start_time=now + timedelta(days=i),
            end_time=now + timedelta(days=i, hours=1),
            lesson=lessons[i % 30],
        )
        for i in range(1, 11)
    ]
    assignments = [
        Assignment(
            title=f"Assignment {i}",
            start_date=now,
            due_date=now + timedelta(days=i),
            lesson=lessons[i % 30],
        )
        for i in range(1, 11)
    ]
    db.add_all(exams + assignments)

    # Each result belongs to a student of the class the assessment is held in.
    for i in range(1, 11):
        exam = exams[i - 1]
        assignment = assignments[i - 1]
        exam_student = next(s for s in students if s.class_ is exam.lesson.class_)
        assignment_student = next(s for s in students if s.class_ is assignment.lesson.class_)
        db.add(Result(score=60 + i * 3, student=exam_student, exam=exam))
        db.add(Result(score=55 + i * 4, student=assignment_student, assignment=assignment))

    for i in range(1, 11):
        lesson = lessons[i % 30]
        student = next(s for s in students if s.class_ is lesson.class_)
        db.add(Attendance(date=today - timedelta(days=i), present=i % 3 != 0, student=student, lesson=lesson))

    for i in range(1, 6):
        db.add(
            Event(
                title=f"Event {i}",
                description=f"Description for Event {i}",
                start_time=now + timedelta(days=i),
                end_time=now + timedelta(days=i, hours=2),
                class_=classes[i % 6] if i % 2 else None,
            )
        )
        db.add(
            Announcement(
                title=f"Announcement {i}",
                description=f"Description for Announcement {i}",
                date=today + timedelta(days=i),
                class_=classes[i % 6] if i % 2 else None,
            )
        )

    db.commit()
    logger.info("Seeded demo school: %s classes, %s teachers, %s students", len(classes), len(teachers), len(students))
    return True
