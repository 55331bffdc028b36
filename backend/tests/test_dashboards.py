from datetime import date, datetime

import pytest
from fastapi import HTTPException

from school_module.models import Lesson, UserRole
from school_module.services import count_users, current_week_monday, lesson_schedule

from conftest import auth, ctx


ADMIN = ctx("admin1", UserRole.ADMIN)
WEDNESDAY = date(2026, 10, 21)


@pytest.mark.parametrize(
    "today, monday",
    [
        (date(2026, 10, 19), date(2026, 10, 19)),
        (date(2026, 10, 21), date(2026, 10, 19)),
        (date(2026, 10, 23), date(2026, 10, 19)),
        # weekends show the coming week
        (date(2026, 10, 24), date(2026, 10, 26)),
        (date(2026, 10, 25), date(2026, 10, 26)),
    ],
)
def test_current_week_monday(today, monday):
    assert current_week_monday(today) == monday


def test_class_schedule_moves_lessons_onto_this_week(db, school):
    student = ctx("student1", UserRole.STUDENT, school.class_a)
    entries = lesson_schedule(db, student, class_id=school.class_a, today=WEDNESDAY)

    assert [entry.title for entry in entries] == ["Mathematics - Ada Lovelace", "Art - Grace Hopper"]
    assert entries[0].start == datetime(2026, 10, 19, 9, 0)
    assert entries[0].end == datetime(2026, 10, 19, 10, 0)


def test_teacher_schedule_keeps_weekday_and_time(db, school):
    lesson = db.get(Lesson, school.lesson_b2)
    lesson.start_time = datetime(2024, 9, 4, 10, 30)
    lesson.end_time = datetime(2024, 9, 4, 11, 15)
    db.commit()

    teacher = ctx("teacher2", UserRole.TEACHER)
    [entry] = lesson_schedule(db, teacher, teacher_id="teacher2", today=date(2026, 10, 24))
    assert entry.lesson_id == school.lesson_b2
    assert entry.start == datetime(2026, 10, 28, 10, 30)
    assert entry.end == datetime(2026, 10, 28, 11, 15)


def test_schedule_stays_inside_the_callers_scope(db, school):
    student = ctx("student1", UserRole.STUDENT, school.class_a)
    assert lesson_schedule(db, student, class_id=school.class_b, today=WEDNESDAY) == []

    # parent1 has a child in 2A
    parent = ctx("parent1", UserRole.PARENT)
    assert len(lesson_schedule(db, parent, class_id=school.class_b, today=WEDNESDAY)) == 1


def test_schedule_needs_a_teacher_or_class(db, school):
    with pytest.raises(HTTPException) as exc:
        lesson_schedule(db, ADMIN)
    assert exc.value.status_code == 400


def test_count_users(db, school):
    assert count_users(db) == {"admin": 1, "teacher": 3, "student": 4, "parent": 2}


def test_schedule_over_http(client, school):
    response = client.get(
        "/api/schedule", params={"teacherId": "teacher1"}, headers=auth("teacher1", "teacher")
    )
    assert response.status_code == 200
    [entry] = response.json()["schedule"]
    assert set(entry) == {"lessonId", "title", "start", "end"}
    assert entry["title"] == "Mathematics - Ada Lovelace"

    assert client.get("/api/schedule", headers=auth("teacher1", "teacher")).status_code == 400


def test_counts_are_admin_only(client, school):
    response = client.get("/api/counts", headers=auth("admin1", "admin"))
    assert response.json() == {"counts": {"admin": 1, "teacher": 3, "student": 4, "parent": 2}}
    assert client.get("/api/counts", headers=auth("teacher1", "teacher")).status_code == 403
