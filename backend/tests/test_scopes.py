from datetime import datetime, timedelta

import pytest

from school_module.listing import fetch_page
from school_module.middleware import CallerContext
from school_module.models import Day, Lesson, UserRole
from school_module.scopes import (
    AdminScope,
    ParentScope,
    StudentScope,
    TeacherScope,
    UnknownEntityError,
    UnknownRoleError,
    build_list_query,
    build_where,
    scope_for,
)

from conftest import ctx


ADMIN = ctx("admin1", UserRole.ADMIN)
TEACHER1 = ctx("teacher1", UserRole.TEACHER)
TEACHER3 = ctx("teacher3", UserRole.TEACHER)
PARENT1 = ctx("parent1", UserRole.PARENT)
NEWCOMER = ctx("student4", UserRole.STUDENT)


def visible(db, entity, context, **filters):
    statement, where = build_list_query(entity, context, filters)
    return fetch_page(db, statement, where, page=1, page_size=500).items


def names(rows, attr="name"):
    return sorted(getattr(row, attr) for row in rows)


def student1(school):
    return ctx("student1", UserRole.STUDENT, school.class_a)


def test_scope_for_picks_role_class():
    assert isinstance(scope_for(ADMIN), AdminScope)
    assert isinstance(scope_for(TEACHER1), TeacherScope)
    assert isinstance(scope_for(NEWCOMER), StudentScope)
    assert isinstance(scope_for(PARENT1), ParentScope)


@pytest.mark.parametrize("role", ["janitor", None, ""])
def test_unknown_role_is_rejected(role):
    with pytest.raises(UnknownRoleError):
        build_where("lessons", CallerContext(user_id="x", role=role))


def test_unknown_entity_is_rejected():
    with pytest.raises(UnknownEntityError):
        build_where("payroll", ADMIN)


def test_admin_without_filters_is_unrestricted():
    for entity in ("students", "lessons", "results", "events"):
        assert build_where(entity, ADMIN) is None


def test_student_only_sees_lessons_of_own_class(db, school):
    start = datetime(2024, 9, 2, 9, 0)
    other = db.get(Lesson, school.lesson_b2)
    for i in range(50):
        db.add(Lesson(
            name=f"Extra {i}", day=Day.FRIDAY, start_time=start, end_time=start + timedelta(hours=1),
            subject_id=other.subject_id, class_id=school.class_b, teacher_id="teacher2",
        ))
    db.commit()

    rows = visible(db, "lessons", student1(school))

    assert {row.class_id for row in rows} == {school.class_a}
    assert names(rows) == ["Algebra", "Painting"]


def test_teacher_sees_only_own_lessons(db, school):
    assert names(visible(db, "lessons", TEACHER1)) == ["Algebra"]


def test_parent_sees_lessons_of_every_child_class(db, school):
    assert names(visible(db, "lessons", PARENT1)) == ["Algebra", "Ancient Rome", "Painting"]


def test_student_without_class_fails_closed(db, school):
    assert visible(db, "lessons", NEWCOMER) == []
    assert visible(db, "exams", NEWCOMER) == []
    assert visible(db, "teachers", NEWCOMER) == []
    assert [row.id for row in visible(db, "students", NEWCOMER)] == ["student4"]
    assert names(visible(db, "events", NEWCOMER), "title") == ["Sports day"]


def test_exams_follow_the_lesson_chain(db, school):
    assert names(visible(db, "exams", TEACHER1), "title") == ["Algebra midterm"]
    assert names(visible(db, "exams", student1(school)), "title") == ["Algebra midterm"]
    assert names(visible(db, "exams", PARENT1), "title") == ["Algebra midterm", "Rome quiz"]
    assert names(visible(db, "assignments", TEACHER3), "title") == ["Sketchbook"]


def test_results_by_role(db, school):
    teacher_rows = visible(db, "results", TEACHER1)
    assert sorted(row.student_id for row in teacher_rows) == ["student1", "student3"]

    # teacher3 only reaches results through the assignment of their lesson
    assert [row.assignment_id for row in visible(db, "results", TEACHER3)] == [school.assignment_a3]

    student_rows = visible(db, "results", student1(school))
    assert {row.student_id for row in student_rows} == {"student1"}
    assert len(student_rows) == 2

    parent_rows = visible(db, "results", PARENT1)
    assert sorted(row.student_id for row in parent_rows) == ["student1", "student1", "student2"]


def test_attendance_by_role(db, school):
    assert [row.student_id for row in visible(db, "attendance", TEACHER1)] == ["student1"]
    assert [row.student_id for row in visible(db, "attendance", ctx("student2", UserRole.STUDENT, school.class_b))] == [
        "student2"
    ]
    assert sorted(row.student_id for row in visible(db, "attendance", PARENT1)) == ["student1", "student2"]


def test_students_by_role(db, school):
    assert [row.id for row in visible(db, "students", TEACHER1)] == ["student1", "student3"]
    assert sorted(row.id for row in visible(db, "students", student1(school))) == ["student1", "student3"]
    assert sorted(row.id for row in visible(db, "students", PARENT1)) == ["student1", "student2"]


def test_teachers_by_role(db, school):
    assert sorted(row.id for row in visible(db, "teachers", TEACHER1)) == ["teacher1", "teacher3"]
    assert sorted(row.id for row in visible(db, "teachers", student1(school))) == ["teacher1", "teacher3"]
    assert sorted(row.id for row in visible(db, "teachers", PARENT1)) == ["teacher1", "teacher2", "teacher3"]


def test_parents_by_role(db, school):
    assert sorted(row.id for row in visible(db, "parents", TEACHER1)) == ["parent1", "parent2"]
    assert [row.id for row in visible(db, "parents", ctx("teacher2", UserRole.TEACHER))] == ["parent1"]
    assert [row.id for row in visible(db, "parents", ctx("student3", UserRole.STUDENT, school.class_a))] == ["parent2"]
    assert [row.id for row in visible(db, "parents", PARENT1)] == ["parent1"]


def test_classes_include_supervised_ones_for_teachers(db, school):
    assert names(visible(db, "classes", TEACHER3)) == ["1A", "3A"]
    assert names(visible(db, "classes", student1(school))) == ["1A"]
    assert names(visible(db, "classes", PARENT1)) == ["1A", "2A"]


def test_events_and_announcements_include_school_wide_rows(db, school):
    assert names(visible(db, "events", student1(school)), "title") == ["1A field trip", "Sports day"]
    assert names(visible(db, "events", PARENT1), "title") == ["1A field trip", "2A museum visit", "Sports day"]
    assert names(visible(db, "announcements", TEACHER3), "title") == ["1A homework policy", "School closed Friday"]


def test_subjects_are_reference_data(db, school):
    assert names(visible(db, "subjects", NEWCOMER)) == ["Art", "History", "Mathematics"]


def test_search_is_anded_with_role_restriction(db, school):
    # "Rome" matches a lesson teacher1 does not teach
    assert visible(db, "lessons", TEACHER1, search="Rome") == []
    assert names(visible(db, "lessons", ADMIN, search="rome")) == ["Ancient Rome"]


def test_search_covers_related_names(db, school):
    assert names(visible(db, "lessons", ADMIN, search="hopper")) == []
    assert names(visible(db, "lessons", ADMIN, search="grace")) == ["Painting"]
    assert names(visible(db, "exams", ADMIN, search="history"), "title") == ["Rome quiz"]
    assert [row.student_id for row in visible(db, "results", ADMIN, search="Tim")] == ["student3"]


@pytest.mark.parametrize("term", ["%", "_", "A_gebra", "%gebra"])
def test_search_wildcards_match_literally(db, school, term):
    assert visible(db, "lessons", ADMIN, search=term) == []


def test_search_finds_literal_wildcard_characters(db, school):
    db.add(Lesson(
        name="Maths 100%", day=Day.FRIDAY, start_time=datetime(2024, 9, 6, 9), end_time=datetime(2024, 9, 6, 10),
        subject_id=visible(db, "subjects", ADMIN)[0].id, class_id=school.class_a, teacher_id="teacher1",
    ))
    db.commit()
    assert names(visible(db, "lessons", ADMIN, search="100%")) == ["Maths 100%"]


def test_foreign_key_filters(db, school):
    assert names(visible(db, "lessons", ADMIN, classId=str(school.class_a))) == ["Algebra", "Painting"]
    assert names(visible(db, "lessons", ADMIN, teacherId="teacher2")) == ["Ancient Rome"]
    assert names(visible(db, "classes", ADMIN, supervisorId="teacher3")) == ["3A"]
    assert sorted(row.id for row in visible(db, "students", ADMIN, parentId="parent1")) == ["student1", "student2"]
    assert [row.id for row in visible(db, "parents", ADMIN, studentId="student3")] == ["parent2"]


def test_non_numeric_integer_filter_is_ignored(db, school):
    everything = visible(db, "lessons", ADMIN)
    assert len(visible(db, "lessons", ADMIN, classId="abc")) == len(everything)


def test_filters_cannot_widen_role_restriction(db, school):
    assert visible(db, "lessons", TEACHER1, classId=str(school.class_b)) == []
    assert visible(db, "students", PARENT1, classId=str(school.class_c)) == []
