import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from school_module.assignment_requests import create_request, has_pending, list_pending, transition_request
from school_module.models import ClassAssignmentRequest, RequestStatus, Student, UserRole

from conftest import auth, ctx


NEWCOMER = ctx("student4", UserRole.STUDENT)
ADMIN = ctx("admin1", UserRole.ADMIN)


def test_student_opens_a_pending_request(db, school):
    request = create_request(db, NEWCOMER, None)
    assert request.status == RequestStatus.PENDING
    assert request.student_id == "student4"
    assert has_pending(db, NEWCOMER, "student4") is True


def test_second_pending_request_conflicts(db, school):
    create_request(db, NEWCOMER, "student4")
    with pytest.raises(HTTPException) as exc:
        create_request(db, NEWCOMER, "student4")
    assert exc.value.status_code == 409
    assert db.query(ClassAssignmentRequest).count() == 1


@pytest.mark.parametrize("context", [ADMIN, ctx("teacher1", UserRole.TEACHER), ctx("parent1", UserRole.PARENT)])
def test_only_students_open_requests(db, school, context):
    with pytest.raises(HTTPException) as exc:
        create_request(db, context, "student4")
    assert exc.value.status_code == 403


def test_students_cannot_open_requests_for_others(db, school):
    with pytest.raises(HTTPException) as exc:
        create_request(db, NEWCOMER, "student1")
    assert exc.value.status_code == 403


def test_approval_assigns_class(db, school):
    request = create_request(db, NEWCOMER, None)
    approved = transition_request(db, ADMIN, request.id, "approve", school.class_c)

    assert approved.status == RequestStatus.APPROVED
    assert approved.class_id == school.class_c
    assert approved.reviewed_by == "admin1"
    db.expire_all()
    assert db.get(Student, "student4").class_id == school.class_c
    assert has_pending(db, NEWCOMER, "student4") is False


def test_terminal_states_reject_further_transitions(db, school):
    request = create_request(db, NEWCOMER, None)
    transition_request(db, ADMIN, request.id, "approve", school.class_c)

    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, request.id, "reject")
    assert exc.value.status_code == 400
    assert "approved" in exc.value.detail

    db.expire_all()
    assert db.get(ClassAssignmentRequest, request.id).status == RequestStatus.APPROVED
    assert db.get(Student, "student4").class_id == school.class_c


def test_rejection_leaves_student_unassigned(db, school):
    request = create_request(db, NEWCOMER, None)
    rejected = transition_request(db, ADMIN, request.id, "reject")
    assert rejected.status == RequestStatus.REJECTED
    db.expire_all()
    assert db.get(Student, "student4").class_id is None

    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, request.id, "approve", school.class_c)
    assert exc.value.status_code == 400


def test_new_request_allowed_after_rejection(db, school):
    first = create_request(db, NEWCOMER, None)
    transition_request(db, ADMIN, first.id, "reject")
    second = create_request(db, NEWCOMER, None)
    assert second.id != first.id
    assert [r.id for r in list_pending(db)] == [second.id]


def test_approval_needs_an_existing_class(db, school):
    request = create_request(db, NEWCOMER, None)
    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, request.id, "approve")
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, request.id, "approve", 999)
    assert exc.value.status_code == 404

    db.expire_all()
    assert db.get(ClassAssignmentRequest, request.id).status == RequestStatus.PENDING


def test_full_class_cannot_take_more_students(db, school):
    for i in range(2):
        db.add(Student(id=f"filler{i}", username=f"filler{i}", name="Fill", surname="Er", class_id=school.class_c))
    db.commit()
    request = create_request(db, NEWCOMER, None)
    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, request.id, "approve", school.class_c)
    assert exc.value.status_code == 400


def test_missing_request(db, school):
    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, 999, "reject")
    assert exc.value.status_code == 404


def test_only_admins_transition(db, school):
    request = create_request(db, NEWCOMER, None)
    with pytest.raises(HTTPException) as exc:
        transition_request(db, ctx("teacher1", UserRole.TEACHER), request.id, "reject")
    assert exc.value.status_code == 403


def test_stale_review_loses_the_race(db, session_factory, school):
    request = create_request(db, NEWCOMER, None)

    # Another reviewer already closed the request after this session loaded it.
    other = session_factory()
    try:
        transition_request(other, ADMIN, request.id, "reject")
    finally:
        other.close()

    loaded = db.get(ClassAssignmentRequest, request.id)
    assert loaded is not None
    with pytest.raises(HTTPException) as exc:
        transition_request(db, ADMIN, request.id, "approve", school.class_c)
    assert exc.value.status_code == 400
    db.expire_all()
    assert db.get(Student, "student4").class_id is None


def test_pending_rows_are_unique_per_student(db, school):
    create_request(db, NEWCOMER, None)
    db.add(ClassAssignmentRequest(student_id="student4", status=RequestStatus.PENDING))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    rows = db.scalars(select(ClassAssignmentRequest)).all()
    assert len(rows) == 1


# --- over HTTP ---


def test_request_flow_over_http(client, school):
    student = auth("student4", "student")
    admin = auth("admin1", "admin")

    opened = client.post("/api/class-assignment-request", json={"studentId": "student4"}, headers=student)
    assert opened.status_code == 200
    request_id = opened.json()["request"]["id"]

    again = client.post("/api/class-assignment-request", json={"studentId": "student4"}, headers=student)
    assert again.status_code == 409
    assert again.json() == {"error": "Request already pending"}

    status = client.get("/api/class-assignment-request", params={"studentId": "student4"}, headers=student)
    assert status.json() == {"pending": True}

    assert client.get("/api/class-assignment-request/all", headers=student).status_code == 403
    pending = client.get("/api/class-assignment-request/all", headers=admin).json()["requests"]
    assert [r["id"] for r in pending] == [request_id]
    assert pending[0]["student"]["name"] == "Newt"

    approved = client.patch(
        f"/api/class-assignment-request/{request_id}",
        json={"action": "approve", "classId": school.class_c},
        headers=admin,
    )
    assert approved.status_code == 200
    assert approved.json()["request"]["status"] == "approved"

    me = client.get("/api/student/class", headers=student)
    assert me.json() == {"classId": school.class_c}

    rejected = client.patch(
        f"/api/class-assignment-request/{request_id}", json={"action": "reject"}, headers=admin
    )
    assert rejected.status_code == 400


def test_transition_rejects_unknown_action(client, school):
    response = client.patch(
        "/api/class-assignment-request/1", json={"action": "maybe"}, headers=auth("admin1", "admin")
    )
    assert response.status_code == 400
