import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .database import get_db_session
from .middleware import CallerContext, get_caller_context, require_roles
from .models import ClassAssignmentRequest, RequestStatus, SchoolClass, Student, UserRole, utcnow
from .schemas import ClassRequestCreate, ClassRequestOut, ClassRequestTransition, PersonRef


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/class-assignment-request", tags=["Class Assignment Requests"])


def request_out(request: ClassAssignmentRequest) -> dict[str, Any]:
    student = request.student
    return ClassRequestOut(
        id=request.id,
        student_id=request.student_id,
        status=request.status,
        class_id=request.class_id,
        reviewed_by=request.reviewed_by,
        created_at=request.created_at,
        updated_at=request.updated_at,
        student=PersonRef(id=student.id, name=student.name, surname=student.surname) if student else None,
    ).to_json()


def _pending_for(db: Session, student_id: str) -> ClassAssignmentRequest | None:
    return db.scalars(
        select(ClassAssignmentRequest).where(
            ClassAssignmentRequest.student_id == student_id,
            ClassAssignmentRequest.status == RequestStatus.PENDING,
        )
    ).first()


def create_request(db: Session, context: CallerContext, student_id: str | None) -> ClassAssignmentRequest:
    if context.role != UserRole.STUDENT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only students can request a class")
    student_id = student_id or context.user_id
    if student_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Can only request a class for yourself")
    if db.get(Student, student_id) is None:
        raise HTTPException(status_code=400, detail="Student does not exist")
    if _pending_for(db, student_id) is not None:
        raise HTTPException(status_code=409, detail="Request already pending")

    request = ClassAssignmentRequest(student_id=student_id, status=RequestStatus.PENDING)
    db.add(request)
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost a race against another pending insert for the same student.
        db.rollback()
        raise HTTPException(status_code=409, detail="Request already pending") from exc
    db.refresh(request)
    logger.info("Class assignment request %s opened by %s", request.id, student_id)
    return request


def has_pending(db: Session, context: CallerContext, student_id: str | None) -> bool:
    if not student_id:
        return False
    if not context.is_admin and student_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Can only check your own requests")
    return _pending_for(db, student_id) is not None


def list_pending(db: Session) -> list[ClassAssignmentRequest]:
    statement = (
        select(ClassAssignmentRequest)
        .options(selectinload(ClassAssignmentRequest.student))
        .where(ClassAssignmentRequest.status == RequestStatus.PENDING)
        .order_by(ClassAssignmentRequest.created_at.desc(), ClassAssignmentRequest.id.desc())
    )
    return list(db.scalars(statement))


def transition_request(
    db: Session,
    context: CallerContext,
    request_id: int,
    action: str,
    class_id: int | None = None,
) -> ClassAssignmentRequest:
    """Approve or reject a pending request.

    The status change is a compare-and-set on ``status = 'pending'`` and the
    student's class is written in the same transaction, so of two concurrent
    reviews only the first one applies and the second sees a terminal state.
    """
    if not context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role privileges")
    if action not in ("approve", "reject"):
        raise HTTPException(status_code=400, detail="Invalid request")

    request = db.get(ClassAssignmentRequest, request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    if request.status != RequestStatus.PENDING:
        raise HTTPException(status_code=400, detail=f"Request already {request.status.value}")

    values: dict[str, Any] = {"reviewed_by": context.user_id, "updated_at": utcnow()}
    if action == "approve":
        if not class_id:
            raise HTTPException(status_code=400, detail="Missing classId")
        school_class = db.get(SchoolClass, class_id)
        if school_class is None:
            raise HTTPException(status_code=404, detail="Class not found")
        if len(school_class.students) >= school_class.capacity:
            raise HTTPException(status_code=400, detail="Class is full")
        values.update(status=RequestStatus.APPROVED, class_id=class_id)
    else:
        values.update(status=RequestStatus.REJECTED)

    try:
        claimed = db.execute(
            update(ClassAssignmentRequest)
            .where(ClassAssignmentRequest.id == request_id, ClassAssignmentRequest.status == RequestStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed != 1:
            db.rollback()
            db.refresh(request)
            raise HTTPException(status_code=400, detail=f"Request already {request.status.value}")
        if action == "approve":
            db.execute(
                update(Student)
                .where(Student.id == request.student_id)
                .values(class_id=class_id)
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except HTTPException:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    logger.info("Class assignment request %s %s by %s", request_id, request.status.value, context.user_id)
    return request


@router.post("")
def open_request(
    payload: ClassRequestCreate,
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    request = create_request(db, context, payload.student_id)
    return {"success": True, "request": request_out(request)}


@router.get("")
def pending_status(
    student_id: str | None = Query(default=None, alias="studentId"),
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    return {"pending": has_pending(db, context, student_id)}


@router.get("/all")
def all_pending(
    db: Session = Depends(get_db_session),
    _: CallerContext = Depends(require_roles(UserRole.ADMIN)),
):
    return {"requests": [request_out(r) for r in list_pending(db)]}


@router.patch("/{request_id}")
def review_request(
    request_id: int,
    payload: ClassRequestTransition,
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(require_roles(UserRole.ADMIN)),
):
    request = transition_request(db, context, request_id, payload.action, payload.class_id)
    return {"success": True, "request": request_out(request)}
