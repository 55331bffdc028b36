import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from .database import get_db_session
from .listing import fetch_page, parse_page
from .middleware import CallerContext, get_caller_context, require_roles
from .models import UserRole
from .scopes import ENTITY_SPECS, build_list_query
from .services import (
    SERIALIZERS,
    WRITE_SPECS,
    WriteSpec,
    count_users,
    delete_entity,
    lesson_schedule,
    list_class_options,
    list_teacher_options,
    student_class_id,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["School"])


@router.get("/list/{entity}")
def list_entity(
    entity: str,
    request: Request,
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    if entity not in ENTITY_SPECS:
        raise HTTPException(status_code=404, detail=f"Unknown list: {entity}")
    filters = dict(request.query_params)
    statement, where = build_list_query(entity, context, filters)
    page = fetch_page(db, statement, where, parse_page(filters.get("page")))
    serialize = SERIALIZERS[entity]
    return {
        "data": [serialize(row).to_json() for row in page.items],
        "count": page.total,
        "page": page.page,
        "pageSize": page.page_size,
    }


@router.get("/classes/all")
def all_classes(db: Session = Depends(get_db_session), _: CallerContext = Depends(get_caller_context)):
    return {"classes": list_class_options(db)}


@router.get("/teachers")
def all_teachers(db: Session = Depends(get_db_session), _: CallerContext = Depends(get_caller_context)):
    return {"teachers": list_teacher_options(db)}


@router.get("/student/class")
def my_class(db: Session = Depends(get_db_session), context: CallerContext = Depends(get_caller_context)):
    return {"classId": student_class_id(db, context)}


@router.get("/schedule")
def schedule(
    teacher_id: str | None = Query(default=None, alias="teacherId"),
    class_id: int | None = Query(default=None, alias="classId"),
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    return {"schedule": [entry.to_json() for entry in lesson_schedule(db, context, teacher_id, class_id)]}


@router.get("/counts")
def user_counts(
    db: Session = Depends(get_db_session),
    _: CallerContext = Depends(require_roles(UserRole.ADMIN)),
):
    return {"counts": count_users(db)}


@router.get("/auth/me")
def me(context: CallerContext = Depends(get_caller_context)):
    return {"userId": context.user_id, "role": context.role.value, "classId": context.class_id}


async def delete_target_id(request: Request) -> Any:
    """``id`` from a JSON body or from form data, whichever the client sent."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        return body.get("id") if isinstance(body, dict) else None
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        return form.get("id")
    return request.query_params.get("id")


def _writers(spec: WriteSpec) -> tuple[UserRole, ...]:
    return (UserRole.ADMIN, UserRole.TEACHER) if spec.teacher_writable else (UserRole.ADMIN,)


def _register_crud(entity: str, spec: WriteSpec) -> None:
    guard = require_roles(*_writers(spec))
    create_schema = spec.create_schema
    update_schema = spec.update_schema

    def create(
        payload: create_schema,
        db: Session = Depends(get_db_session),
        context: CallerContext = Depends(guard),
    ):
        row = spec.create(db, context, payload)
        return {"success": True, spec.key: spec.serialize(row).to_json()}

    def modify(
        payload: update_schema,
        db: Session = Depends(get_db_session),
        context: CallerContext = Depends(guard),
    ):
        row = spec.update(db, context, payload)
        return {"success": True, spec.key: spec.serialize(row).to_json()}

    def remove(
        target_id: Any = Depends(delete_target_id),
        db: Session = Depends(get_db_session),
        context: CallerContext = Depends(guard),
    ):
        delete_entity(db, context, entity, target_id)
        return {"success": True}

    router.add_api_route(f"/{entity}", create, methods=["POST"], name=f"create_{spec.key}")
    router.add_api_route(f"/{entity}", modify, methods=["PUT"], name=f"update_{spec.key}")
    router.add_api_route(f"/{entity}", remove, methods=["DELETE"], name=f"delete_{spec.key}")


for _entity, _spec in WRITE_SPECS.items():
    _register_crud(_entity, _spec)
