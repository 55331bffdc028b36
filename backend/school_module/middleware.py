from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .models import Student, UserRole
from .security import AuthError, class_claim, decode_access_token, role_claim


@dataclass(frozen=True)
class CallerContext:
    user_id: str
    role: UserRole
    class_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth scheme")
    return parts[1].strip()


def context_from_token(db: Session, token: str) -> CallerContext:
    try:
        payload = decode_access_token(token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    raw_role = role_claim(payload)
    try:
        role = UserRole(raw_role)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown or missing role") from exc

    class_id = class_claim(payload)
    if role == UserRole.STUDENT:
        # The stored row wins over the claim so an approved class request
        # takes effect before the identity provider refreshes the token.
        student = db.get(Student, payload["sub"])
        if student is not None and student.class_id is not None:
            class_id = student.class_id
    return CallerContext(user_id=str(payload["sub"]), role=role, class_id=class_id)


def get_caller_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> CallerContext:
    return context_from_token(db, _parse_token(authorization))


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(context: CallerContext = Depends(get_caller_context)) -> CallerContext:
        if context.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role privileges")
        return context

    return dependency
