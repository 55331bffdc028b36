import asyncio
import logging
from typing import Any

from fastapi import HTTPException, WebSocket, status
from sqlalchemy import and_, false, or_, select, update
from sqlalchemy.orm import Session, selectinload

from .config import settings
from .middleware import CallerContext
from .models import Lesson, Message, Parent, Student, Teacher, UserRole
from .schemas import MessageOut, UserInfoOut
from .scopes import LIKE_ESCAPE, like_pattern
from .services import find_person


logger = logging.getLogger(__name__)


def message_out(message: Message) -> dict[str, Any]:
    return MessageOut(
        id=message.id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        content=message.content,
        timestamp=message.timestamp,
        read=message.read,
    ).to_json()


def send_message(
    db: Session,
    context: CallerContext,
    sender_id: str | None,
    receiver_id: str | None,
    content: str | None,
) -> Message:
    if not sender_id or not receiver_id or content is None:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if sender_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Can only send messages as yourself")
    trimmed = content.strip()
    if not trimmed:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    if len(content) > settings.message_max_length:
        raise HTTPException(
            status_code=400, detail=f"Message too long (max {settings.message_max_length} characters)"
        )
    if find_person(db, receiver_id) is None:
        raise HTTPException(status_code=404, detail="Receiver not found")

    message = Message(sender_id=sender_id, receiver_id=receiver_id, content=trimmed)
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info("Message %s sent from %s to %s", message.id, sender_id, receiver_id)
    return message


def list_inbox(db: Session, context: CallerContext, user_id: str | None) -> list[Message]:
    user_id = user_id or context.user_id
    if user_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Can only view your own messages")
    statement = (
        select(Message)
        .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
        .order_by(Message.timestamp.desc(), Message.id.desc())
        .limit(settings.inbox_limit)
    )
    return list(db.scalars(statement))


def get_conversation(
    db: Session,
    context: CallerContext,
    user_a: str | None,
    user_b: str | None,
    after_id: int | None = None,
) -> list[Message]:
    if not user_a or not user_b:
        raise HTTPException(status_code=400, detail="Missing user1 or user2")
    if not context.is_admin and context.user_id not in (user_a, user_b):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this conversation")
    statement = select(Message).where(
        or_(
            and_(Message.sender_id == user_a, Message.receiver_id == user_b),
            and_(Message.sender_id == user_b, Message.receiver_id == user_a),
        )
    )
    if after_id is not None:
        statement = statement.where(Message.id > after_id)
    return list(db.scalars(statement.order_by(Message.timestamp.asc(), Message.id.asc())))


def mark_read(db: Session, context: CallerContext, message_id: int) -> bool:
    """Set the read flag. Returns ``False`` when the message does not exist."""
    message = db.get(Message, message_id)
    if message is None:
        return False
    if message.receiver_id != context.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the receiver can mark a message read")
    if not message.read:
        db.execute(update(Message).where(Message.id == message_id).values(read=True))
        db.commit()
        db.refresh(message)
    return True


# --- directory ---


def display_name(role: UserRole, person, suffix: str | None = None) -> str:
    if role == UserRole.ADMIN:
        return f"{person.username} (Admin)"
    return f"{person.name} {person.surname} ({suffix or role.value.capitalize()})"


def resolve_user_info(db: Session, user_id: str | None) -> dict[str, Any]:
    if not user_id:
        raise HTTPException(status_code=400, detail="Missing userId")
    found = find_person(db, user_id)
    if found is None:
        raise HTTPException(status_code=404, detail="User not found")
    role, person = found
    return UserInfoOut(
        id=person.id,
        username=person.username,
        name=getattr(person, "name", ""),
        surname=getattr(person, "surname", ""),
        img=getattr(person, "img", None),
        type=role,
        display_name=display_name(role, person),
    ).to_json()


def _entry(role: UserRole, person, suffix: str | None = None) -> dict[str, Any]:
    entry = {
        "id": person.id,
        "username": person.username,
        "name": person.name,
        "surname": person.surname,
        "img": getattr(person, "img", None),
        "type": role.value,
        "displayName": display_name(role, person, suffix),
    }
    return entry


def _student_suffix(student: Student) -> str:
    return student.class_.name if student.class_ else "Student"


def _audience(context: CallerContext) -> list[tuple[UserRole, Any, Any]]:
    """Statements for every person type the caller may write to, with a label."""
    me = context.user_id
    teachers = select(Teacher)
    students = select(Student).options(selectinload(Student.class_))
    parents = select(Parent)

    if context.role == UserRole.ADMIN:
        return [
            (UserRole.TEACHER, teachers, None),
            (UserRole.STUDENT, students, _student_suffix),
            (UserRole.PARENT, parents, None),
        ]
    if context.role == UserRole.TEACHER:
        return [
            (UserRole.STUDENT, students, _student_suffix),
            (UserRole.PARENT, parents, None),
            (UserRole.TEACHER, teachers.where(Teacher.id != me), None),
        ]
    if context.role == UserRole.STUDENT:
        class_id = context.class_id
        if class_id is None:
            class_teachers = teachers.where(false())
            classmates = students.where(false())
        else:
            class_teachers = teachers.where(Teacher.lessons.any(Lesson.class_id == class_id))
            classmates = students.where(Student.class_id == class_id, Student.id != me)
        return [
            (UserRole.TEACHER, class_teachers, None),
            (UserRole.STUDENT, classmates, lambda s: "Classmate"),
            (UserRole.PARENT, parents.where(Parent.students.any(Student.id == me)), None),
        ]
    if context.role == UserRole.PARENT:
        child_classes = select(Student.class_id).where(Student.parent_id == me).correlate(None)
        return [
            (UserRole.TEACHER, teachers.where(Teacher.lessons.any(Lesson.class_id.in_(child_classes))), None),
            (UserRole.STUDENT, students.where(Student.parent_id == me), lambda s: "Child"),
        ]
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid role")


def _collect(db: Session, context: CallerContext, query: str | None, limit: int | None) -> list[dict[str, Any]]:
    people: list[dict[str, Any]] = []
    for role, statement, suffix in _audience(context):
        model = statement.column_descriptions[0]["entity"]
        if query:
            pattern = like_pattern(query)
            columns = (model.username, model.name, model.surname)
            statement = statement.where(or_(*(column.ilike(pattern, escape=LIKE_ESCAPE) for column in columns)))
        statement = statement.order_by(model.name, model.surname)
        if limit:
            statement = statement.limit(limit)
        for person in db.scalars(statement):
            people.append(_entry(role, person, suffix(person) if suffix else None))
    return people


def search_users(db: Session, context: CallerContext, query: str | None) -> list[dict[str, Any]]:
    query = (query or "").strip()
    if len(query) < 2:
        return []
    return _collect(db, context, query, settings.user_search_limit)


def list_contacts(db: Session, context: CallerContext) -> list[dict[str, Any]]:
    return _collect(db, context, None, None)


# --- push channel ---


class MessageHub:
    """Open websockets keyed by identity id; per process, best effort."""

    def __init__(self):
        self.connections: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.connections.setdefault(user_id, set()).add(websocket)

    async def disconnect(self, user_id: str, websocket: WebSocket):
        async with self._lock:
            sockets = self.connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                self.connections.pop(user_id, None)

    async def publish(self, payload: dict[str, Any]):
        recipients = {payload.get("senderId"), payload.get("receiverId")} - {None}
        for user_id in recipients:
            for websocket in list(self.connections.get(user_id, ())):
                try:
                    await websocket.send_json({"type": "message", "message": payload})
                except Exception as exc:
                    logger.warning("Dropping socket for %s: %s", user_id, exc)
                    await self.disconnect(user_id, websocket)


hub = MessageHub()
